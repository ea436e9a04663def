"""DuckDB storage for advocates."""

"""HTTP surface for the advocate directory."""

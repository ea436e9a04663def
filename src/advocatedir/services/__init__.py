"""Transport-agnostic services: validation, query composition and execution."""

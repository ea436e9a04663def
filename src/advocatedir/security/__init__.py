"""Input sanitization for untrusted request text."""

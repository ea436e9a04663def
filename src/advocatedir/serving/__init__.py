"""Serving surfaces, response models and backend wiring."""

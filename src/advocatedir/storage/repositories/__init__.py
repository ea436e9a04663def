"""Repositories over the storage gateway."""

"""Jellybridge FastAPI application package."""

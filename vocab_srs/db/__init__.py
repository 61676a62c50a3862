"""Persistence layer: engine, models and the progress store."""

"""Vocabulary spaced-repetition service."""

__version__ = "0.1.0"

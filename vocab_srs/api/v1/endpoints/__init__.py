"""API endpoint modules for v1."""

from vocab_srs.api.v1.endpoints import srs

__all__ = ["srs"]

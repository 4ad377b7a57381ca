"""Consult API: auth, storage resolution and consultation records."""

__version__ = "1.0.0"

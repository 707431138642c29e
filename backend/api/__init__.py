"""API route handlers."""
from . import fms

__all__ = ["fms"]

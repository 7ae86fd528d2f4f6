"""API routers."""

from api.routers import columns, donors

__all__ = ["columns", "donors"]

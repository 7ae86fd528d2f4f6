"""HTTP API for the field store (FastAPI)."""

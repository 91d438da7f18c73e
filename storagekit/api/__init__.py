"""HTTP routes (FastAPI)."""

from storagekit.api.local_storage_routes import create_local_storage_router

__all__ = ["create_local_storage_router"]

from fastapi import Request

from keyadmin.services.kv_store import DualBackendStore


def get_store(request: Request) -> DualBackendStore:
    """Dependency for FastAPI endpoints to get the store built at startup."""
    return request.app.state.store

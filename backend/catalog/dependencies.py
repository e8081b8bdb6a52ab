"""FastAPI dependency providers (overridden in tests via app.dependency_overrides)."""

from catalog.repositories.app_repository import AppRepository, app_repository
from catalog.services.sync_service import SyncService, sync_service


def get_app_repository() -> AppRepository:
    return app_repository


def get_sync_service() -> SyncService:
    return sync_service

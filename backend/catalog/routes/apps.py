"""
App Catalog Backend — App Route Handlers
=========================================

What:  CRUD, lookup and search endpoints under /api/app.
How:   Handlers validate input, call AppRepository / SyncService, and wrap
       results in {"data": ...} envelopes. Errors are raised as CatalogError
       subclasses and rendered by the global handlers in main.py.

Authority:
    USER   add-app, add-multiple-apps, get-app, get-all-apps,
           get-apps-by-ids, search-apps
    ADMIN  update-app, update-multiple-apps, sync-store
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query, status

from catalog.auth import require_admin, require_user
from catalog.dependencies import get_app_repository, get_sync_service
from catalog.exceptions import NotFoundError, RepositoryError, ValidationError
from catalog.repositories.app_repository import AppRepository
from catalog.schemas.app import (
    SEARCH_QUERY_PATTERN,
    AppCreate,
    AppListResponse,
    AppPartialUpdate,
    AppResponse,
    AppsByIdsRequest,
    AppUpdate,
    BulkItemResult,
    ErrorResponse,
    SyncRunResponse,
)
from catalog.services.sync_service import SyncRun, SyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/app", tags=["Apps"])

_ERRORS = {
    401: {"description": "Missing or invalid API key", "model": ErrorResponse},
    403: {"description": "Insufficient authority", "model": ErrorResponse},
    500: {"description": "Server error", "model": ErrorResponse},
}


def _run_response(run: SyncRun) -> SyncRunResponse:
    return SyncRunResponse(
        run_id=run.run_id,
        state=run.state,
        total_apps=run.total_apps,
        batch_size=run.batch_size,
        processed=run.processed,
        started_at=run.started_at,
    )


# ── Create ────────────────────────────────────────────────────────────────


@router.post(
    "/add-app",
    response_model=AppResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"description": "Duplicate app ID", "model": ErrorResponse}, **_ERRORS},
    summary="Add an app to the catalog",
)
async def add_app(
    body: AppCreate,
    repository: AppRepository = Depends(get_app_repository),
    sync: SyncService = Depends(get_sync_service),
    _: str = Depends(require_user),
) -> AppResponse:
    """
    Insert a new app, then enrich it from the stores right away.

    The store lookup is best effort: if it fails the app is still created and
    the next bulk sync fills the store fields.
    """
    if await repository.get_by_id(body.id) is not None:
        raise ValidationError(message=f"App with ID '{body.id}' already exists", field="id")

    record = await repository.put(body.to_record())
    logger.info("App %s added", record.id)

    record = await sync.refresh_if_stale(record)
    return AppResponse(data=record)


@router.post(
    "/add-multiple-apps",
    response_model=List[BulkItemResult],
    responses=_ERRORS,
    summary="Add several apps in one call",
)
async def add_multiple_apps(
    body: List[AppCreate],
    repository: AppRepository = Depends(get_app_repository),
    _: str = Depends(require_user),
) -> List[BulkItemResult]:
    """Each app is inserted on its own; store data arrives with the next sync."""
    results: List[BulkItemResult] = []
    for item in body:
        try:
            if await repository.get_by_id(item.id) is not None:
                results.append(BulkItemResult(
                    id=item.id, name=item.name, success=False, message="App already exists",
                ))
                continue
            await repository.put(item.to_record())
            results.append(BulkItemResult(
                id=item.id, name=item.name, success=True, message="App added",
            ))
        except RepositoryError as e:
            results.append(BulkItemResult(
                id=item.id, name=item.name, success=False, message=e.message,
            ))
    logger.info(
        "Bulk add: %d of %d apps added",
        sum(1 for r in results if r.success),
        len(results),
    )
    return results


# ── Update (admin) ────────────────────────────────────────────────────────


@router.put(
    "/update-app",
    response_model=AppResponse,
    responses={404: {"description": "App not found", "model": ErrorResponse}, **_ERRORS},
    summary="Update the catalog fields of an app",
)
async def update_app(
    body: AppUpdate,
    repository: AppRepository = Depends(get_app_repository),
    _: str = Depends(require_admin),
) -> AppResponse:
    if await repository.get_by_id(body.id) is None:
        raise NotFoundError(resource="app", resource_id=body.id)
    record = await repository.update_fields(body.id, body.changed_fields())
    return AppResponse(data=record)


@router.post(
    "/update-multiple-apps",
    response_model=List[BulkItemResult],
    responses=_ERRORS,
    summary="Partially update several apps",
)
async def update_multiple_apps(
    body: List[AppPartialUpdate],
    repository: AppRepository = Depends(get_app_repository),
    _: str = Depends(require_admin),
) -> List[BulkItemResult]:
    """Only the attributes present in each item are written; ID and name never change."""
    outcomes = await repository.update_many(
        (item.id, item.changed_fields()) for item in body
    )
    return [
        BulkItemResult(
            id=app_id,
            success=error is None,
            message="App updated" if error is None else error,
        )
        for app_id, error in outcomes
    ]


# ── Read ──────────────────────────────────────────────────────────────────


@router.get(
    "/get-app/{app_id}",
    response_model=AppResponse,
    responses={404: {"description": "App not found", "model": ErrorResponse}, **_ERRORS},
    summary="Get one app, refreshing stale store data first",
)
async def get_app(
    app_id: str,
    repository: AppRepository = Depends(get_app_repository),
    sync: SyncService = Depends(get_sync_service),
    _: str = Depends(require_user),
) -> AppResponse:
    """
    Return a single app.

    When the store data is older than the staleness threshold (or was never
    fetched) the stores are queried before responding. A failed refresh
    still returns the stored record.
    """
    record = await repository.get_by_id(app_id)
    if record is None:
        raise NotFoundError(resource="app", resource_id=app_id)
    record = await sync.refresh_if_stale(record)
    return AppResponse(data=record)


@router.get(
    "/get-all-apps",
    response_model=AppListResponse,
    responses={404: {"description": "Catalog is empty", "model": ErrorResponse}, **_ERRORS},
    summary="List every app in the catalog",
)
async def get_all_apps(
    repository: AppRepository = Depends(get_app_repository),
    _: str = Depends(require_user),
) -> AppListResponse:
    apps = await repository.get_all()
    if not apps:
        raise NotFoundError(resource="apps")
    return AppListResponse(data=apps)


@router.post(
    "/get-apps-by-ids",
    response_model=AppListResponse,
    responses=_ERRORS,
    summary="Fetch up to 36 apps by ID",
)
async def get_apps_by_ids(
    body: AppsByIdsRequest,
    repository: AppRepository = Depends(get_app_repository),
    _: str = Depends(require_user),
) -> AppListResponse:
    return AppListResponse(data=await repository.get_by_ids(body.ids))


@router.get(
    "/search-apps",
    response_model=AppListResponse,
    responses={400: {"description": "Invalid search query", "model": ErrorResponse}, **_ERRORS},
    summary="Search apps by ID or name",
)
async def search_apps(
    q: str = Query(min_length=1, max_length=100, description="Substring of the app ID or name"),
    repository: AppRepository = Depends(get_app_repository),
    _: str = Depends(require_user),
) -> AppListResponse:
    if not SEARCH_QUERY_PATTERN.match(q):
        raise ValidationError(
            message="Search query may only contain letters, digits, spaces and - _ ' \"",
            field="q",
        )
    return AppListResponse(data=await repository.search(q))


# ── Store Sync (admin) ────────────────────────────────────────────────────


@router.post(
    "/sync-store",
    response_model=SyncRunResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=_ERRORS,
    summary="Start a bulk store data sync",
)
async def sync_store(
    sync: SyncService = Depends(get_sync_service),
    _: str = Depends(require_admin),
) -> SyncRunResponse:
    """
    Start syncing every app with the App Store and Google Play.

    Responds as soon as the batch scheduler has started; the run continues
    in the background for as many batch intervals as the catalog needs.
    """
    run = await sync.sync_all_apps()
    return _run_response(run)


@router.get(
    "/sync-store/runs",
    response_model=List[SyncRunResponse],
    responses=_ERRORS,
    summary="List store sync runs in progress",
)
async def list_sync_runs(
    sync: SyncService = Depends(get_sync_service),
    _: str = Depends(require_admin),
) -> List[SyncRunResponse]:
    return [_run_response(run) for run in sync.active_runs]

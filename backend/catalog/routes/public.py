"""
App Catalog Backend — Public Route Handlers
============================================

What:  Unauthenticated read endpoints used by city websites.
Why:   City pages embed app details (links, artwork) without holding an API key.

No store refresh happens here: public reads serve whatever the last sync stored.
"""

from fastapi import APIRouter, Depends

from catalog.dependencies import get_app_repository
from catalog.exceptions import NotFoundError
from catalog.repositories.app_repository import AppRepository
from catalog.schemas.app import AppResponse, ErrorResponse

router = APIRouter(prefix="/api/public", tags=["Public"])


@router.get(
    "/get-city-data/{app_id}",
    response_model=AppResponse,
    responses={404: {"description": "App not found", "model": ErrorResponse}},
    summary="Public app data for a city page",
)
async def get_city_data(
    app_id: str,
    repository: AppRepository = Depends(get_app_repository),
) -> AppResponse:
    record = await repository.get_by_id(app_id)
    if record is None:
        raise NotFoundError(resource="app", resource_id=app_id)
    return AppResponse(data=record)

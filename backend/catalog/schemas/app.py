"""
App Catalog Backend — Pydantic Request/Response Schemas
========================================================

What:  Pydantic models defining the API contract and the in-memory app record.
Why:   Strict input validation, automatic serialization, and OpenAPI doc generation.
How:   Python attributes are snake_case; the JSON wire format is camelCase
       (alias_generator=to_camel), matching what the frontend already sends.

AppRecord is also the value type the sync pipeline works with: the merge
engine receives and returns AppRecord instances, never ORM rows.
"""

import re
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


_CAMEL = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    from_attributes=True,
)

# Same character whitelist the search endpoint has always accepted
SEARCH_QUERY_PATTERN = re.compile(r"^[a-zA-Z0-9 \-_'\"]*$")

# get-apps-by-ids never fetches more than this many records per call
MAX_IDS_PER_REQUEST = 36


def _check_link(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return value
    if not value.startswith(("http://", "https://")):
        raise ValueError("must be a valid http(s) URL")
    return value


# ══════════════════════════════════════════════════════════════════════════
# Domain Record
# ══════════════════════════════════════════════════════════════════════════


class AppRecord(BaseModel):
    """
    What:  Full representation of one cataloged application.
    Who:   Returned by the read endpoints; consumed and produced by the
           merge engine during store sync.

    Field groups:
        - identity / catalog: maintained through the CRUD endpoints
        - ios_app_id / android_app_id: which store entries to look up
        - enrichment: overwritten only by the store sync pipeline
    """

    model_config = _CAMEL

    id: str
    name: str
    query_name: Optional[str] = None
    env: Optional[str] = None
    tenant: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    ios_folder: Optional[str] = None
    android_folder: Optional[str] = None
    color_specs: Optional[str] = None
    figma_app_name: Optional[str] = None
    web_app_figma_link: Optional[str] = None
    web_app_link: Optional[str] = None
    pso: Optional[str] = None
    psm: Optional[str] = None

    ios_app_id: Optional[str] = None
    android_app_id: Optional[str] = None

    image_url: Optional[str] = None
    ios_link: Optional[str] = None
    ios_bundle_id: Optional[str] = None
    ios_version: Optional[str] = None
    ios_release: Optional[str] = None
    ios_screenshots: Optional[List[str]] = None
    ios_current_version_release_date: Optional[str] = None
    android_link: Optional[str] = None
    android_version: Optional[str] = None
    android_screenshots: Optional[List[str]] = None
    android_current_version_release_date: Optional[str] = None
    languages: Optional[List[str]] = None
    last_store_update: Optional[datetime] = None


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class AppCreate(BaseModel):
    """
    What:  Body of POST /api/app/add-app (and items of add-multiple-apps).
    Why:   Store enrichment fields are not accepted here; they are filled by
           the sync pipeline right after the insert.
    """

    model_config = _CAMEL

    id: str = Field(min_length=1, max_length=128)
    name: str = Field(min_length=1, max_length=255)
    query_name: Optional[str] = None
    env: str = Field(min_length=1)
    tenant: str = Field(min_length=1)
    city: str = Field(min_length=1)
    country: str = Field(min_length=1)
    region: Optional[str] = None
    ios_app_id: Optional[str] = None
    android_app_id: Optional[str] = None
    ios_folder: Optional[str] = None
    android_folder: Optional[str] = None
    color_specs: Optional[str] = None
    figma_app_name: Optional[str] = None
    web_app_figma_link: Optional[str] = None
    web_app_link: Optional[str] = None
    pso: Optional[str] = None
    psm: Optional[str] = None

    @field_validator("web_app_figma_link", "web_app_link")
    @classmethod
    def validate_links(cls, v: Optional[str]) -> Optional[str]:
        return _check_link(v)

    def to_record(self) -> AppRecord:
        """Build the initial record; queryName defaults to the lower-cased name."""
        data = self.model_dump()
        if not data.get("query_name"):
            data["query_name"] = self.name.lower()
        return AppRecord(**data)


class AppUpdate(BaseModel):
    """
    What:  Body of PUT /api/app/update-app (admin only).
    Why:   Only catalog fields can be edited by hand; `name` is accepted to
           identify the payload but is never written (names are immutable
           like the ID).
    """

    model_config = _CAMEL

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    city: str = Field(min_length=1)
    country: str = Field(min_length=1)
    region: Optional[str] = None
    ios_app_id: Optional[str] = None
    android_app_id: Optional[str] = None
    ios_folder: Optional[str] = None
    android_folder: Optional[str] = None
    color_specs: Optional[str] = None
    figma_app_name: Optional[str] = None
    web_app_figma_link: Optional[str] = None
    web_app_link: Optional[str] = None

    @field_validator("web_app_figma_link", "web_app_link")
    @classmethod
    def validate_links(cls, v: Optional[str]) -> Optional[str]:
        return _check_link(v)

    def changed_fields(self) -> dict:
        return self.model_dump(exclude={"id", "name"})


class AppPartialUpdate(BaseModel):
    """
    What:  One item of POST /api/app/update-multiple-apps (admin only).
    How:   Only the attributes actually sent are written (exclude_unset).
    """

    model_config = _CAMEL

    id: str = Field(min_length=1)
    query_name: Optional[str] = None
    env: Optional[str] = None
    tenant: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    ios_app_id: Optional[str] = None
    android_app_id: Optional[str] = None
    ios_folder: Optional[str] = None
    android_folder: Optional[str] = None
    color_specs: Optional[str] = None
    figma_app_name: Optional[str] = None
    web_app_figma_link: Optional[str] = None
    web_app_link: Optional[str] = None
    pso: Optional[str] = None
    psm: Optional[str] = None

    def changed_fields(self) -> dict:
        return self.model_dump(exclude={"id"}, exclude_unset=True)


class AppsByIdsRequest(BaseModel):
    """Body of POST /api/app/get-apps-by-ids."""

    ids: List[str] = Field(description="App IDs; only the first 36 are fetched")


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class AppResponse(BaseModel):
    """Single-app envelope: {"data": {...}}."""

    data: AppRecord


class AppListResponse(BaseModel):
    """List envelope: {"data": [...]}."""

    data: List[AppRecord]


class MessageResponse(BaseModel):
    message: str


class BulkItemResult(BaseModel):
    """Per-item outcome of the add-multiple-apps and update-multiple-apps endpoints."""

    id: str
    name: Optional[str] = None
    success: bool
    message: str


class SyncRunResponse(BaseModel):
    """
    What:  Acknowledgment returned once a bulk store sync has been started.
    Why:   The run continues in the background for many batch intervals;
           callers must not assume it has finished.
    """

    model_config = _CAMEL

    run_id: str
    state: str
    total_apps: int
    batch_size: int
    processed: int
    started_at: datetime


class ErrorResponse(BaseModel):
    """Standardized error body for every non-2xx response."""

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str
    database: str = Field(description="connected, disconnected")
    scheduler: str = Field(description="running, stopped, disabled")
    active_sync_runs: int
    uptime_seconds: float

"""
App Catalog Backend — App SQLAlchemy Model
===========================================

What:  ORM model representing the `apps` table.
Why:   Maps Python objects to database rows for type-safe database operations.
How:   Inherits from SQLAlchemy's DeclarativeBase; Alembic reads this for migrations.
Who:   Used only by AppRepository; the rest of the code works with AppRecord.

Table Design Rationale:
    - String primary key: App IDs are human-chosen slugs (e.g. "nyc-prod"),
      stable and immutable once created
    - Catalog columns: maintained by users through the CRUD endpoints
    - Store columns: written only by the store sync pipeline
    - JSON columns for screenshots/languages: ordered lists, never queried into
    - Portable types only (String/Text/JSON/DateTime) so the same model runs on
      PostgreSQL in production and SQLite in tests
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from catalog.database import Base


class App(Base):
    """
    Represents one cataloged application.

    Lifecycle:
        1. Created via "add app" (store columns usually empty)
        2. Store columns filled/overwritten by the sync pipeline
        3. Never deleted by the service
    """

    __tablename__ = "apps"

    # ── Identity ──────────────────────────────────────────────────────────
    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    query_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Lower-cased search key matched by the search endpoint",
    )

    # ── Catalog ───────────────────────────────────────────────────────────
    env: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    tenant: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    region: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    ios_folder: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    android_folder: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    color_specs: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    figma_app_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    web_app_figma_link: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    web_app_link: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    pso: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    psm: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # ── Store Linkage ─────────────────────────────────────────────────────
    # Absence means the platform is not tracked for this app
    ios_app_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    android_app_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # ── Store Enrichment (written by the sync pipeline only) ─────────────
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ios_link: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ios_bundle_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    ios_version: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    ios_release: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    ios_screenshots: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    ios_current_version_release_date: Mapped[Optional[str]] = mapped_column(
        String(32), nullable=True
    )
    android_link: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    android_version: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    android_screenshots: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    android_current_version_release_date: Mapped[Optional[str]] = mapped_column(
        String(32), nullable=True
    )
    languages: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)

    # What: When the sync pipeline last merged fresh store data into this row
    # Invariant: non-decreasing; NULL until the first successful lookup
    last_store_update: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        Index("idx_apps_query_name", "query_name"),
    )

    def __repr__(self) -> str:
        return f"<App(id='{self.id}', name='{self.name}')>"

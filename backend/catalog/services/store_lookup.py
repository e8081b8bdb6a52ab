"""
App Catalog Backend — Store Metadata Lookup
============================================

What:  Fetches per-platform app metadata from the Apple App Store and Google Play.
Why:   The sync pipeline enriches catalog records with artwork, links, versions,
       screenshots and release dates that only the stores know.
How:   One StoreLookup implementation per platform, composed by
       StoreLookupService, which dispatches on the platform tag and bounds every
       call with a timeout.
Who:   Called by SyncService for each app (bulk sync and on-demand refresh).

Result Model:
    Every lookup returns a LookupResult instead of raising:
        FOUND            → metadata is populated
        NOT_FOUND        → the store has no such app (expected, not an error)
        TRANSPORT_ERROR  → timeout, network, HTTP or malformed response
    The merge step treats anything but FOUND as "platform absent". The
    distinction between NOT_FOUND and TRANSPORT_ERROR exists for logging.

Design Decision:
    The abstract base mirrors how providers are swapped behind one interface:
    tests substitute fakes, and a new store source only needs a new subclass.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import httpx
from google_play_scraper import app as play_app
from google_play_scraper.exceptions import NotFoundError as PlayNotFoundError

from catalog.config import settings

logger = logging.getLogger(__name__)

IOS = "ios"
ANDROID = "android"


# ══════════════════════════════════════════════════════════════════════════
# Value Types
# ══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class StoreMetadata:
    """
    Raw per-platform payload consumed by the merge engine. Never persisted as-is.

    Dates are kept exactly as the store returned them; the merge engine
    normalizes them to calendar dates.
    """

    platform: str
    artwork_url: Optional[str] = None
    store_url: Optional[str] = None
    bundle_id: Optional[str] = None
    version: Optional[str] = None
    release_date: Any = None
    current_version_release_date: Any = None
    screenshots: Tuple[str, ...] = ()
    languages: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class LookupResult:
    """Outcome of one store lookup. Build instances with the classmethods."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    TRANSPORT_ERROR = "transport_error"

    status: str
    metadata: Optional[StoreMetadata] = None
    reason: Optional[str] = None
    detail: Optional[str] = field(default=None, compare=False)

    @classmethod
    def of(cls, metadata: StoreMetadata) -> "LookupResult":
        return cls(status=cls.FOUND, metadata=metadata)

    @classmethod
    def not_found(cls, reason: str = "not_found") -> "LookupResult":
        return cls(status=cls.NOT_FOUND, reason=reason)

    @classmethod
    def transport_error(cls, reason: str, detail: Optional[str] = None) -> "LookupResult":
        return cls(status=cls.TRANSPORT_ERROR, reason=reason, detail=detail)

    @property
    def found(self) -> bool:
        return self.status == self.FOUND

    @property
    def is_transport_error(self) -> bool:
        return self.status == self.TRANSPORT_ERROR


# ══════════════════════════════════════════════════════════════════════════
# Platform Lookups
# ══════════════════════════════════════════════════════════════════════════


class StoreLookup(ABC):
    """
    Abstract interface for one app store.

    Contract:
        - lookup() never raises for store-side conditions; it returns a
          LookupResult. Unexpected exceptions are converted by
          StoreLookupService.
        - Implementations do not retry; a failed app is retried by the next
          scheduled sync run.
    """

    platform: str

    @abstractmethod
    async def lookup(self, store_app_id: str) -> LookupResult:
        """Fetch metadata for `store_app_id` on this platform."""
        ...

    async def aclose(self) -> None:
        """Release any held connections (no-op by default)."""
        return None


class AppStoreLookup(StoreLookup):
    """
    iTunes Lookup API client.

    Request:  GET {itunes_lookup_url}?id=<trackId>&country=<cc>
    Response: {"resultCount": n, "results": [{...}]}; resultCount 0 means the
              app is not (or no longer) listed in that storefront.
    """

    platform = IOS

    def __init__(
        self,
        base_url: str = settings.itunes_lookup_url,
        country: str = settings.store_country,
        timeout: float = settings.store_lookup_timeout,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url
        self.country = country
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def lookup(self, store_app_id: str) -> LookupResult:
        params = {"id": store_app_id, "country": self.country}
        try:
            response = await self._client.get(self.base_url, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException:
            return LookupResult.transport_error("timeout", "iTunes lookup timed out")
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code == 429:
                return LookupResult.transport_error("rate_limited", "HTTP 429")
            if status_code >= 500:
                return LookupResult.transport_error("server_error", f"HTTP {status_code}")
            return LookupResult.transport_error("http_error", f"HTTP {status_code}")
        except httpx.RequestError as e:
            return LookupResult.transport_error("network_error", f"{type(e).__name__}: {e}")
        except ValueError as e:
            return LookupResult.transport_error("invalid_response", str(e))

        if not isinstance(data, dict) or not data.get("resultCount") or not data.get("results"):
            return LookupResult.not_found()

        return LookupResult.of(self.parse(data["results"][0]))

    @staticmethod
    def parse(result: Dict[str, Any]) -> StoreMetadata:
        languages = result.get("languageCodesISO2A")
        return StoreMetadata(
            platform=IOS,
            artwork_url=result.get("artworkUrl512"),
            store_url=result.get("trackViewUrl"),
            bundle_id=result.get("bundleId"),
            version=result.get("version"),
            release_date=result.get("releaseDate"),
            current_version_release_date=result.get("currentVersionReleaseDate"),
            screenshots=tuple(result.get("screenshotUrls") or ()),
            languages=tuple(languages) if languages is not None else None,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


class PlayStoreLookup(StoreLookup):
    """
    Google Play details via google-play-scraper.

    The scraper is synchronous (urllib under the hood), so each call runs in a
    worker thread to keep the event loop free.
    """

    platform = ANDROID

    def __init__(
        self,
        lang: str = settings.store_language,
        country: str = settings.store_country,
    ):
        self.lang = lang
        self.country = country

    async def lookup(self, store_app_id: str) -> LookupResult:
        try:
            result = await asyncio.to_thread(
                play_app, store_app_id, lang=self.lang, country=self.country
            )
        except PlayNotFoundError:
            return LookupResult.not_found()
        except OSError as e:
            return LookupResult.transport_error("network_error", f"{type(e).__name__}: {e}")

        if not result:
            return LookupResult.not_found()
        return LookupResult.of(self.parse(result))

    @staticmethod
    def parse(result: Dict[str, Any]) -> StoreMetadata:
        return StoreMetadata(
            platform=ANDROID,
            artwork_url=result.get("icon"),
            store_url=result.get("url"),
            version=result.get("version"),
            release_date=result.get("released"),
            # Epoch seconds of the last update
            current_version_release_date=result.get("updated"),
            screenshots=tuple(result.get("screenshots") or ()),
        )


# ══════════════════════════════════════════════════════════════════════════
# Dispatcher
# ══════════════════════════════════════════════════════════════════════════


class StoreLookupService:
    """
    Platform dispatcher used by the sync pipeline.

    Every call is bounded by `timeout` seconds. A hung store call becomes a
    TRANSPORT_ERROR result so a single app can never stall its batch.
    """

    def __init__(
        self,
        ios: Optional[StoreLookup] = None,
        android: Optional[StoreLookup] = None,
        timeout: float = settings.store_lookup_timeout,
    ):
        self.timeout = timeout
        self._lookups: Dict[str, StoreLookup] = {
            IOS: ios or AppStoreLookup(timeout=timeout),
            ANDROID: android or PlayStoreLookup(),
        }

    async def lookup(self, platform: str, store_app_id: str) -> LookupResult:
        """
        Look up `store_app_id` on `platform` ("ios" or "android").

        Raises:
            ValueError: Unknown platform tag (programming error, not a store outcome)
        """
        try:
            adapter = self._lookups[platform]
        except KeyError:
            raise ValueError(f"Unknown store platform: {platform!r}")

        try:
            result = await asyncio.wait_for(adapter.lookup(store_app_id), timeout=self.timeout)
        except asyncio.TimeoutError:
            result = LookupResult.transport_error(
                "timeout", f"no response within {self.timeout:.1f}s"
            )
        except Exception as e:
            result = LookupResult.transport_error("lookup_failed", f"{type(e).__name__}: {e}")

        if result.is_transport_error:
            logger.warning(
                "Store lookup failed: platform=%s store_app_id=%s reason=%s detail=%s",
                platform,
                store_app_id,
                result.reason,
                result.detail,
            )
        elif not result.found:
            logger.info("App not found in store: platform=%s store_app_id=%s", platform, store_app_id)

        return result

    async def aclose(self) -> None:
        for adapter in self._lookups.values():
            await adapter.aclose()

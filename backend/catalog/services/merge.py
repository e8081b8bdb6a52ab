"""
App Catalog Backend — Store Data Merge Engine
==============================================

What:  Folds freshly fetched App Store / Play Store metadata into an AppRecord.
Why:   Keeping the merge pure (no repository, no network) makes the sync rules
       testable in isolation and lets bulk sync and on-demand refresh share them.
How:   Each platform result is applied only when it is FOUND; every other
       outcome leaves the record untouched.

Merge Rules:
    iOS found     → overwrite imageUrl, iosLink, iosBundleId, iosVersion,
                    iosRelease, iosScreenshots, iosCurrentVersionReleaseDate,
                    languages; bump lastStoreUpdate
    Android found → overwrite androidLink, androidVersion, androidScreenshots,
                    androidCurrentVersionReleaseDate; bump lastStoreUpdate;
                    imageUrl only when still empty after the iOS step
    Neither found → the input record is returned as-is

store_updates() returns only the attributes a pass actually produced. The
orchestrator persists exactly that dict, so a platform that was not found
never rewrites its fields from a snapshot that may be hours old.
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from catalog.schemas.app import AppRecord
from catalog.services.store_lookup import LookupResult

# Store date strings seen in the wild besides ISO 8601
_TEXT_DATE_FORMATS = (
    "%b %d, %Y",   # "Mar 4, 2015" (Play Store "released")
    "%B %d, %Y",   # "March 4, 2015"
    "%d %b %Y",
    "%Y/%m/%d",
)

# Epoch values above this are milliseconds (year 5138 in seconds)
_EPOCH_MS_THRESHOLD = 100_000_000_000


def to_calendar_date(value: Any) -> Optional[str]:
    """
    Normalize a store date value to a "YYYY-MM-DD" string.

    Accepts ISO 8601 strings ("2024-03-01T07:00:00Z"), epoch seconds or
    milliseconds, datetime/date objects and a few textual formats. Never
    raises: text that cannot be parsed is returned stripped, None stays None.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date().isoformat()

    if isinstance(value, date):
        return value.isoformat()

    if isinstance(value, bool):
        return str(value)

    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) > _EPOCH_MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc).date().isoformat()
        except (OverflowError, OSError, ValueError):
            return str(value)

    text = str(value).strip()
    if not text:
        return text

    if text.isdigit():
        return to_calendar_date(int(text))

    iso = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return to_calendar_date(datetime.fromisoformat(iso))
    except ValueError:
        pass

    for fmt in _TEXT_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue

    return text


def _dedupe(values) -> Optional[list]:
    if values is None:
        return None
    seen = []
    for item in values:
        if item not in seen:
            seen.append(item)
    return seen


def store_updates(
    current: AppRecord,
    ios: LookupResult,
    android: LookupResult,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Attributes produced by one lookup pass over `current`.

    Only platforms that were FOUND contribute; imageUrl is included when iOS
    supplied it or Android filled an empty one. lastStoreUpdate is added
    whenever anything else is. Empty dict when neither platform was found.

    The result is exactly what AppRepository.update_fields() should write.
    """
    if not ios.found and not android.found:
        return {}

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    updates: Dict[str, Any] = {}

    if ios.found:
        meta = ios.metadata
        updates.update(
            image_url=meta.artwork_url,
            ios_link=meta.store_url,
            ios_bundle_id=meta.bundle_id,
            ios_version=meta.version,
            ios_release=to_calendar_date(meta.release_date),
            ios_screenshots=list(meta.screenshots),
            ios_current_version_release_date=to_calendar_date(meta.current_version_release_date),
            languages=_dedupe(meta.languages),
        )

    if android.found:
        meta = android.metadata
        updates.update(
            android_link=meta.store_url,
            android_version=meta.version,
            android_screenshots=list(meta.screenshots),
            android_current_version_release_date=to_calendar_date(meta.current_version_release_date),
        )
        # iOS artwork wins when both platforms answered
        if not updates.get("image_url", current.image_url):
            updates["image_url"] = meta.artwork_url

    previous = current.last_store_update
    if previous is not None and previous.tzinfo is None:
        previous = previous.replace(tzinfo=timezone.utc)
    updates["last_store_update"] = max(previous, now) if previous else now

    return updates


def merge(
    current: AppRecord,
    ios: LookupResult,
    android: LookupResult,
    now: Optional[datetime] = None,
) -> AppRecord:
    """
    Apply iOS then Android lookup results to `current`.

    Args:
        current:  The stored record (never mutated)
        ios:      Result of the App Store lookup (or LookupResult.not_found())
        android:  Result of the Play Store lookup (or LookupResult.not_found())
        now:      Wall-clock time for lastStoreUpdate; defaults to utcnow

    Returns:
        A new AppRecord, or `current` itself when neither lookup was found.
    """
    updates = store_updates(current, ios, android, now=now)
    if not updates:
        return current
    return current.model_copy(update=updates)

"""
App Catalog Backend — Merge Engine Unit Tests
==============================================

What we test:
    ✅ iOS fields overwrite, Android fields overwrite
    ✅ iOS artwork wins over Android artwork
    ✅ Not-found on both platforms is a no-op
    ✅ Idempotence (apart from lastStoreUpdate)
    ✅ lastStoreUpdate never moves backwards
    ✅ Only found platforms produce attributes to persist
    ✅ Date normalization accepts store formats and never raises
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from catalog.schemas.app import AppRecord
from catalog.services.merge import merge, store_updates, to_calendar_date
from catalog.services.store_lookup import LookupResult
from conftest import android_metadata, ios_metadata

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def record():
    return AppRecord(id="nyc", name="NYC", ios_app_id="1", android_app_id="com.example.nyc")


class TestMergeRules:

    def test_ios_found_overwrites_ios_fields(self, record):
        merged = merge(record, LookupResult.of(ios_metadata()), LookupResult.not_found(), now=NOW)

        assert merged.image_url == "https://is1.mzstatic.com/artwork512.png"
        assert merged.ios_link == "https://apps.apple.com/us/app/id1"
        assert merged.ios_bundle_id == "com.example.city"
        assert merged.ios_version == "4.2.0"
        assert merged.ios_release == "2019-05-02"
        assert merged.ios_current_version_release_date == "2024-03-01"
        assert merged.ios_screenshots == [
            "https://is1.mzstatic.com/s1.png",
            "https://is1.mzstatic.com/s2.png",
        ]
        assert merged.languages == ["EN", "ES"]
        assert merged.last_store_update == NOW
        assert merged.android_link is None

    def test_android_found_overwrites_android_fields(self, record):
        merged = merge(record, LookupResult.not_found(), LookupResult.of(android_metadata()), now=NOW)

        assert merged.android_link.startswith("https://play.google.com/")
        assert merged.android_version == "4.1.9"
        assert merged.android_screenshots == ["https://play-lh.googleusercontent.com/p1.png"]
        assert merged.android_current_version_release_date == "2024-03-01"
        assert merged.image_url == "https://play-lh.googleusercontent.com/icon.png"
        assert merged.last_store_update == NOW
        assert merged.ios_link is None

    def test_ios_artwork_takes_precedence(self, record):
        merged = merge(
            record,
            LookupResult.of(ios_metadata(artwork_url="https://ios/art.png")),
            LookupResult.of(android_metadata(artwork_url="https://android/icon.png")),
            now=NOW,
        )
        assert merged.image_url == "https://ios/art.png"

    def test_android_does_not_replace_existing_artwork(self, record):
        record = record.model_copy(update={"image_url": "https://stored/art.png"})
        merged = merge(record, LookupResult.not_found(), LookupResult.of(android_metadata()), now=NOW)
        assert merged.image_url == "https://stored/art.png"

    def test_ios_replaces_existing_artwork(self, record):
        record = record.model_copy(update={"image_url": "https://stored/art.png"})
        merged = merge(record, LookupResult.of(ios_metadata()), LookupResult.not_found(), now=NOW)
        assert merged.image_url == "https://is1.mzstatic.com/artwork512.png"

    def test_not_found_on_both_platforms_is_noop(self, record):
        stored_at = NOW - timedelta(days=3)
        record = record.model_copy(update={"ios_version": "1.0", "last_store_update": stored_at})

        merged = merge(record, LookupResult.not_found(), LookupResult.not_found(), now=NOW)

        assert merged == record
        assert merged.last_store_update == stored_at

    def test_transport_errors_are_treated_as_not_found(self, record):
        merged = merge(
            record,
            LookupResult.transport_error("timeout"),
            LookupResult.transport_error("network_error", "boom"),
            now=NOW,
        )
        assert merged == record

    def test_merge_is_idempotent_except_timestamp(self, record):
        ios = LookupResult.of(ios_metadata())
        android = LookupResult.of(android_metadata())

        once = merge(record, ios, android, now=NOW)
        twice = merge(once, ios, android, now=NOW + timedelta(hours=1))

        assert once.model_dump(exclude={"last_store_update"}) == twice.model_dump(
            exclude={"last_store_update"}
        )
        assert twice.last_store_update == NOW + timedelta(hours=1)

    def test_last_store_update_never_decreases(self, record):
        later = NOW + timedelta(days=1)
        record = record.model_copy(update={"last_store_update": later})

        merged = merge(record, LookupResult.of(ios_metadata()), LookupResult.not_found(), now=NOW)

        assert merged.last_store_update == later

    def test_naive_stored_timestamp_is_treated_as_utc(self, record):
        record = record.model_copy(update={"last_store_update": datetime(2024, 1, 1, 0, 0)})
        merged = merge(record, LookupResult.of(ios_metadata()), LookupResult.not_found(), now=NOW)
        assert merged.last_store_update == NOW

    def test_merge_does_not_mutate_input(self, record):
        merge(record, LookupResult.of(ios_metadata()), LookupResult.of(android_metadata()), now=NOW)
        assert record.ios_link is None
        assert record.last_store_update is None

    def test_duplicate_languages_are_collapsed(self, record):
        merged = merge(
            record,
            LookupResult.of(ios_metadata(languages=("EN", "FR", "EN"))),
            LookupResult.not_found(),
            now=NOW,
        )
        assert merged.languages == ["EN", "FR"]


class TestStoreUpdates:

    def test_only_found_platform_fields_are_produced(self, record):
        updates = store_updates(
            record,
            LookupResult.transport_error("timeout"),
            LookupResult.of(android_metadata()),
            now=NOW,
        )

        assert set(updates) == {
            "android_link",
            "android_version",
            "android_screenshots",
            "android_current_version_release_date",
            "image_url",
            "last_store_update",
        }

    def test_android_keeps_stored_artwork_out_of_updates(self, record):
        record = record.model_copy(update={"image_url": "https://stored/art.png"})
        updates = store_updates(record, LookupResult.not_found(), LookupResult.of(android_metadata()), now=NOW)
        assert "image_url" not in updates

    def test_ios_only_pass_leaves_android_fields_out(self, record):
        updates = store_updates(record, LookupResult.of(ios_metadata()), LookupResult.not_found(), now=NOW)

        assert updates["ios_version"] == "4.2.0"
        assert updates["last_store_update"] == NOW
        assert not any(key.startswith("android_") for key in updates)
        assert "id" not in updates
        assert "name" not in updates

    def test_nothing_found_produces_no_updates(self, record):
        assert store_updates(record, LookupResult.not_found(), LookupResult.not_found(), now=NOW) == {}


class TestToCalendarDate:

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2024-03-01T17:30:00Z", "2024-03-01"),
            ("2024-03-01T23:30:00-05:00", "2024-03-02"),
            ("2024-03-01", "2024-03-01"),
            (1709251200, "2024-03-01"),
            (1709251200000, "2024-03-01"),
            ("1709251200", "2024-03-01"),
            ("Mar 4, 2015", "2015-03-04"),
            ("March 4, 2015", "2015-03-04"),
            (datetime(2020, 2, 29, 10, 0, tzinfo=timezone.utc), "2020-02-29"),
            (date(2021, 7, 4), "2021-07-04"),
        ],
    )
    def test_store_formats(self, value, expected):
        assert to_calendar_date(value) == expected

    def test_none_stays_none(self):
        assert to_calendar_date(None) is None

    def test_unparseable_text_is_returned_unchanged(self):
        assert to_calendar_date("  Varies with device ") == "Varies with device"

    def test_never_raises(self):
        for value in ("", "2024-13-45", 10 ** 30, float("nan"), object()):
            to_calendar_date(value)

"""Tests for ReadingsStore: glucose readings and health-card metrics."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from diacare.core.errors import StorageError, ValidationError
from diacare.core.storage.models import CardType, ReadingType
from diacare.domains.diabetes.stores.readings import day_bounds

NOW = datetime(2026, 10, 14, 10, 0, tzinfo=timezone.utc)
TODAY = date(2026, 10, 14)


class TestGlucoseReadings:
    def test_mgdl_stored_as_entered(self, readings_store, user):
        reading = readings_store.add_glucose_reading(user.id, 112, "mg/dL", "after_meal")
        assert reading.value == 112.0
        assert reading.reading_type is ReadingType.AFTER_MEAL
        assert reading.recorded_at == NOW.isoformat()

    def test_mmol_converted_to_mgdl(self, readings_store, user):
        reading = readings_store.add_glucose_reading(user.id, 6.5, "mmol/L")
        assert reading.value == pytest.approx(117.0)
        stored = readings_store.get_latest_glucose_reading(user.id)
        assert stored.value == pytest.approx(117.0)

    @pytest.mark.parametrize("value, unit", [(19, "mg/dL"), (601, "mg/dL"), (1.0, "mmol/L"), (34, "mmol/L")])
    def test_out_of_bounds_rejected(self, readings_store, user, value, unit):
        with pytest.raises(ValidationError) as exc_info:
            readings_store.add_glucose_reading(user.id, value, unit)
        assert exc_info.value.field == "value"
        assert readings_store.count_glucose_readings(user.id) == 0

    @pytest.mark.parametrize("value", ["abc", None, True])
    def test_non_numeric_rejected(self, readings_store, user, value):
        with pytest.raises(ValidationError):
            readings_store.add_glucose_reading(user.id, value)

    def test_unknown_reading_type(self, readings_store, user):
        with pytest.raises(ValidationError) as exc_info:
            readings_store.add_glucose_reading(user.id, 100, reading_type="bedtime")
        assert exc_info.value.field == "reading_type"

    def test_notes_encrypted_at_rest(self, readings_store, user, health_db):
        readings_store.add_glucose_reading(user.id, 140, notes="after pizza night")
        row = health_db.query_one("SELECT notes_enc FROM glucose_readings")
        assert "pizza" not in row["notes_enc"]
        assert readings_store.get_latest_glucose_reading(user.id).notes == "after pizza night"

    def test_blank_notes_stored_as_null(self, readings_store, user, health_db):
        readings_store.add_glucose_reading(user.id, 140, notes="   ")
        row = health_db.query_one("SELECT notes_enc FROM glucose_readings")
        assert row["notes_enc"] is None

    def test_latest_by_recorded_time_not_insert_order(self, readings_store, user):
        readings_store.add_glucose_reading(user.id, 100, recorded_at=NOW - timedelta(hours=1))
        readings_store.add_glucose_reading(user.id, 150, recorded_at=NOW - timedelta(hours=3))
        assert readings_store.get_latest_glucose_reading(user.id).value == 100

    def test_no_readings(self, readings_store, user):
        assert readings_store.get_latest_glucose_reading(user.id) is None
        assert readings_store.get_glucose_readings(user.id) == []

    def test_recent_readings_newest_first_with_limit(self, readings_store, user):
        for hours, value in [(5, 90), (1, 120), (3, 105)]:
            readings_store.add_glucose_reading(user.id, value, recorded_at=NOW - timedelta(hours=hours))
        recent = readings_store.get_glucose_readings(user.id, limit=2)
        assert [r.value for r in recent] == [120, 105]

    @pytest.mark.parametrize("limit", [0, 501])
    def test_limit_bounds(self, readings_store, user, limit):
        with pytest.raises(ValidationError) as exc_info:
            readings_store.get_glucose_readings(user.id, limit=limit)
        assert exc_info.value.field == "limit"

    def test_readings_are_per_user(self, readings_store, user, other_user):
        readings_store.add_glucose_reading(other_user.id, 200)
        assert readings_store.get_latest_glucose_reading(user.id) is None

    def test_between_is_half_open_and_ascending(self, readings_store, user):
        start = NOW - timedelta(days=1)
        readings_store.add_glucose_reading(user.id, 130, recorded_at=NOW)
        readings_store.add_glucose_reading(user.id, 110, recorded_at=start)
        readings_store.add_glucose_reading(user.id, 99, recorded_at=start - timedelta(minutes=1))
        rows = readings_store.get_glucose_readings_between(user.id, start, NOW)
        assert [r.value for r in rows] == [110]

    def test_string_timestamp_accepted(self, readings_store, user):
        reading = readings_store.add_glucose_reading(user.id, 100, recorded_at="2026-10-13T07:30:00")
        # naive times are taken in the device zone
        assert reading.recorded_datetime == datetime(2026, 10, 13, 7, 30, tzinfo=timezone.utc)

    def test_foreign_offsets_stored_in_device_zone(self, readings_store, user):
        readings_store.add_glucose_reading(user.id, 100, recorded_at="2026-10-14T05:00:00+00:00")
        later = readings_store.add_glucose_reading(
            user.id, 150, recorded_at="2026-10-14T01:00:00-05:00"
        )
        assert later.recorded_at == "2026-10-14T06:00:00+00:00"
        assert readings_store.get_latest_glucose_reading(user.id).value == 150

    def test_foreign_offset_lands_on_device_day(self, readings_store, user):
        readings_store.add_glucose_reading(user.id, 150, recorded_at="2026-10-13T22:00:00-05:00")
        start = datetime(2026, 10, 14, tzinfo=timezone.utc)
        rows = readings_store.get_glucose_readings_between(user.id, start, start + timedelta(days=1))
        assert [r.value for r in rows] == [150]

    def test_between_accepts_bounds_in_other_zones(self, readings_store, user):
        readings_store.add_glucose_reading(user.id, 120, recorded_at=NOW)
        est = timezone(timedelta(hours=-5))
        start = datetime(2026, 10, 14, 4, 0, tzinfo=est)  # 09:00 UTC
        rows = readings_store.get_glucose_readings_between(user.id, start, start + timedelta(hours=2))
        assert [r.value for r in rows] == [120]

    def test_bad_timestamp(self, readings_store, user):
        with pytest.raises(ValidationError) as exc_info:
            readings_store.add_glucose_reading(user.id, 100, recorded_at="last tuesday")
        assert exc_info.value.field == "recorded_at"

    def test_unknown_user_is_storage_error(self, readings_store):
        with pytest.raises(StorageError):
            readings_store.add_glucose_reading("missing", 100)


class TestHealthCards:
    def test_unit_fixed_by_card_type(self, readings_store, user):
        metric = readings_store.add_health_metric(user.id, "water", 1.5)
        assert metric.unit == "L"
        assert metric.card_type is CardType.WATER

    def test_matching_unit_accepted_case_insensitive(self, readings_store, user):
        assert readings_store.add_health_metric(user.id, "activity", 4200, "Steps").unit == "steps"

    def test_mismatched_unit_rejected(self, readings_store, user):
        with pytest.raises(ValidationError) as exc_info:
            readings_store.add_health_metric(user.id, "water", 500, "ml")
        assert exc_info.value.field == "unit"

    def test_negative_rejected(self, readings_store, user):
        with pytest.raises(ValidationError) as exc_info:
            readings_store.add_health_metric(user.id, "carbs", -5)
        assert exc_info.value.field == "value"

    def test_zero_allowed(self, readings_store, user):
        assert readings_store.add_health_metric(user.id, "insulin", 0).value == 0

    def test_unknown_card(self, readings_store, user):
        with pytest.raises(ValidationError) as exc_info:
            readings_store.add_health_metric(user.id, "sleep", 8)
        assert exc_info.value.field == "card_type"

    def test_latest_per_type_for_day(self, readings_store, user):
        readings_store.add_health_metric(user.id, "water", 0.5, recorded_at=NOW - timedelta(hours=2))
        readings_store.add_health_metric(user.id, "water", 1.25, recorded_at=NOW - timedelta(hours=1))
        readings_store.add_health_metric(user.id, "pills", 2, recorded_at=NOW - timedelta(days=1))

        latest = readings_store.get_latest_metrics(user.id, TODAY)

        assert set(latest) == set(CardType)
        assert latest[CardType.WATER].value == 1.25
        assert latest[CardType.PILLS] is None

    def test_metrics_between(self, readings_store, user):
        for days in (0, 1, 2):
            readings_store.add_health_metric(
                user.id, "activity", 1000 * (days + 1), recorded_at=NOW - timedelta(days=days)
            )
        readings_store.add_health_metric(user.id, "carbs", 45)
        rows = readings_store.get_metrics_between(
            user.id, CardType.ACTIVITY, NOW - timedelta(days=1, hours=1), NOW + timedelta(hours=1)
        )
        assert [m.value for m in rows] == [2000, 1000]


def test_day_bounds():
    start, end = day_bounds(TODAY, timezone.utc)
    assert start == "2026-10-14T00:00:00+00:00"
    assert end == "2026-10-15T00:00:00+00:00"

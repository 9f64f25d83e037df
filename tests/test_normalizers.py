"""
Tests for the record normalizers.

Tests cover:
- Date/time compaction to YYYYMMDD / HHMM
- Numeric field parsing (empty means 0)
- Every known incident feed shape
- Tollgate traffic and road status samples
"""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from core.exceptions import MalformedRecord
from data_ingestion.normalizers import (
    compact_date,
    compact_time,
    normalize_incident,
    normalize_record,
    normalize_road_status,
    normalize_tollgate_traffic,
    parse_float,
    parse_int,
)
from data_ingestion.types import IncidentRecord, TollgateTrafficRecord


SEOUL = ZoneInfo("Asia/Seoul")


# =============================================================
# TEST: Date/Time Compaction
# =============================================================

class TestCompactDate:

    @pytest.mark.parametrize("raw,expected", [
        ("2025.01.10", "20250110"),
        ("2025-01-10", "20250110"),
        ("2025-1-9", "20250109"),
        ("20250110", "20250110"),
        (" 2025.01.10. ", "20250110"),
    ])
    def test_compacts_separated_dates(self, raw, expected):
        assert compact_date(raw) == expected

    @pytest.mark.parametrize("raw", ["", None, "2025.13.01", "2025.02.30", "2501"])
    def test_rejects_invalid_dates(self, raw):
        with pytest.raises(MalformedRecord):
            compact_date(raw)


class TestCompactTime:

    @pytest.mark.parametrize("raw,expected", [
        ("07:05:09", "0705"),
        ("07:05", "0705"),
        ("7:5", "0705"),
        ("0705", "0705"),
        ("705", "0705"),
        ("23:59:59", "2359"),
    ])
    def test_compacts_separated_times(self, raw, expected):
        assert compact_time(raw) == expected

    @pytest.mark.parametrize("raw", ["", "24:00", "12:60", "abc"])
    def test_rejects_invalid_times(self, raw):
        with pytest.raises(MalformedRecord):
            compact_time(raw)


class TestNumericFields:

    def test_empty_string_is_zero(self):
        assert parse_float("", "speed") == 0.0
        assert parse_int("", "volume") == 0
        assert parse_int(None, "volume") == 0

    def test_thousands_separator(self):
        assert parse_int("1,234", "volume") == 1234

    def test_integral_float_text(self):
        assert parse_int("12.0", "volume") == 12

    @pytest.mark.parametrize("raw", ["abc", "nan", "inf"])
    def test_rejects_non_numbers(self, raw):
        with pytest.raises(MalformedRecord):
            parse_float(raw, "speed")

    def test_rejects_fractional_integer(self):
        with pytest.raises(MalformedRecord):
            parse_int("1.5", "volume")

    @pytest.mark.parametrize("raw", ["1e30", "2147483648", -3000000000])
    def test_rejects_integer_too_large_for_column(self, raw):
        with pytest.raises(MalformedRecord):
            parse_int(raw, "volume")

    def test_integer_column_bounds_are_accepted(self):
        assert parse_int("2147483647", "volume") == 2147483647
        assert parse_int("-2147483648", "volume") == -2147483648


# =============================================================
# TEST: Incidents
# =============================================================

class TestNormalizeIncident:

    def test_sms_feed_shape(self):
        record = normalize_incident({
            "accDate": "2025.01.10",
            "accHour": "07:05:09",
            "accPointNM": "Seoul TG",
            "smsText": "Two-car collision",
            "accType": "A",
            "latitude": "37.5",
            "altitude": "127.0",
            "roadNM": "Gyeongbu",
            "nosunNM": "Route 1",
            "linkId": "L1",
        })

        assert record.occurred_date == "20250110"
        assert record.occurred_time == "0705"
        assert record.location == "Seoul TG"
        assert record.description == "Two-car collision"
        assert record.incident_type == "A"
        assert record.latitude == 37.5
        assert record.longitude == 127.0
        assert record.route_name == "Route 1"
        assert record.link_id == "L1"

    def test_legacy_shape(self):
        record = normalize_incident({
            "accDate": "20250110",
            "accHour": "0705",
            "accPointNM": "Seoul TG",
            "accInfo": "Lane closed",
            "accType": "B",
            "longitude": 127.1,
        })

        assert record.description == "Lane closed"
        assert record.longitude == 127.1
        assert record.latitude is None

    def test_missing_coordinates_are_none(self):
        record = normalize_incident({
            "accDate": "2025.01.10",
            "accHour": "07:05",
            "accPointNM": "Seoul TG",
            "smsText": "x",
            "latitude": "",
        })

        assert record.latitude is None
        assert record.longitude is None

    def test_canonical_shape_is_identity(self):
        record = IncidentRecord(
            occurred_date="20250110",
            occurred_time="0705",
            location="Seoul TG",
            description="Two-car collision",
            incident_type="A",
            latitude=37.5,
            longitude=127.0,
        )

        assert normalize_incident(record.to_payload()) == record
        assert normalize_incident(record) == record

    def test_requires_location_or_description(self):
        with pytest.raises(MalformedRecord):
            normalize_incident({"accDate": "2025.01.10", "accHour": "07:05"})

    def test_rejects_bad_date(self):
        with pytest.raises(MalformedRecord) as exc_info:
            normalize_incident({
                "accDate": "not a date",
                "accHour": "07:05",
                "accPointNM": "Seoul TG",
            })
        assert exc_info.value.field == "accDate"

    def test_rejects_non_object(self):
        with pytest.raises(MalformedRecord):
            normalize_incident(["2025.01.10"])


# =============================================================
# TEST: Traffic
# =============================================================

class TestNormalizeTollgateTraffic:

    def test_feed_shape(self):
        record = normalize_tollgate_traffic({
            "unitCode": "101",
            "unitName": "Seoul",
            "exDivCode": "00",
            "exDivName": "Seoul HQ",
            "trafficAmout": "1,250",
            "sumDate": "20250110",
            "sumTm": "0705",
        }, SEOUL)

        assert record.unit_code == "101"
        assert record.traffic_volume == 1250
        assert record.collected_at == datetime(2025, 1, 10, 7, 5, tzinfo=SEOUL)
        assert record.sum_date == "20250110"

    def test_empty_volume_is_zero(self):
        record = normalize_tollgate_traffic({
            "unitCode": "101",
            "trafficAmount": "",
            "sumDate": "20250110",
            "sumTm": "0705",
        })

        assert record.traffic_volume == 0

    def test_canonical_payload(self):
        record = TollgateTrafficRecord(
            unit_code="101",
            unit_name="Seoul",
            division_code="00",
            division_name="Seoul HQ",
            traffic_volume=10,
            collected_at=datetime(2025, 1, 10, 7, 5, tzinfo=SEOUL),
        )

        assert normalize_tollgate_traffic(record.to_payload()) == record

    def test_missing_unit_code(self):
        with pytest.raises(MalformedRecord):
            normalize_tollgate_traffic({"sumDate": "20250110", "sumTm": "0705"})


class TestNormalizeRoadStatus:

    def _raw(self, **overrides):
        raw = {
            "routeNo": "0010",
            "routeName": "Gyeongbu",
            "conzoneId": "Z1",
            "conzoneName": "Seoul-Singal",
            "vdsId": "V1",
            "updownTypeCode": "S",
            "trafficAmout": "120",
            "speed": "80.5",
            "shareRatio": "",
            "timeAvg": "3",
            "grade": "1",
            "stdDate": "20250110",
            "stdHour": "0700",
        }
        raw.update(overrides)
        return raw

    def test_feed_shape(self):
        record = normalize_road_status(self._raw(), SEOUL)

        assert record.route_no == "0010"
        assert record.zone_id == "Z1"
        assert record.direction == "S"
        assert record.speed == 80.5
        assert record.share_ratio == 0.0
        assert record.grade == 1
        assert record.collected_at == datetime(2025, 1, 10, 7, 0, tzinfo=SEOUL)

    def test_grade_zero_is_kept(self):
        assert normalize_road_status(self._raw(grade="")).grade == 0

    def test_grade_out_of_range(self):
        with pytest.raises(MalformedRecord):
            normalize_road_status(self._raw(grade="5"))

    def test_canonical_payload(self):
        record = normalize_road_status(self._raw(), SEOUL)
        assert normalize_road_status(record.to_payload()) == record


class TestNormalizeRecord:

    def test_dispatches_by_kind(self):
        record = normalize_record("incident", {
            "accDate": "2025.01.10",
            "accHour": "07:05",
            "accPointNM": "Seoul TG",
        })
        assert isinstance(record, IncidentRecord)

    def test_unknown_kind(self):
        with pytest.raises(MalformedRecord):
            normalize_record("weather", {})

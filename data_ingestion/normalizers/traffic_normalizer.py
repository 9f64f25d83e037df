"""
Data Ingestion - Traffic Normalizer.

============================================================
RESPONSIBILITY
============================================================
Maps tollgate traffic-volume samples and road-segment status
samples to their canonical records.

- Collection timestamps are built from the separately reported
  date and time fields, in the feed's local timezone
- Empty numeric fields become 0 (a missing measurement and a
  measured zero are not distinguished)
- The feed spells the volume field "trafficAmout"; both spellings
  are accepted

============================================================
"""

from dataclasses import replace
from datetime import datetime, tzinfo
from typing import Any, Mapping, Optional, Union
from zoneinfo import ZoneInfo

from core.constants import DEFAULT_LOCAL_TIMEZONE, VALID_GRADES
from core.exceptions import MalformedRecord
from data_ingestion.normalizers.time_format import (
    local_timestamp,
    parse_float,
    parse_int,
)
from data_ingestion.types import RoadStatusRecord, TollgateTrafficRecord


_VOLUME_KEYS = ("trafficAmout", "trafficAmount")


def _default_tz() -> tzinfo:
    return ZoneInfo(DEFAULT_LOCAL_TIMEZONE)


def _require_mapping(raw: Any, kind: str) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        raise MalformedRecord(f"{kind} must be an object", value=type(raw).__name__)
    return raw


def _text(raw: Mapping[str, Any], key: str) -> str:
    value = raw.get(key)
    return "" if value is None else str(value).strip()


def _volume(raw: Mapping[str, Any]) -> Any:
    for key in _VOLUME_KEYS:
        if key in raw:
            return raw[key]
    return None


def _coerce_timestamp(value: Any, field: str) -> datetime:
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as e:
        raise MalformedRecord("Invalid timestamp", field=field, value=value, cause=e) from e


# =============================================================
# TOLLGATE TRAFFIC
# =============================================================

def normalize_tollgate_traffic(
    raw: Union[Mapping[str, Any], TollgateTrafficRecord],
    tz: Optional[tzinfo] = None,
) -> TollgateTrafficRecord:
    """
    Normalize one tollgate traffic-volume sample.

    Raises:
        MalformedRecord: Missing unit code, bad date/time or non-numeric volume
    """
    if isinstance(raw, TollgateTrafficRecord):
        return raw
    raw = _require_mapping(raw, "Tollgate traffic sample")

    if "unit_code" in raw:
        record = TollgateTrafficRecord.from_payload(raw)
        return replace(
            record,
            collected_at=_coerce_timestamp(record.collected_at, "collected_at"),
            traffic_volume=parse_int(record.traffic_volume, "traffic_volume"),
        )

    unit_code = _text(raw, "unitCode")
    if not unit_code:
        raise MalformedRecord("Missing unit code", field="unitCode")

    sum_date = _text(raw, "sumDate")
    sum_time = _text(raw, "sumTm")
    collected_at = local_timestamp(sum_date, sum_time, tz or _default_tz(), field="sumDate/sumTm")

    return TollgateTrafficRecord(
        unit_code=unit_code,
        unit_name=_text(raw, "unitName"),
        division_code=_text(raw, "exDivCode"),
        division_name=_text(raw, "exDivName"),
        traffic_volume=parse_int(_volume(raw), "trafficAmout"),
        collected_at=collected_at,
        sum_date=sum_date,
        sum_time=sum_time,
    )


# =============================================================
# ROAD STATUS
# =============================================================

def _grade(value: Any) -> int:
    grade = parse_int(value, "grade")
    if grade not in VALID_GRADES:
        raise MalformedRecord("Grade outside 0..3", field="grade", value=value)
    return grade


def normalize_road_status(
    raw: Union[Mapping[str, Any], RoadStatusRecord],
    tz: Optional[tzinfo] = None,
) -> RoadStatusRecord:
    """
    Normalize one road-segment status sample.

    Grade 0 ("not computable") is kept; it is filtered out at
    aggregation time, not here.

    Raises:
        MalformedRecord: Missing route, bad date/time, bad number or grade
    """
    if isinstance(raw, RoadStatusRecord):
        return raw
    raw = _require_mapping(raw, "Road status sample")

    if "route_no" in raw:
        record = RoadStatusRecord.from_payload(raw)
        return replace(
            record,
            collected_at=_coerce_timestamp(record.collected_at, "collected_at"),
            grade=_grade(record.grade),
        )

    route_no = _text(raw, "routeNo")
    if not route_no:
        raise MalformedRecord("Missing route number", field="routeNo")

    std_date = _text(raw, "stdDate")
    std_hour = _text(raw, "stdHour")
    collected_at = local_timestamp(std_date, std_hour, tz or _default_tz(), field="stdDate/stdHour")

    return RoadStatusRecord(
        route_no=route_no,
        route_name=_text(raw, "routeName"),
        zone_id=_text(raw, "conzoneId"),
        zone_name=_text(raw, "conzoneName"),
        direction=_text(raw, "updownTypeCode"),
        traffic_volume=parse_float(_volume(raw), "trafficAmout"),
        speed=parse_float(raw.get("speed"), "speed"),
        share_ratio=parse_float(raw.get("shareRatio"), "shareRatio"),
        time_avg=parse_float(raw.get("timeAvg"), "timeAvg"),
        grade=_grade(raw.get("grade")),
        collected_at=collected_at,
        vds_id=_text(raw, "vdsId"),
        std_date=std_date,
        std_hour=std_hour,
    )

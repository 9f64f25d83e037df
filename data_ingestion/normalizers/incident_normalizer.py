"""
Data Ingestion - Incident Normalizer.

============================================================
RESPONSIBILITY
============================================================
Maps one incident report from any known feed shape to an
IncidentRecord.

- Expressway real-time SMS feed (accDate, accHour, smsText, ...)
- Legacy processor shape (accInfo, longitude)
- Canonical shape (occurred_date, occurred_time, ...)

============================================================
DESIGN PRINCIPLES
============================================================
- Pure: no I/O, no clock
- One input, one output, or MalformedRecord
- Re-normalizing a canonical record returns an equal record

============================================================
"""

from typing import Any, Mapping, Union

from core.exceptions import MalformedRecord
from data_ingestion.normalizers.time_format import (
    compact_date,
    compact_time,
    parse_coordinate,
)
from data_ingestion.types import IncidentRecord


def _text(raw: Mapping[str, Any], *keys: str) -> str:
    """First non-empty value among keys, stripped."""
    for key in keys:
        value = raw.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def _first_present(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw:
            return raw[key]
    return None


def normalize_incident(raw: Union[Mapping[str, Any], IncidentRecord]) -> IncidentRecord:
    """
    Normalize one incident report.

    Args:
        raw: Feed dictionary (any known shape) or an IncidentRecord

    Returns:
        IncidentRecord

    Raises:
        MalformedRecord: If the date, time or identifying text is unusable
    """
    if isinstance(raw, IncidentRecord):
        raw = raw.to_payload()
    if not isinstance(raw, Mapping):
        raise MalformedRecord(
            "Incident must be an object",
            value=type(raw).__name__,
        )

    occurred_date = compact_date(
        _first_present(raw, "occurred_date", "accDate"), field="accDate"
    )
    occurred_time = compact_time(
        _first_present(raw, "occurred_time", "accHour"), field="accHour"
    )

    location = _text(raw, "location", "accPointNM")
    description = _text(raw, "description", "smsText", "accInfo")
    if not location and not description:
        raise MalformedRecord(
            "Incident has neither location nor description",
            field="accPointNM",
        )

    return IncidentRecord(
        occurred_date=occurred_date,
        occurred_time=occurred_time,
        location=location,
        description=description,
        incident_type=_text(raw, "incident_type", "accType"),
        road_name=_text(raw, "road_name", "roadNM"),
        route_name=_text(raw, "route_name", "nosunNM"),
        link_id=_text(raw, "link_id", "linkId"),
        latitude=parse_coordinate(
            _first_present(raw, "latitude"), "latitude"
        ),
        # The SMS feed reports longitude under "altitude"
        longitude=parse_coordinate(
            _first_present(raw, "longitude", "altitude"), "longitude"
        ),
    )

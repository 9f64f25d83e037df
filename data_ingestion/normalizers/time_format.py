"""
Data Ingestion - Date/Time and Numeric Field Helpers.

Feeds report dates and times as free-form strings ("2025.01.10",
"2025-1-10", "07:05:09", "705"). Everything downstream keys on
fixed-width digit strings, so these helpers compress them to
YYYYMMDD / HHMM and reject anything that is not a real calendar
date or clock time.
"""

import math
import re
from datetime import datetime, tzinfo
from typing import Any, Optional

from core.exceptions import MalformedRecord


_DIGIT_GROUPS = re.compile(r"\d+")

DATE_WIDTH = 8
TIME_WIDTH = 4

# Range of an INTEGER column
INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def compact_date(value: Any, field: str = "date") -> str:
    """
    Compress a date string to YYYYMMDD.

    "2025.01.10" -> "20250110", "2025-1-9" -> "20250109".

    Raises:
        MalformedRecord: If no valid calendar date can be formed
    """
    groups = _DIGIT_GROUPS.findall(_as_text(value))
    if not groups:
        raise MalformedRecord("Missing date", field=field, value=value)

    if len(groups) == 1:
        digits = groups[0]
    else:
        digits = groups[0].zfill(4) + "".join(g.zfill(2) for g in groups[1:])
    digits = digits[:DATE_WIDTH]

    if len(digits) != DATE_WIDTH:
        raise MalformedRecord("Date is not YYYYMMDD", field=field, value=value)
    try:
        datetime.strptime(digits, "%Y%m%d")
    except ValueError as e:
        raise MalformedRecord("Invalid calendar date", field=field, value=value, cause=e) from e
    return digits


def compact_time(value: Any, field: str = "time") -> str:
    """
    Compress a time string to HHMM.

    "07:05:09" -> "0705", "7:5" -> "0705", "705" -> "0705".
    Seconds are dropped.

    Raises:
        MalformedRecord: If no valid clock time can be formed
    """
    groups = _DIGIT_GROUPS.findall(_as_text(value))
    if not groups:
        raise MalformedRecord("Missing time", field=field, value=value)

    if len(groups) == 1:
        digits = groups[0]
        if len(digits) < TIME_WIDTH:
            digits = digits.zfill(TIME_WIDTH)
    else:
        digits = "".join(g.zfill(2) for g in groups)
    digits = digits[:TIME_WIDTH]

    if len(digits) != TIME_WIDTH:
        raise MalformedRecord("Time is not HHMM", field=field, value=value)
    if int(digits[:2]) >= 24 or int(digits[2:]) >= 60:
        raise MalformedRecord("Invalid clock time", field=field, value=value)
    return digits


def local_timestamp(date_value: Any, time_value: Any, tz: tzinfo, field: str = "timestamp") -> datetime:
    """Combine a reported date and time into an aware datetime in tz."""
    date_digits = compact_date(date_value, field=f"{field}.date")
    time_digits = compact_time(time_value, field=f"{field}.time")
    naive = datetime.strptime(f"{date_digits} {time_digits}", "%Y%m%d %H%M")
    return naive.replace(tzinfo=tz)


def parse_float(value: Any, field: str) -> float:
    """Parse a numeric field. Empty or missing means 0."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    text = _as_text(value).replace(",", "")
    if not text:
        return 0.0
    try:
        number = float(text)
    except ValueError as e:
        raise MalformedRecord("Not a number", field=field, value=value, cause=e) from e
    if not math.isfinite(number):
        raise MalformedRecord("Not a finite number", field=field, value=value)
    return number


def parse_int(value: Any, field: str) -> int:
    """Parse an integer field. Empty or missing means 0; "12.0" is 12."""
    number = parse_float(value, field)
    if number != int(number):
        raise MalformedRecord("Not an integer", field=field, value=value)
    if not INT32_MIN <= number <= INT32_MAX:
        raise MalformedRecord("Integer out of range", field=field, value=value)
    return int(number)


def parse_coordinate(value: Any, field: str) -> Optional[float]:
    """Parse an optional coordinate. Empty or missing means None."""
    if value is None or _as_text(value) == "":
        return None
    return parse_float(value, field)

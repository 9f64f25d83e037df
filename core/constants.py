"""
Core Module - Constants.

============================================================
RESPONSIBILITY
============================================================
Single source of truth for magic values shared by the
collector, the processor and the aggregation jobs.

============================================================
"""

# ============================================================
# STREAM
# ============================================================

DEFAULT_STREAM_KEY = "traffic-stream"
DEFAULT_CONSUMER_GROUP = "processor-group"

# Field names of one stream entry
FIELD_PAYLOAD = "payload"
FIELD_PUBLISHED_AT = "published_at"
FIELD_SOURCE = "source"

# Position markers for XREADGROUP
NEW_ENTRIES_ID = ">"
PENDING_ENTRIES_ID = "0"

# ============================================================
# RECORD KINDS (payload envelope "kind")
# ============================================================

KIND_INCIDENT = "incident"
KIND_TOLLGATE_TRAFFIC = "tollgate_traffic"
KIND_ROAD_STATUS = "road_status"

RECORD_KINDS = (KIND_INCIDENT, KIND_TOLLGATE_TRAFFIC, KIND_ROAD_STATUS)

# ============================================================
# CONGESTION GRADES
# ============================================================

GRADE_NOT_COMPUTABLE = 0
GRADE_SMOOTH = 1
GRADE_SLOW = 2
GRADE_CONGESTED = 3

VALID_GRADES = (GRADE_NOT_COMPUTABLE, GRADE_SMOOTH, GRADE_SLOW, GRADE_CONGESTED)

# ============================================================
# SOURCE API
# ============================================================

CLIENT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
)
SUCCESS_CODE = "SUCCESS"

DEFAULT_LOCAL_TIMEZONE = "Asia/Seoul"

# ============================================================
# TIME
# ============================================================

SECONDS_PER_DAY = 86400

"""Safety-circle policy constants."""

from __future__ import annotations

# Circle invite code: 8 hex chars, valid for 30 days
INVITE_CODE_BYTES = 4
INVITE_CODE_TTL_DAYS = 30

# Pending email invites expire after 7 days
PENDING_INVITE_TTL_DAYS = 7

# Circle size limits
DEFAULT_MAX_MEMBERS = 50
MIN_MAX_MEMBERS = 2
MAX_MAX_MEMBERS = 100

# Field limits
CIRCLE_NAME_MIN = 2
CIRCLE_NAME_MAX = 100
CIRCLE_DESCRIPTION_MAX = 500
USER_NAME_MIN = 2
USER_NAME_MAX = 50
BIO_MAX = 500
PASSWORD_MIN = 8
# bcrypt input limit
PASSWORD_MAX_BYTES = 72
CHECKIN_NOTES_MAX = 500
CHECKIN_ACK_MESSAGE_MAX = 200
ALERT_TITLE_MAX = 100
ALERT_MESSAGE_MAX = 1000
ALERT_ACK_NOTES_MAX = 500
RESOLUTION_NOTES_MAX = 1000

# Newest location samples kept on a check-in
LOCATION_HISTORY_LIMIT = 50

# Alert escalation
DEFAULT_ESCALATE_AFTER_MIN = 5
MIN_ESCALATE_AFTER_MIN = 1
MAX_ESCALATE_AFTER_MIN = 60
MAX_PRIORITY = 5

# Default priority by severity; panic alerts always start at MAX_PRIORITY
PRIORITY_BY_SEVERITY = {
    "low": 2,
    "medium": 3,
    "high": 4,
    "critical": 5,
}

# List endpoints
LIST_LIMIT = 50
ALERT_CIRCLE_LIST_LIMIT = 100

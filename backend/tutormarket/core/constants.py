"""Application-wide constants for the TutorMarket platform."""

BRAND_NAME = "TutorMarket"
API_TITLE = f"{BRAND_NAME} Booking API"
API_VERSION = "1.0.0"
API_DESCRIPTION = (
    "Booking lifecycle and settlement for the TutorMarket tutoring marketplace: "
    "scheduling, cancellation penalties, appeals and refunds."
)

# Session lengths offered to students (minutes)
ALLOWED_DURATIONS = (30, 60, 90)

# Text constraints
MIN_APPEAL_REASON_LENGTH = 10
MAX_APPEAL_REASON_LENGTH = 1000
MAX_NOTES_LENGTH = 2000

# Query limits
DEFAULT_QUERY_LIMIT = 50
MAX_QUERY_LIMIT = 200

# Day of week mapping, Sunday first (matches TutorAvailability.day_of_week)
DAYS_OF_WEEK = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

# Refund reasons passed to the payment gateway
REFUND_REASON_TUTOR_CANCELLED = "tutor_cancelled"
REFUND_REASON_ADMIN_CANCELLED = "admin_cancelled"
REFUND_REASON_TUTOR_REJECTED = "tutor_rejected"
REFUND_REASON_EXPIRED_PENDING = "tutor_did_not_confirm_in_time"
REFUND_REASON_ADMIN_RETRY = "admin_retry"

# Error messages
ERROR_BOOKING_NOT_FOUND = "Booking not found"
ERROR_APPEAL_NOT_FOUND = "Appeal not found"
ERROR_TUTOR_NOT_FOUND = "Tutor not found"
ERROR_NO_VALID_UPDATE = "No valid update fields provided"

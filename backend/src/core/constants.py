"""Application constants and configuration values."""

from core.config import FRONTEND_URL

# Database field lengths
MAX_STRING_LENGTH = 255
MAX_NOTE_LENGTH = 1000

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
_CORS_ORIGINS_RAW = [
    "http://localhost:4200",      # Angular dev server
    "http://localhost:52377",
    FRONTEND_URL,
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = list(dict.fromkeys(origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()))

# Booking notifications: admins hear about new requests during business hours
# (inclusive hour range) or when the appointment type looks urgent
BUSINESS_HOURS_START = 8
BUSINESS_HOURS_END = 17
URGENT_APPOINTMENT_KEYWORDS = ("urgent", "emergency")

# Cancellation alerts: admins are alerted when the appointment is this close
DOCTOR_CANCELLATION_ALERT_DAYS = 2
PATIENT_CANCELLATION_ALERT_DAYS = 1

# Daily summary warning thresholds
DAILY_SUMMARY_CANCELLED_WARNING = 5
DAILY_SUMMARY_PENDING_WARNING = 10

# Real-time notification event names (wire contract)
EVENT_NEW_NOTIFICATION = "new_notification"
EVENT_ROLE_NOTIFICATION = "role_notification"
EVENT_BROADCAST_NOTIFICATION = "broadcast_notification"
EVENT_CONNECTED = "connected"
EVENT_NOTIFICATION_READ = "notification_read"

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

APP_TITLE = "ProTrack Appointment Tracker API"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATA_DIR = Path(os.getenv("PROTRACK_DATA_DIR", "data"))

# Files used across services
EXPORTS_DIR = DATA_DIR / "exports"             # generated xlsx / pdf artifacts
OUTBOX_DIR = DATA_DIR / "outbox"               # .eml fallback when SMTP is unavailable
REMINDERS_XLSX = DATA_DIR / "reminders.xlsx"   # reminder schedule

# Snapshot keys handed to the persistence store
SUBJECTS_KEY = "pt_subjects"
APPOINTMENTS_KEY = "pt_appointments"
CHANGELOG_KEY = "pt_changelogs"

# SMTP (reminder mail)
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM = os.getenv("SMTP_FROM", SMTP_USERNAME or "no-reply@example.com")
SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() in ("1", "true", "yes")

# Lifecycle rules
CORRECTION_WINDOW_DAYS = 5
UPCOMING_WINDOW_DAYS = 7
MISSED_LOOKBACK_DAYS = 30

AUTO_MISS_REASON = "Auto-detected: Past date"
AUTO_MISS_NOTE = "[System: Marked as Missed]"
AUTO_MISS_COMMENT = "System: auto-detected past date"
BULK_PAST_REASON = "Past date on bulk entry"
BULK_COMMENT = "Bulk Entry Operation"
BULK_SUBJECT_NOTE = "Auto-created via Bulk Multi-Column Entry"
MANUAL_SUBJECT_NOTE = "Manually added"
BATCH_SUBJECT_ID = "BATCH"
UNKNOWN_SUBJECT_NAME = "Unknown"

"""Error taxonomy for the tracker core.

Validation and not-found errors are raised before any state is touched, so a
caller can always retry with corrected input against the same snapshot.
"""
from __future__ import annotations


class TrackerError(Exception):
    code = "tracker_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class ValidationError(TrackerError):
    code = "validation_error"


class FutureMissedNotAllowed(ValidationError):
    code = "future_missed_not_allowed"


class CorrectionWindowExceeded(ValidationError):
    code = "correction_window_exceeded"


class MissingFollowUpChoice(ValidationError):
    code = "missing_follow_up_choice"


class MissingReasonText(ValidationError):
    code = "missing_reason_text"


class PastRescheduleDate(ValidationError):
    code = "past_reschedule_date"


class DuplicateSubjectId(ValidationError):
    code = "duplicate_subject_id"


class MissingRequiredComment(ValidationError):
    code = "missing_required_comment"


class MissingRequiredField(ValidationError):
    code = "missing_required_field"


class InvalidStatusTransition(ValidationError):
    code = "invalid_status_transition"


class NothingToExport(ValidationError):
    code = "nothing_to_export"


class NotFoundError(TrackerError):
    code = "not_found"


class SubjectNotFound(NotFoundError):
    code = "subject_not_found"


class AppointmentNotFound(NotFoundError):
    code = "appointment_not_found"


class ExternalServiceError(TrackerError):
    code = "external_service_error"

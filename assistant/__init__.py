# assistant/__init__.py
from .drafting import analyze_attendance_trends, draft_follow_up_message

__all__ = ["draft_follow_up_message", "analyze_attendance_trends"]

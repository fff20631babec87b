from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Any, Dict

from ..schema import AppointmentStatus, Snapshot
from ..utils import month_key
from .appointments import active_appointments


def dashboard_summary(snapshot: Snapshot, now: datetime) -> Dict[str, Any]:
    """KPIs over appointments that belong to currently active subjects."""
    appts = active_appointments(snapshot)
    upcoming = sum(1 for a in appts if a.status == AppointmentStatus.SCHEDULED and a.date > now)
    missed = sum(1 for a in appts if a.status == AppointmentStatus.MISSED)
    completed = sum(1 for a in appts if a.status == AppointmentStatus.COMPLETED)

    by_month = Counter(month_key(a.date) for a in appts)
    monthly = [
        {
            "month": key,
            "label": datetime.strptime(key, "%Y-%m").strftime("%b %Y"),
            "appointments": count,
        }
        for key, count in sorted(by_month.items())
    ]
    return {
        "total_subjects": len(snapshot.subjects),
        "upcoming": upcoming,
        "missed": missed,
        "completed": completed,
        "status_distribution": [
            {"name": "Completed", "value": completed},
            {"name": "Missed", "value": missed},
            {"name": "Scheduled", "value": upcoming},
        ],
        "monthly_volume": monthly,
    }

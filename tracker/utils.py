from __future__ import annotations

import socket
from datetime import date, datetime, time
from typing import Optional


def to_local_naive(dt: datetime) -> datetime:
    """Normalise ``dt`` to a naive local ``datetime``."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone().replace(tzinfo=None)


def start_of_day(dt: datetime) -> datetime:
    return datetime.combine(dt.date(), time.min)


def month_key(dt: datetime) -> str:
    return dt.strftime("%Y-%m")


def fmt_day(d: date) -> str:
    return d.strftime("%Y-%m-%d")


def fmt_instant(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d %H:%M")


def append_note(notes: Optional[str], note: str) -> str:
    existing = (notes or "").strip()
    return f"{existing} {note}" if existing else note


def get_ip_address() -> str:
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except OSError:
        return "127.0.0.1"

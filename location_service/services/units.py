from __future__ import annotations


def meters_to_kilometers(meters: float) -> float:
    return round(meters / 1000, 2)


def seconds_to_hours(seconds: float) -> float:
    return round(seconds / 3600, 2)


def format_duration(seconds: int) -> str:
    """Human-readable duration: '1h 5m' or '12m'."""
    hours, rest = divmod(int(seconds), 3600)
    minutes = rest // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"

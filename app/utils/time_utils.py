from datetime import datetime, timezone


def time_ago(moment: datetime, now: datetime) -> str:
    """Human readable age, e.g. ``"5 min ago"`` or ``"2 days ago"``."""
    # SQLite hands back naive datetimes; they were stored as UTC
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    diff_mins = int((now - moment).total_seconds() // 60)

    if diff_mins < 1:
        return "Just now"
    if diff_mins < 60:
        return f"{diff_mins} min ago"

    diff_hours = diff_mins // 60
    if diff_hours < 24:
        return f"{diff_hours} hour{'s' if diff_hours > 1 else ''} ago"

    diff_days = diff_hours // 24
    return f"{diff_days} day{'s' if diff_days > 1 else ''} ago"

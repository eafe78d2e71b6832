"""Task status rules shared by the lifecycle use-cases and read models."""

from __future__ import annotations

from datetime import datetime, timezone

from ..models import Task


# Statuses a transition may start from (compare-and-set guards).
PROGRESS_FROM: tuple[str, ...] = ("active", "rejected")
JUDGE_FROM: tuple[str, ...] = ("completed",)
DELETE_FROM: tuple[str, ...] = ("active", "completed")
TERMINAL: tuple[str, ...] = ("confirmed",)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
    """Normalize naive (SQLite) or offset datetimes to aware UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def iso_week_label(dt: datetime) -> str:
    """ISO week label, e.g. 2026-W07."""
    year, week, _ = dt.isocalendar()
    return f"{year}-W{week:02d}"


def progress_status(*, completed_qty: int, target_qty: int, submit: bool = False) -> str:
    """Status after a progress report: completed at target (or when handed in), else active."""
    if completed_qty == target_qty or submit:
        return "completed"
    return "active"


def is_overdue(task: Task, now: datetime | None = None) -> bool:
    """Overdue is derived: an active task whose deadline has passed."""
    if task.status != "active":
        return False
    deadline = as_utc(task.deadline)
    return bool(deadline and deadline < (now or utc_now()))


def effective_status(task: Task, now: datetime | None = None) -> str:
    return "overdue" if is_overdue(task, now) else task.status


def progress_percent(task: Task) -> float:
    if not task.target_qty:
        return 0.0
    return round(min(task.completed_qty / task.target_qty * 100, 100.0), 2)

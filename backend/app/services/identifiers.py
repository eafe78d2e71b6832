"""Human-readable, role-prefixed user identifiers (autoId)."""
from __future__ import annotations

import re
import time
from uuid import UUID

from sqlalchemy.orm import Session

from ..models import User

ROLE_PREFIXES = {
    "employee": "EMP",
    "supervisor": "SUP",
    "factory_admin": "ADM",
    "super_admin": "ADM",
}

# Sequence number, optionally followed by the "-NNNN" timestamp suffix.
_SEQUENCE_RE = re.compile(r"(\d+)(?:-\d+)?$")


def auto_id_prefix(role: str) -> str:
    return ROLE_PREFIXES.get(role, "ADM")


def parse_sequence(auto_id: str | None) -> int:
    """Extract the sequence number of an autoId; 0 when there is none."""
    if not auto_id:
        return 0
    match = _SEQUENCE_RE.search(auto_id)
    if not match:
        return 0
    return int(match.group(1))


def timestamp_suffix(now_ms: int | None = None) -> str:
    """Low-order part of the current time in milliseconds."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{now_ms % 10000:04d}"


def generate_auto_id(
    db: Session,
    *,
    role: str,
    tenant_id: UUID | None = None,
    now_ms: int | None = None,
) -> str:
    """Next autoId for a role (scoped to tenant when given), e.g. ``EMP004-8127``.

    The suffix only narrows the collision window between concurrent creations;
    uniqueness is enforced by the users.auto_id constraint and the caller retries.
    """
    query = db.query(User).filter(User.role == role)
    if tenant_id is not None:
        query = query.filter(User.tenant_id == tenant_id)
    last_user = query.order_by(User.auto_id.desc()).first()

    next_number = parse_sequence(last_user.auto_id if last_user else None) + 1
    return f"{auto_id_prefix(role)}{next_number:03d}-{timestamp_suffix(now_ms)}"

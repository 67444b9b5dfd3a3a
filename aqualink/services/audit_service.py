from __future__ import annotations

from sqlalchemy.orm import Session

from aqualink.models import AuditLog


def log_audit(
    db: Session,
    *,
    actor: str | None,
    action: str,
    ip: str | None,
    metadata: dict | None = None,
) -> None:
    db.add(
        AuditLog(
            actor=actor,
            action=action,
            ip=ip,
            meta=metadata or {},
        )
    )

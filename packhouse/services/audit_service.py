from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from packhouse.models import AuditLog, AuthEvent

logger = logging.getLogger(__name__)


def log_auth_event(
    db: Session,
    *,
    attempted_username: str,
    success: bool,
    ip: str | None,
    user_agent: str | None,
    principal_id: int | None = None,
    failure_reason: str | None = None,
) -> None:
    if not success:
        logger.info('Login failed for %r: %s', attempted_username, failure_reason)
    db.add(
        AuthEvent(
            attempted_username=attempted_username,
            success=success,
            failure_reason=failure_reason,
            principal_id=principal_id,
            ip=ip,
            user_agent=user_agent,
        )
    )


def log_audit(
    db: Session,
    *,
    actor_principal_id: int | None,
    action: str,
    ip: str | None,
    transaction_key: str | None = None,
    metadata: dict | None = None,
) -> None:
    logger.info('%s by principal=%s key=%s', action, actor_principal_id, transaction_key)
    db.add(
        AuditLog(
            actor_principal_id=actor_principal_id,
            action=action,
            transaction_key=transaction_key,
            ip=ip,
            meta=metadata or {},
        )
    )

"""
Best-effort audit and usage logging.

Audit logging is diagnostic, not transactional: a failure to persist an entry
is reported on the fallback logger and never reaches the caller.
"""
import logging
from typing import Any, Optional

from .models import AuditAction, UsageLogEntry
from .store import UsageLogStore

logger = logging.getLogger('cvboost.audit')

AUDIT_PREFIX = "audit:"
IP_PREFIX = "ip:"


class AuditLog:
    def __init__(self, store: UsageLogStore):
        self.store = store

    async def record(self, entry: UsageLogEntry) -> None:
        try:
            await self.store.append(entry)
        except Exception as e:
            logger.error(
                f"AUDIT_LOG_FAILURE: could not persist {entry.action} for user={entry.user_id}: "
                f"{type(e).__name__}: {e} | entry={entry.model_dump_json()}"
            )

    async def log_event(
        self,
        action: AuditAction,
        *,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        success: bool = True,
        error_message: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        """Record a security/audit event as an ``audit:`` usage entry with no credit cost."""
        event_metadata: dict[str, Any] = {}
        if ip_address:
            event_metadata["ip_address"] = ip_address
        if user_agent:
            event_metadata["user_agent"] = user_agent
        event_metadata.update(metadata or {})

        await self.record(UsageLogEntry(
            user_id=user_id,
            action=f"{AUDIT_PREFIX}{action.value}",
            credits_used=0,
            metadata=event_metadata,
            success=success,
            error_message=error_message,
        ))

    async def log_auth_failure(self, ip_address: str, reason: str) -> None:
        await self.log_event(
            AuditAction.AUTH_FAILED,
            ip_address=ip_address,
            success=False,
            error_message=reason,
        )

    async def log_rate_limit_hit(self, identifier: str, endpoint: str) -> None:
        if identifier.startswith(IP_PREFIX):
            user_id, ip_address = None, identifier[len(IP_PREFIX):]
        else:
            user_id, ip_address = identifier, None

        await self.log_event(
            AuditAction.RATE_LIMITED,
            user_id=user_id,
            ip_address=ip_address,
            success=False,
            metadata={"endpoint": endpoint},
        )

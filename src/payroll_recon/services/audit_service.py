"""Append-only audit trail."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_recon.models import AuditEvent


class AuditTrail:
    """Records who changed what. Events are only ever added, never edited."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def record(
        self,
        entity_type: str,
        entity_id: Any,
        action: str,
        actor_id: str | None = None,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Add an audit event to the current transaction."""
        event = AuditEvent(
            actor_id=actor_id,
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            before_json=before,
            after_json=after,
        )
        self.session.add(event)
        return event

    async def events_for(self, entity_type: str, entity_id: Any) -> list[AuditEvent]:
        """Audit history of one entity, oldest first."""
        result = await self.session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == str(entity_id),
            )
            .order_by(AuditEvent.created_at, AuditEvent.audit_event_id)
        )
        return list(result.scalars().all())

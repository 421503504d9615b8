"""Audit log service."""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utcnow
from ..core.exceptions import NotAuthenticatedError
from ..models.audit import AuditLogEntry

logger = logging.getLogger(__name__)


class AuditService:
    """Writes audit entries inside the caller's transaction."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def record(
        self,
        action: str,
        entity_type: str,
        entity_id: Any,
        actor: str | None,
        old_data: dict[str, Any] | None = None,
        new_data: dict[str, Any] | None = None,
    ) -> AuditLogEntry:
        """
        Add an audit entry to the current unit of work.

        The entry is flushed but not committed, so it lands or rolls back
        together with the change it describes.

        Raises:
            NotAuthenticatedError: If no actor is given
        """
        if not actor:
            raise NotAuthenticatedError(detail=f"An authenticated actor is required to {action.replace('_', ' ')}")

        entry = AuditLogEntry(
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            actor=actor,
            old_data=old_data,
            new_data=new_data,
            created_at=self.clock(),
        )
        self.db.add(entry)
        await self.db.flush()

        logger.debug(
            "Audit entry recorded",
            extra={
                "action": action,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "actor": actor,
            }
        )

        return entry

    async def list_for_entity(self, entity_type: str, entity_id: Any) -> list[AuditLogEntry]:
        """Audit entries for one entity in the order they were written."""
        stmt = (
            select(AuditLogEntry)
            .where(
                AuditLogEntry.entity_type == entity_type,
                AuditLogEntry.entity_id == str(entity_id),
            )
            .order_by(AuditLogEntry.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

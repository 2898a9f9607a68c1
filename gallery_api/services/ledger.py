"""
Usage ledger: race-safe consumption of limited-use counters.

Every consumption is a single conditional UPDATE executed by the database:

    UPDATE <table> SET <field> = <field> + 1
    WHERE id = :id AND <field> < :max [AND guards]
    RETURNING <field>

so for a limit N exactly min(N, attempts) callers are granted, whatever the
number of processes racing on the same row. Nothing here reads a counter,
compares in Python and writes it back.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Type

from sqlalchemy import case, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from gallery_api.database import Base
from gallery_api.exceptions import LedgerInvariantError
from gallery_api.models.invitation import Invitation, InvitationStatus, LIVE_STATUSES
from gallery_api.models.share import ShareLink
from gallery_api.utils.logger import log_critical
from gallery_api.utils.prometheus_metrics import ledger_consume_total


@dataclass(frozen=True)
class ConsumeResult:
    granted: bool
    new_count: Optional[int] = None


class UsageLedger:
    """
    Conditional atomic increments on ``view_count`` / ``usage_count``.

    Runs inside the caller's transaction: a consumption only becomes
    durable when the caller commits, and is undone by a rollback.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def try_consume(
        self,
        model: Type[Base],
        resource_id: int,
        field: str,
        max_value: Optional[int],
        guards: Iterable[Any] = (),
        values: Optional[Dict[str, Any]] = None,
    ) -> ConsumeResult:
        """
        Increment ``model.field`` by one if it stays within ``max_value``.

        Args:
            model: Mapped class owning the counter
            resource_id: Primary key of the row
            field: Counter column name
            max_value: Ceiling, or None for an uncapped (still atomic) increment
            guards: Extra WHERE conditions that must hold at commit time
            values: Extra columns to set in the same statement

        Returns:
            ConsumeResult(granted, new_count); new_count is None when refused

        Raises:
            LedgerInvariantError: the database reported a count above the ceiling
        """
        column = getattr(model, field)
        stmt = update(model).where(model.id == resource_id)
        if max_value is not None:
            stmt = stmt.where(column < max_value)
        for guard in guards:
            stmt = stmt.where(guard)
        stmt = (
            stmt.values({field: column + 1, **(values or {})})
            .returning(column)
            .execution_options(synchronize_session=False)
        )

        result = await self.db.execute(stmt)
        new_count = result.scalar_one_or_none()
        resource = model.__tablename__

        if new_count is None:
            ledger_consume_total.labels(resource=resource, result="refused").inc()
            return ConsumeResult(granted=False)

        if max_value is not None and new_count > max_value:
            log_critical(
                "Usage counter exceeded its ceiling",
                event="ledger",
                resource=resource,
                resource_id=resource_id,
                field=field,
                new_count=new_count,
                max_value=max_value,
            )
            raise LedgerInvariantError(
                f"{resource}.{field} reached {new_count} with ceiling {max_value} (id={resource_id})"
            )

        ledger_consume_total.labels(resource=resource, result="granted").inc()
        return ConsumeResult(granted=True, new_count=new_count)

    async def consume_share_view(self, link: ShareLink, now: datetime) -> ConsumeResult:
        """Count one view against the link's ceiling (if any)."""
        result = await self.try_consume(
            ShareLink,
            link.id,
            "view_count",
            link.max_views,
            values={"last_accessed_at": now},
        )
        if result.granted:
            set_committed_value(link, "view_count", result.new_count)
            set_committed_value(link, "last_accessed_at", now)
        return result

    async def consume_invitation_use(self, invitation: Invitation, now: datetime) -> ConsumeResult:
        """
        Count one use of an invitation.

        The same statement activates a pending invitation, expires it when
        this use reaches ``max_usage``, and refuses terminal or time-expired
        rows.
        """
        if invitation.max_usage is not None:
            next_status = case(
                (
                    Invitation.usage_count + 1 >= Invitation.max_usage,
                    InvitationStatus.EXPIRED.value,
                ),
                else_=InvitationStatus.ACTIVE.value,
            )
        else:
            next_status = InvitationStatus.ACTIVE.value

        result = await self.try_consume(
            Invitation,
            invitation.id,
            "usage_count",
            invitation.max_usage,
            guards=(
                Invitation.status.in_(LIVE_STATUSES),
                or_(Invitation.expires_at.is_(None), Invitation.expires_at >= now),
            ),
            values={"status": next_status, "used_at": now},
        )
        if result.granted:
            exhausted = invitation.max_usage is not None and result.new_count >= invitation.max_usage
            set_committed_value(invitation, "usage_count", result.new_count)
            set_committed_value(invitation, "used_at", now)
            set_committed_value(
                invitation,
                "status",
                InvitationStatus.EXPIRED.value if exhausted else InvitationStatus.ACTIVE.value,
            )
        return result

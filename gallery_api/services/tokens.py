"""
Persisting rows that carry a random unique value (share tokens, invitation
codes).

The database's unique constraint is the collision detector: the row is
inserted inside a savepoint and, on an ``IntegrityError`` caused by the
random column, a fresh value is drawn and the insert retried.
"""
import logging
from typing import Callable, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from gallery_api.config import get_settings
from gallery_api.exceptions import ConfigurationError
from gallery_api.utils.logger import log_critical

logger = logging.getLogger("gallery_api.tokens")

T = TypeVar("T")


async def add_with_unique_token(
    db: AsyncSession,
    column: InstrumentedAttribute,
    generate: Callable[[], str],
    build: Callable[[str], T],
    max_attempts: Optional[int] = None,
) -> T:
    """
    Insert ``build(value)`` with a freshly generated ``value`` for ``column``.

    Args:
        db: Session the row is added to (the outer transaction stays open)
        column: Unique column holding the random value
        generate: Produces a candidate value
        build: Creates the ORM instance from a candidate value
        max_attempts: Insert attempts before giving up (TOKEN_MAX_ATTEMPTS)

    Returns:
        The flushed instance

    Raises:
        ConfigurationError: every attempt collided (entropy too low)
        IntegrityError: the insert failed for a reason other than a collision
    """
    if max_attempts is None:
        max_attempts = get_settings().token_max_attempts

    for attempt in range(1, max_attempts + 1):
        value = generate()
        instance = build(value)
        try:
            async with db.begin_nested():
                db.add(instance)
                await db.flush()
        except IntegrityError:
            taken = await db.scalar(select(column).where(column == value))
            if taken is None:
                raise
            logger.warning(
                "Random token collided, regenerating",
                extra={"event": "token", "column": column.key, "attempt": attempt},
            )
            continue
        return instance

    log_critical(
        "Token generation exhausted all attempts",
        event="token",
        column=column.key,
        attempts=max_attempts,
    )
    raise ConfigurationError(
        f"Could not generate a unique {column.key} after {max_attempts} attempts; "
        "token entropy is too low"
    )

"""PostgreSQL advisory locks."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession


def lock_key(namespace: str, resource_id: object) -> str:
    return f"{namespace}:{resource_id}"


async def acquire_xact_lock(db: AsyncSession, key: str) -> None:
    """
    Block until the transaction-scoped advisory lock for `key` is held.

    The lock is released automatically when the session's transaction
    commits or rolls back, so it spans every query issued on `db` until then.
    Keys are hashed to the 64-bit lock space with hashtextextended().
    """
    await db.execute(
        text("SELECT pg_advisory_xact_lock(hashtextextended(:key, 0))"),
        {"key": key},
    )

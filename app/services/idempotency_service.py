"""
Idempotency Service.

claim() is one INSERT guarded by the UNIQUE constraint on key_hash. When the
insert collides, the existing row decides the outcome:

- processing -> another request owns the key (caller raises ConcurrentDuplicateError)
- completed  -> the stored response is replayed
- failed or expired -> the key is re-claimed with a conditional UPDATE
"""
import hashlib
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, update, and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.idempotency import IdempotencyKey, IdempotencyStatus
from app.services.interfaces import IdempotencyClaim


logger = logging.getLogger(__name__)


def hash_idempotency_key(operation: str, client_key: str, actor_id: Optional[str]) -> str:
    """SHA-256 hex digest of '<operation>:<client key>:<actor>'."""
    raw = f"{operation}:{client_key}:{actor_id or 'anonymous'}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class IdempotencyService:
    """SQL-backed idempotency key store."""

    def __init__(self, db: AsyncSession, ttl_hours: Optional[int] = None):
        self.db = db
        self.ttl = timedelta(hours=ttl_hours or settings.IDEMPOTENCY_TTL_HOURS)

    async def claim(self, key_hash: str, operation: str, request_data: Optional[dict] = None) -> IdempotencyClaim:
        now = datetime.now(timezone.utc)
        row = IdempotencyKey(
            id=uuid.uuid4(),
            key_hash=key_hash,
            operation_type=operation,
            status=IdempotencyStatus.PROCESSING.value,
            request_data=request_data,
            created_at=now,
            expires_at=now + self.ttl,
        )

        try:
            async with self.db.begin_nested():
                self.db.add(row)
        except IntegrityError:
            # Key already present; fall through to inspect it
            logger.info("Idempotency key collision for %s", operation)
        else:
            return IdempotencyClaim(key_id=row.id, exists=False, in_process=False)

        result = await self.db.execute(
            select(IdempotencyKey)
            .where(IdempotencyKey.key_hash == key_hash)
            .execution_options(populate_existing=True)
        )
        existing = result.scalar_one()

        if existing.status == IdempotencyStatus.COMPLETED.value and not self._expired(existing, now):
            return IdempotencyClaim(
                key_id=existing.id,
                exists=True,
                in_process=False,
                stored_response=existing.response_data,
            )

        if existing.status == IdempotencyStatus.PROCESSING.value and not self._expired(existing, now):
            return IdempotencyClaim(key_id=existing.id, exists=True, in_process=True)

        # Failed or expired: take the key over, unless someone else just did
        reclaimed = await self.db.execute(
            update(IdempotencyKey)
            .where(
                and_(
                    IdempotencyKey.id == existing.id,
                    or_(
                        IdempotencyKey.status == IdempotencyStatus.FAILED.value,
                        IdempotencyKey.expires_at < now,
                    ),
                )
            )
            .values(
                status=IdempotencyStatus.PROCESSING.value,
                request_data=request_data,
                response_data=None,
                created_at=now,
                expires_at=now + self.ttl,
                completed_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        if reclaimed.rowcount == 0:
            return IdempotencyClaim(key_id=existing.id, exists=True, in_process=True)

        logger.info("Idempotency key re-claimed after %s", existing.status)
        return IdempotencyClaim(key_id=existing.id, exists=False, in_process=False)

    async def complete(self, key_id: uuid.UUID, response: Optional[dict], status: str) -> None:
        await self.db.execute(
            update(IdempotencyKey)
            .where(IdempotencyKey.id == key_id)
            .values(
                status=status,
                response_data=response,
                completed_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    def _expired(key: IdempotencyKey, now: datetime) -> bool:
        expires_at = key.expires_at
        if expires_at is None:
            return False
        if expires_at.tzinfo is None:
            # SQLite hands back naive datetimes
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at < now

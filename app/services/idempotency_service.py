"""Request-id deduplication for retried writes"""
import hashlib
import json
import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError
from app.models.idempotency import IdempotencyRecord
from app.repositories.idempotency_repository import IdempotencyRepository

logger = logging.getLogger(__name__)


def fingerprint(payload: Any) -> str:
    """Stable hash of a request payload"""
    raw = json.dumps(payload, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(raw.encode()).hexdigest()


class IdempotencyService:
    """
    Service for idempotent request handling.

    The claim is inserted in the same transaction as the guarded write, so
    a rolled back write leaves no record behind and a committed one always
    has its response stored.
    """

    @staticmethod
    async def lookup(
        db: AsyncSession,
        operation: str,
        actor_id: UUID,
        request_id: str,
        request_fingerprint: str,
    ) -> Optional[dict]:
        """
        Get the stored response of an earlier request with the same id.

        Returns:
            Stored response, or None if the request id is new

        Raises:
            ConflictError: If the id was used with a different payload
        """
        record = await IdempotencyRepository.get(db, operation, actor_id, request_id)
        if record is None:
            return None

        if record.fingerprint != request_fingerprint:
            raise ConflictError(
                f"Idempotency key '{request_id}' was already used with a different request"
            )

        logger.info(f"Replaying stored result of {operation} request {request_id}")
        return record.response

    @staticmethod
    async def claim(
        db: AsyncSession,
        operation: str,
        actor_id: UUID,
        request_id: str,
        request_fingerprint: str,
    ) -> IdempotencyRecord:
        """Insert the record for a new request id"""
        return await IdempotencyRepository.create(
            db,
            IdempotencyRecord(
                operation=operation,
                actor_id=actor_id,
                request_id=request_id,
                fingerprint=request_fingerprint,
            ),
        )

    @staticmethod
    async def complete(db: AsyncSession, record: IdempotencyRecord, response: dict) -> None:
        """Store the response returned for the claimed request"""
        record.response = response
        await db.flush()

"""Idempotency service for replaying responses to retried mutating requests."""

import hashlib
import json
import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utcnow
from ..core.config import settings
from ..core.exceptions import ProblemDetailsException
from ..models.idempotency import IdempotencyRecord

logger = logging.getLogger(__name__)


class IdempotencyMismatchError(ProblemDetailsException):
    """Exception when idempotency key is reused with different request body."""

    def __init__(self, idempotency_key: str, method: str):
        super().__init__(
            status_code=422,
            title="Idempotency Key Mismatch",
            detail=(
                f"Idempotency key '{idempotency_key}' was already used for "
                f"'{method}' with a different request body"
            ),
            type_uri="https://example.com/problems/idempotency-key-mismatch",
            extensions={
                "code": "IDEMPOTENCY_KEY_MISMATCH",
                "retryable": False,
                "idempotency_key": idempotency_key,
                "method": method,
            },
        )


CachedResponse = tuple[int, dict[str, Any]]


class IdempotencyService:
    """
    Stores the first response for each ``(Idempotency-Key, operation)`` pair.

    A retry with the same key and body gets the stored response, including a
    stored problem document, without running the operation again.
    """

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    @staticmethod
    def compute_request_hash(request_body: dict[str, Any]) -> str:
        """SHA-256 of the request body with keys sorted."""
        normalized = json.dumps(jsonable_encoder(request_body), sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(normalized.encode('utf-8')).hexdigest()

    async def check_idempotency(
        self,
        idempotency_key: str,
        method: str,
        request_body: dict[str, Any],
    ) -> CachedResponse | None:
        """
        Stored response for this key and operation, if one is still live.

        Raises:
            IdempotencyMismatchError: If the key was used with a different body
        """
        request_hash = self.compute_request_hash(request_body)

        stmt = select(IdempotencyRecord).where(
            IdempotencyRecord.idempotency_key == idempotency_key,
            IdempotencyRecord.method == method,
            IdempotencyRecord.expires_at > self.clock()
        )
        result = await self.db.execute(stmt)
        existing_record = result.scalar_one_or_none()

        if existing_record is None:
            return None

        if existing_record.request_body_hash != request_hash:
            logger.warning(
                "Idempotency key mismatch",
                extra={
                    "idempotency_key": idempotency_key,
                    "method": method,
                    "existing_hash": existing_record.request_body_hash[:8],
                    "new_hash": request_hash[:8]
                }
            )
            raise IdempotencyMismatchError(idempotency_key, method)

        logger.info(
            "Returning cached idempotent response",
            extra={
                "idempotency_key": idempotency_key,
                "method": method,
                "status_code": existing_record.response_status_code,
            }
        )

        return existing_record.response_status_code, json.loads(existing_record.response_body)

    async def store_response(
        self,
        idempotency_key: str,
        method: str,
        request_body: dict[str, Any],
        status_code: int,
        response_body: dict[str, Any],
    ) -> None:
        """Store a response; a concurrent store of the same key wins silently."""
        expires_at = self.clock() + timedelta(hours=settings.idempotency_ttl_hours)

        record = IdempotencyRecord(
            idempotency_key=idempotency_key,
            method=method,
            request_body_hash=self.compute_request_hash(request_body),
            response_status_code=status_code,
            response_body=json.dumps(jsonable_encoder(response_body), sort_keys=True, separators=(',', ':')),
            expires_at=expires_at,
            created_at=self.clock(),
        )

        try:
            self.db.add(record)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.info(
                "Idempotency record already exists (race condition)",
                extra={
                    "idempotency_key": idempotency_key,
                    "method": method,
                    "error": str(e)
                }
            )

    async def execute(
        self,
        method: str,
        idempotency_key: str | None,
        request_body: dict[str, Any],
        operation: Callable[[], Awaitable[dict[str, Any]]],
    ) -> JSONResponse:
        """
        Run ``operation`` once per idempotency key.

        Without a key the operation simply runs. Problem responses are
        stored too, so a retried request that failed fails the same way.
        """
        if idempotency_key is None:
            return JSONResponse(status_code=200, content=jsonable_encoder(await operation()))

        cached = await self.check_idempotency(idempotency_key, method, request_body)
        if cached is not None:
            status_code, response_body = cached
            return JSONResponse(
                status_code=status_code,
                content=response_body,
                headers={"Idempotent-Replayed": "true"},
            )

        try:
            response_body = jsonable_encoder(await operation())
        except ProblemDetailsException as e:
            await self.db.rollback()
            await self.store_response(
                idempotency_key=idempotency_key,
                method=method,
                request_body=request_body,
                status_code=e.status_code,
                response_body=e.problem_details,
            )
            raise

        await self.store_response(
            idempotency_key=idempotency_key,
            method=method,
            request_body=request_body,
            status_code=200,
            response_body=response_body,
        )

        return JSONResponse(status_code=200, content=response_body)


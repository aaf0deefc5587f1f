"""HTTP client for the presentation layer, with retry and unread-count polling"""
import asyncio
import logging
from datetime import date
from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import UUID

import httpx

from app.core.exceptions import (AppException, ConflictError,
                                 ConsistencyError, NotFoundError,
                                 TransientError, ValidationError)
from app.utils.retry import retry_async

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {502, 503, 504}

ERROR_TYPES = {
    "ValidationError": ValidationError,
    "NotFoundError": NotFoundError,
    "ConflictError": ConflictError,
    "ConsistencyError": ConsistencyError,
    "TransientError": TransientError,
}


def error_from_response(response: httpx.Response) -> AppException:
    """Rebuild the engine's exception from an error response"""
    try:
        error = response.json().get("error", {})
    except ValueError:
        error = {}

    message = error.get("message") or f"HTTP {response.status_code}"
    exc_class = ERROR_TYPES.get(error.get("type"))
    if exc_class is None:
        if response.status_code in RETRYABLE_STATUS_CODES:
            exc_class = TransientError
        else:
            return AppException(message, status_code=response.status_code)
    return exc_class(message, details=error.get("details"))


class EngineClient:
    """
    Async client for the engine's HTTP API.

    Transient failures (connection errors, 502/503/504) are retried with
    exponential backoff. Writes are retried only when they carry an
    idempotency key, since the engine deduplicates on it.
    """

    def __init__(
        self,
        base_url: str,
        attempts: int = 3,
        base_delay: float = 0.2,
        max_delay: float = 5.0,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)
        self._attempts = attempts
        self._base_delay = base_delay
        self._max_delay = max_delay

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "EngineClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        url: str,
        retry: bool = True,
        **kwargs,
    ) -> Any:
        async def send() -> Any:
            try:
                response = await self._client.request(method, url, **kwargs)
            except httpx.TransportError as e:
                raise TransientError(f"{method} {url} failed: {e}") from e

            if response.is_success:
                return response.json()
            raise error_from_response(response)

        if not retry:
            return await send()
        return await retry_async(
            send,
            attempts=self._attempts,
            base_delay=self._base_delay,
            max_delay=self._max_delay,
            name=f"{method} {url}",
        )

    async def get_balance(self, user_id: UUID) -> Dict[str, Any]:
        return await self._request("GET", f"/users/{user_id}/balance")

    async def get_pair_balance(self, user_id: UUID, other_user_id: UUID) -> Dict[str, Any]:
        return await self._request("GET", f"/users/{user_id}/balances/{other_user_id}")

    async def get_statistics(
        self, user_id: UUID, start: Optional[date] = None, end: Optional[date] = None
    ) -> Dict[str, Any]:
        params = {}
        if start:
            params["start"] = start.isoformat()
        if end:
            params["end"] = end.isoformat()
        return await self._request("GET", f"/users/{user_id}/statistics", params=params)

    async def get_feed(
        self, user_id: UUID, cursor: Optional[str] = None, limit: Optional[int] = None
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if cursor:
            params["cursor"] = cursor
        if limit:
            params["limit"] = limit
        return await self._request("GET", f"/users/{user_id}/feed", params=params)

    async def get_unread_count(self, user_id: UUID) -> int:
        data = await self._request("GET", f"/users/{user_id}/notifications/unread-count")
        return data["unread_count"]

    async def mark_read(self, user_id: UUID, request_id: Optional[str] = None) -> Dict[str, Any]:
        headers = {"Idempotency-Key": request_id} if request_id else {}
        return await self._request(
            "POST",
            f"/users/{user_id}/notifications/mark-read",
            retry=request_id is not None,
            headers=headers,
        )

    async def record_expense(
        self, expense: Dict[str, Any], request_id: Optional[str] = None
    ) -> Dict[str, Any]:
        headers = {"Idempotency-Key": request_id} if request_id else {}
        return await self._request(
            "POST",
            "/expenses",
            retry=request_id is not None,
            json=expense,
            headers=headers,
        )


class UnreadCountPoller:
    """
    Periodically fetch a user's unread count until stopped.

    The polling task is owned by the poller: start() launches it and
    stop() signals it and waits for it to finish. Failed polls are logged
    and the previous count is kept.
    """

    def __init__(
        self,
        client: EngineClient,
        user_id: UUID,
        interval: float = 30.0,
        on_update: Optional[Callable[[int], Awaitable[None]]] = None,
    ):
        self._client = client
        self._user_id = user_id
        self._interval = interval
        self._on_update = on_update
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.unread_count: Optional[int] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name=f"unread-poller-{self._user_id}")

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def poll_once(self) -> Optional[int]:
        try:
            count = await self._client.get_unread_count(self._user_id)
        except AppException as e:
            logger.warning(f"Unread count poll for user {self._user_id} failed: {e.message}")
            return self.unread_count

        if count != self.unread_count:
            self.unread_count = count
            if self._on_update is not None:
                await self._on_update(count)
        return count

    async def _run(self) -> None:
        while not self._stop.is_set():
            await self.poll_once()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass

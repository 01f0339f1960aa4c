"""
Client-side idempotency for purchase confirmation.

Every confirmation carries a client-generated attempt id. This module
keeps a record per attempt id so that:

1. A completed confirmation is answered from the record, never resent
2. A concurrent duplicate submission is refused while one is in flight
3. A retryable failure may be resubmitted with the same attempt id
4. A fatal failure is re-raised without touching the network again
"""
from __future__ import annotations

import hashlib
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from .exceptions import IdempotencyKeyConflict, IdempotencyOperationInProgress

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class IdempotencyRecord:
    """Record for tracking one idempotent operation."""

    idempotency_key: str
    operation: str
    request_hash: str
    status: str = "pending"  # pending | completed | failed | fatal
    response: Optional[Dict[str, Any]] = None
    error: Optional[BaseException] = None
    created_at: datetime = field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None
    expires_at: datetime = field(default_factory=lambda: _utcnow() + timedelta(hours=24))


class IdempotencyStore(ABC):
    """Abstract interface for idempotency record storage."""

    @abstractmethod
    async def get(self, idempotency_key: str) -> Optional[IdempotencyRecord]:
        pass

    @abstractmethod
    async def create(self, record: IdempotencyRecord) -> bool:
        """Create a record. Returns False if the key already exists."""
        pass

    @abstractmethod
    async def update(self, record: IdempotencyRecord) -> bool:
        pass

    @abstractmethod
    async def delete(self, idempotency_key: str) -> bool:
        pass


class InMemoryIdempotencyStore(IdempotencyStore):
    """Process-local store; purchase attempts never outlive the client."""

    def __init__(self):
        self._records: Dict[str, IdempotencyRecord] = {}

    async def get(self, idempotency_key: str) -> Optional[IdempotencyRecord]:
        record = self._records.get(idempotency_key)
        if record and record.expires_at < _utcnow():
            del self._records[idempotency_key]
            return None
        return record

    async def create(self, record: IdempotencyRecord) -> bool:
        existing = await self.get(record.idempotency_key)
        if existing is not None:
            return False
        self._records[record.idempotency_key] = record
        return True

    async def update(self, record: IdempotencyRecord) -> bool:
        if record.idempotency_key not in self._records:
            return False
        self._records[record.idempotency_key] = record
        return True

    async def delete(self, idempotency_key: str) -> bool:
        return self._records.pop(idempotency_key, None) is not None


class IdempotencyManager:
    """
    Runs operations at most once per idempotency key.

    Usage:
        manager = IdempotencyManager(InMemoryIdempotencyStore())

        result, is_duplicate = await manager.execute_idempotent(
            idempotency_key=attempt_id,
            operation="confirm_purchase",
            request_data=body,
            execute_fn=lambda: submit(body),
            serialize_fn=lambda r: r.to_dict(),
            deserialize_fn=PurchaseResult.model_validate,
            fatal_exceptions=(CapacityAllocationFailed,),
        )
    """

    def __init__(self, store: IdempotencyStore, default_ttl_hours: int = 24):
        self.store = store
        self.default_ttl_hours = default_ttl_hours

    @staticmethod
    def _compute_request_hash(request_data: Dict[str, Any]) -> str:
        normalized = json.dumps(request_data, sort_keys=True, default=str)
        return hashlib.sha256(normalized.encode()).hexdigest()

    async def get_status(self, idempotency_key: str) -> Optional[str]:
        record = await self.store.get(idempotency_key)
        return record.status if record else None

    async def execute_idempotent(
        self,
        idempotency_key: str,
        operation: str,
        request_data: Dict[str, Any],
        execute_fn: Callable[[], Awaitable[T]],
        serialize_fn: Callable[[T], Dict[str, Any]],
        deserialize_fn: Callable[[Dict[str, Any]], T],
        fatal_exceptions: tuple[type[BaseException], ...] = (),
    ) -> tuple[T, bool]:
        """
        Execute an operation with idempotency guarantees.

        Returns:
            Tuple of (result, is_duplicate) where is_duplicate indicates the
            result came from an earlier completed execution

        Raises:
            IdempotencyKeyConflict: Key reused with a different request
            IdempotencyOperationInProgress: Same key already executing
        """
        request_hash = self._compute_request_hash(request_data)
        record = await self.store.get(idempotency_key)

        if record is not None:
            if record.request_hash != request_hash:
                raise IdempotencyKeyConflict(
                    f"Idempotency key '{idempotency_key}' was previously used with "
                    f"different request parameters"
                )
            if record.status == "pending":
                raise IdempotencyOperationInProgress(
                    f"Operation with idempotency key '{idempotency_key}' is in progress"
                )
            if record.status == "completed" and record.response is not None:
                logger.info(f"Returning recorded result for idempotency key '{idempotency_key}'")
                return deserialize_fn(record.response), True
            if record.status == "fatal" and record.error is not None:
                logger.warning(
                    f"Refusing to resubmit '{idempotency_key}' after fatal {type(record.error).__name__}"
                )
                raise record.error
            # Retryable failure: clear and run again under the same key.
            await self.store.delete(idempotency_key)

        new_record = IdempotencyRecord(
            idempotency_key=idempotency_key,
            operation=operation,
            request_hash=request_hash,
            expires_at=_utcnow() + timedelta(hours=self.default_ttl_hours),
        )
        if not await self.store.create(new_record):
            raise IdempotencyOperationInProgress(
                f"Could not acquire lock for idempotency key '{idempotency_key}'"
            )

        try:
            result = await execute_fn()
        except BaseException as e:
            new_record.status = "fatal" if isinstance(e, fatal_exceptions) else "failed"
            new_record.error = e
            new_record.completed_at = _utcnow()
            await self.store.update(new_record)
            raise

        new_record.status = "completed"
        new_record.response = serialize_fn(result)
        new_record.completed_at = _utcnow()
        await self.store.update(new_record)
        return result, False

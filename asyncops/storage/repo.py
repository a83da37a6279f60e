import logging
import time
from functools import lru_cache
from typing import Any

import orjson
import redis
from redis.exceptions import WatchError

from .schema import OperationRecord, OperationStatus
from ..config import settings
from ..errors import AlreadyExists, NotFound, TerminalStateError

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@lru_cache(maxsize=1)
def shared_client() -> redis.Redis:
    """One connection pool per process, shared by every namespace."""
    return redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_timeout,
    )


class OperationRepo:
    """Operation records kept as one Redis hash per id under ``<namespace>:<id>``.

    The store is pure CRUD. The terminal write checks for RUNNING and sets
    status, output and ``updatedAt`` in one WATCH/MULTI transaction, so it
    either lands completely or not at all, and a second writer is rejected.
    """

    def __init__(self, namespace: str | None = None, client: redis.Redis | None = None):
        self.namespace = namespace or settings.operations_store
        self.r = client if client is not None else shared_client()

    def _key(self, operation_id: str) -> str:
        return f"{self.namespace}:{operation_id}"

    @staticmethod
    def _from_hash(operation_id: str, data: dict) -> OperationRecord:
        if not data or "status" not in data:
            raise NotFound(f"No async operation with id {operation_id}")
        return OperationRecord(
            id=data.get("id", operation_id),
            status=OperationStatus(data["status"]),
            output=data.get("output") or None,
            task_handle=data.get("taskHandle", ""),
            description=data.get("description", ""),
            operation_type=data.get("operationType", ""),
            created_at=int(data.get("createdAt", 0)),
            updated_at=int(data.get("updatedAt", 0)),
        )

    def create(self, rec: OperationRecord) -> OperationRecord:
        key = self._key(rec.id)
        if not self.r.hsetnx(key, "id", rec.id):
            raise AlreadyExists(f"Async operation {rec.id} already exists")
        self.r.hset(key, mapping={
            "status": rec.status.value,
            "output": rec.output or "",
            "taskHandle": rec.task_handle,
            "description": rec.description,
            "operationType": rec.operation_type,
            "createdAt": rec.created_at,
            "updatedAt": rec.updated_at,
        })
        return rec

    def get(self, operation_id: str) -> OperationRecord:
        return self._from_hash(operation_id, self.r.hgetall(self._key(operation_id)))

    def update_terminal(self, operation_id: str, status: OperationStatus, output: Any) -> OperationRecord:
        status = OperationStatus(status)
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")

        key = self._key(operation_id)
        encoded = orjson.dumps(output).decode()
        with self.r.pipeline() as pipe:
            try:
                pipe.watch(key)
                current = self._from_hash(operation_id, pipe.hgetall(key))
                if current.is_terminal:
                    raise TerminalStateError(f"Async operation {operation_id} is already {current.status.value}")

                updated_at = max(now_ms(), current.updated_at + 1, current.created_at + 1)
                pipe.multi()
                pipe.hset(key, mapping={
                    "status": status.value,
                    "output": encoded,
                    "updatedAt": updated_at,
                })
                pipe.execute()
            except WatchError:
                raise TerminalStateError(
                    f"Async operation {operation_id} changed while its terminal status was being written"
                ) from None

        logger.info("Async operation %s is now %s", operation_id, status.value)
        return current.model_copy(update={"status": status, "output": encoded, "updated_at": updated_at})

    def delete(self, operation_id: str) -> None:
        self.r.delete(self._key(operation_id))

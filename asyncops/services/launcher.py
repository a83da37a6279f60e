import logging
import uuid
from dataclasses import dataclass
from typing import Any

from .context import ExecutionContextConfig
from .executor import TaskExecutor, TaskSpec
from ..errors import AsyncOperationError, SubmissionError
from ..storage.payloads import PayloadReference, PayloadStore
from ..storage.repo import OperationRepo, now_ms
from ..storage.schema import OperationRecord, OperationStatus

logger = logging.getLogger(__name__)


@dataclass
class StartResult:
    id: str
    task_handle: str


class OperationLauncher:
    def __init__(self, repo: OperationRepo, payloads: PayloadStore, executor: TaskExecutor):
        self.repo = repo
        self.payloads = payloads
        self.executor = executor

    def start(
        self,
        function_id: str,
        cluster_id: str,
        task_definition_id: str,
        description: str,
        operation_type: str,
        payload: Any,
    ) -> StartResult:
        operation_id = str(uuid.uuid4())
        handle = str(uuid.uuid4())

        if isinstance(payload, PayloadReference):
            ref = payload
        else:
            try:
                ref = self.payloads.put(operation_id, payload)
            except Exception as exc:
                raise SubmissionError(f"Unable to store payload for {operation_id}: {exc}") from exc

        created = now_ms()
        record = OperationRecord(
            id=operation_id,
            status=OperationStatus.RUNNING,
            task_handle=handle,
            description=description,
            operation_type=operation_type,
            created_at=created,
            updated_at=created,
        )
        try:
            self.repo.create(record)
        except Exception as exc:
            raise SubmissionError(f"Unable to create async operation {operation_id}: {exc}") from exc

        config = ExecutionContextConfig(
            operation_id=operation_id,
            record_store=self.repo.namespace,
            function_id=function_id,
            payload_uri=ref.uri,
        )
        spec = TaskSpec(
            cluster_id=cluster_id,
            task_definition_id=task_definition_id,
            handle=handle,
            environment=config.to_env(),
        )
        try:
            handle = self.executor.launch(spec)
        except Exception as exc:
            logger.error("Launch of async operation %s failed, removing its record: %s", operation_id, exc)
            self._rollback(operation_id)
            if isinstance(exc, AsyncOperationError):
                raise SubmissionError(str(exc)) from exc
            raise SubmissionError(f"Unable to launch async operation {operation_id}: {exc}") from exc

        logger.info("Started async operation %s (%s) as %s", operation_id, operation_type, handle)
        return StartResult(id=operation_id, task_handle=handle)

    def _rollback(self, operation_id: str) -> None:
        try:
            self.repo.delete(operation_id)
        except Exception:
            logger.exception("Could not remove record of unlaunched async operation %s", operation_id)

import logging
import time
from typing import Optional

from .executor import TaskExecutor
from ..errors import TerminalStateError, WaitTimeout
from ..storage.repo import OperationRepo
from ..storage.schema import OperationRecord, OperationStatus

logger = logging.getLogger(__name__)


class CompletionWaiter:
    """Blocks until an operation's context has stopped and its record is terminal.

    With ``mark_orphans`` enabled, a context that stopped while its record is
    still RUNNING (after ``orphan_grace`` seconds) gets a RUNNER_FAILED write.
    Otherwise the waiter only reads.
    """

    def __init__(
        self,
        repo: OperationRepo,
        executor: TaskExecutor,
        interval: float = 1.0,
        mark_orphans: bool = False,
        orphan_grace: float = 5.0,
    ):
        self.repo = repo
        self.executor = executor
        self.interval = interval
        self.mark_orphans = mark_orphans
        self.orphan_grace = orphan_grace

    def wait(self, operation_id: str, task_handle: Optional[str] = None, timeout: float = 600.0) -> OperationRecord:
        deadline = time.monotonic() + timeout
        stopped_at: Optional[float] = None

        while True:
            record = self.repo.get(operation_id)
            handle = task_handle or record.task_handle
            exit_info = self.executor.poll(handle)

            if exit_info is not None:
                if record.is_terminal:
                    return record
                now = time.monotonic()
                stopped_at = stopped_at or now
                if self.mark_orphans and now - stopped_at >= self.orphan_grace:
                    marked = self._mark_orphan(record, exit_info.reason)
                    if marked is not None:
                        return marked

            if time.monotonic() >= deadline:
                raise WaitTimeout(
                    f"Async operation {operation_id} did not complete within {timeout}s (status {record.status.value})"
                )
            time.sleep(self.interval)

    def _mark_orphan(self, record: OperationRecord, reason: str) -> Optional[OperationRecord]:
        message = f"Execution context {record.task_handle} stopped before reporting a terminal status"
        if reason:
            message = f"{message}: {reason}"
        logger.warning("Async operation %s: %s", record.id, message)
        try:
            return self.repo.update_terminal(record.id, OperationStatus.RUNNER_FAILED, {"message": message})
        except TerminalStateError:
            # another writer finished first; the next poll picks up its record
            return None

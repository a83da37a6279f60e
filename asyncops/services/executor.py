import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol

from celery import Celery
from celery.result import AsyncResult
from kombu.exceptions import OperationalError

from ..errors import LaunchError, WaitTimeout

logger = logging.getLogger(__name__)


@dataclass
class TaskSpec:
    cluster_id: str
    task_definition_id: str
    handle: str
    environment: Dict[str, str] = field(default_factory=dict)


@dataclass
class ExitInfo:
    handle: str
    succeeded: bool
    reason: str = ""


class TaskExecutor(Protocol):
    def launch(self, spec: TaskSpec) -> str: ...

    def poll(self, handle: str) -> Optional[ExitInfo]:
        """Return ExitInfo once the context has stopped, otherwise None."""
        ...

    def wait_for_stop(self, handle: str, timeout: float) -> ExitInfo: ...


def _wait(executor: "TaskExecutor", handle: str, timeout: float, interval: float) -> ExitInfo:
    deadline = time.monotonic() + timeout
    while True:
        info = executor.poll(handle)
        if info is not None:
            return info
        if time.monotonic() >= deadline:
            raise WaitTimeout(f"Execution context {handle} still running after {timeout}s")
        time.sleep(interval)


class CeleryTaskExecutor:
    """Launches execution contexts as Celery tasks.

    The cluster id picks the queue and the task definition id picks the
    registered task name. The handle doubles as the Celery task id.
    """

    def __init__(self, celery_app: Celery, poll_interval: float = 1.0):
        self.celery_app = celery_app
        self.poll_interval = poll_interval

    def launch(self, spec: TaskSpec) -> str:
        try:
            result = self.celery_app.send_task(
                spec.task_definition_id,
                kwargs={"environment": spec.environment},
                task_id=spec.handle,
                queue=spec.cluster_id,
            )
        except OperationalError as exc:
            raise LaunchError(f"Unable to launch {spec.task_definition_id} on {spec.cluster_id}: {exc}") from exc
        logger.info("Launched %s on %s as %s", spec.task_definition_id, spec.cluster_id, result.id)
        return result.id

    def poll(self, handle: str) -> Optional[ExitInfo]:
        ar = AsyncResult(handle, app=self.celery_app)
        if not ar.ready():
            return None
        if ar.successful():
            return ExitInfo(handle=handle, succeeded=True, reason=str(ar.result or ""))
        return ExitInfo(handle=handle, succeeded=False, reason=str(ar.result))

    def wait_for_stop(self, handle: str, timeout: float) -> ExitInfo:
        return _wait(self, handle, timeout, self.poll_interval)


class LocalTaskExecutor:
    """Runs execution contexts on a local thread pool.

    ``target`` receives the injected environment, just like the Celery task.
    A finished future is released on the first poll that sees it stopped;
    its ExitInfo stays answerable for the last ``retain`` contexts.
    """

    def __init__(
        self,
        target: Callable[[Dict[str, str]], Any],
        max_workers: int = 4,
        poll_interval: float = 0.05,
        retain: int = 1024,
    ):
        self.target = target
        self.poll_interval = poll_interval
        self.retain = retain
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="asyncop")
        self._futures: Dict[str, Future] = {}
        self._stopped: "OrderedDict[str, ExitInfo]" = OrderedDict()
        self._lock = threading.Lock()

    def launch(self, spec: TaskSpec) -> str:
        with self._lock:
            if spec.handle in self._futures or spec.handle in self._stopped:
                raise LaunchError(f"Execution context {spec.handle} already launched")
            self._futures[spec.handle] = self._pool.submit(self.target, dict(spec.environment))
        logger.info("Launched %s locally as %s", spec.task_definition_id, spec.handle)
        return spec.handle

    def poll(self, handle: str) -> Optional[ExitInfo]:
        with self._lock:
            if handle in self._stopped:
                return self._stopped[handle]
            future = self._futures.get(handle)
            if future is None:
                return ExitInfo(handle=handle, succeeded=False, reason="Unknown execution context")
            if not future.done():
                return None
            info = self._exit_info(handle, future)
            del self._futures[handle]
            self._stopped[handle] = info
            while len(self._stopped) > self.retain:
                self._stopped.popitem(last=False)
            return info

    @staticmethod
    def _exit_info(handle: str, future: Future) -> ExitInfo:
        exc = future.exception()
        if exc is not None:
            return ExitInfo(handle=handle, succeeded=False, reason=str(exc))
        result = future.result()
        return ExitInfo(handle=handle, succeeded=True, reason="" if result is None else str(result))

    def wait_for_stop(self, handle: str, timeout: float) -> ExitInfo:
        return _wait(self, handle, timeout, self.poll_interval)

    def shutdown(self) -> None:
        self._pool.shutdown(wait=True)

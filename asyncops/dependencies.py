from functools import lru_cache

from .config import settings
from .services.executor import CeleryTaskExecutor
from .services.launcher import OperationLauncher
from .services.waiter import CompletionWaiter
from .storage.payloads import PayloadStore
from .storage.repo import OperationRepo


@lru_cache(maxsize=1)
def get_repo() -> OperationRepo:
    return OperationRepo()


@lru_cache(maxsize=1)
def get_executor() -> CeleryTaskExecutor:
    from worker.celery_app import celery_app
    return CeleryTaskExecutor(celery_app, poll_interval=settings.wait_poll_interval_seconds)


@lru_cache(maxsize=1)
def get_launcher() -> OperationLauncher:
    return OperationLauncher(get_repo(), PayloadStore(), get_executor())


@lru_cache(maxsize=1)
def get_waiter() -> CompletionWaiter:
    return CompletionWaiter(
        get_repo(),
        get_executor(),
        interval=settings.wait_poll_interval_seconds,
        mark_orphans=settings.mark_orphaned_operations,
        orphan_grace=settings.orphan_grace_seconds,
    )

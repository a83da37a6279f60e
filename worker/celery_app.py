import os
from celery import Celery
from celery.signals import setup_logging

from asyncops.config import configure_logging, settings

celery_app = Celery(
    "asyncops",
    broker=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
    backend=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
)
celery_app.conf.update(
    task_time_limit=settings.runner_time_limit_seconds,
    task_acks_late=False,
    task_track_started=True,
    task_default_queue=settings.default_cluster,
)


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    configure_logging()


@celery_app.task(name="run_async_operation")
def run_async_operation(environment: dict) -> str:
    from asyncops.services.runner import run_from_env
    return run_from_env(environment)

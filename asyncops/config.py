from pydantic import BaseModel
import logging
import os


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    api_token: str = os.getenv("API_TOKEN", "change-me")
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    redis_socket_timeout: float = float(os.getenv("REDIS_SOCKET_TIMEOUT", 10))
    operations_store: str = os.getenv("OPERATIONS_STORE", "asyncops:operations")
    s3_endpoint: str = os.getenv("S3_ENDPOINT", "localhost:9000")
    s3_access_key: str | None = os.getenv("S3_ACCESS_KEY")
    s3_secret_key: str | None = os.getenv("S3_SECRET_KEY")
    s3_secure: bool = _flag("S3_SECURE")
    s3_timeout_seconds: float = float(os.getenv("S3_TIMEOUT_SECONDS", 30))
    payload_bucket: str = os.getenv("PAYLOAD_BUCKET", "async-operations")
    payload_prefix: str = os.getenv("PAYLOAD_PREFIX", "payloads")
    function_gateway_url: str | None = os.getenv("FUNCTION_GATEWAY_URL")
    function_timeout_seconds: float = float(os.getenv("FUNCTION_TIMEOUT_SECONDS", 900))
    function_modules: list[str] = [m for m in os.getenv("FUNCTION_MODULES", "").split(",") if m.strip()]
    default_cluster: str = os.getenv("DEFAULT_CLUSTER", "async-operations")
    default_task_definition: str = os.getenv("DEFAULT_TASK_DEFINITION", "run_async_operation")
    runner_time_limit_seconds: int = int(os.getenv("RUNNER_TIME_LIMIT_SECONDS", 3600))
    max_status_longpoll_seconds: int = int(os.getenv("MAX_STATUS_LONGPOLL_SECONDS", 1200))
    wait_poll_interval_seconds: float = float(os.getenv("WAIT_POLL_INTERVAL_SECONDS", 1.0))
    mark_orphaned_operations: bool = _flag("MARK_ORPHANED_OPERATIONS")
    orphan_grace_seconds: float = float(os.getenv("ORPHAN_GRACE_SECONDS", 5.0))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()


def configure_logging(level: str | None = None) -> None:
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))
        root.addHandler(handler)
    root.setLevel((level or settings.log_level).upper())

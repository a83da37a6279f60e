"""Runs one async operation inside its execution context.

The runner fetches the payload, resolves the target function, parses the
payload, calls the function, and records exactly one terminal status. Failing
to reach the work (payload fetch, function lookup) is ``RUNNER_FAILED``.
Failing inside the work (unparseable payload, function error) is
``TASK_FAILED``. Nothing is retried.

Run standalone with ``python -m asyncops.services.runner``; configuration is
read from the environment (see ``ExecutionContextConfig``).
"""
import logging
import os
import sys
from functools import lru_cache
from typing import Any, Callable, Mapping, Optional, Tuple

import orjson

from .context import ExecutionContextConfig
from .functions import FunctionInvoker, build_invoker
from ..config import configure_logging
from ..errors import ContextConfigError, RunnerInfrastructureFailure, TargetLogicFailure, PayloadParseError
from ..storage.payloads import PayloadStore
from ..storage.repo import OperationRepo, shared_client
from ..storage.schema import OperationRecord, OperationStatus

logger = logging.getLogger(__name__)

Outcome = Tuple[OperationStatus, Any]


def _error(exc: BaseException) -> dict:
    return {"message": str(exc)}


class OperationRunner:
    def __init__(self, repo: OperationRepo, payloads: PayloadStore, invoker: FunctionInvoker):
        self.repo = repo
        self.payloads = payloads
        self.invoker = invoker

    def run(self, config: ExecutionContextConfig) -> OperationRecord:
        status, output = self.execute(config)
        return self.repo.update_terminal(config.operation_id, status, output)

    def execute(self, config: ExecutionContextConfig) -> Outcome:
        op = config.operation_id
        try:
            body = self.payloads.fetch(config.payload_uri)
            fn = self.invoker.resolve(config.function_id)
        except RunnerInfrastructureFailure as exc:
            logger.warning("Async operation %s could not reach its work: %s", op, exc)
            return OperationStatus.RUNNER_FAILED, _error(exc)

        try:
            payload = self._parse(body)
            result = fn(payload)
        except TargetLogicFailure as exc:
            logger.warning("Async operation %s failed: %s", op, exc)
            return OperationStatus.TASK_FAILED, _error(exc)
        except Exception as exc:
            logger.warning("Function %s raised for %s: %s", config.function_id, op, exc)
            return OperationStatus.TASK_FAILED, _error(exc)

        try:
            orjson.dumps(result)
        except TypeError as exc:
            return OperationStatus.TASK_FAILED, {"message": f"Unable to serialize result: {exc}"}

        logger.info("Async operation %s succeeded", op)
        return OperationStatus.SUCCEEDED, result

    @staticmethod
    def _parse(body: bytes) -> Any:
        try:
            return orjson.loads(body)
        except orjson.JSONDecodeError as exc:
            raise PayloadParseError(str(exc)) from exc


@lru_cache(maxsize=1)
def _shared_payloads() -> PayloadStore:
    return PayloadStore()


@lru_cache(maxsize=1)
def _shared_invoker() -> FunctionInvoker:
    return build_invoker()


def build_runner(config: ExecutionContextConfig) -> OperationRunner:
    # Clients live for the whole worker process; only the namespace varies per operation.
    return OperationRunner(
        repo=OperationRepo(namespace=config.record_store, client=shared_client()),
        payloads=_shared_payloads(),
        invoker=_shared_invoker(),
    )


def run_from_env(
    environ: Mapping[str, str],
    factory: Optional[Callable[[ExecutionContextConfig], OperationRunner]] = None,
) -> str:
    config = ExecutionContextConfig.from_env(environ)
    runner = (factory or build_runner)(config)
    return runner.run(config).status.value


def main(environ: Optional[Mapping[str, str]] = None) -> int:
    configure_logging()
    try:
        status = run_from_env(os.environ if environ is None else environ)
    except ContextConfigError as exc:
        logger.error("Cannot start async operation runner: %s", exc)
        return 2
    except Exception:
        logger.exception("Async operation runner could not record a terminal status")
        return 1
    logger.info("Async operation runner finished with %s", status)
    return 0


if __name__ == "__main__":
    sys.exit(main())

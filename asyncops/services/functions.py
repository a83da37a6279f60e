import importlib
import logging
from typing import Any, Callable, Dict, Iterable, Protocol

import httpx

from ..config import settings
from ..errors import FunctionLookupError, FunctionNotFound, TargetFunctionError

logger = logging.getLogger(__name__)

TargetFunction = Callable[[Any], Any]


class FunctionInvoker(Protocol):
    def resolve(self, function_id: str) -> TargetFunction:
        """Return a callable for ``function_id`` or raise FunctionNotFound."""
        ...


class FunctionRegistry:
    def __init__(self):
        self._functions: Dict[str, TargetFunction] = {}

    def register(self, name: str) -> Callable[[TargetFunction], TargetFunction]:
        def decorator(fn: TargetFunction) -> TargetFunction:
            self._functions[name] = fn
            return fn
        return decorator

    def add(self, name: str, fn: TargetFunction) -> None:
        self._functions[name] = fn

    def names(self) -> list[str]:
        return sorted(self._functions)

    def resolve(self, function_id: str) -> TargetFunction:
        try:
            return self._functions[function_id]
        except KeyError:
            raise FunctionNotFound(function_id) from None


registry = FunctionRegistry()


class HttpFunctionInvoker:
    """Invokes functions hosted behind an HTTP gateway.

    ``GET {base}/functions/{name}`` must answer 200 for a known function.
    Invocations are ``POST {base}/functions/{name}/invocations`` with the
    payload as JSON body; a body carrying ``errorMessage`` is a failed run.
    """

    def __init__(self, base_url: str, timeout: float | None = None, transport: httpx.BaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else settings.function_timeout_seconds,
            transport=transport,
        )

    def resolve(self, function_id: str) -> TargetFunction:
        try:
            r = self.client.get(f"/functions/{function_id}")
        except httpx.HTTPError as exc:
            raise FunctionLookupError(function_id, str(exc) or type(exc).__name__) from exc
        if r.status_code == 404:
            raise FunctionNotFound(function_id)
        if r.is_error:
            raise FunctionLookupError(function_id, f"gateway returned HTTP {r.status_code}")

        def invoke(payload: Any) -> Any:
            return self._invoke(function_id, payload)
        return invoke

    def _invoke(self, function_id: str, payload: Any) -> Any:
        r = self.client.post(f"/functions/{function_id}/invocations", json=payload)
        data = r.json() if r.content else None
        if isinstance(data, dict) and "errorMessage" in data:
            raise TargetFunctionError(data["errorMessage"])
        if r.is_error:
            raise TargetFunctionError(f"Function {function_id} returned HTTP {r.status_code}")
        return data

    def close(self) -> None:
        self.client.close()


def load_function_modules(modules: Iterable[str]) -> None:
    for module in modules:
        importlib.import_module(module.strip())
        logger.debug("Loaded function module %s", module)


def build_invoker() -> FunctionInvoker:
    if settings.function_gateway_url:
        return HttpFunctionInvoker(settings.function_gateway_url)
    load_function_modules(settings.function_modules)
    return registry

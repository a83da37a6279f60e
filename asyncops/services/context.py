from typing import ClassVar, Dict, Mapping

from pydantic import BaseModel

from ..errors import ContextConfigError

SCHEMA_VERSION = "1"


class ExecutionContextConfig(BaseModel):
    """What the launcher hands to a runner, carried as environment variables."""

    ENV_KEYS: ClassVar[Dict[str, str]] = {
        "schema_version": "CONTEXT_SCHEMA_VERSION",
        "operation_id": "ASYNC_OPERATION_ID",
        "record_store": "ASYNC_OPERATIONS_STORE",
        "function_id": "TARGET_FUNCTION_ID",
        "payload_uri": "PAYLOAD_URI",
    }

    schema_version: str = SCHEMA_VERSION
    operation_id: str
    record_store: str
    function_id: str
    payload_uri: str

    def to_env(self) -> Dict[str, str]:
        return {env: getattr(self, field) for field, env in self.ENV_KEYS.items()}

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> "ExecutionContextConfig":
        version = environ.get(cls.ENV_KEYS["schema_version"], SCHEMA_VERSION)
        if version != SCHEMA_VERSION:
            raise ContextConfigError(f"Unsupported execution context schema version: {version}")

        missing = [env for env in cls.ENV_KEYS.values() if env != "CONTEXT_SCHEMA_VERSION" and not environ.get(env)]
        if missing:
            raise ContextConfigError(f"Missing execution context configuration: {', '.join(missing)}")

        return cls(**{field: environ.get(env, SCHEMA_VERSION) for field, env in cls.ENV_KEYS.items()})

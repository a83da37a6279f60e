from enum import Enum
from typing import Any, Optional

import orjson
from pydantic import BaseModel


class OperationStatus(str, Enum):
    RUNNING = "RUNNING"
    RUNNER_FAILED = "RUNNER_FAILED"
    TASK_FAILED = "TASK_FAILED"
    SUCCEEDED = "SUCCEEDED"

    @property
    def is_terminal(self) -> bool:
        return self is not OperationStatus.RUNNING


class OperationRecord(BaseModel):
    id: str
    status: OperationStatus = OperationStatus.RUNNING
    task_handle: str
    description: str = ""
    operation_type: str = ""
    output: Optional[str] = None  # orjson string, unset while RUNNING
    created_at: int  # epoch ms
    updated_at: int  # epoch ms

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def output_value(self) -> Any:
        return orjson.loads(self.output) if self.output else None

    def to_api(self) -> dict:
        return {
            "id": self.id,
            "status": self.status.value,
            "output": self.output,
            "taskHandle": self.task_handle,
            "description": self.description,
            "operationType": self.operation_type,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Any, Optional

class StartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    function_id: str = Field(alias="functionId", min_length=1)
    cluster_id: Optional[str] = Field(default=None, alias="clusterId")
    task_definition_id: Optional[str] = Field(default=None, alias="taskDefinitionId")
    description: str
    operation_type: str = Field(alias="operationType")
    payload: Any = None
    payload_uri: Optional[str] = Field(default=None, alias="payloadUri", min_length=1)

    @model_validator(mode="after")
    def _one_payload_source(self):
        has_payload = "payload" in self.model_fields_set
        if self.payload_uri is not None and has_payload:
            raise ValueError("Provide either payload or payloadUri, not both")
        if self.payload_uri is None and not has_payload:
            raise ValueError("Provide payload or payloadUri")
        return self

class StartResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    task_handle: str = Field(alias="taskHandle")

class OperationOut(BaseModel):
    id: str
    status: str  # RUNNING | RUNNER_FAILED | TASK_FAILED | SUCCEEDED
    output: Optional[str] = None
    taskHandle: str
    description: str
    operationType: str
    createdAt: int
    updatedAt: int

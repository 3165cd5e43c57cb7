from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from npmx_connector.core.store import NewOperation


class ConnectRequest(BaseModel):
    # Checked by AuthGate.require_handshake.
    token: Any = None


class OperationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: str = Field(..., min_length=1, max_length=64)
    params: Dict[str, str] = Field(default_factory=dict)
    description: str = Field("", max_length=1000)
    command: str = Field("", max_length=1000)
    depends_on: Optional[str] = Field(None, alias="dependsOn", max_length=64)

    def to_draft(self) -> NewOperation:
        return NewOperation(
            kind=self.kind,
            params=dict(self.params),
            description=self.description,
            command=self.command,
            depends_on=self.depends_on,
        )


class ExecuteRequest(BaseModel):
    otp: Optional[str] = Field(None, max_length=32)

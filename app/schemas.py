from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class SubRequestModel(BaseModel):
    method: str
    url: str
    # Clients usually send the body as a JSON string; objects are accepted too.
    body: Union[str, Dict[str, Any], None] = None

    class Config:
        extra = "ignore"


class TransactionRequest(BaseModel):
    requests: List[SubRequestModel] = Field(default_factory=list)

    class Config:
        extra = "ignore"


class ErrorBody(BaseModel):
    code: str
    message: str
    details: List[str] | None = None
    retryable: bool = False
    request_id: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


class TransactionResponse(BaseModel):
    outcome: str
    responses: List[Dict[str, Any]] = Field(default_factory=list)
    error: Optional[ErrorBody] = None

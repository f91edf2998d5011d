import re
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, model_validator

from docanalysis.utils.errors import InvalidResponse

MODEL_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._~-]{1,63}$")


def is_valid_model_id(model_id: Optional[str]) -> bool:
    return bool(model_id) and MODEL_ID_PATTERN.match(model_id) is not None


class AnalysisStatus(str, Enum):
    NOT_STARTED = "notStarted"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    NOT_FOUND = "notFound"

    @property
    def is_terminal(self) -> bool:
        return self in (AnalysisStatus.SUCCEEDED, AnalysisStatus.FAILED, AnalysisStatus.NOT_FOUND)

    @classmethod
    def from_service(cls, value: Any) -> "AnalysisStatus":
        """Map the ``status`` field of an analyzeResults body, ignoring case."""
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.lower():
                    return member
        raise InvalidResponse(f"Unknown analysis status: {value!r}")


class DocumentSource(BaseModel):
    url: Optional[str] = None
    file_bytes: Optional[bytes] = Field(default=None, repr=False)
    filename: Optional[str] = None

    @model_validator(mode="after")
    def check_exactly_one(self):
        if (self.url is None) == (self.file_bytes is None):
            raise ValueError("Exactly one of url or file_bytes must be set")
        return self

    @property
    def is_url(self) -> bool:
        return self.url is not None


class AnalysisRequest(BaseModel):
    model_id: str
    source: DocumentSource

    model_config = ConfigDict(protected_namespaces=())


class OperationHandle(BaseModel):
    result_id: Optional[str] = None
    operation_location: Optional[str] = None

    @property
    def is_usable(self) -> bool:
        return bool(self.result_id)


class WaitPolicy(BaseModel):
    enabled: bool = True
    poll_interval_seconds: float = Field(default=5.0, gt=0)
    max_wait_seconds: float = Field(default=300.0, gt=0)


class AnalysisResult(BaseModel):
    status: AnalysisStatus
    raw_payload: Dict[str, Any] = Field(default_factory=dict)
    retrieved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    model_id: Optional[str] = None
    result_id: Optional[str] = None
    budget_exhausted: bool = False
    message: Optional[str] = None

    model_config = ConfigDict(protected_namespaces=())

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def analyze_result(self) -> Dict[str, Any]:
        return self.raw_payload.get("analyzeResult") or {}


# Gateway schemas

class URLAnalysisRequest(BaseModel):
    document_url: HttpUrl
    model_id: Optional[str] = None
    wait: bool = True
    poll_interval: Optional[float] = Field(default=None, gt=0)
    max_wait: Optional[float] = Field(default=None, gt=0)

    model_config = ConfigDict(protected_namespaces=())


class SubmitResponse(BaseModel):
    model_id: str
    result_id: Optional[str] = None
    operation_location: Optional[str] = None
    warning: Optional[str] = None

    model_config = ConfigDict(protected_namespaces=())


class AnalysisResponse(BaseModel):
    model_id: str
    result_id: Optional[str] = None
    status: str
    budget_exhausted: bool = False
    retrieved_at: Optional[datetime] = None
    message: Optional[str] = None
    result: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(protected_namespaces=())

    @classmethod
    def from_result(cls, result: AnalysisResult) -> "AnalysisResponse":
        return cls(
            model_id=result.model_id or "",
            result_id=result.result_id,
            status=result.status.value,
            budget_exhausted=result.budget_exhausted,
            retrieved_at=result.retrieved_at,
            message=result.message,
            result=result.raw_payload or None,
        )

from datetime import UTC, datetime
from typing import Literal

from pydantic import Field

from codepair.core.config import Language
from codepair.schemas.common import CamelModel

OutputType = Literal["log", "error", "warn", "info", "success"]


def _now() -> datetime:
    return datetime.now(UTC)


class OutputLine(CamelModel):
    type: OutputType
    content: str
    timestamp: datetime = Field(default_factory=_now)


class ExecutionRequest(CamelModel):
    code: str = Field(max_length=200_000)
    language: Language = "javascript"


class ExecutionResponse(CamelModel):
    language: Language
    output: list[OutputLine]

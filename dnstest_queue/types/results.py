"""
Result log entry type definitions.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ResultEntry(BaseModel):
    """
    One immutable message produced while testing a domain.

    `timestamp` is in seconds relative to the start of the test.
    """

    model_config = ConfigDict(frozen=True)

    level: str
    module: str
    testcase: str
    tag: str
    timestamp: float
    args: dict[str, Any] = Field(default_factory=dict)

    @field_validator("args", mode="before")
    @classmethod
    def _default_args(cls, value: Any) -> Any:
        return {} if value is None else value

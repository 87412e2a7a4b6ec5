"""
Request/response models for the render endpoints.

Render requests reject unknown fields so that a typo such as
``wait_after_loads`` surfaces as an error instead of being ignored.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RenderRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    template: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def _null_data_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class PdfRequest(RenderRequest):
    filename: Optional[str] = None
    wait_after_load: int = Field(
        default=0,
        description="Milliseconds to wait after load; <= 0 uses the default",
    )

    @field_validator("wait_after_load", mode="before")
    @classmethod
    def _null_wait_is_default(cls, value: Any) -> Any:
        return 0 if value is None else value


class RenderResponse(BaseModel):
    html: str

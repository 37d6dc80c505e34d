"""
DTO: OperationSnapshot (frozen input of one generation run), GenerationMessage (queue body),
OperationOut (status API), ConfirmUpdateRequest (re-edit flow).
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_validator

PROJECT_NAME_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")


class OperationSnapshot(BaseModel):
    """Immutable copy of an Operation's content taken when processing begins."""

    operation_id: str
    status: str
    kind: str = "create"
    email: str
    project_name: str
    template_id: str
    images: dict[str, Any] = Field(default_factory=dict)
    langs: dict[str, Any] = Field(default_factory=dict)
    text_colors: dict[str, str] = Field(default_factory=dict)
    section_backgrounds: dict[str, str] = Field(default_factory=dict)
    image_sizes: dict[str, dict[str, Any]] = Field(default_factory=dict)
    image_z_indexes: dict[str, int] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @field_validator("project_name")
    @classmethod
    def validate_project_name(cls, v: str) -> str:
        if not PROJECT_NAME_RE.match(v):
            raise ValueError("project_name must be a DNS-safe slug")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("email is not a valid address")
        return v

    @field_validator("template_id")
    @classmethod
    def validate_template_id(cls, v: str) -> str:
        if not v or "/" in v or ".." in v:
            raise ValueError("template_id is missing or malformed")
        return v


class GenerationMessage(BaseModel):
    """Work queue message body."""

    operationId: str
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class OperationOut(BaseModel):
    operation_id: str
    status: str
    kind: str
    project_name: str
    template_id: str
    failure_reason: str | None = None
    created_at: datetime
    updated_at: datetime
    paid_at: datetime | None = None
    completed_at: datetime | None = None
    deployed_at: datetime | None = None


class ConfirmUpdateRequest(BaseModel):
    """Body of the re-edit confirmation: code plus the editor's new content."""

    code: str
    sourceTemplateId: str | None = None
    images: dict[str, Any] = Field(default_factory=dict)
    langs: dict[str, Any] = Field(default_factory=dict)
    textColors: dict[str, str] = Field(default_factory=dict)
    sectionBackgrounds: dict[str, str] = Field(default_factory=dict)
    imageSizes: dict[str, dict[str, Any]] = Field(default_factory=dict)
    imageZIndexes: dict[str, int] = Field(default_factory=dict)

"""Structural validation of create/update payloads.

Rejects malformed input before it reaches the repository. Stateless; the
models convert into the repository's plain dataclasses once validated.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from contentstore.db.models import NewResource, ResourceChanges, WorkflowState


class CreateResourceInput(BaseModel):
    """Payload for creating a resource with its first version."""

    model_config = ConfigDict(extra="ignore")

    type: str = Field(..., min_length=1, description="Free-form resource category")
    created_by_id: str = Field(..., min_length=1, description="Creator identifier")
    content: dict[str, Any] = Field(..., description="Content of the first version")
    fields: Optional[dict[str, Any]] = Field(default=None, description="Unversioned metadata")
    tags: Optional[list[str]] = Field(default=None, description="Tag labels")
    state: WorkflowState = Field(default=WorkflowState.DRAFT, description="Initial workflow state")

    @model_validator(mode="after")
    def _check_strings(self) -> "CreateResourceInput":
        if not self.type.strip():
            raise ValueError("type must not be blank")
        if not self.created_by_id.strip():
            raise ValueError("created_by_id must not be blank")
        _check_labels(self.tags)
        return self

    def to_new_resource(self) -> NewResource:
        return NewResource(
            type=self.type,
            created_by_id=self.created_by_id,
            content=self.content,
            fields=self.fields,
            tags=self.tags,
            state=self.state,
        )


class UpdateResourceInput(BaseModel):
    """Payload for updating a resource. At least one part must be present."""

    model_config = ConfigDict(extra="ignore")

    fields: Optional[dict[str, Any]] = None
    content: Optional[dict[str, Any]] = None
    tags: Optional[list[str]] = None
    state: Optional[WorkflowState] = None

    @model_validator(mode="after")
    def _check_not_empty(self) -> "UpdateResourceInput":
        if self.to_changes().is_empty():
            raise ValueError("At least one field must be provided for update")
        _check_labels(self.tags)
        return self

    def to_changes(self) -> ResourceChanges:
        return ResourceChanges(
            fields=self.fields,
            content=self.content,
            tags=self.tags,
            state=self.state,
        )


def _check_labels(tags: list[str] | None) -> None:
    if tags is None:
        return
    for label in tags:
        if not label.strip():
            raise ValueError("tag labels must not be blank")


def require_id(value: Any, name: str = "resource ID") -> str:
    """Return *value* if it is a non-blank string, else raise ValueError."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid {name}")
    return value


def format_errors(exc: ValidationError) -> str:
    """Join pydantic error messages into one line, prefixed by location."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
        msg = err.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return ", ".join(parts)

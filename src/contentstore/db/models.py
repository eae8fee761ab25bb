"""Domain models for the content store database layer."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


class WorkflowState(str, enum.Enum):
    """Editorial workflow state stored on every resource."""

    DRAFT = "draft"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    PUBLISHED = "published"
    ARCHIVED = "archived"


@dataclass
class Version:
    id: str
    resource_id: str
    content: dict[str, Any]
    created_by_id: str
    created_at: str


@dataclass
class Tag:
    id: str
    label: str
    created_at: str | None = None


@dataclass
class Resource:
    """Denormalized resource: the row plus its current version and tags."""

    id: str
    type: str
    created_by_id: str
    created_at: str
    updated_at: str
    fields: dict[str, Any] | None = None
    current_version_id: str | None = None
    state: WorkflowState = WorkflowState.DRAFT
    deleted_at: str | None = None
    current_version: Version | None = None
    tags: list[Tag] = field(default_factory=list)

    @property
    def tag_labels(self) -> list[str]:
        return [t.label for t in self.tags]


@dataclass
class NewResource:
    """Input for ContentResourceRepository.create()."""

    type: str
    created_by_id: str
    content: dict[str, Any]
    fields: dict[str, Any] | None = None
    tags: list[str] | None = None
    state: WorkflowState = WorkflowState.DRAFT


@dataclass
class ResourceChanges:
    """Input for ContentResourceRepository.update().

    A None attribute means "not present": that step of the update is skipped.
    An empty dict or list is present and is applied.
    """

    fields: dict[str, Any] | None = None
    content: dict[str, Any] | None = None
    tags: list[str] | None = None
    state: WorkflowState | None = None

    def is_empty(self) -> bool:
        return (
            self.fields is None
            and self.content is None
            and self.tags is None
            and self.state is None
        )

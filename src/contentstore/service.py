"""Content resource service: validation, existence checks, error translation.

The only public entry point for callers. Every failure leaves this module as
a ContentResourceError with one of three codes:

  INVALID_INPUT  structural validation failed (no storage access happened)
  NOT_FOUND      the resource does not exist or is soft-deleted
  SYSTEM_ERROR   anything the storage layer raised

Usage:
    repo = ContentResourceRepository(conn)
    service = ContentResourceService(repo)
    resource = service.create_resource(
        {"type": "article", "created_by_id": "u1", "content": {"title": "T"}}
    )
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, TypeVar, Union

from pydantic import BaseModel, ValidationError

from contentstore.db.models import Resource, Version
from contentstore.db.repository import ContentResourceRepository, ResourceNotFoundError
from contentstore.errors import ContentResourceError, ErrorCode, describe
from contentstore.validation import (
    CreateResourceInput,
    UpdateResourceInput,
    format_errors,
    require_id,
)
from contentstore.workflow import InvalidTransitionError, check_transition

logger = logging.getLogger(__name__)

CreatePayload = Union[CreateResourceInput, Mapping[str, Any]]
UpdatePayload = Union[UpdateResourceInput, Mapping[str, Any]]

_InputT = TypeVar("_InputT", bound=BaseModel)


class ContentResourceService:
    """Wraps ContentResourceRepository with validation and a closed error taxonomy.

    Args:
        repository: The repository that owns storage.
        enforce_transitions: Reject state changes not in the workflow
            allow-list (contentstore.workflow). Off by default.
    """

    def __init__(
        self,
        repository: ContentResourceRepository,
        *,
        enforce_transitions: bool = False,
    ) -> None:
        self._repository = repository
        self._enforce_transitions = enforce_transitions

    def init(self) -> None:
        """Apply schema migrations."""
        try:
            self._repository.init()
        except Exception as exc:
            raise _system_error("Failed to initialize storage", exc) from exc

    def create_resource(self, payload: CreatePayload) -> Resource:
        """Validate *payload* and create the resource with its first version."""
        data = _parse(CreateResourceInput, payload, "Invalid resource data")
        try:
            return self._repository.create(data.to_new_resource())
        except Exception as exc:
            raise _system_error("Failed to create resource", exc) from exc

    def get_resource(self, resource_id: str) -> Resource:
        _check_id(resource_id)
        try:
            resource = self._repository.find_by_id(resource_id)
        except Exception as exc:
            raise _system_error("Failed to get resource", exc) from exc
        if resource is None:
            raise _not_found(resource_id)
        return resource

    def get_resources_by_type(self, resource_type: str) -> list[Resource]:
        _check_id(resource_type, "resource type")
        try:
            return self._repository.find_by_type(resource_type)
        except Exception as exc:
            raise _system_error("Failed to list resources", exc) from exc

    def update_resource(
        self, resource_id: str, payload: UpdatePayload, updated_by_id: str
    ) -> Resource:
        """Validate, check existence, then apply the update in one transaction.

        An empty payload fails with INVALID_INPUT before the repository is
        touched. The repository re-checks existence inside its transaction;
        a resource deleted in between still surfaces as NOT_FOUND.
        """
        _check_id(resource_id)
        _check_id(updated_by_id, "updater ID")
        data = _parse(UpdateResourceInput, payload, "Invalid update data")

        try:
            existing = self._repository.find_by_id(resource_id)
            if existing is None:
                raise _not_found(resource_id)
            if self._enforce_transitions and data.state is not None:
                check_transition(existing.state, data.state)
            return self._repository.update(resource_id, data.to_changes(), updated_by_id)
        except ContentResourceError:
            raise
        except InvalidTransitionError as exc:
            raise ContentResourceError(str(exc), ErrorCode.INVALID_INPUT) from exc
        except ResourceNotFoundError as exc:
            raise _not_found(resource_id) from exc
        except Exception as exc:
            raise _system_error("Failed to update resource", exc) from exc

    def delete_resource(self, resource_id: str) -> None:
        """Soft-delete a resource. Deleting twice fails with NOT_FOUND."""
        _check_id(resource_id)
        try:
            if self._repository.find_by_id(resource_id) is None:
                raise _not_found(resource_id)
            self._repository.soft_delete(resource_id)
        except ContentResourceError:
            raise
        except Exception as exc:
            raise _system_error("Failed to delete resource", exc) from exc

    def get_version_history(self, resource_id: str) -> list[Version]:
        _check_id(resource_id)
        try:
            if self._repository.find_by_id(resource_id) is None:
                raise _not_found(resource_id)
            return self._repository.get_version_history(resource_id)
        except ContentResourceError:
            raise
        except Exception as exc:
            raise _system_error("Failed to get version history", exc) from exc


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse(model: type[_InputT], payload: Any, prefix: str) -> _InputT:
    if isinstance(payload, model):
        return payload
    if not isinstance(payload, Mapping):
        raise ContentResourceError(
            f"{prefix}: expected an object, got {type(payload).__name__}",
            ErrorCode.INVALID_INPUT,
        )
    try:
        return model.model_validate(dict(payload))
    except ValidationError as exc:
        raise ContentResourceError(
            f"{prefix}: {format_errors(exc)}", ErrorCode.INVALID_INPUT
        ) from exc


def _check_id(value: Any, name: str = "resource ID") -> None:
    try:
        require_id(value, name)
    except ValueError as exc:
        raise ContentResourceError(str(exc), ErrorCode.INVALID_INPUT) from exc


def _not_found(resource_id: str) -> ContentResourceError:
    return ContentResourceError(f"Resource not found: {resource_id}", ErrorCode.NOT_FOUND)


def _system_error(action: str, exc: BaseException) -> ContentResourceError:
    logger.error("%s: %s", action, describe(exc), exc_info=exc)
    return ContentResourceError(f"{action}: {describe(exc)}", ErrorCode.SYSTEM_ERROR)

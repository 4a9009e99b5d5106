"""Exceptions shared by the engines, the sync layer and the API."""

from typing import Any, Dict, Optional


class NotFoundError(LookupError):
    """A task or instance the caller referenced does not exist for this user."""


class ChangeRejected(ValueError):
    """One pushed change could not be applied; reported as a conflict, never fatal to the batch."""

    def __init__(
        self,
        entity: str,
        entity_id: str,
        reason: str,
        server_data: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(f"{entity} {entity_id}: {reason}")
        self.entity = entity
        self.entity_id = entity_id
        self.reason = reason
        self.server_data = server_data


class StreakUpdateError(RuntimeError):
    """The owning user row is missing, so streaks could not be recomputed.

    The instance mutation that triggered the recomputation is already committed.
    """

    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} not found; streak not updated")
        self.user_id = user_id


class StoreUnavailableError(RuntimeError):
    """The store timed out or is unreachable. Safe to retry the whole request."""

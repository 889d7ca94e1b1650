from __future__ import annotations

from enum import Enum

from .errors import InvalidTicketStatusError


class TicketStatus(str, Enum):
    """Supported states for a ticket's lifecycle.

    Any status may follow any other; the lifecycle governs display only.
    """

    NEW = "new"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return cls.NEW

    @classmethod
    def parse(cls, value: object) -> TicketStatus:
        """Convert raw input into a status, rejecting anything outside the enum."""

        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError as exc:
            raise InvalidTicketStatusError(f"Invalid status: {value!r}") from exc


class SortOrder(str, Enum):
    """Ordering applied to ``created_at`` when listing records."""

    ASC = "asc"
    DESC = "desc"

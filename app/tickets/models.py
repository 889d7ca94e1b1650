from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from .state import TicketStatus


@dataclass(slots=True)
class Ticket:
    """Aggregate representing a support ticket entry."""

    id: str
    name: str
    email: str
    description: str
    attachment_url: str | None
    status: TicketStatus
    created_at: datetime


@dataclass(slots=True)
class Message:
    """Single entry in a ticket's reply thread."""

    id: str
    ticket_id: str
    author: str
    message: str
    created_at: datetime


@dataclass(slots=True)
class TicketThread:
    """A ticket together with its messages in chronological order."""

    ticket: Ticket
    messages: Sequence[Message]

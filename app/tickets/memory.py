from __future__ import annotations

from dataclasses import replace
from typing import Sequence

from .models import Message, Ticket
from .state import SortOrder, TicketStatus


class InMemoryTicketRepository:
    """Dictionary backed repository used for development and tests.

    Records are ordered by ``created_at`` with the record id breaking ties,
    matching the SQL repository.
    """

    def __init__(self) -> None:
        self._tickets: dict[str, Ticket] = {}
        self._messages: dict[str, list[Message]] = {}

    async def ensure_schema(self) -> None:
        return None

    async def create_ticket(self, ticket: Ticket, message: Message) -> None:
        self._tickets[ticket.id] = ticket
        self._messages.setdefault(ticket.id, [])
        await self.add_message(message)

    async def add_message(self, message: Message) -> None:
        self._messages.setdefault(message.ticket_id, []).append(message)

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        return self._tickets.get(ticket_id)

    async def list_tickets(self, *, order: SortOrder = SortOrder.DESC) -> Sequence[Ticket]:
        return sorted(
            self._tickets.values(),
            key=lambda ticket: (ticket.created_at, ticket.id),
            reverse=order is SortOrder.DESC,
        )

    async def list_messages(self, ticket_id: str, *, order: SortOrder = SortOrder.ASC) -> Sequence[Message]:
        return sorted(
            self._messages.get(ticket_id, []),
            key=lambda message: (message.created_at, message.id),
            reverse=order is SortOrder.DESC,
        )

    async def update_ticket_status(self, ticket_id: str, status: TicketStatus) -> Ticket | None:
        ticket = self._tickets.get(ticket_id)
        if ticket is None:
            return None
        updated = replace(ticket, status=status)
        self._tickets[ticket_id] = updated
        return updated

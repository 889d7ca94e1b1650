from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Sequence

from opentelemetry import trace

from .errors import AttachmentUploadError, TicketNotFoundError, TicketValidationError
from .models import Message, Ticket, TicketThread
from .repository import TicketRepository
from .state import SortOrder, TicketStatus
from .uploader import AttachmentUploader

logger = logging.getLogger(__name__)

DEFAULT_REPLY_AUTHOR = "support"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TicketService:
    """High level orchestration for ticket intake, replies and status changes."""

    def __init__(
        self,
        repository: TicketRepository,
        *,
        uploader: AttachmentUploader | None = None,
        clock: Callable[[], datetime] = _utcnow,
        tracer: trace.Tracer | None = None,
    ) -> None:
        self._repository = repository
        self._uploader = uploader
        self._clock = clock
        self._tracer = tracer or trace.get_tracer(__name__)

    async def ensure_schema(self) -> None:
        await self._repository.ensure_schema()

    async def create_ticket(
        self,
        *,
        name: str | None,
        email: str | None,
        description: str | None,
        attachment: bytes | None = None,
    ) -> Ticket:
        with self._tracer.start_as_current_span("tickets.create") as span:
            span.set_attribute("ticket.has_attachment", attachment is not None)
            if not name or not email or not description:
                raise TicketValidationError("name, email, description required")

            attachment_url = None
            if attachment is not None:
                # Upload runs before anything is persisted so a failure leaves no ticket behind.
                attachment_url = await self._upload(attachment)

            now = self._clock()
            ticket = Ticket(
                id=str(uuid.uuid4()),
                name=name,
                email=email,
                description=description,
                attachment_url=attachment_url,
                status=TicketStatus.initial_state(),
                created_at=now,
            )
            message = Message(
                id=str(uuid.uuid4()),
                ticket_id=ticket.id,
                author=name,
                message=description,
                created_at=now,
            )
            await self._repository.create_ticket(ticket, message)
            span.set_attribute("ticket.id", ticket.id)
        logger.info("Created ticket %s for %s", ticket.id, email)
        return ticket

    async def list_tickets(self) -> Sequence[Ticket]:
        return await self._repository.list_tickets(order=SortOrder.DESC)

    async def get_ticket_detail(self, ticket_id: str) -> TicketThread:
        ticket = await self._require_ticket(ticket_id)
        messages = await self._repository.list_messages(ticket_id, order=SortOrder.ASC)
        return TicketThread(ticket=ticket, messages=list(messages))

    async def respond(self, ticket_id: str, *, message: str, author: str | None = None) -> Message:
        with self._tracer.start_as_current_span("tickets.respond", attributes={"ticket.id": ticket_id}):
            ticket = await self._require_ticket(ticket_id)
            reply = Message(
                id=str(uuid.uuid4()),
                ticket_id=ticket.id,
                author=author or DEFAULT_REPLY_AUTHOR,
                message=message,
                created_at=self._clock(),
            )
            await self._repository.add_message(reply)
        logger.info("Added reply %s to ticket %s by %s", reply.id, ticket.id, reply.author)
        return reply

    async def set_status(self, ticket_id: str, status: TicketStatus | str | None) -> Ticket:
        with self._tracer.start_as_current_span("tickets.set_status", attributes={"ticket.id": ticket_id}) as span:
            new_status = TicketStatus.parse(status)
            span.set_attribute("ticket.status", new_status.value)
            updated = await self._repository.update_ticket_status(ticket_id, new_status)
            if updated is None:
                raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        logger.info("Ticket %s status set to %s", ticket_id, new_status.value)
        return updated

    async def _require_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self._repository.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    async def _upload(self, payload: bytes) -> str:
        with self._tracer.start_as_current_span("tickets.upload_attachment") as span:
            span.set_attribute("attachment.size", len(payload))
            if self._uploader is None:
                raise AttachmentUploadError("Attachment uploads are not configured")
            return await self._uploader.upload(payload)

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, NoReturn

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.dependencies.tickets import get_ticket_service
from app.tickets.errors import (
    AttachmentUploadError,
    TicketNotFoundError,
    TicketServiceError,
    TicketStoreError,
    TicketValidationError,
)
from app.tickets.models import Message, Ticket, TicketThread
from app.tickets.service import TicketService
from app.tickets.state import TicketStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tickets", tags=["tickets"])

SERVER_ERROR_DETAIL = "Server error"


class CamelModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class TicketResponse(CamelModel):
    id: str
    name: str
    email: str
    description: str
    attachment_url: str | None
    status: TicketStatus
    created_at: datetime


class MessageResponse(CamelModel):
    id: str
    ticket_id: str
    author: str
    message: str
    created_at: datetime


class TicketDetailResponse(BaseModel):
    ticket: TicketResponse
    messages: list[MessageResponse]


class RespondRequest(BaseModel):
    author: str | None = None
    message: str


class ErrorResponse(BaseModel):
    error: str


class StatusChangeRequest(BaseModel):
    # Checked against the lifecycle by the service so unknown values map to 400.
    status: str | None = None


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]


def _to_response(ticket: Ticket) -> TicketResponse:
    return TicketResponse.model_validate(ticket)


def _to_message_response(message: Message) -> MessageResponse:
    return MessageResponse.model_validate(message)


def _to_detail_response(thread: TicketThread) -> TicketDetailResponse:
    return TicketDetailResponse(
        ticket=_to_response(thread.ticket),
        messages=[_to_message_response(message) for message in thread.messages],
    )


def _raise_http_error(exc: TicketServiceError) -> NoReturn:
    if isinstance(exc, TicketValidationError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if isinstance(exc, TicketNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found") from exc
    if isinstance(exc, (AttachmentUploadError, TicketStoreError)):
        logger.exception("Ticket operation failed: %s", exc)
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=SERVER_ERROR_DETAIL) from exc


@router.post("", response_model=TicketResponse)
async def create_ticket(
    service: TicketServiceDep,
    name: Annotated[str | None, Form()] = None,
    email: Annotated[str | None, Form()] = None,
    description: Annotated[str | None, Form()] = None,
    attachment: Annotated[UploadFile | None, File()] = None,
) -> TicketResponse:
    # Browsers submit an empty file part when no file was picked.
    payload = await attachment.read() if attachment is not None and attachment.filename else None
    try:
        ticket = await service.create_ticket(
            name=name,
            email=email,
            description=description,
            attachment=payload,
        )
    except TicketServiceError as exc:
        _raise_http_error(exc)
    return _to_response(ticket)


@router.get("", response_model=list[TicketResponse])
async def list_tickets(service: TicketServiceDep) -> list[TicketResponse]:
    try:
        tickets = await service.list_tickets()
    except TicketServiceError as exc:
        _raise_http_error(exc)
    return [_to_response(ticket) for ticket in tickets]


@router.get("/{ticket_id}", response_model=TicketDetailResponse)
async def get_ticket(ticket_id: str, service: TicketServiceDep) -> TicketDetailResponse:
    try:
        thread = await service.get_ticket_detail(ticket_id)
    except TicketServiceError as exc:
        _raise_http_error(exc)
    return _to_detail_response(thread)


@router.post(
    "/{ticket_id}/respond",
    response_model=MessageResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Body is not JSON or lacks the message field"},
        404: {"model": ErrorResponse, "description": "Ticket not found"},
    },
)
async def respond_to_ticket(
    ticket_id: str,
    payload: RespondRequest,
    service: TicketServiceDep,
) -> MessageResponse:
    """Append a reply to the ticket thread. The author defaults to `support`."""

    try:
        message = await service.respond(ticket_id, message=payload.message, author=payload.author)
    except TicketServiceError as exc:
        _raise_http_error(exc)
    return _to_message_response(message)


@router.patch(
    "/{ticket_id}/status",
    response_model=TicketResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Status is outside new, in_progress and resolved"},
        404: {"model": ErrorResponse, "description": "Ticket not found"},
    },
)
async def change_ticket_status(
    ticket_id: str,
    payload: StatusChangeRequest,
    service: TicketServiceDep,
) -> TicketResponse:
    try:
        ticket = await service.set_status(ticket_id, payload.status)
    except TicketServiceError as exc:
        _raise_http_error(exc)
    return _to_response(ticket)

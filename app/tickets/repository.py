from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Protocol, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from packages.db.models import TicketMessageTable, TicketTable

from .errors import TicketStoreError
from .models import Message, Ticket
from .state import SortOrder, TicketStatus


class TicketRepository(Protocol):
    """Storage contract for tickets and their message threads."""

    async def ensure_schema(self) -> None:
        ...

    async def create_ticket(self, ticket: Ticket, message: Message) -> None:
        ...

    async def add_message(self, message: Message) -> None:
        ...

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        ...

    async def list_tickets(self, *, order: SortOrder = SortOrder.DESC) -> Sequence[Ticket]:
        ...

    async def list_messages(self, ticket_id: str, *, order: SortOrder = SortOrder.ASC) -> Sequence[Message]:
        ...

    async def update_ticket_status(self, ticket_id: str, status: TicketStatus) -> Ticket | None:
        ...


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise TicketStoreError(f"Failed to {action}") from exc


class SqlTicketRepository:
    """Persistence helper wrapping the `tickets` and `ticket_messages` tables."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        with _store_errors("create schema"):
            async with self._engine.begin() as connection:
                await connection.run_sync(SQLModel.metadata.create_all)

    async def create_ticket(self, ticket: Ticket, message: Message) -> None:
        # Ticket and founding message share one transaction; the ticket row is
        # flushed first so the message foreign key resolves.
        with _store_errors("save ticket"):
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(
                        TicketTable(
                            id=ticket.id,
                            name=ticket.name,
                            email=ticket.email,
                            description=ticket.description,
                            attachment_url=ticket.attachment_url,
                            status=ticket.status.value,
                            created_at=ticket.created_at,
                        )
                    )
                    await session.flush()
                    session.add(self._message_to_table(message))

    async def add_message(self, message: Message) -> None:
        with _store_errors("save message"):
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(self._message_to_table(message))

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        with _store_errors("load ticket"):
            async with self._session_factory() as session:
                row = await session.get(TicketTable, ticket_id)
        if row is None:
            return None
        return self._table_to_ticket(row)

    async def list_tickets(self, *, order: SortOrder = SortOrder.DESC) -> Sequence[Ticket]:
        statement = select(TicketTable).order_by(*_ordering(TicketTable, order))
        with _store_errors("list tickets"):
            async with self._session_factory() as session:
                result = await session.execute(statement)
                return [self._table_to_ticket(row) for row in result.scalars().all()]

    async def list_messages(self, ticket_id: str, *, order: SortOrder = SortOrder.ASC) -> Sequence[Message]:
        statement = (
            select(TicketMessageTable)
            .where(TicketMessageTable.ticket_id == ticket_id)
            .order_by(*_ordering(TicketMessageTable, order))
        )
        with _store_errors("list messages"):
            async with self._session_factory() as session:
                result = await session.execute(statement)
                return [self._table_to_message(row) for row in result.scalars().all()]

    async def update_ticket_status(self, ticket_id: str, status: TicketStatus) -> Ticket | None:
        with _store_errors("update ticket status"):
            async with self._session_factory() as session:
                row = await session.get(TicketTable, ticket_id)
                if row is None:
                    return None
                row.status = status.value
                await session.commit()
                await session.refresh(row)
                return self._table_to_ticket(row)

    @staticmethod
    def _message_to_table(message: Message) -> TicketMessageTable:
        return TicketMessageTable(
            id=message.id,
            ticket_id=message.ticket_id,
            author=message.author,
            message=message.message,
            created_at=message.created_at,
        )

    @staticmethod
    def _table_to_ticket(row: TicketTable) -> Ticket:
        return Ticket(
            id=row.id,
            name=row.name,
            email=row.email,
            description=row.description,
            attachment_url=row.attachment_url,
            status=TicketStatus(row.status),
            created_at=_ensure_datetime(row.created_at),
        )

    @staticmethod
    def _table_to_message(row: TicketMessageTable) -> Message:
        return Message(
            id=row.id,
            ticket_id=row.ticket_id,
            author=row.author,
            message=row.message,
            created_at=_ensure_datetime(row.created_at),
        )


def _ordering(table: type[TicketTable] | type[TicketMessageTable], order: SortOrder) -> tuple:
    """Order by creation time, breaking ties on the record id."""

    columns = (table.created_at, table.id)
    if order is SortOrder.DESC:
        return tuple(column.desc() for column in columns)
    return tuple(column.asc() for column in columns)


def _ensure_datetime(value: datetime | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")


def to_asyncpg_dsn(dsn: str) -> str:
    """Ensure the SQLAlchemy DSN uses the asyncpg driver."""

    if dsn.startswith("postgresql+asyncpg://"):
        return dsn
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    if dsn.startswith("postgres://"):
        return "postgresql+asyncpg://" + dsn[len("postgres://") :]
    return dsn

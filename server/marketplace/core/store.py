"""Transactional store adapter over SQLAlchemy async sessions."""

import logging
from typing import Any, Awaitable, Callable, Optional, Sequence, Type, TypeVar

from opentelemetry import trace
from sqlalchemy import Select, text, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")
ModelT = TypeVar("ModelT")


class Transaction:
    """
    Handle passed to a transaction function.

    Wraps the session of one open transaction. Everything done through a
    handle commits or rolls back together.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, model: Type[ModelT], ident: Any) -> Optional[ModelT]:
        """Read a row by primary key."""
        return await self.session.get(model, ident)

    async def get_for_update(self, model: Type[ModelT], ident: Any) -> Optional[ModelT]:
        """Read a row by primary key and lock it until the transaction ends."""
        return await self.session.get(model, ident, with_for_update=True, populate_existing=True)

    async def scalars(self, stmt: Select) -> Sequence[Any]:
        """Run a select and return the first column of every row."""
        result = await self.session.execute(stmt)
        return result.scalars().all()

    def add(self, instance: Any) -> None:
        """Stage a new or modified row for writing."""
        self.session.add(instance)

    async def flush(self) -> None:
        await self.session.flush()

    async def compare_and_set(
        self,
        model: Type[ModelT],
        ident: Any,
        expected: dict[str, Any],
        values: dict[str, Any],
    ) -> bool:
        """
        Update a row only if it still matches the expected column values.

        Args:
            model: Mapped class of the row
            ident: Primary key value
            expected: Column values the row must currently hold. ``None``
                matches NULL, a tuple/list/set matches any member.
            values: Column values to write

        Returns:
            bool: True if exactly one row was updated
        """
        conditions = [model.id == ident]
        for column_name, expected_value in expected.items():
            column = getattr(model, column_name)
            if expected_value is None:
                conditions.append(column.is_(None))
            elif isinstance(expected_value, (tuple, list, set, frozenset)):
                conditions.append(column.in_(list(expected_value)))
            else:
                conditions.append(column == expected_value)

        stmt = (
            update(model)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1


class TransactionalStore:
    """
    Runs named transaction functions atomically.

    Each call opens its own session, so concurrent callers never share
    connection state. The function's writes commit only if it returns;
    any exception rolls everything back and propagates.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def run_transaction(
        self,
        fn: Callable[[Transaction], Awaitable[T]],
        name: Optional[str] = None,
    ) -> T:
        txn_name = name or getattr(fn, "__name__", "transaction")
        with tracer.start_as_current_span(f"store.{txn_name}"):
            async with self._session_factory() as session:
                try:
                    async with session.begin():
                        result = await fn(Transaction(session))
                except Exception as e:
                    logger.debug(
                        "Transaction rolled back",
                        extra={"transaction": txn_name, "error": str(e)},
                    )
                    raise
        return result

    async def ping(self) -> None:
        """Run a trivial query; raises if the database is unreachable."""
        async with self._session_factory() as session:
            await session.execute(text("SELECT 1"))

from contextlib import asynccontextmanager
from typing import Any, Dict, Generic, TypeVar, Optional, List, Sequence, Type, AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from pydantic import BaseModel

from common.core.otel_axiom_exporter import trace_span
from common.db.scoped import get_session

EntityType = TypeVar("EntityType")
DomainModelType = TypeVar("DomainModelType")
CreateModelType = TypeVar("CreateModelType", bound=BaseModel)
UpdateModelType = TypeVar("UpdateModelType", bound=BaseModel)


class BaseRepository(Generic[EntityType, DomainModelType]):
    """
    Base repository over lazily acquired sessions.

    Each call acquires a session through ``get_session()`` and releases it
    when done, unless the caller is inside ``transaction()``, in which case
    the transaction's session is reused.

    Example:
        repo = CheckoutSessionRepository()
        checkout = await repo.get(123)  # Acquires and releases session
    """

    def __init__(
        self,
        entity_class: Type[EntityType],
        domain_class: Type[DomainModelType],
    ):
        self.entity_class = entity_class
        self.domain_class = domain_class

    @asynccontextmanager
    async def _get_session(self) -> AsyncGenerator[AsyncSession, None]:
        async with get_session() as session:
            yield session

    def _entity_to_domain(self, entity: EntityType) -> DomainModelType:
        """Convert database entity to domain model."""
        return self.domain_class.model_validate(entity)

    def _entities_to_domain(
        self, entities: Sequence[EntityType]
    ) -> List[DomainModelType]:
        return [self._entity_to_domain(entity) for entity in entities]

    def _insert_ignoring_conflicts(
        self, session: AsyncSession, values: Dict[str, Any], index_elements: List[str]
    ):
        """Build ``INSERT ... ON CONFLICT DO NOTHING`` for the session's dialect."""
        dialect = session.get_bind().dialect.name
        insert_fn = postgresql.insert if dialect == "postgresql" else sqlite.insert
        return (
            insert_fn(self.entity_class)
            .values(**values)
            .on_conflict_do_nothing(index_elements=index_elements)
        )

    @trace_span
    async def get(self, id: int) -> Optional[DomainModelType]:
        query = select(self.entity_class).where(self.entity_class.id == id)
        async with self._get_session() as session:
            result = await session.execute(query)
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def get_multi(self, skip: int = 0, limit: int = 100) -> List[DomainModelType]:
        query = (
            select(self.entity_class)
            .order_by(self.entity_class.id)
            .offset(skip)
            .limit(limit)
        )
        async with self._get_session() as session:
            result = await session.execute(query)
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def create(self, create_model: CreateModelType) -> DomainModelType:
        """Create a new entity from a typed create model."""
        data = create_model.model_dump(exclude_none=True)
        db_obj = self.entity_class(**data)
        async with self._get_session() as session:
            session.add(db_obj)
            await session.flush()
            await session.refresh(db_obj)
            return self._entity_to_domain(db_obj)

    @trace_span
    async def update(
        self, id: int, update_model: UpdateModelType
    ) -> Optional[DomainModelType]:
        """Update an entity with a typed update model.

        Only fields explicitly set on the model are written, so ``None`` can be
        used to clear a column.
        """
        data = update_model.model_dump(exclude_unset=True)
        if not data:
            return await self.get(id)

        async with self._get_session() as session:
            await session.execute(
                update(self.entity_class).where(self.entity_class.id == id).values(data)
            )
            await session.flush()
        return await self.get(id)

    @trace_span
    async def compare_and_update(
        self,
        id: int,
        expected: Dict[str, Any],
        update_model: UpdateModelType,
    ) -> bool:
        """
        Apply ``update_model`` only if the row still matches ``expected``.

        Single conditional UPDATE; returns False when another writer got there
        first.
        """
        data = update_model.model_dump(exclude_unset=True)
        conditions = [self.entity_class.id == id]
        for column, value in expected.items():
            conditions.append(getattr(self.entity_class, column) == value)

        async with self._get_session() as session:
            result = await session.execute(
                update(self.entity_class).where(*conditions).values(data)
            )
            await session.flush()
            return result.rowcount == 1

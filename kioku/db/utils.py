from typing import Optional, Type, TypeVar, Generic, List, Dict, Any, Sequence

from sqlalchemy import Select, select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from kioku.db.base import BaseModel
from kioku.utils.exceptions import DatabaseError, NotFoundError
from kioku.core.logging import get_logger

logger = get_logger(__name__)

ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseRepository(Generic[ModelType]):
    """
    Typed accessors for one mapped table, used inside an open store session.

    ``options`` are loader options (``selectinload``); passing any forces a
    refresh of already-loaded instances so their relationships are current.
    Deletes are plain DELETE statements, so cascades come from the foreign keys.
    """

    def __init__(self, model: Type[ModelType]):
        self.model = model

    @property
    def _name(self) -> str:
        return self.model.__name__

    def _select(self, filters: Optional[Dict[str, Any]], options: Sequence[Any]) -> Select:
        stmt = select(self.model)
        for column, value in (filters or {}).items():
            stmt = stmt.where(getattr(self.model, column) == value)
        if options:
            stmt = stmt.options(*options).execution_options(populate_existing=True)
        return stmt

    async def create(self, db: AsyncSession, **values) -> ModelType:
        row = self.model(**values)
        db.add(row)
        try:
            await db.flush()
        except IntegrityError as e:
            logger.error(f"Integrity error inserting {self._name}: {e.orig}")
            raise DatabaseError(f"Failed to create {self._name}", details={"cause": str(e.orig)})
        return row

    async def get_by_id(self, db: AsyncSession, id: str, options: Sequence[Any] = ()) -> Optional[ModelType]:
        result = await db.execute(self._select({"id": id}, options))
        return result.scalar_one_or_none()

    async def get_by_id_or_404(self, db: AsyncSession, id: str, options: Sequence[Any] = ()) -> ModelType:
        row = await self.get_by_id(db, id, options)
        if row is None:
            raise NotFoundError(f"{self._name} {id} not found")
        return row

    async def get_multi(
            self,
            db: AsyncSession,
            filters: Optional[Dict[str, Any]] = None,
            order_by: Sequence[Any] = (),
            options: Sequence[Any] = ()
    ) -> List[ModelType]:
        """Rows whose columns equal ``filters``"""
        stmt = self._select(filters, options)
        if order_by:
            stmt = stmt.order_by(*order_by)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def update(self, db: AsyncSession, obj: ModelType, **changes) -> ModelType:
        for column, value in changes.items():
            setattr(obj, column, value)
        await db.flush()
        return obj

    async def delete(self, db: AsyncSession, id: str) -> bool:
        result = await db.execute(delete(self.model).where(self.model.id == id))
        await db.flush()
        return result.rowcount > 0

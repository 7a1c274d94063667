"""
BaseCRUDService: Generic async service class for standard CRUD operations.
Reduces code duplication across the registry services.
"""
from typing import Any, Dict, Generic, List, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import select

from ..core.exceptions import ConflictError, NotFoundError, StoreWriteError
from ..db.engine import SessionFactory

# Generic type for SQLModel models
ModelType = TypeVar("ModelType")


class BaseCRUDService(Generic[ModelType]):
    """
    Base class providing generic CRUD (Create, Read, Update, Delete) operations.

    Usage:
        class MyService(BaseCRUDService[MyModel]):
            def __init__(self, session_factory: SessionFactory):
                super().__init__(session_factory, MyModel)
    """

    def __init__(self, session_factory: SessionFactory, model: Type[ModelType]):
        """
        Initialize the service with a session factory and model class.

        Args:
            session_factory: Callable returning a new AsyncSession.
            model: The SQLModel class this service manages.
        """
        self.session_factory = session_factory
        self.model = model

    async def get_all(self) -> List[ModelType]:
        """Retrieve all records of the model."""
        async with self.session_factory() as session:
            result = await session.exec(select(self.model))
            return list(result.all())

    async def get_by_id(self, id: Any) -> ModelType:
        """
        Retrieve a single record by its primary key.

        Raises:
            NotFoundError: if the record does not exist.
        """
        async with self.session_factory() as session:
            record = await session.get(self.model, id)
        if not record:
            raise NotFoundError(f"{self.model.__name__} {id} not found")
        return record

    async def create(self, data: Dict[str, Any]) -> ModelType:
        """
        Create a new record.

        Raises:
            ConflictError: on unique constraint violations.
            StoreWriteError: on any other database error.
        """
        new_record = self.model(**data)
        async with self.session_factory() as session:
            try:
                session.add(new_record)
                await session.commit()
                await session.refresh(new_record)
                return new_record
            except IntegrityError as e:
                await session.rollback()
                raise ConflictError(f"{self.model.__name__} already exists: {e.orig}")
            except SQLAlchemyError as e:
                await session.rollback()
                raise StoreWriteError(f"Error creating {self.model.__name__}: {e}")

    async def update(self, id: Any, data: Dict[str, Any]) -> ModelType:
        """Update an existing record. Raises NotFoundError if it does not exist."""
        async with self.session_factory() as session:
            record = await session.get(self.model, id)
            if not record:
                raise NotFoundError(f"{self.model.__name__} {id} not found")
            for key, value in data.items():
                setattr(record, key, value)
            try:
                session.add(record)
                await session.commit()
                await session.refresh(record)
                return record
            except SQLAlchemyError as e:
                await session.rollback()
                raise StoreWriteError(f"Error updating {self.model.__name__}: {e}")

    async def delete(self, id: Any) -> None:
        """Delete a record by its primary key. Raises NotFoundError if missing."""
        async with self.session_factory() as session:
            record = await session.get(self.model, id)
            if not record:
                raise NotFoundError(f"{self.model.__name__} {id} not found")
            await session.delete(record)
            await session.commit()

"""Base repository implementation for the URL shortener application.

This module provides a generic BaseRepository class that follows the Repository pattern
for database operations, serving as a foundation for more specific repositories.
"""

from typing import Any, Dict, Generic, Optional, Type, TypeVar, Union
import logging

from pydantic import BaseModel
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import SQLModel

# Type variable for model types
T = TypeVar("T", bound=SQLModel)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Base exception for repository errors."""
    pass


class DuplicateEntityError(RepositoryError):
    """Exception raised when a unique constraint is violated."""

    def __init__(self, model_type: Type[SQLModel], field_name: str, value: Any):
        self.model_type = model_type
        self.field_name = field_name
        self.value = value
        model_name = getattr(model_type, "__name__", "Entity")
        super().__init__(f"{model_name} with {field_name}={value} already exists")


def is_unique_violation(error: IntegrityError) -> bool:
    """Tell a unique-constraint violation apart from other integrity errors."""
    message = str(error.orig if error.orig is not None else error).lower()
    return "unique" in message or "duplicate key" in message


class BaseRepository(Generic[T, CreateSchemaType]):
    """
    Base repository implementing common operations for SQLModel entities.

    Type parameters:
        T: The SQLModel type this repository manages
        CreateSchemaType: The Pydantic model type for creation operations
    """

    # Column reported in DuplicateEntityError when an insert hits a unique constraint
    unique_field: Optional[str] = None

    def __init__(self, model_type: Type[T]):
        """
        Initialize the repository with a specific model type.

        Args:
            model_type: The SQLModel class this repository will work with
        """
        self.model_type = model_type

    async def get_by_id(self, db: AsyncSession, id: Any) -> Optional[T]:
        """
        Get an entity by its ID.

        Args:
            db: Database session
            id: Entity ID

        Returns:
            The entity if found, None otherwise
        """
        try:
            return await db.get(self.model_type, id)
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving {self.model_type.__name__} with id {id}: {e}")
            raise RepositoryError(f"Database error retrieving entity: {e}") from e

    async def create(self, db: AsyncSession, data: Union[CreateSchemaType, Dict[str, Any]]) -> T:
        """
        Create a new entity.

        The insert is flushed immediately so constraint violations surface here.
        On any database error the session is rolled back, which leaves it usable
        for a retry by the caller.

        Args:
            db: Database session
            data: Entity data (either as a Pydantic model or dictionary)

        Returns:
            The created entity

        Raises:
            DuplicateEntityError: If a unique constraint is violated
            RepositoryError: On other database errors
        """
        if isinstance(data, BaseModel):
            data_dict = data.model_dump(exclude_unset=True)
        else:
            data_dict = dict(data)

        try:
            entity = self.model_type(**data_dict)
            db.add(entity)
            await db.flush()  # Flush to generate ID but don't commit yet
            await db.refresh(entity)
            return entity
        except IntegrityError as e:
            await db.rollback()
            if is_unique_violation(e):
                field = self.unique_field or "id"
                raise DuplicateEntityError(self.model_type, field, data_dict.get(field)) from e
            logger.error(f"Integrity error creating {self.model_type.__name__}: {e}")
            raise RepositoryError(f"Database error creating entity: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error creating {self.model_type.__name__}: {e}")
            await db.rollback()
            raise RepositoryError(f"Database error creating entity: {e}") from e

    async def count(self, db: AsyncSession, **filters) -> int:
        """
        Count entities, optionally restricted by field=value filters.

        Args:
            db: Database session
            **filters: Field=value pairs to filter by

        Returns:
            Number of matching entities

        Raises:
            RepositoryError: On database errors
        """
        try:
            conditions = [getattr(self.model_type, field) == value for field, value in filters.items()]
            query = select(func.count()).select_from(self.model_type)
            if conditions:
                query = query.where(*conditions)
            result = await db.execute(query)
            return result.scalar_one()
        except SQLAlchemyError as e:
            logger.error(f"Error counting {self.model_type.__name__} records: {e}")
            raise RepositoryError(f"Database error counting entities: {e}") from e

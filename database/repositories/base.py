"""
Base repository with common CRUD operations.

Provides a generic base class for the simple repositories.
"""
from typing import TypeVar, Generic, Optional, Type
from abc import ABC

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.base import Base

# Type variable for model classes
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(ABC, Generic[ModelType]):
    """
    Abstract base repository with common CRUD operations.

    Provides:
    - get_by_id: Get single entity by ID
    - add: Stage a new entity and flush it
    - delete: Delete entity by ID

    Usage:
        class ClientRepository(BaseRepository[Client]):
            model_class = Client
    """

    model_class: Type[ModelType]

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def get_by_id(self, entity_id: int) -> Optional[ModelType]:
        """
        Get entity by its primary key ID.

        Args:
            entity_id: Primary key ID

        Returns:
            Entity or None if not found
        """
        result = await self.session.execute(
            select(self.model_class).where(self.model_class.id == entity_id)
        )
        return result.scalar_one_or_none()

    async def add(self, entity: ModelType) -> ModelType:
        """
        Add entity to the session and flush it so it gets an ID.

        Args:
            entity: Entity to add

        Returns:
            The same entity, now persistent
        """
        self.session.add(entity)
        await self.session.flush()
        return entity

    async def delete(self, entity_id: int) -> bool:
        """
        Delete entity by ID.

        Args:
            entity_id: Primary key ID

        Returns:
            True if deleted, False if not found
        """
        entity = await self.get_by_id(entity_id)
        if entity:
            await self.session.delete(entity)
            await self.session.flush()
            return True
        return False

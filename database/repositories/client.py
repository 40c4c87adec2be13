"""Client repository for database operations."""
from database.models import Client, NotificationMethod
from database.repositories.base import BaseRepository


class ClientRepository(BaseRepository[Client]):
    """Repository for Client model operations."""

    model_class = Client

    async def create(
        self,
        owner_id: int,
        name: str,
        email: str | None = None,
        phone: str | None = None,
        preferred_notification_method: NotificationMethod = NotificationMethod.EMAIL,
    ) -> Client:
        """Create new client."""
        client = Client(
            owner_id=owner_id,
            name=name,
            email=email,
            phone=phone,
            preferred_notification_method=preferred_notification_method.value,
        )
        return await self.add(client)

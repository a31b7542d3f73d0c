# campus_delivery/services/settings_service.py
import logging
from ..database.repositories import SettingsRepository
from ..exceptions import InvalidInput
from ..models.settings import SystemSettings

class SettingsService:
    """Admin-owned cancellation window settings"""

    def __init__(self, repository: SettingsRepository):
        self.repository = repository
        self.logger = logging.getLogger(__name__)

    async def get_system_settings(self) -> SystemSettings:
        """Current settings, defaults when nothing is stored"""
        return await self.repository.get()

    async def update_cancellation_times(self, customer_minutes: int,
                                        delivery_person_minutes: int) -> SystemSettings:
        """Store both cancellation windows"""
        for value in (customer_minutes, delivery_person_minutes):
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise InvalidInput("Cancellation times must be whole minutes greater than zero")

        settings = SystemSettings(
            customer_cancellation_time=customer_minutes,
            delivery_person_cancellation_time=delivery_person_minutes
        )
        await self.repository.save(settings)
        self.logger.info(
            f"Cancellation times set to {customer_minutes}m (customer) "
            f"and {delivery_person_minutes}m (delivery person)"
        )
        return settings

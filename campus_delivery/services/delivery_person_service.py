# campus_delivery/services/delivery_person_service.py
import logging
from datetime import datetime
from typing import List, Optional, Sequence
from .location_matcher import MatchThreshold, RankedCandidate, rank_candidates
from .order_service import utcnow
from ..database.repositories import DeliveryPersonRepository
from ..exceptions import InvalidInput, NotFound
from ..models.delivery import DeliveryPerson
from ..models.order import Order

class DeliveryPersonService:
    """Courier availability and candidate ranking"""

    def __init__(self, persons: DeliveryPersonRepository):
        self.persons = persons
        self.logger = logging.getLogger(__name__)

    async def get(self, user_id: int) -> Optional[DeliveryPerson]:
        try:
            return await self.persons.get(user_id)
        except NotFound:
            return None

    async def set_availability(self, user_id: int, available: bool,
                               location: Optional[str] = None,
                               contact: Optional[str] = None,
                               now: Optional[datetime] = None) -> DeliveryPerson:
        """Go on or off duty; going on duty needs a location"""
        current = await self.get(user_id)
        if location is None:
            location = current.location if current else ""
        location = location.strip()

        if available and not location:
            raise InvalidInput("Please set your location before marking yourself as available")

        fields = {
            "is_available": available,
            "location": location,
            "last_updated": now or utcnow(),
        }
        if contact:
            fields["contact"] = contact

        person = await self.persons.upsert(user_id, fields)
        self.logger.info(f"Delivery person {user_id} is now {'available' if available else 'unavailable'}")
        return person

    async def update_location(self, user_id: int, location: str,
                              contact: Optional[str] = None,
                              now: Optional[datetime] = None) -> DeliveryPerson:
        """Change the location without touching availability"""
        location = (location or "").strip()
        if not location:
            raise InvalidInput("Location cannot be empty")

        fields = {"location": location, "last_updated": now or utcnow()}
        if contact:
            fields["contact"] = contact
        return await self.persons.upsert(user_id, fields)

    async def get_available(self) -> List[DeliveryPerson]:
        return await self.persons.query(available_only=True)

    async def find_candidates(self, locations: Sequence[str],
                              threshold: float = MatchThreshold.MEDIUM,
                              search_term: str = "") -> List[RankedCandidate]:
        """Available couriers matching any location, best first"""
        persons = await self.get_available()
        return rank_candidates(persons, locations, threshold, search_term)

    async def find_candidates_for_order(self, order: Order,
                                        threshold: float = MatchThreshold.MEDIUM,
                                        search_term: str = "") -> List[RankedCandidate]:
        return await self.find_candidates(order.match_locations, threshold, search_term)

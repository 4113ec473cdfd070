"""Domain Repository Interfaces"""
from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any
from uuid import UUID
from datetime import date

from domain.entities import Unit, PriceRule, AddOnCatalogEntry, Reservation
from domain.enums import ReservationStatus
from domain.value_objects import DepositPolicy, AddOnLine


class CatalogRepository(ABC):
    """Read-only view of chalets, price rules, add-ons and deposit policy"""

    @abstractmethod
    async def get_unit(self, unit_id: str) -> Optional[Unit]:
        """Find chalet by ID"""
        pass

    @abstractmethod
    async def get_active_price_rules(self, unit_id: str) -> List[PriceRule]:
        """Price rules for a chalet, in resolution order"""
        pass

    @abstractmethod
    async def get_add_ons_by_ids(self, add_on_ids: List[str]) -> List[AddOnCatalogEntry]:
        """Find add-ons by ID; unknown IDs are left out"""
        pass

    @abstractmethod
    async def get_deposit_policy(self) -> DepositPolicy:
        """Current deposit configuration"""
        pass


class ReservationRepository(ABC):
    """Repository interface for Reservation Aggregate"""

    @abstractmethod
    async def get_reservations_for_unit(
        self,
        unit_id: str,
        range_start: Optional[date] = None,
        range_end: Optional[date] = None
    ) -> List[Reservation]:
        """Reservations of a chalet that touch [range_start, range_end], any status"""
        pass

    @abstractmethod
    async def insert_reservation(self, reservation: Reservation, add_on_lines: List[AddOnLine]) -> Reservation:
        """Store a reservation with its add-on lines as one unit of work.

        Raises AlreadyBookedError when a blocking reservation for the same
        chalet overlaps the stay at write time.
        """
        pass

    @abstractmethod
    async def update_reservation_status(
        self,
        reservation: Reservation,
        expected_status: ReservationStatus
    ) -> Reservation:
        """Persist a transition if the stored status still equals expected_status.

        Raises ConcurrentUpdateError otherwise. Moving from a non-blocking
        status back to a blocking one re-checks the chalet and raises
        AlreadyBookedError when another blocking reservation took the nights.
        """
        pass

    @abstractmethod
    async def reschedule_reservation(self, reservation: Reservation, expected_version: int) -> Reservation:
        """Persist new dates and pricing if the stored version still equals expected_version.

        Raises ConcurrentUpdateError on a version mismatch and AlreadyBookedError
        when the new dates overlap another blocking reservation.
        """
        pass

    @abstractmethod
    async def find_by_id(self, reservation_id: UUID) -> Optional[Reservation]:
        """Find reservation by ID"""
        pass

    @abstractmethod
    async def find_by_booking_number(self, booking_number: str) -> Optional[Reservation]:
        """Find reservation by human booking number"""
        pass

    @abstractmethod
    async def find_by_customer_id(self, customer_id: str) -> List[Reservation]:
        """Find reservations by customer ID"""
        pass

    @abstractmethod
    async def find_all(
        self,
        unit_id: Optional[str] = None,
        status: Optional[ReservationStatus] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> List[Reservation]:
        """Find reservations, filtered on chalet, status and check-in date"""
        pass


# ============================================================================
# OUTBOUND COLLABORATORS
# ============================================================================

class NotificationSender(ABC):
    """Customer-facing notification delivery (email/push)"""

    @abstractmethod
    async def send_confirmation(self, details: Dict[str, Any]) -> None:
        """Send booking confirmation"""
        pass


class EventPublisher(ABC):
    """Realtime broadcast to operational dashboards"""

    @abstractmethod
    async def emit(self, topic: str, payload: Dict[str, Any]) -> None:
        """Broadcast an event"""
        pass


class ActivityLogger(ABC):
    """Audit trail"""

    @abstractmethod
    async def log_activity(self, action: str, payload: Dict[str, Any], actor_id: Optional[str] = None) -> None:
        """Record an audit entry"""
        pass

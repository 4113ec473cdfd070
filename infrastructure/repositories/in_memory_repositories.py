"""In-Memory Repository Implementations

Stored aggregates are copied on the way in and on the way out, so callers never
mutate stored state behind the repository's back. Each write runs without a
suspension point between its checks and the store, which makes it atomic on
the event loop.
"""
from typing import Optional, List, Dict
from uuid import UUID
from datetime import date

from config import settings
from domain.repositories import CatalogRepository, ReservationRepository
from domain.entities import Unit, PriceRule, AddOnCatalogEntry, Reservation
from domain.enums import ReservationStatus, DepositType
from domain.exceptions import AlreadyBookedError, ConcurrentUpdateError, NotFoundError
from domain.value_objects import DepositPolicy, AddOnLine


def default_deposit_policy() -> DepositPolicy:
    return DepositPolicy(
        deposit_type=DepositType(settings.DEFAULT_DEPOSIT_TYPE),
        deposit_percentage=settings.DEFAULT_DEPOSIT_PERCENTAGE,
        deposit_fixed=settings.DEFAULT_DEPOSIT_FIXED
    )


class InMemoryCatalogRepository(CatalogRepository):
    """In-memory implementation of CatalogRepository"""

    def __init__(self, deposit_policy: Optional[DepositPolicy] = None):
        self._units: Dict[str, Unit] = {}
        self._rules: List[PriceRule] = []
        self._add_ons: Dict[str, AddOnCatalogEntry] = {}
        self._deposit_policy = deposit_policy or default_deposit_policy()

    # Seeding is synchronous; the catalog is owned outside the engine
    def add_unit(self, unit: Unit) -> Unit:
        self._units[unit.unit_id] = unit
        return unit

    def add_price_rule(self, rule: PriceRule) -> PriceRule:
        self._rules.append(rule)
        return rule

    def add_add_on(self, add_on: AddOnCatalogEntry) -> AddOnCatalogEntry:
        self._add_ons[add_on.add_on_id] = add_on
        return add_on

    def set_deposit_policy(self, policy: DepositPolicy) -> None:
        self._deposit_policy = policy

    def clear(self) -> None:
        self._units.clear()
        self._rules.clear()
        self._add_ons.clear()
        self._deposit_policy = default_deposit_policy()

    async def get_unit(self, unit_id: str) -> Optional[Unit]:
        """Find chalet by ID"""
        return self._units.get(unit_id)

    async def get_active_price_rules(self, unit_id: str) -> List[PriceRule]:
        """Active rules for a chalet ordered by start date (stable for equal dates)"""
        rules = [r for r in self._rules if r.unit_id == unit_id and r.is_active]
        return sorted(rules, key=lambda r: r.start_date)

    async def get_add_ons_by_ids(self, add_on_ids: List[str]) -> List[AddOnCatalogEntry]:
        """Find add-ons by ID"""
        return [self._add_ons[i] for i in add_on_ids if i in self._add_ons]

    async def get_deposit_policy(self) -> DepositPolicy:
        """Current deposit configuration"""
        return self._deposit_policy


class InMemoryReservationRepository(ReservationRepository):
    """In-memory implementation of ReservationRepository"""

    # Fields a status transition is allowed to write
    _LIFECYCLE_FIELDS = (
        "status",
        "checked_in_at",
        "checked_in_by",
        "checked_out_at",
        "checked_out_by",
        "cancelled_at",
        "cancellation_reason",
        "modified_at",
    )

    def __init__(self):
        self._storage: Dict[UUID, Reservation] = {}

    def clear(self) -> None:
        self._storage.clear()

    async def get_reservations_for_unit(
        self,
        unit_id: str,
        range_start: Optional[date] = None,
        range_end: Optional[date] = None
    ) -> List[Reservation]:
        """Reservations of a chalet that touch the range"""
        results = [r for r in self._storage.values() if r.unit_id == unit_id]
        if range_start is not None:
            results = [r for r in results if r.check_out_date >= range_start]
        if range_end is not None:
            results = [r for r in results if r.check_in_date <= range_end]
        return [r.model_copy(deep=True) for r in results]

    async def insert_reservation(self, reservation: Reservation, add_on_lines: List[AddOnLine]) -> Reservation:
        """Insert reservation and add-on lines together"""
        self._assert_no_overlap(reservation)

        stored = reservation.model_copy(update={"add_on_lines": list(add_on_lines)}, deep=True)
        self._storage[stored.reservation_id] = stored
        return stored.model_copy(deep=True)

    async def update_reservation_status(
        self,
        reservation: Reservation,
        expected_status: ReservationStatus
    ) -> Reservation:
        """Persist a status transition if nobody changed the status first"""
        current = self._require(reservation.reservation_id)
        if current.status != expected_status:
            raise ConcurrentUpdateError()

        if not current.blocks_unit() and reservation.blocks_unit():
            self._assert_no_overlap(current, exclude_id=current.reservation_id)

        # Dates and pricing stay as stored; only lifecycle fields move
        changes = {name: getattr(reservation, name) for name in self._LIFECYCLE_FIELDS}
        changes["version"] = current.version + 1
        stored = current.model_copy(update=changes, deep=True)
        self._storage[stored.reservation_id] = stored
        return stored.model_copy(deep=True)

    async def reschedule_reservation(self, reservation: Reservation, expected_version: int) -> Reservation:
        """Persist new dates and pricing if nobody wrote the reservation first"""
        current = self._require(reservation.reservation_id)
        if current.version != expected_version:
            raise ConcurrentUpdateError()

        self._assert_no_overlap(reservation, exclude_id=reservation.reservation_id)

        stored = reservation.model_copy(update={"version": current.version + 1}, deep=True)
        self._storage[stored.reservation_id] = stored
        return stored.model_copy(deep=True)

    async def find_by_id(self, reservation_id: UUID) -> Optional[Reservation]:
        """Find reservation by ID"""
        reservation = self._storage.get(reservation_id)
        return reservation.model_copy(deep=True) if reservation else None

    async def find_by_booking_number(self, booking_number: str) -> Optional[Reservation]:
        """Find reservation by booking number"""
        for reservation in self._storage.values():
            if reservation.booking_number == booking_number:
                return reservation.model_copy(deep=True)
        return None

    async def find_by_customer_id(self, customer_id: str) -> List[Reservation]:
        """Find reservations by customer ID"""
        return [r.model_copy(deep=True) for r in self._storage.values() if r.customer_id == customer_id]

    async def find_all(
        self,
        unit_id: Optional[str] = None,
        status: Optional[ReservationStatus] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> List[Reservation]:
        """Find reservations, filtered on chalet, status and check-in date"""
        results = list(self._storage.values())
        if unit_id is not None:
            results = [r for r in results if r.unit_id == unit_id]
        if status is not None:
            results = [r for r in results if r.status == status]
        if start_date is not None:
            results = [r for r in results if r.check_in_date >= start_date]
        if end_date is not None:
            results = [r for r in results if r.check_in_date <= end_date]
        return [r.model_copy(deep=True) for r in results]

    def _require(self, reservation_id: UUID) -> Reservation:
        current = self._storage.get(reservation_id)
        if current is None:
            raise NotFoundError.reservation()
        return current

    def _assert_no_overlap(self, reservation: Reservation, exclude_id: Optional[UUID] = None) -> None:
        for existing in self._storage.values():
            if existing.reservation_id == exclude_id:
                continue
            if (existing.unit_id == reservation.unit_id
                    and existing.blocks_unit()
                    and existing.date_range.overlaps(reservation.check_in_date, reservation.check_out_date)):
                raise AlreadyBookedError()

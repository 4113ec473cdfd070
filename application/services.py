"""Application Services - Business use cases"""
import asyncio
import logging
from uuid import UUID
from datetime import date
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from config import settings
from domain.repositories import (
    CatalogRepository, ReservationRepository, NotificationSender, EventPublisher, ActivityLogger
)
from domain.entities import Unit, Reservation, StayChange
from domain.enums import ReservationStatus, PaymentMethod
from domain.exceptions import (
    NotFoundError, InactiveUnitError, InvalidRangeError, CapacityExceededError,
    NotAvailableError, AlreadyBookedError, InvalidStatusError
)
from domain.services import RuleResolver, PricingCalculator, AvailabilityChecker, days_between
from domain.value_objects import DateRange, SelectedAddOn, StayQuote, AddOnLine

logger = logging.getLogger(__name__)

# Strong references to fire-and-forget tasks so they are not collected mid-flight
_background_tasks: Set[asyncio.Task] = set()


async def wait_for_background_tasks() -> None:
    """Wait for pending notifications and events (shutdown and tests)"""
    loop = asyncio.get_running_loop()
    while True:
        pending = [task for task in _background_tasks if not task.done() and task.get_loop() is loop]
        if not pending:
            return
        await asyncio.gather(*pending, return_exceptions=True)


def _format_date(value: date) -> str:
    return f"{value:%B} {value.day}, {value.year}"


class AvailabilityService:
    """Service for Availability use cases"""

    def __init__(self, repository: ReservationRepository, catalog: Optional[CatalogRepository] = None):
        self.repository = repository
        self.catalog = catalog

    async def is_available(
        self,
        unit_id: str,
        check_in: date,
        check_out: date,
        exclude_reservation_id: Optional[UUID] = None
    ) -> bool:
        """Check that no blocking reservation overlaps [check_in, check_out)"""
        if days_between(check_in, check_out) < 1:
            raise InvalidRangeError()
        await self._require_known_unit(unit_id)

        reservations = await self.repository.get_reservations_for_unit(unit_id, check_in, check_out)
        checker = AvailabilityChecker(reservations, exclude_id=exclude_reservation_id)
        return checker.is_available(check_in, check_out)

    async def get_blocked_dates(self, unit_id: str, start_date: date, end_date: date) -> List[date]:
        """Occupied nights of the reservations touching the queried range"""
        if end_date < start_date:
            raise InvalidRangeError("end_date must not be before start_date")

        reservations = await self.repository.get_reservations_for_unit(unit_id, start_date, end_date)
        return AvailabilityChecker(reservations).blocked_dates()

    async def _require_known_unit(self, unit_id: str) -> None:
        if self.catalog is not None and await self.catalog.get_unit(unit_id) is None:
            raise NotFoundError.chalet()


class PricingService:
    """Loads pricing inputs from the catalog and prices a stay"""

    def __init__(self, catalog: CatalogRepository):
        self.catalog = catalog

    async def price_for_night(self, unit: Unit, night: date) -> Decimal:
        rules = await self.catalog.get_active_price_rules(unit.unit_id)
        return RuleResolver(unit, rules).price_for_night(night)

    async def compute_stay_cost(
        self,
        unit: Unit,
        check_in: date,
        check_out: date,
        selected_add_ons: List[SelectedAddOn]
    ) -> StayQuote:
        calculator = await self._calculator(unit)

        catalog = {}
        wanted = [item.add_on_id for item in selected_add_ons if item.quantity > 0]
        if wanted:
            entries = await self.catalog.get_add_ons_by_ids(wanted)
            catalog = {entry.add_on_id: entry for entry in entries}

        return calculator.compute_stay_cost(check_in, check_out, selected_add_ons, catalog)

    async def reprice_stay(
        self,
        unit: Unit,
        check_in: date,
        check_out: date,
        add_on_lines: List[AddOnLine]
    ) -> StayQuote:
        calculator = await self._calculator(unit)
        return calculator.reprice_stay(check_in, check_out, add_on_lines)

    async def _calculator(self, unit: Unit) -> PricingCalculator:
        rules = await self.catalog.get_active_price_rules(unit.unit_id)
        deposit_policy = await self.catalog.get_deposit_policy()
        return PricingCalculator(RuleResolver(unit, rules), deposit_policy)


class ReservationService:
    """Service for Reservation business use cases.

    The only component that talks to the stores and to the outbound
    notification, event and audit collaborators.
    """

    def __init__(self,
                 repository: ReservationRepository,
                 catalog: CatalogRepository,
                 notifier: Optional[NotificationSender] = None,
                 event_publisher: Optional[EventPublisher] = None,
                 activity_logger: Optional[ActivityLogger] = None,
                 availability_service: Optional[AvailabilityService] = None,
                 pricing_service: Optional[PricingService] = None,
                 booking_number_prefix: Optional[str] = None,
                 booking_number_attempts: Optional[int] = None):
        self.repository = repository
        self.catalog = catalog
        self.notifier = notifier
        self.event_publisher = event_publisher
        self.activity_logger = activity_logger
        self.availability_service = availability_service or AvailabilityService(repository, catalog)
        self.pricing_service = pricing_service or PricingService(catalog)
        self.booking_number_prefix = booking_number_prefix or settings.BOOKING_NUMBER_PREFIX
        self.booking_number_attempts = booking_number_attempts or settings.BOOKING_NUMBER_MAX_ATTEMPTS

    # ==================== CREATION ====================
    async def quote_stay(
        self,
        unit_id: str,
        check_in: date,
        check_out: date,
        add_ons: Optional[List[SelectedAddOn]] = None,
        number_of_guests: Optional[int] = None
    ) -> StayQuote:
        """Price a stay without booking it"""
        unit = await self._validated_unit(unit_id, check_in, check_out, number_of_guests)
        quote = await self.pricing_service.compute_stay_cost(unit, check_in, check_out, add_ons or [])
        return quote.rounded()

    async def create_reservation(
        self,
        unit_id: str,
        customer_name: str,
        check_in: date,
        check_out: date,
        number_of_guests: int,
        customer_id: Optional[str] = None,
        customer_email: Optional[str] = None,
        customer_phone: Optional[str] = None,
        add_ons: Optional[List[SelectedAddOn]] = None,
        special_requests: Optional[str] = None,
        payment_method: Optional[PaymentMethod] = None,
        created_by: str = "SYSTEM"
    ) -> Reservation:
        """Create new reservation with full validation"""
        unit = await self._validated_unit(unit_id, check_in, check_out, number_of_guests)

        if not await self.availability_service.is_available(unit_id, check_in, check_out):
            raise NotAvailableError()

        quote = await self.pricing_service.compute_stay_cost(unit, check_in, check_out, add_ons or [])
        stored_quote = quote.rounded()

        reservation = Reservation(
            booking_number=await self._generate_booking_number(),
            unit_id=unit_id,
            customer_id=customer_id,
            customer_name=customer_name,
            customer_email=customer_email,
            customer_phone=customer_phone,
            date_range=DateRange(check_in=check_in, check_out=check_out),
            number_of_guests=number_of_guests,
            number_of_nights=stored_quote.nights,
            base_amount=stored_quote.base_amount,
            add_ons_amount=stored_quote.add_ons_amount,
            deposit_amount=stored_quote.deposit_amount,
            total_amount=stored_quote.total_amount,
            add_on_lines=stored_quote.add_on_lines,
            payment_method=payment_method,
            special_requests=special_requests,
            created_by=created_by
        )

        try:
            reservation = await self.repository.insert_reservation(reservation, stored_quote.add_on_lines)
        except AlreadyBookedError:
            logger.warning(
                "Booking conflict at write time for chalet %s (%s to %s)",
                unit_id, check_in, check_out
            )
            raise

        logger.info(
            "Created booking %s for chalet %s: %s nights, total %s",
            reservation.booking_number, unit_id, reservation.number_of_nights, reservation.total_amount
        )

        if customer_email and self.notifier is not None:
            self._fire_and_forget(
                self.notifier.send_confirmation(self._confirmation_details(reservation, unit)),
                f"confirmation email for {reservation.booking_number}"
            )

        await self._audit("CREATE_BOOKING", {
            "bookingNumber": reservation.booking_number,
            "chaletId": unit_id,
            "checkIn": check_in.isoformat(),
            "checkOut": check_out.isoformat(),
            "total": str(reservation.total_amount),
        }, customer_id)

        self._emit("booking:new", {
            "id": str(reservation.reservation_id),
            "bookingNumber": reservation.booking_number,
            "chaletName": unit.name,
            "customerName": customer_name,
            "checkInDate": check_in.isoformat(),
            "checkOutDate": check_out.isoformat(),
            "status": reservation.status.value,
            "totalAmount": str(reservation.total_amount),
        })

        return reservation

    # ==================== QUERIES ====================
    async def get_reservation(self, reservation_id: UUID) -> Optional[Reservation]:
        """Get reservation by ID"""
        return await self.repository.find_by_id(reservation_id)

    async def get_reservation_by_booking_number(self, booking_number: str) -> Optional[Reservation]:
        """Get reservation by booking number"""
        return await self.repository.find_by_booking_number(booking_number)

    async def get_customer_reservations(self, customer_id: str) -> List[Reservation]:
        """Get all reservations for a customer, newest first"""
        reservations = await self.repository.find_by_customer_id(customer_id)
        return sorted(reservations, key=lambda r: r.created_at, reverse=True)

    async def list_reservations(
        self,
        unit_id: Optional[str] = None,
        status: Optional[ReservationStatus] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> List[Reservation]:
        """Staff listing ordered by check-in date"""
        reservations = await self.repository.find_all(unit_id, status, start_date, end_date)
        return sorted(reservations, key=lambda r: r.check_in_date)

    async def get_today_reservations(self, today: Optional[date] = None) -> Dict[str, List[Reservation]]:
        """Arrivals and departures for the day"""
        today = today or date.today()
        reservations = await self.repository.find_all()
        return {
            "check_ins": [r for r in reservations if r.check_in_date == today],
            "check_outs": [r for r in reservations if r.check_out_date == today],
        }

    # ==================== STATUS TRANSITIONS ====================
    async def confirm_reservation(self, reservation_id: UUID, user_id: Optional[str] = None) -> Reservation:
        """Confirm a pending reservation"""
        return await self._transition(
            reservation_id,
            lambda r: r.confirm(),
            action="CONFIRM_BOOKING",
            topic="booking:confirmed",
            actor_id=user_id
        )

    async def check_in_guest(self, reservation_id: UUID, staff_id: str) -> Reservation:
        """Check in guest"""
        return await self._transition(
            reservation_id,
            lambda r: r.check_in(staff_id),
            action="CHECK_IN",
            topic="booking:checkedIn",
            actor_id=staff_id
        )

    async def check_out_guest(self, reservation_id: UUID, staff_id: str) -> Reservation:
        """Check out guest"""
        return await self._transition(
            reservation_id,
            lambda r: r.check_out(staff_id),
            action="CHECK_OUT",
            topic="booking:checkedOut",
            actor_id=staff_id
        )

    async def cancel_reservation(
        self,
        reservation_id: UUID,
        reason: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> Reservation:
        """Cancel reservation"""
        return await self._transition(
            reservation_id,
            lambda r: r.cancel(reason),
            action="CANCEL_BOOKING",
            topic="booking:cancelled",
            actor_id=user_id,
            details={"reason": reason}
        )

    async def mark_no_show(self, reservation_id: UUID, user_id: Optional[str] = None) -> Reservation:
        """Mark reservation as no-show"""
        return await self._transition(
            reservation_id,
            lambda r: r.mark_no_show(),
            action="MARK_NO_SHOW",
            topic="booking:noShow",
            actor_id=user_id
        )

    async def override_status(
        self,
        reservation_id: UUID,
        new_status: ReservationStatus,
        user_id: Optional[str] = None
    ) -> Reservation:
        """Administrative status correction, bypasses the state machine"""
        reservation = await self._require_reservation(reservation_id)
        previous = reservation.administrative_override(new_status)

        updated = await self.repository.update_reservation_status(reservation, expected_status=previous)
        logger.info(
            "Status of booking %s overridden from %s to %s by %s",
            updated.booking_number, previous.value, updated.status.value, user_id
        )

        await self._audit("UPDATE_BOOKING_STATUS", {
            "bookingId": str(reservation_id),
            "from": previous.value,
            "to": updated.status.value,
        }, user_id)

        self._emit("booking:statusChanged", {
            "id": str(reservation_id),
            "status": updated.status.value,
            "previousStatus": previous.value,
        })

        return updated

    # ==================== DATE CHANGES ====================
    async def modify_dates(
        self,
        reservation_id: UUID,
        check_in: date,
        check_out: date,
        user_id: Optional[str] = None
    ) -> StayChange:
        """Move a pending or confirmed booking to new dates and reprice it.

        Nights are repriced from the current rules. Booked add-ons keep their
        unit price. The booking's own nights never count as a conflict.
        """
        reservation = await self._require_reservation(reservation_id)
        if not reservation.is_modifiable():
            raise InvalidStatusError("Booking cannot be modified in current state")

        unit = await self._validated_unit(
            reservation.unit_id, check_in, check_out, reservation.number_of_guests
        )

        available = await self.availability_service.is_available(
            unit.unit_id, check_in, check_out, exclude_reservation_id=reservation_id
        )
        if not available:
            raise NotAvailableError()

        quote = await self.pricing_service.reprice_stay(unit, check_in, check_out, reservation.add_on_lines)
        previous_check_in = reservation.check_in_date
        previous_check_out = reservation.check_out_date
        previous_total = reservation.total_amount
        previous_version = reservation.version

        reservation.reschedule(DateRange(check_in=check_in, check_out=check_out), quote.rounded())
        try:
            updated = await self.repository.reschedule_reservation(reservation, expected_version=previous_version)
        except AlreadyBookedError:
            logger.warning(
                "Booking conflict at write time moving %s to %s - %s",
                reservation.booking_number, check_in, check_out
            )
            raise

        change = StayChange(
            reservation=updated,
            previous_check_in=previous_check_in,
            previous_check_out=previous_check_out,
            previous_total=previous_total
        )
        logger.info(
            "Booking %s moved to %s - %s, price difference %s",
            updated.booking_number, check_in, check_out, change.price_difference
        )

        await self._audit("MODIFY_BOOKING_DATES", {
            "bookingId": str(reservation_id),
            "bookingNumber": updated.booking_number,
            "previousCheckIn": previous_check_in.isoformat(),
            "previousCheckOut": previous_check_out.isoformat(),
            "checkIn": check_in.isoformat(),
            "checkOut": check_out.isoformat(),
            "priceDifference": str(change.price_difference),
        }, user_id)

        self._emit("booking:modified", {
            "id": str(reservation_id),
            "bookingNumber": updated.booking_number,
            "checkInDate": check_in.isoformat(),
            "checkOutDate": check_out.isoformat(),
            "totalAmount": str(updated.total_amount),
            "priceDifference": str(change.price_difference),
        })

        return change

    # ==================== PRIVATE HELPERS ====================
    async def _validated_unit(
        self,
        unit_id: str,
        check_in: date,
        check_out: date,
        number_of_guests: Optional[int]
    ) -> Unit:
        unit = await self.catalog.get_unit(unit_id)
        if unit is None:
            raise NotFoundError.chalet()

        if not unit.is_active:
            raise InactiveUnitError()

        if days_between(check_in, check_out) < 1:
            raise InvalidRangeError()

        if number_of_guests is not None and number_of_guests > unit.capacity:
            raise CapacityExceededError(unit.capacity)

        return unit

    async def _require_reservation(self, reservation_id: UUID) -> Reservation:
        reservation = await self.repository.find_by_id(reservation_id)
        if reservation is None:
            raise NotFoundError.reservation()
        return reservation

    async def _transition(
        self,
        reservation_id: UUID,
        apply: Callable[[Reservation], None],
        action: str,
        topic: str,
        actor_id: Optional[str],
        details: Optional[Dict[str, Any]] = None
    ) -> Reservation:
        """Guarded read-modify-write: the store re-checks the status we read"""
        reservation = await self._require_reservation(reservation_id)
        previous = reservation.status
        apply(reservation)

        updated = await self.repository.update_reservation_status(reservation, expected_status=previous)
        logger.info(
            "Booking %s moved from %s to %s",
            updated.booking_number, previous.value, updated.status.value
        )

        payload = {
            "bookingId": str(reservation_id),
            "bookingNumber": updated.booking_number,
            **(details or {}),
        }
        await self._audit(action, payload, actor_id)
        self._emit(topic, {
            "id": str(reservation_id),
            "bookingNumber": updated.booking_number,
            "status": updated.status.value,
            **(details or {}),
        })
        return updated

    async def _generate_booking_number(self) -> str:
        """Best-effort unique booking number; uniqueness is advisory"""
        candidate = Reservation.generate_booking_number(self.booking_number_prefix)
        for _ in range(self.booking_number_attempts):
            if await self.repository.find_by_booking_number(candidate) is None:
                return candidate
            candidate = Reservation.generate_booking_number(self.booking_number_prefix)

        logger.warning("Booking number %s may not be unique", candidate)
        return candidate

    @staticmethod
    def _confirmation_details(reservation: Reservation, unit: Unit) -> Dict[str, Any]:
        return {
            "customerEmail": reservation.customer_email,
            "customerName": reservation.customer_name,
            "bookingNumber": reservation.booking_number,
            "chaletName": unit.name,
            "checkInDate": _format_date(reservation.check_in_date),
            "checkOutDate": _format_date(reservation.check_out_date),
            "numberOfGuests": reservation.number_of_guests,
            "numberOfNights": reservation.number_of_nights,
            "addOns": [
                {"name": line.name or "Add-on", "price": str(line.subtotal)}
                for line in reservation.add_on_lines
            ],
            "totalAmount": str(reservation.total_amount),
            "paymentStatus": reservation.payment_status.value,
        }

    async def _audit(self, action: str, payload: Dict[str, Any], actor_id: Optional[str]) -> None:
        if self.activity_logger is None:
            return
        try:
            await self.activity_logger.log_activity(action, payload, actor_id)
        except Exception:
            logger.error("Failed to record activity %s", action, exc_info=True)

    def _emit(self, topic: str, payload: Dict[str, Any]) -> None:
        if self.event_publisher is None:
            return
        self._fire_and_forget(self.event_publisher.emit(topic, payload), f"event {topic}")

    @staticmethod
    def _fire_and_forget(coro: Awaitable[None], description: str) -> None:
        async def runner():
            try:
                await coro
            except Exception:
                logger.warning("Failed to deliver %s", description, exc_info=True)

        task = asyncio.create_task(runner())
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)

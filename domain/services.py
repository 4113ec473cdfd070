"""Domain Services - pricing and availability rules

Pure functions over already-loaded catalog data and reservations. Loading from
the stores is the application layer's job.
"""
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from domain.entities import Unit, PriceRule, AddOnCatalogEntry, Reservation
from domain.enums import AddOnPriceType, DepositType
from domain.exceptions import InvalidRangeError
from domain.value_objects import (
    DateRange, DepositPolicy, SelectedAddOn, AddOnLine, NightlyPrice, StayQuote, is_weekend_night
)


class RuleResolver:
    """Resolve the price of a single night for a chalet.

    Rules are scanned in the order given and the first active rule covering
    the night wins, regardless of ``priority`` or how narrow its range is.
    """

    def __init__(self, unit: Unit, rules: Sequence[PriceRule]):
        self.unit = unit
        self.rules = tuple(rules)

    def default_price(self, night: date) -> Decimal:
        return self.unit.weekend_price if is_weekend_night(night) else self.unit.base_price

    def matching_rule(self, night: date) -> Optional[PriceRule]:
        for rule in self.rules:
            if rule.is_active and rule.covers(night):
                return rule
        return None

    def price_for_night(self, night: date) -> Decimal:
        return self.nightly_price(night).price

    def nightly_price(self, night: date) -> NightlyPrice:
        rule = self.matching_rule(night)
        if rule is not None:
            if rule.price is not None:
                return NightlyPrice(night=night, price=rule.price, rule_id=rule.rule_id)
            if rule.price_multiplier is not None:
                price = self.default_price(night) * rule.price_multiplier
                return NightlyPrice(night=night, price=price, rule_id=rule.rule_id)

        return NightlyPrice(night=night, price=self.default_price(night))


def days_between(check_in: date, check_out: date) -> int:
    return (check_out - check_in).days


def compute_deposit(base_amount: Decimal, policy: DepositPolicy) -> Decimal:
    """Deposit is owed on the stay itself, never on add-ons"""
    if policy.deposit_type == DepositType.FIXED:
        return policy.deposit_fixed
    return base_amount * policy.deposit_percentage / Decimal("100")


class PricingCalculator:
    """Compute the full cost of a stay"""

    def __init__(self, resolver: RuleResolver, deposit_policy: DepositPolicy):
        self.resolver = resolver
        self.deposit_policy = deposit_policy

    def compute_stay_cost(
        self,
        check_in: date,
        check_out: date,
        selected_add_ons: Iterable[SelectedAddOn] = (),
        catalog: Optional[Dict[str, AddOnCatalogEntry]] = None
    ) -> StayQuote:
        nights = self._nights(check_in, check_out)
        add_on_lines = self._price_add_ons(selected_add_ons, catalog or {}, nights)
        return self._quote(check_in, check_out, add_on_lines)

    def reprice_stay(self, check_in: date, check_out: date, add_on_lines: Iterable[AddOnLine]) -> StayQuote:
        """Price new dates for an existing booking.

        Nights are priced from today's rules; add-ons keep their booked unit
        price and only per-night lines are rescaled to the new length.
        """
        nights = self._nights(check_in, check_out)
        lines = []
        for line in add_on_lines:
            subtotal = self._subtotal(line.unit_price, line.quantity, line.price_type, nights)
            lines.append(line.model_copy(update={"subtotal": subtotal}))
        return self._quote(check_in, check_out, lines)

    @staticmethod
    def _nights(check_in: date, check_out: date) -> int:
        nights = days_between(check_in, check_out)
        if nights < 1:
            raise InvalidRangeError()
        return nights

    def _quote(self, check_in: date, check_out: date, add_on_lines: List[AddOnLine]) -> StayQuote:
        stay = DateRange(check_in=check_in, check_out=check_out)

        # Summed unrounded; rounding happens once when the quote is stored
        nightly_prices = [self.resolver.nightly_price(night) for night in stay.each_night()]
        base_amount = sum((n.price for n in nightly_prices), Decimal("0"))
        add_ons_amount = sum((line.subtotal for line in add_on_lines), Decimal("0"))

        return StayQuote(
            nights=stay.nights(),
            base_amount=base_amount,
            add_ons_amount=add_ons_amount,
            deposit_amount=compute_deposit(base_amount, self.deposit_policy),
            total_amount=base_amount + add_ons_amount,
            add_on_lines=add_on_lines,
            nightly_prices=nightly_prices,
        )

    @staticmethod
    def _subtotal(unit_price: Decimal, quantity: int, price_type: AddOnPriceType, nights: int) -> Decimal:
        multiplier = nights if price_type == AddOnPriceType.PER_NIGHT else 1
        return unit_price * quantity * multiplier

    @classmethod
    def _price_add_ons(
        cls,
        selected_add_ons: Iterable[SelectedAddOn],
        catalog: Dict[str, AddOnCatalogEntry],
        nights: int
    ) -> List[AddOnLine]:
        lines = []
        for item in selected_add_ons:
            if item.quantity <= 0:
                continue

            entry = catalog.get(item.add_on_id)
            if entry is None or not entry.is_active:
                continue  # Unknown or retired add-ons are ignored

            lines.append(AddOnLine(
                add_on_id=entry.add_on_id,
                name=entry.name,
                price_type=entry.price_type,
                quantity=item.quantity,
                unit_price=entry.price,
                subtotal=cls._subtotal(entry.price, item.quantity, entry.price_type, nights),
            ))
        return lines


class AvailabilityChecker:
    """Conflict detection over a chalet's existing reservations.

    ``exclude_id`` leaves one reservation out, so a booking being moved does
    not conflict with its own current nights.
    """

    def __init__(self, reservations: Iterable[Reservation], exclude_id: Optional[UUID] = None):
        self.reservations = [
            r for r in reservations
            if r.blocks_unit() and r.reservation_id != exclude_id
        ]

    def conflicts(self, check_in: date, check_out: date) -> List[Reservation]:
        return [r for r in self.reservations if r.date_range.overlaps(check_in, check_out)]

    def is_available(self, check_in: date, check_out: date) -> bool:
        return not self.conflicts(check_in, check_out)

    def blocked_dates(self) -> List[date]:
        """Every occupied night of every blocking reservation, sorted and unique"""
        nights = set()
        for reservation in self.reservations:
            nights.update(reservation.date_range.each_night())
        return sorted(nights)

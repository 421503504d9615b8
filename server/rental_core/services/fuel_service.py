"""Fuel settlement at return."""

import logging
import math
from dataclasses import asdict, dataclass
from fractions import Fraction
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utcnow
from ..core.config import settings
from ..core.exceptions import ConflictError, NotAuthenticatedError, NotFoundError, ValidationError
from ..models.alert import AlertType
from ..models.booking import Booking
from ..models.deposit import LedgerAction, LedgerCategory
from .alert_service import AlertService
from .audit_service import AuditService
from .deposit_service import DepositLedgerService
from .vehicle_service import VehicleService

logger = logging.getLogger(__name__)

FUEL_CHARGE_ACTION = "fuel_shortage_charge"


@dataclass(frozen=True)
class FuelCharge:
    liters_short: float
    fuel_cost: int
    service_fee: int

    @property
    def total(self) -> int:
        return self.fuel_cost + self.service_fee

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["total"] = self.total
        return data


def calculate_fuel_shortage(
    pickup_level: int,
    return_level: int,
    tank_capacity_liters: int,
    price_per_liter_cents: int | None = None,
    service_fee_cents: int | None = None,
) -> FuelCharge | None:
    """
    Charge for a tank returned emptier than it left.

    Levels are tank percentages. Returns ``None`` when there is no shortfall.
    """
    for name, level in (("pickup_level", pickup_level), ("return_level", return_level)):
        if not 0 <= level <= 100:
            raise ValidationError(
                detail=f"{name} must be a percentage between 0 and 100",
                errors={name: level},
            )

    if return_level >= pickup_level:
        return None

    price = price_per_liter_cents if price_per_liter_cents is not None else settings.fuel_price_per_liter_cents
    fee = service_fee_cents if service_fee_cents is not None else settings.refuel_service_fee_cents

    liters_short = Fraction(pickup_level - return_level, 100) * tank_capacity_liters
    return FuelCharge(
        liters_short=float(liters_short),
        fuel_cost=math.ceil(liters_short * price),
        service_fee=fee,
    )


@dataclass
class FuelSettlement:
    charge: FuelCharge | None
    withheld_amount: int = 0

    @property
    def outstanding(self) -> int:
        if self.charge is None:
            return 0
        return self.charge.total - self.withheld_amount


class FuelService:
    """Service for settling fuel at return."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.audit = AuditService(db, clock)
        self.alerts = AlertService(db, clock)
        self.ledger = DepositLedgerService(db, clock)
        self.vehicle_service = VehicleService(db, clock)

    async def settle_fuel(
        self,
        booking_id: UUID,
        pickup_level: int,
        return_level: int,
        actor: str | None,
    ) -> FuelSettlement:
        """
        Withhold the fuel shortfall from the deposit.

        Only bookings on the road or being returned can be settled, and a
        shortfall is charged once per booking. The withhold is capped at
        what is still releasable; any remainder, or the whole charge when no
        deposit is authorized, goes to staff as a payment alert.

        Raises:
            NotAuthenticatedError: If no actor is given
            ValidationError: If a fuel level is out of range
            NotFoundError: If the booking does not exist
            ConflictError: If the booking is not being returned or its fuel
                was already charged
        """
        if not actor:
            raise NotAuthenticatedError(detail="An authenticated actor is required to settle fuel")

        booking = await self.db.get(Booking, booking_id)
        if not booking:
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))

        if not booking.in_return_flow:
            raise ConflictError(
                detail=f"Booking {booking.code} is {booking.status} and not being returned",
                code="BOOKING_NOT_IN_RETURN",
                conflicting_resource={"booking_id": str(booking_id), "status": booking.status},
            )

        if await self._already_charged(booking_id):
            raise ConflictError(
                detail=f"Fuel for booking {booking.code} has already been charged",
                code="FUEL_ALREADY_SETTLED",
                conflicting_resource={"booking_id": str(booking_id)},
            )

        vehicle = await self.vehicle_service.get_vehicle_by_id_or_raise(booking.vehicle_id)
        tank_capacity = self.vehicle_service.get_tank_capacity(vehicle)

        charge = calculate_fuel_shortage(pickup_level, return_level, tank_capacity)
        if charge is None:
            logger.info(
                "No fuel shortfall at return",
                extra={
                    "booking_id": str(booking_id),
                    "pickup_level": pickup_level,
                    "return_level": return_level,
                }
            )
            return FuelSettlement(charge=None)

        settlement = FuelSettlement(charge=charge)
        if booking.is_deposit_authorized:
            balance = await self.ledger.get_balance(booking_id)
            settlement.withheld_amount = min(charge.total, balance.releasable)
            if settlement.withheld_amount > 0:
                await self.ledger.append_entry(
                    booking_id=booking_id,
                    action=LedgerAction.WITHHOLD,
                    amount=settlement.withheld_amount,
                    reason=(
                        f"Fuel shortage: {charge.liters_short:.1f}L "
                        f"({pickup_level}% -> {return_level}%) plus refuel fee"
                    ),
                    category=LedgerCategory.FUEL,
                    actor=actor,
                )

        if settlement.outstanding > 0:
            await self.alerts.create_alert(
                AlertType.PAYMENT_PENDING,
                title="Fuel charge outstanding",
                message=f"Booking {booking.code}: {settlement.outstanding} not covered by the deposit",
                booking_id=booking_id,
                vehicle_id=booking.vehicle_id,
            )

        await self.audit.record(
            action=FUEL_CHARGE_ACTION,
            entity_type="booking",
            entity_id=booking_id,
            actor=actor,
            new_data={
                "pickup_level": pickup_level,
                "return_level": return_level,
                "tank_capacity_liters": tank_capacity,
                **charge.to_dict(),
                "withheld": settlement.withheld_amount,
            },
        )

        await self.db.commit()

        logger.info(
            "Fuel shortfall settled",
            extra={
                "booking_id": str(booking_id),
                "liters_short": charge.liters_short,
                "total": charge.total,
                "withheld": settlement.withheld_amount,
                "outstanding": settlement.outstanding,
                "actor": actor,
            }
        )

        return settlement

    async def _already_charged(self, booking_id: UUID) -> bool:
        entries = await self.audit.list_for_entity("booking", booking_id)
        return any(e.action == FUEL_CHARGE_ACTION for e in entries)

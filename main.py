import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Depends, Query
from uuid import UUID
from datetime import date, timedelta
from typing import List, Optional
from fastapi.security import OAuth2PasswordRequestForm

from api.schemas import (
    # Reservation
    CreateReservationRequest, QuoteRequest, CancelReservationRequest, UpdateStatusRequest,
    ReservationResponse, AddOnLineResponse, NightlyPriceResponse, QuoteResponse,
    TodayReservationsResponse, ModifyDatesRequest, DateChangeResponse,
    # Availability
    CheckAvailabilityRequest, CheckAvailabilityResponse, BlockedDatesResponse,
    # Auth
    Token, UserResponse
)

from api.dependencies import (
    get_current_active_user, staff_directory,
    get_reservation_service, get_availability_service
)
from infrastructure.security import create_access_token, ACCESS_TOKEN_EXPIRE_MINUTES
from domain.auth import StaffUser

from application.services import ReservationService, AvailabilityService, wait_for_background_tasks
from config import settings, configure_logging
from domain.enums import ReservationStatus, PaymentStatus, PaymentMethod, AddOnPriceType, DepositType
from domain.exceptions import ReservationError
from domain.value_objects import SelectedAddOn

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Let pending notifications and events finish before shutdown
    await wait_for_background_tasks()


app = FastAPI(
    title=settings.APP_NAME,
    description="Chalet reservation engine: availability, pricing and booking lifecycle",
    version="1.0.0",
    debug=settings.DEBUG,
    lifespan=lifespan
)


# ============================================================================
# HEALTH & ENUM REFERENCE ENDPOINTS
# ============================================================================

@app.get("/api/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "API is running"}


@app.get("/api/enums/reservation-status", tags=["Enum Reference"])
async def get_reservation_statuses():
    """Get all ReservationStatus enum values"""
    return {"values": [item.value for item in ReservationStatus]}


@app.get("/api/enums/payment-status", tags=["Enum Reference"])
async def get_payment_statuses():
    """Get all PaymentStatus enum values"""
    return {"values": [item.value for item in PaymentStatus]}


@app.get("/api/enums/payment-method", tags=["Enum Reference"])
async def get_payment_methods():
    """Get all PaymentMethod enum values"""
    return {"values": [item.value for item in PaymentMethod]}


@app.get("/api/enums/add-on-price-type", tags=["Enum Reference"])
async def get_add_on_price_types():
    """Get all AddOnPriceType enum values"""
    return {"values": [item.value for item in AddOnPriceType]}


@app.get("/api/enums/deposit-type", tags=["Enum Reference"])
async def get_deposit_types():
    """Get all DepositType enum values"""
    return {"values": [item.value for item in DepositType]}


# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

@app.post("/token", response_model=Token, tags=["Auth"])
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()):
    """Staff sign-in (OAuth2 password flow)"""
    user = staff_directory.authenticate(form_data.username, form_data.password)
    if user is None:
        logger.info("Rejected sign-in for %s", form_data.username)
        raise HTTPException(
            status_code=401,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token = create_access_token(
        user.username, expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return {"access_token": access_token, "token_type": "bearer"}


@app.get("/users/me", response_model=UserResponse, tags=["Auth"])
async def read_users_me(current_user: StaffUser = Depends(get_current_active_user)):
    return current_user


# ============================================================================
# AVAILABILITY ENDPOINTS
# ============================================================================

@app.get("/api/chalets/{chalet_id}/availability", response_model=BlockedDatesResponse, tags=["Availability"])
async def get_blocked_dates(
    chalet_id: str,
    start_date: date = Query(...),
    end_date: date = Query(...),
    service: AvailabilityService = Depends(get_availability_service)
):
    """Occupied nights for calendar rendering"""
    try:
        blocked = await service.get_blocked_dates(chalet_id, start_date, end_date)
    except ValueError as e:
        raise _to_http_exception(e)
    return BlockedDatesResponse(
        chalet_id=chalet_id,
        start_date=start_date,
        end_date=end_date,
        blocked_dates=blocked
    )


@app.post("/api/availability/check", response_model=CheckAvailabilityResponse, tags=["Availability"])
async def check_availability(
    request: CheckAvailabilityRequest,
    service: AvailabilityService = Depends(get_availability_service)
):
    """Check whether a stay is free of conflicts"""
    try:
        available = await service.is_available(
            request.chalet_id, request.check_in_date, request.check_out_date
        )
    except ValueError as e:
        raise _to_http_exception(e)
    return CheckAvailabilityResponse(
        chalet_id=request.chalet_id,
        check_in_date=request.check_in_date,
        check_out_date=request.check_out_date,
        available=available
    )


# ============================================================================
# RESERVATION ENDPOINTS
# ============================================================================

@app.post("/api/reservations/quote", response_model=QuoteResponse, tags=["Reservations"])
async def quote_reservation(
    request: QuoteRequest,
    service: ReservationService = Depends(get_reservation_service)
):
    """Price a stay without booking it"""
    try:
        quote = await service.quote_stay(
            unit_id=request.chalet_id,
            check_in=request.check_in_date,
            check_out=request.check_out_date,
            add_ons=_selected_add_ons(request.add_ons),
            number_of_guests=request.number_of_guests
        )
    except ValueError as e:
        raise _to_http_exception(e)

    return QuoteResponse(
        chalet_id=request.chalet_id,
        check_in_date=request.check_in_date,
        check_out_date=request.check_out_date,
        number_of_nights=quote.nights,
        base_amount=quote.base_amount,
        add_ons_amount=quote.add_ons_amount,
        deposit_amount=quote.deposit_amount,
        total_amount=quote.total_amount,
        add_ons=[AddOnLineResponse(**line.model_dump()) for line in quote.add_on_lines],
        nightly_prices=[NightlyPriceResponse(**n.model_dump()) for n in quote.nightly_prices]
    )


@app.post("/api/reservations", response_model=ReservationResponse, status_code=201, tags=["Reservations"])
async def create_reservation(
    request: CreateReservationRequest,
    service: ReservationService = Depends(get_reservation_service)
):
    """Create new reservation"""
    try:
        reservation = await service.create_reservation(
            unit_id=request.chalet_id,
            customer_name=request.customer_name,
            check_in=request.check_in_date,
            check_out=request.check_out_date,
            number_of_guests=request.number_of_guests,
            customer_id=request.customer_id,
            customer_email=request.customer_email,
            customer_phone=request.customer_phone,
            add_ons=_selected_add_ons(request.add_ons),
            special_requests=request.special_requests,
            payment_method=request.payment_method,
            created_by=request.customer_id or "SYSTEM"
        )
    except ValueError as e:
        raise _to_http_exception(e)

    return _reservation_to_response(reservation)


@app.get("/api/reservations", response_model=List[ReservationResponse], tags=["Reservations"])
async def list_reservations(
    chalet_id: Optional[str] = None,
    status: Optional[ReservationStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    service: ReservationService = Depends(get_reservation_service),
    current_user: StaffUser = Depends(get_current_active_user)
):
    """Staff listing, filtered on check-in date"""
    reservations = await service.list_reservations(chalet_id, status, start_date, end_date)
    return [_reservation_to_response(r) for r in reservations]


@app.get("/api/reservations/today", response_model=TodayReservationsResponse, tags=["Reservations"])
async def get_today_reservations(
    service: ReservationService = Depends(get_reservation_service),
    current_user: StaffUser = Depends(get_current_active_user)
):
    """Today's arrivals and departures"""
    today = await service.get_today_reservations()
    return TodayReservationsResponse(
        check_ins=[_reservation_to_response(r) for r in today["check_ins"]],
        check_outs=[_reservation_to_response(r) for r in today["check_outs"]]
    )


@app.get("/api/reservations/number/{booking_number}", response_model=ReservationResponse, tags=["Reservations"])
async def get_reservation_by_number(
    booking_number: str,
    service: ReservationService = Depends(get_reservation_service)
):
    """Get reservation by booking number"""
    reservation = await service.get_reservation_by_booking_number(booking_number)
    if not reservation:
        raise HTTPException(status_code=404, detail="Booking not found")
    return _reservation_to_response(reservation)


@app.get("/api/reservations/customer/{customer_id}", response_model=List[ReservationResponse], tags=["Reservations"])
async def get_customer_reservations(
    customer_id: str,
    service: ReservationService = Depends(get_reservation_service)
):
    """Get all reservations for a customer"""
    reservations = await service.get_customer_reservations(customer_id)
    return [_reservation_to_response(r) for r in reservations]


@app.get("/api/reservations/{reservation_id}", response_model=ReservationResponse, tags=["Reservations"])
async def get_reservation(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service)
):
    """Get reservation by ID"""
    reservation = await service.get_reservation(reservation_id)
    if not reservation:
        raise HTTPException(status_code=404, detail="Booking not found")
    return _reservation_to_response(reservation)


@app.post("/api/reservations/{reservation_id}/confirm", response_model=ReservationResponse, tags=["Reservations"])
async def confirm_reservation(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: StaffUser = Depends(get_current_active_user)
):
    """Confirm a pending reservation"""
    try:
        reservation = await service.confirm_reservation(reservation_id, current_user.actor_id)
    except ValueError as e:
        raise _to_http_exception(e)
    return _reservation_to_response(reservation)


@app.post("/api/reservations/{reservation_id}/check-in", response_model=ReservationResponse, tags=["Reservations"])
async def check_in_guest(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: StaffUser = Depends(get_current_active_user)
):
    """Check in guest"""
    try:
        reservation = await service.check_in_guest(reservation_id, current_user.actor_id)
    except ValueError as e:
        raise _to_http_exception(e)
    return _reservation_to_response(reservation)


@app.post("/api/reservations/{reservation_id}/check-out", response_model=ReservationResponse, tags=["Reservations"])
async def check_out_guest(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: StaffUser = Depends(get_current_active_user)
):
    """Check out guest"""
    try:
        reservation = await service.check_out_guest(reservation_id, current_user.actor_id)
    except ValueError as e:
        raise _to_http_exception(e)
    return _reservation_to_response(reservation)


@app.post("/api/reservations/{reservation_id}/cancel", response_model=ReservationResponse, tags=["Reservations"])
async def cancel_reservation(
    reservation_id: UUID,
    request: CancelReservationRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: StaffUser = Depends(get_current_active_user)
):
    """Cancel reservation"""
    try:
        reservation = await service.cancel_reservation(
            reservation_id=reservation_id,
            reason=request.reason,
            user_id=current_user.actor_id
        )
    except ValueError as e:
        raise _to_http_exception(e)
    return _reservation_to_response(reservation)


@app.post("/api/reservations/{reservation_id}/no-show", response_model=ReservationResponse, tags=["Reservations"])
async def mark_no_show(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: StaffUser = Depends(get_current_active_user)
):
    """Mark guest as no-show"""
    try:
        reservation = await service.mark_no_show(reservation_id, current_user.actor_id)
    except ValueError as e:
        raise _to_http_exception(e)
    return _reservation_to_response(reservation)


@app.put("/api/reservations/{reservation_id}/dates", response_model=DateChangeResponse, tags=["Reservations"])
async def modify_reservation_dates(
    reservation_id: UUID,
    request: ModifyDatesRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: StaffUser = Depends(get_current_active_user)
):
    """Move a pending or confirmed booking to new dates"""
    try:
        change = await service.modify_dates(
            reservation_id,
            request.check_in_date,
            request.check_out_date,
            user_id=current_user.actor_id
        )
    except ValueError as e:
        raise _to_http_exception(e)
    return DateChangeResponse(
        reservation=_reservation_to_response(change.reservation),
        previous_check_in_date=change.previous_check_in,
        previous_check_out_date=change.previous_check_out,
        previous_total=change.previous_total,
        price_difference=change.price_difference,
        additional_payment_required=change.additional_payment_required
    )


@app.put("/api/reservations/{reservation_id}/status", response_model=ReservationResponse, tags=["Reservations"])
async def override_reservation_status(
    reservation_id: UUID,
    request: UpdateStatusRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: StaffUser = Depends(get_current_active_user)
):
    """Manual status correction; bypasses the lifecycle checks"""
    try:
        reservation = await service.override_status(
            reservation_id, request.status, current_user.actor_id
        )
    except ValueError as e:
        raise _to_http_exception(e)
    return _reservation_to_response(reservation)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _to_http_exception(error: ValueError) -> HTTPException:
    """Map a domain error to its HTTP status with a stable code"""
    if isinstance(error, ReservationError):
        if error.status_code == 409:
            logger.info("Conflict %s: %s", error.code, error.message)
        return HTTPException(status_code=error.status_code, detail=error.to_dict())
    return HTTPException(status_code=400, detail=str(error))


def _selected_add_ons(items) -> List[SelectedAddOn]:
    return [SelectedAddOn(add_on_id=item.add_on_id, quantity=item.quantity) for item in items]


def _reservation_to_response(reservation) -> ReservationResponse:
    """Convert Reservation entity to ReservationResponse"""
    return ReservationResponse(
        reservation_id=reservation.reservation_id,
        booking_number=reservation.booking_number,
        chalet_id=reservation.unit_id,
        customer_id=reservation.customer_id,
        customer_name=reservation.customer_name,
        customer_email=reservation.customer_email,
        customer_phone=reservation.customer_phone,
        check_in_date=reservation.check_in_date,
        check_out_date=reservation.check_out_date,
        number_of_guests=reservation.number_of_guests,
        number_of_nights=reservation.number_of_nights,
        base_amount=reservation.base_amount,
        add_ons_amount=reservation.add_ons_amount,
        deposit_amount=reservation.deposit_amount,
        total_amount=reservation.total_amount,
        add_ons=[AddOnLineResponse(**line.model_dump()) for line in reservation.add_on_lines],
        status=reservation.status.value,
        payment_status=reservation.payment_status.value,
        payment_method=reservation.payment_method.value if reservation.payment_method else None,
        special_requests=reservation.special_requests,
        checked_in_at=reservation.checked_in_at,
        checked_in_by=reservation.checked_in_by,
        checked_out_at=reservation.checked_out_at,
        checked_out_by=reservation.checked_out_by,
        cancelled_at=reservation.cancelled_at,
        cancellation_reason=reservation.cancellation_reason,
        created_at=reservation.created_at,
        modified_at=reservation.modified_at,
        created_by=reservation.created_by,
        version=reservation.version
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

from __future__ import annotations

import logging
import random
from datetime import datetime, timezone
from functools import lru_cache

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aqualink.config import settings
from aqualink.models import BrigadeWaterState, EmergencyPriority, EmergencyRequest
from aqualink.services.errors import ValidationFailed
from aqualink.services.location_provider import Location, LocationProvider
from aqualink.services.static_location_provider import StaticLocationProvider

logger = logging.getLogger(__name__)

DEFAULT_BRIGADE_NAME = 'Fire Brigade'


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


@lru_cache(maxsize=1)
def get_location_provider() -> LocationProvider:
    return StaticLocationProvider()


def _parse_level(value) -> int:
    if isinstance(value, bool) or value is None:
        raise ValidationFailed('Invalid waterLevel', ['waterLevel must be a number between 0 and 100'])
    try:
        level = float(str(value).strip().rstrip('%'))
    except ValueError as exc:
        raise ValidationFailed('Invalid waterLevel', ['waterLevel must be a number between 0 and 100']) from exc
    if level != level or level < 0 or level > 100:
        raise ValidationFailed('Invalid waterLevel', ['waterLevel must be a number between 0 and 100'])
    return int(round(level))


def _parse_coordinates(coordinates: dict | None) -> tuple[float, float] | None:
    if not coordinates:
        return None
    try:
        lat = float(coordinates['lat'])
        lng = float(coordinates['lng'])
    except (KeyError, TypeError, ValueError) as exc:
        raise ValidationFailed('Invalid coordinates', ['coordinates must include numeric lat and lng']) from exc
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise ValidationFailed('Invalid coordinates', ['coordinates are out of range'])
    return lat, lng


def _find_state(db: Session, brigade_id: str) -> BrigadeWaterState | None:
    return db.execute(
        select(BrigadeWaterState).where(BrigadeWaterState.brigade_id == brigade_id)
    ).scalar_one_or_none()


def get_or_create_state(db: Session, *, brigade_id: str, brigade_name: str | None) -> BrigadeWaterState:
    state = _find_state(db, brigade_id)
    if state is not None:
        if brigade_name:
            state.brigade_name = brigade_name
        return state

    try:
        with db.begin_nested():
            state = BrigadeWaterState(brigade_id=brigade_id, brigade_name=brigade_name, water_level=100, alert_sent=False)
            db.add(state)
            db.flush()
    except IntegrityError:
        logger.info('Water state for brigade %s was created by a concurrent report, re-reading it', brigade_id)
        state = _find_state(db, brigade_id)
        if state is None:
            raise
        if brigade_name:
            state.brigade_name = brigade_name
    return state


def _resolve_location(
    state: BrigadeWaterState,
    coordinates: tuple[float, float] | None,
    *,
    provider: LocationProvider,
    rng: random.Random,
) -> tuple[float, float, str]:
    if coordinates is not None:
        return coordinates[0], coordinates[1], f'{coordinates[0]:.4f}, {coordinates[1]:.4f}'
    if state.latitude is not None and state.longitude is not None:
        return state.latitude, state.longitude, f'{state.latitude:.4f}, {state.longitude:.4f}'
    location: Location = provider.pick_location(rng=rng)
    return location.lat, location.lng, location.label


def evaluate_water_level(
    db: Session,
    *,
    brigade_id: str,
    water_level,
    brigade_name: str | None = None,
    coordinates: dict | None = None,
    provider: LocationProvider | None = None,
    rng: random.Random | None = None,
) -> tuple[BrigadeWaterState, EmergencyRequest | None]:
    """Record a brigade's water level and raise an emergency request when it runs low.

    At most one request is created per drop: the brigade's ``alert_sent`` flag
    is set when a request goes out and only cleared once the level climbs back
    above the reset threshold.
    """
    if not brigade_id or not str(brigade_id).strip():
        raise ValidationFailed('Validation failed', ['brigadeId is required'])
    brigade_id = str(brigade_id).strip()
    level = _parse_level(water_level)
    point = _parse_coordinates(coordinates)

    state = get_or_create_state(db, brigade_id=brigade_id, brigade_name=brigade_name)
    state.water_level = level
    state.updated_at = _now()
    if point is not None:
        state.latitude, state.longitude = point

    request = None
    if level <= settings.emergency_trigger_level and not state.alert_sent:
        lat, lng, label = _resolve_location(
            state,
            point,
            provider=provider or get_location_provider(),
            rng=rng or random.Random(),
        )
        request = EmergencyRequest(
            brigade_id=brigade_id,
            brigade_name=state.brigade_name or DEFAULT_BRIGADE_NAME,
            brigade_location=label,
            priority=EmergencyPriority.CRITICAL,
            water_level=level,
            description=(
                f'AUTOMATIC REQUEST: Water level critically low at {level}%. '
                'Immediate water supply required for emergency operations.'
            ),
            latitude=lat,
            longitude=lng,
        )
        db.add(request)
        state.alert_sent = True
        logger.info('Emergency water request raised for brigade %s at %s%% (%s)', brigade_id, level, label)
    elif level > settings.emergency_reset_level and state.alert_sent:
        state.alert_sent = False
        logger.info('Brigade %s recovered to %s%%, emergency trigger re-armed', brigade_id, level)

    db.flush()
    return state, request


def list_requests(db: Session, *, brigade_id: str | None = None) -> list[EmergencyRequest]:
    query = select(EmergencyRequest)
    if brigade_id:
        query = query.where(EmergencyRequest.brigade_id == brigade_id)
    return db.execute(query.order_by(EmergencyRequest.created_at.desc(), EmergencyRequest.id.desc())).scalars().all()


def request_to_dict(request: EmergencyRequest) -> dict:
    return {
        'id': request.id,
        'brigadeId': request.brigade_id,
        'brigadeName': request.brigade_name,
        'brigadeLocation': request.brigade_location,
        'requestType': request.request_type,
        'priority': request.priority.value,
        'waterLevel': request.water_level,
        'description': request.description,
        'coordinates': {'lat': request.latitude, 'lng': request.longitude},
        'status': request.status,
        'createdAt': request.created_at.isoformat() if request.created_at else None,
    }


def state_to_dict(state: BrigadeWaterState) -> dict:
    return {
        'brigadeId': state.brigade_id,
        'brigadeName': state.brigade_name,
        'waterLevel': state.water_level,
        'alertSent': state.alert_sent,
        'coordinates': (
            {'lat': state.latitude, 'lng': state.longitude} if state.latitude is not None else None
        ),
    }

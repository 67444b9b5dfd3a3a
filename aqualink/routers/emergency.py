from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from aqualink.db import get_db
from aqualink.dependencies import get_actor_name, get_client_ip
from aqualink.schemas import WaterLevelReport
from aqualink.services.audit_service import log_audit
from aqualink.services.emergency_dispatch_service import (
    evaluate_water_level,
    list_requests,
    request_to_dict,
    state_to_dict,
)
from aqualink.services.unit_of_work import commit_with_retry

router = APIRouter(prefix='/emergency', tags=['emergency'])


@router.post('/water-level')
def emergency_water_level(payload: WaterLevelReport, request: Request, db: Session = Depends(get_db)):
    actor = get_actor_name(request)

    def operation():
        state, emergency_request = evaluate_water_level(
            db,
            brigade_id=payload.brigade_id,
            brigade_name=payload.brigade_name,
            water_level=payload.water_level,
            coordinates=payload.coordinates.model_dump() if payload.coordinates else None,
        )
        if emergency_request is not None:
            log_audit(
                db,
                actor=actor,
                action='emergency.request',
                ip=get_client_ip(request),
                metadata={'brigade_id': state.brigade_id, 'water_level': state.water_level},
            )
        return state, emergency_request

    state, emergency_request = commit_with_retry(db, operation)
    return {
        'state': state_to_dict(state),
        'requestCreated': emergency_request is not None,
        'request': request_to_dict(emergency_request) if emergency_request is not None else None,
    }


@router.get('/requests')
def emergency_requests(brigade_id: str | None = Query(None, alias='brigadeId'), db: Session = Depends(get_db)):
    return {'requests': [request_to_dict(row) for row in list_requests(db, brigade_id=brigade_id)]}

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from aqualink.db import get_db
from aqualink.dependencies import get_actor_name, get_client_ip
from aqualink.schemas import AddWasteRequest
from aqualink.services.audit_service import log_audit
from aqualink.services.factory_waste_bin_service import (
    add_waste,
    bin_to_dict,
    entry_to_dict,
    get_history,
    get_or_create_main_bin,
    get_statistics,
    recycle_bin,
)
from aqualink.services.unit_of_work import commit_with_retry

router = APIRouter(prefix='/factory-waste-bin', tags=['factory-waste-bin'])


@router.get('')
def waste_bin_overview(db: Session = Depends(get_db)):
    main_bin = commit_with_retry(db, lambda: get_or_create_main_bin(db))
    return {'bin': bin_to_dict(main_bin), 'statistics': get_statistics(db, main_bin)}


@router.get('/statistics')
def waste_bin_statistics(db: Session = Depends(get_db)):
    main_bin = commit_with_retry(db, lambda: get_or_create_main_bin(db))
    return {'statistics': get_statistics(db, main_bin)}


@router.post('/add-waste')
def waste_bin_add(payload: AddWasteRequest, request: Request, db: Session = Depends(get_db)):
    actor = get_actor_name(request)

    def operation():
        entry = add_waste(
            db,
            source_branch=payload.source_branch,
            source_branch_id=payload.source_branch_id,
            waste_weight=payload.waste_weight,
            waste_type=payload.waste_type,
            collection_request_id=payload.collection_request_id,
            processed_by=(payload.processed_by or '').strip() or actor,
        )
        log_audit(
            db,
            actor=actor,
            action='waste_bin.add',
            ip=get_client_ip(request),
            metadata={'source_branch_id': entry.source_branch_id, 'waste_weight': str(entry.waste_weight)},
        )
        return entry

    entry = commit_with_retry(db, operation)
    main_bin = get_or_create_main_bin(db)
    return {
        'message': 'Waste added to factory bin successfully',
        'entry': entry_to_dict(entry),
        'bin': bin_to_dict(main_bin),
        'statistics': get_statistics(db, main_bin),
    }


@router.post('/recycle')
def waste_bin_recycle(request: Request, db: Session = Depends(get_db)):
    actor = get_actor_name(request)

    def operation():
        result = recycle_bin(db, actor=actor)
        log_audit(db, actor=actor, action='waste_bin.recycle', ip=get_client_ip(request), metadata=result)
        return result

    result = commit_with_retry(db, operation)
    main_bin = get_or_create_main_bin(db)
    return {
        'message': f"Waste recycled successfully. {result['recycledAmount']} kg processed.",
        'recycledAmount': result['recycledAmount'],
        'totalRecycled': result['totalRecycled'],
        'bin': bin_to_dict(main_bin),
    }


@router.get('/history')
def waste_bin_history(
    page: int = Query(1),
    limit: int = Query(50),
    branch_id: str | None = Query(None, alias='branchId'),
    waste_type: str | None = Query(None, alias='wasteType'),
    start_date: date | None = Query(None, alias='startDate'),
    end_date: date | None = Query(None, alias='endDate'),
    db: Session = Depends(get_db),
):
    return get_history(
        db,
        page=page,
        limit=limit,
        branch_id=branch_id,
        waste_type=waste_type,
        start_date=start_date,
        end_date=end_date,
    )

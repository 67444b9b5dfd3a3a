from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from aqualink.db import get_db
from aqualink.services.report_service import branch_report, monthly_summary, recent_activities

router = APIRouter(prefix='/reports', tags=['reports'])


@router.get('/branches/{branch_id}')
def reports_branch(branch_id: str, db: Session = Depends(get_db)):
    return {'report': branch_report(db, branch_id=branch_id).to_dict()}


@router.get('/activities')
def reports_activities(db: Session = Depends(get_db)):
    return {'activities': recent_activities(db)}


@router.get('/monthly')
def reports_monthly(year: int | None = None, db: Session = Depends(get_db)):
    months = monthly_summary(db, year=year)
    return {
        'year': months[0].year,
        'monthlyData': [month.to_dict() for month in months],
        'summary': {
            'totalProduction': sum(month.production for month in months),
            'totalRecycling': round(float(sum((month.recycling for month in months), Decimal('0')))),
            'totalOrders': sum(month.orders for month in months),
        },
    }

from __future__ import annotations

import logging
import math
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aqualink.config import settings
from aqualink.models import FactoryWasteBin, FactoryWasteEntry
from aqualink.services.errors import NothingToRecycle, ValidationFailed

logger = logging.getLogger(__name__)

MAIN_BIN_ID = 1
ADD_WASTE_FIELDS = ('sourceBranch', 'sourceBranchId', 'wasteWeight', 'wasteType', 'collectionRequestId')

# Weights are stored as Numeric(12, 2).
WEIGHT_STEP = Decimal('0.01')
MAX_WEIGHT = Decimal('9999999999.99')

FILL_BANDS: list[tuple[int, str]] = [
    (80, 'Critical'),
    (60, 'High'),
    (40, 'Medium'),
    (20, 'Low'),
]


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def fill_percentage(current_level: Decimal | float, capacity: Decimal | float) -> float:
    if not capacity or capacity <= 0:
        return 0.0
    return round(float(current_level) / float(capacity) * 100, 1)


def fill_band(percentage: float) -> str:
    for threshold, label in FILL_BANDS:
        if percentage >= threshold:
            return label
    return 'Empty'


def _get_main_bin(db: Session) -> FactoryWasteBin | None:
    return db.execute(select(FactoryWasteBin).where(FactoryWasteBin.id == MAIN_BIN_ID)).scalar_one_or_none()


def get_or_create_main_bin(db: Session) -> FactoryWasteBin:
    row = _get_main_bin(db)
    if row:
        return row

    try:
        with db.begin_nested():
            row = FactoryWasteBin(
                id=MAIN_BIN_ID,
                current_level=Decimal('0'),
                capacity=Decimal(str(settings.factory_bin_capacity_kg)),
                total_recycled=Decimal('0'),
            )
            db.add(row)
            db.flush()
    except IntegrityError:
        logger.info('Main factory bin was created by a concurrent request, re-reading it')
        row = _get_main_bin(db)
        if row is None:
            raise
    return row


def add_waste(
    db: Session,
    *,
    source_branch: str | None,
    source_branch_id: str | None,
    waste_weight,
    waste_type: str | None,
    collection_request_id: str | None,
    processed_by: str,
) -> FactoryWasteEntry:
    values = (source_branch, source_branch_id, waste_weight, waste_type, collection_request_id)
    missing = [label for label, value in zip(ADD_WASTE_FIELDS, values) if value is None or str(value).strip() == '']
    if missing:
        raise ValidationFailed(f"Missing required fields: {', '.join(missing)}", [f'{label} is required' for label in missing])

    try:
        weight = Decimal(str(waste_weight))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationFailed('Invalid wasteWeight', ['wasteWeight must be a number']) from exc
    if not weight.is_finite() or weight <= 0:
        raise ValidationFailed('Invalid wasteWeight', ['wasteWeight must be greater than zero'])
    if weight > MAX_WEIGHT:
        raise ValidationFailed('Invalid wasteWeight', [f'wasteWeight must not exceed {MAX_WEIGHT}'])
    weight = weight.quantize(WEIGHT_STEP, rounding=ROUND_HALF_UP)
    if weight <= 0:
        raise ValidationFailed('Invalid wasteWeight', [f'wasteWeight must be at least {WEIGHT_STEP}'])

    main_bin = get_or_create_main_bin(db)
    if Decimal(main_bin.current_level) + weight > MAX_WEIGHT:
        raise ValidationFailed('Invalid wasteWeight', ['The factory bin cannot hold this much waste, recycle it first'])
    entry = FactoryWasteEntry(
        bin_id=main_bin.id,
        source_branch=str(source_branch).strip(),
        source_branch_id=str(source_branch_id).strip(),
        waste_weight=weight,
        waste_type=str(waste_type).strip(),
        collection_request_id=str(collection_request_id).strip(),
        processed_by=processed_by,
    )
    db.add(entry)
    main_bin.current_level = Decimal(main_bin.current_level) + weight
    main_bin.updated_at = _now()
    db.flush()
    logger.info('Added %s kg of %s waste from %s to the factory bin', weight, entry.waste_type, entry.source_branch)
    return entry


def recycle_bin(db: Session, *, actor: str) -> dict:
    main_bin = get_or_create_main_bin(db)
    recycled_amount = Decimal(main_bin.current_level)
    if recycled_amount <= 0:
        raise NothingToRecycle()

    main_bin.total_recycled = Decimal(main_bin.total_recycled) + recycled_amount
    main_bin.current_level = Decimal('0')
    main_bin.last_recycled_at = _now()
    main_bin.last_recycled_by = actor
    main_bin.updated_at = _now()
    db.flush()
    logger.info('Factory bin recycled by %s: %s kg, %s kg in total', actor, recycled_amount, main_bin.total_recycled)
    return {
        'recycledAmount': float(recycled_amount),
        'totalRecycled': float(main_bin.total_recycled),
        'recycledBy': actor,
    }


def get_statistics(db: Session, main_bin: FactoryWasteBin) -> dict:
    by_type = db.execute(
        select(FactoryWasteEntry.waste_type, func.sum(FactoryWasteEntry.waste_weight))
        .where(FactoryWasteEntry.bin_id == main_bin.id)
        .group_by(FactoryWasteEntry.waste_type)
    ).all()
    by_branch = db.execute(
        select(FactoryWasteEntry.source_branch_id, func.sum(FactoryWasteEntry.waste_weight))
        .where(FactoryWasteEntry.bin_id == main_bin.id)
        .group_by(FactoryWasteEntry.source_branch_id)
    ).all()
    total_entries = db.execute(
        select(func.count(FactoryWasteEntry.id)).where(FactoryWasteEntry.bin_id == main_bin.id)
    ).scalar_one()

    percentage = fill_percentage(main_bin.current_level, main_bin.capacity)
    return {
        'currentLevel': float(main_bin.current_level),
        'capacity': float(main_bin.capacity),
        'fillPercentage': percentage,
        'fillBand': fill_band(percentage),
        'totalRecycled': float(main_bin.total_recycled),
        'totalEntries': int(total_entries),
        'wasteByType': {waste_type: float(total or 0) for waste_type, total in by_type},
        'wasteByBranch': {branch_id: float(total or 0) for branch_id, total in by_branch},
    }


def bin_to_dict(main_bin: FactoryWasteBin) -> dict:
    return {
        'id': main_bin.id,
        'currentLevel': float(main_bin.current_level),
        'capacity': float(main_bin.capacity),
        'totalRecycled': float(main_bin.total_recycled),
        'lastRecycledAt': main_bin.last_recycled_at.isoformat() if main_bin.last_recycled_at else None,
        'lastRecycledBy': main_bin.last_recycled_by,
    }


def entry_to_dict(entry: FactoryWasteEntry) -> dict:
    return {
        'id': entry.id,
        'sourceBranch': entry.source_branch,
        'sourceBranchId': entry.source_branch_id,
        'wasteWeight': float(entry.waste_weight),
        'wasteType': entry.waste_type,
        'collectionRequestId': entry.collection_request_id,
        'processedBy': entry.processed_by,
        'date': entry.date.isoformat() if entry.date else None,
    }


def get_history(
    db: Session,
    *,
    page: int = 1,
    limit: int = 50,
    branch_id: str | None = None,
    waste_type: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict:
    if page < 1:
        raise ValidationFailed('Invalid page', ['page must be at least 1'])
    if limit < 1 or limit > 500:
        raise ValidationFailed('Invalid limit', ['limit must be between 1 and 500'])

    main_bin = get_or_create_main_bin(db)
    conditions = [FactoryWasteEntry.bin_id == main_bin.id]
    if branch_id:
        conditions.append(FactoryWasteEntry.source_branch_id == branch_id)
    if waste_type:
        conditions.append(FactoryWasteEntry.waste_type == waste_type)
    if start_date:
        conditions.append(FactoryWasteEntry.date >= datetime.combine(start_date, time.min, tzinfo=timezone.utc))
    if end_date:
        conditions.append(
            FactoryWasteEntry.date < datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
        )

    total_count = db.execute(select(func.count(FactoryWasteEntry.id)).where(and_(*conditions))).scalar_one()
    rows = db.execute(
        select(FactoryWasteEntry)
        .where(and_(*conditions))
        .order_by(FactoryWasteEntry.date.desc(), FactoryWasteEntry.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()
    return {
        'history': [entry_to_dict(row) for row in rows],
        'totalCount': int(total_count),
        'currentPage': page,
        'totalPages': math.ceil(total_count / limit),
    }

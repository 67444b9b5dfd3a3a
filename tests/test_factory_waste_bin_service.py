from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select
from support import make_session_factory

from aqualink.models import FactoryWasteBin
from aqualink.services.errors import NothingToRecycle, ValidationFailed
from aqualink.services.factory_waste_bin_service import (
    MAIN_BIN_ID,
    add_waste,
    fill_band,
    get_history,
    get_or_create_main_bin,
    get_statistics,
    recycle_bin,
)


def _waste(db, weight, *, branch_id='BR001', waste_type='Plastic', request_id='REQ-1'):
    return add_waste(
        db,
        source_branch='Colombo Branch',
        source_branch_id=branch_id,
        waste_weight=weight,
        waste_type=waste_type,
        collection_request_id=request_id,
        processed_by='Factory Manager',
    )


class FactoryWasteBinServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()

    def tearDown(self) -> None:
        self.db.close()

    def test_main_bin_is_a_singleton(self) -> None:
        first = get_or_create_main_bin(self.db)
        second = get_or_create_main_bin(self.db)

        self.assertIs(first, second)
        self.assertEqual(first.id, MAIN_BIN_ID)
        self.assertEqual(first.capacity, Decimal('1000'))
        self.assertEqual(len(self.db.execute(select(FactoryWasteBin)).scalars().all()), 1)

    def test_add_then_recycle_moves_everything_to_total(self) -> None:
        _waste(self.db, 12.5)
        _waste(self.db, '7.5')

        result = recycle_bin(self.db, actor='Factory Manager')

        main_bin = get_or_create_main_bin(self.db)
        self.assertEqual(result['recycledAmount'], 20.0)
        self.assertEqual(result['totalRecycled'], 20.0)
        self.assertEqual(main_bin.current_level, Decimal('0'))
        self.assertEqual(main_bin.last_recycled_by, 'Factory Manager')

    def test_second_recycle_fails_and_keeps_total(self) -> None:
        _waste(self.db, 5)
        recycle_bin(self.db, actor='Factory Manager')

        with self.assertRaises(NothingToRecycle) as ctx:
            recycle_bin(self.db, actor='Factory Manager')

        self.assertEqual(ctx.exception.message, 'No waste to recycle. The bin is already empty.')
        self.assertEqual(get_or_create_main_bin(self.db).total_recycled, Decimal('5'))

    def test_add_waste_reports_missing_fields(self) -> None:
        with self.assertRaises(ValidationFailed) as ctx:
            add_waste(
                self.db,
                source_branch='Colombo Branch',
                source_branch_id='',
                waste_weight=None,
                waste_type='Plastic',
                collection_request_id=None,
                processed_by='Factory Manager',
            )
        self.assertEqual(
            ctx.exception.message,
            'Missing required fields: sourceBranchId, wasteWeight, collectionRequestId',
        )

    def test_add_waste_rejects_non_positive_weight(self) -> None:
        for weight in (0, -3, 'heavy'):
            with self.assertRaises(ValidationFailed):
                _waste(self.db, weight)
        self.assertEqual(get_or_create_main_bin(self.db).current_level, Decimal('0'))

    def test_add_waste_rounds_to_stored_precision(self) -> None:
        entry = _waste(self.db, '12.345')
        self.assertEqual(entry.waste_weight, Decimal('12.35'))
        self.assertEqual(get_or_create_main_bin(self.db).current_level, Decimal('12.35'))

        with self.assertRaises(ValidationFailed) as ctx:
            _waste(self.db, 0.004)
        self.assertEqual(ctx.exception.errors, ['wasteWeight must be at least 0.01'])

    def test_add_waste_rejects_weights_beyond_column_range(self) -> None:
        with self.assertRaises(ValidationFailed) as ctx:
            _waste(self.db, 1e12)
        self.assertEqual(ctx.exception.errors, ['wasteWeight must not exceed 9999999999.99'])

        _waste(self.db, '9999999999.99')
        with self.assertRaises(ValidationFailed):
            _waste(self.db, 1)
        self.assertEqual(get_or_create_main_bin(self.db).current_level, Decimal('9999999999.99'))

    def test_statistics_group_by_type_and_branch(self) -> None:
        _waste(self.db, 300, branch_id='BR001', waste_type='Plastic')
        _waste(self.db, 200, branch_id='BR002', waste_type='Plastic')
        _waste(self.db, 150, branch_id='BR002', waste_type='Glass')

        stats = get_statistics(self.db, get_or_create_main_bin(self.db))

        self.assertEqual(stats['currentLevel'], 650.0)
        self.assertEqual(stats['fillPercentage'], 65.0)
        self.assertEqual(stats['fillBand'], 'High')
        self.assertEqual(stats['totalEntries'], 3)
        self.assertEqual(stats['wasteByType'], {'Plastic': 500.0, 'Glass': 150.0})
        self.assertEqual(stats['wasteByBranch'], {'BR001': 300.0, 'BR002': 350.0})

    def test_fill_bands(self) -> None:
        self.assertEqual(fill_band(95.0), 'Critical')
        self.assertEqual(fill_band(80.0), 'Critical')
        self.assertEqual(fill_band(60.0), 'High')
        self.assertEqual(fill_band(45.5), 'Medium')
        self.assertEqual(fill_band(20.0), 'Low')
        self.assertEqual(fill_band(19.9), 'Empty')

    def test_history_is_paginated_newest_first(self) -> None:
        for index in range(5):
            _waste(self.db, index + 1, request_id=f'REQ-{index}')

        page = get_history(self.db, page=2, limit=2)

        self.assertEqual(page['totalCount'], 5)
        self.assertEqual(page['totalPages'], 3)
        self.assertEqual(page['currentPage'], 2)
        self.assertEqual([row['collectionRequestId'] for row in page['history']], ['REQ-2', 'REQ-1'])

    def test_history_filters(self) -> None:
        old = _waste(self.db, 4, branch_id='BR002', waste_type='Glass')
        old.date = datetime.now(tz=timezone.utc) - timedelta(days=10)
        _waste(self.db, 6, branch_id='BR002', waste_type='Plastic')
        _waste(self.db, 8, branch_id='BR001', waste_type='Glass')
        self.db.flush()
        today = datetime.now(tz=timezone.utc).date()

        by_branch = get_history(self.db, branch_id='BR002')
        recent_glass = get_history(self.db, waste_type='Glass', start_date=today - timedelta(days=1))
        until_today = get_history(self.db, end_date=today)

        self.assertEqual(by_branch['totalCount'], 2)
        self.assertEqual([row['wasteWeight'] for row in recent_glass['history']], [8.0])
        self.assertEqual(until_today['totalCount'], 3)

    def test_history_rejects_bad_paging(self) -> None:
        with self.assertRaises(ValidationFailed):
            get_history(self.db, page=0)
        with self.assertRaises(ValidationFailed):
            get_history(self.db, limit=501)


if __name__ == '__main__':
    unittest.main()

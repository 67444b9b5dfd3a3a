from __future__ import annotations

import unittest
from datetime import datetime, timezone
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy import select
from support import add_item, make_session_factory

from aqualink.db import get_db
from aqualink.main import app
from aqualink.models import AuditLog, BranchOrder, OrderStatus
from aqualink.services.errors import ConcurrencyConflict


def order_payload(**overrides) -> dict:
    payload = {
        'branchName': 'Galle Branch',
        'branchLocation': 'Galle Fort',
        'items': [{'itemName': 'Filter-A', 'quantity': 5}],
        'expectedDeliveryDate': '2026-11-01',
        'contactPerson': 'Nimal Perera',
        'contactPhone': '0771234567',
    }
    payload.update(overrides)
    return payload


class ApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.SessionLocal = make_session_factory()

        def override_get_db():
            with self.SessionLocal() as db:
                yield db

        app.dependency_overrides[get_db] = override_get_db
        self.client = TestClient(app)
        with self.SessionLocal() as db:
            add_item(db, 'Filter-A', 10, min_stock_level=5, unit='cartridges', max_stock_level=60)
            add_item(db, 'Caps', 100, min_stock_level=20)
            db.commit()

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def _quantity(self, name: str) -> int:
        return self.client.get(f'/inventory/{name}').json()['item']['quantity']


class OrderApiTests(ApiTestCase):
    def test_submit_returns_created_order(self) -> None:
        response = self.client.post('/orders', json=order_payload(priority='High', notes='  Gate 2  '))

        self.assertEqual(response.status_code, 201)
        order = response.json()['order']
        self.assertEqual(order['status'], 'Pending')
        self.assertEqual(order['priority'], 'High')
        self.assertEqual(order['branchId'], 'BR003')
        self.assertEqual(order['notes'], 'Gate 2')
        self.assertEqual(order['items'], [{'itemName': 'Filter-A', 'quantity': 5}])

    def test_submit_over_stock_is_a_validation_error(self) -> None:
        response = self.client.post('/orders', json=order_payload(items=[{'itemName': 'Filter-A', 'quantity': 12}]))

        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body['message'], 'Validation failed')
        self.assertIn('Insufficient stock for Filter-A. Available: 10, Requested: 12', body['errors'])

    def test_malformed_body_uses_same_envelope(self) -> None:
        response = self.client.post('/orders', json=order_payload(items=['Filter-A']))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['message'], 'Validation failed')
        self.assertTrue(response.json()['errors'])

    def test_accept_ship_deliver_flow(self) -> None:
        order_id = self.client.post('/orders', json=order_payload()).json()['order']['id']

        accepted = self.client.put(f'/orders/{order_id}/accept', headers={'X-Actor-Name': 'Kamal Silva'})
        self.assertEqual(accepted.status_code, 200)
        self.assertEqual(accepted.json()['message'], 'Order accepted successfully')
        self.assertEqual(accepted.json()['order']['acceptedBy'], 'Kamal Silva')
        self.assertEqual(accepted.json()['inventoryUpdates'][0]['newFactoryQuantity'], 5)

        again = self.client.put(f'/orders/{order_id}/accept')
        self.assertEqual(again.status_code, 400)
        self.assertEqual(
            again.json()['message'],
            'Order cannot be accepted. Current status: Accepted. Required status: Pending',
        )

        shipped = self.client.put(f'/orders/{order_id}/status', json={'status': 'Shipped'})
        self.assertEqual(shipped.status_code, 200)
        self.assertIsNone(shipped.json()['inventoryUpdates'])
        self.assertEqual(self._quantity('Filter-A'), 5)

        delivered = self.client.put(f'/orders/{order_id}/status', json={'status': 'Delivered'})
        self.assertEqual(delivered.status_code, 200)
        self.assertEqual(delivered.json()['inventoryUpdates'][0]['newTotalQuantity'], 5)

        branch = self.client.get('/branch-inventory/BR003').json()
        self.assertEqual(branch['items'][0]['name'], 'Filter-A')
        self.assertEqual(branch['items'][0]['unit'], 'cartridges')

        with self.SessionLocal() as db:
            actions = db.execute(select(AuditLog.action).order_by(AuditLog.id)).scalars().all()
            actors = set(db.execute(select(AuditLog.actor)).scalars().all())
        self.assertEqual(actions, ['order.submit', 'order.accept', 'order.status', 'order.status'])
        self.assertEqual(actors, {'Factory Manager', 'Kamal Silva'})

    def test_ship_shortage_returns_insufficient_stock(self) -> None:
        order_id = self.client.post('/orders', json=order_payload()).json()['order']['id']
        self.client.post('/inventory/Filter-A/stock', json={'delta': -8})

        response = self.client.put(f'/orders/{order_id}/status', json={'status': 'Shipped'})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['message'], 'Insufficient stock for Filter-A. Available: 2, Requested: 5')

    def test_mirrored_branch_order_follows_status(self) -> None:
        with self.SessionLocal() as db:
            branch_order = BranchOrder(branch_id='BR003', branch_name='Galle Branch', status=OrderStatus.PENDING)
            db.add(branch_order)
            db.commit()
            branch_order_id = branch_order.id

        order_id = self.client.post(
            '/orders',
            json=order_payload(source='Branch Request', originalBranchOrderId=branch_order_id),
        ).json()['order']['id']
        self.client.put(f'/orders/{order_id}/accept')

        with self.SessionLocal() as db:
            self.assertEqual(db.get(BranchOrder, branch_order_id).status, OrderStatus.ACCEPTED)

    def test_unknown_order_is_404(self) -> None:
        response = self.client.get('/orders/999')

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {'message': 'Order not found'})

    def test_pending_and_stats(self) -> None:
        self.client.post('/orders', json=order_payload(priority='Low'))
        urgent = self.client.post('/orders', json=order_payload(priority='Urgent')).json()['order']['id']

        pending = self.client.get('/orders/pending').json()['orders']
        stats = self.client.get('/orders/stats').json()['stats']

        self.assertEqual(pending[0]['id'], urgent)
        self.assertEqual(stats['totalOrders'], 2)
        self.assertEqual(stats['urgentOrders'], 1)

    def test_delete_order(self) -> None:
        order_id = self.client.post('/orders', json=order_payload()).json()['order']['id']

        response = self.client.delete(f'/orders/{order_id}')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['order']['id'], order_id)
        self.assertEqual(self.client.get(f'/orders/{order_id}').status_code, 404)


class InventoryApiTests(ApiTestCase):
    def test_create_list_adjust_delete(self) -> None:
        created = self.client.post('/inventory', json={'name': '5L Can', 'quantity': 40, 'minStockLevel': 10, 'price': 350})
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.json()['item']['status'], 'In Stock')

        names = [item['name'] for item in self.client.get('/inventory').json()['items']]
        self.assertEqual(names, ['5L Can', 'Caps', 'Filter-A'])

        adjusted = self.client.post('/inventory/5L Can/stock', json={'delta': -35})
        self.assertEqual(adjusted.json()['inventoryUpdate']['status'], 'Low Stock')

        self.assertEqual(self.client.delete('/inventory/5L Can').status_code, 200)
        self.assertEqual(self.client.get('/inventory/5L Can').status_code, 404)

    def test_item_on_open_order_cannot_be_deleted(self) -> None:
        self.client.post('/orders', json=order_payload())

        response = self.client.delete('/inventory/Filter-A')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(self._quantity('Filter-A'), 10)

    def test_update_and_stats(self) -> None:
        updated = self.client.put('/inventory/Caps', json={'minStockLevel': 150, 'maxStockLevel': 400})
        self.assertEqual(updated.json()['item']['status'], 'Low Stock')

        stats = self.client.get('/inventory/stats').json()['stats']
        self.assertEqual(stats['totalItems'], 2)
        self.assertEqual(stats['lowStockItems'], 1)

    def test_init_only_adds_missing_items(self) -> None:
        response = self.client.post('/inventory/init')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['skipped'], 1)
        self.assertEqual(self._quantity('Filter-A'), 10)

    def test_sync_to_branch_and_sync_all(self) -> None:
        response = self.client.post('/inventory/sync-to-branch', json={'itemName': 'Filter-A', 'branchId': 'BR001'})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body['created'])
        self.assertEqual(body['item']['quantity'], 0)
        self.assertEqual(body['item']['unit'], 'cartridges')
        self.assertEqual(body['item']['branchName'], 'Colombo Branch')

        missing = self.client.post('/inventory/sync-to-branch', json={'itemName': 'Ghost', 'branchId': 'BR001'})
        self.assertEqual(missing.status_code, 404)

        result = self.client.post('/inventory/sync-all-to-branches').json()['sync']
        self.assertEqual(result, {'branches': 3, 'products': 2, 'created': 5, 'updated': 1})
        items = self.client.get('/branch-inventory/BR002').json()['items']
        self.assertEqual([item['name'] for item in items], ['Caps', 'Filter-A'])

    def test_concurrency_conflict_maps_to_409(self) -> None:
        with patch('aqualink.routers.inventory.commit_with_retry', side_effect=ConcurrencyConflict('changed')):
            response = self.client.post('/inventory/Caps/stock', json={'delta': 1})

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json(), {'message': 'changed'})


class FactoryWasteBinApiTests(ApiTestCase):
    def _add(self, weight, **overrides):
        payload = {
            'sourceBranch': 'Colombo Branch',
            'sourceBranchId': 'BR001',
            'wasteWeight': weight,
            'wasteType': 'Plastic',
            'collectionRequestId': 'REQ-1',
        }
        payload.update(overrides)
        return self.client.post('/factory-waste-bin/add-waste', json=payload)

    def test_add_recycle_and_history(self) -> None:
        self.assertEqual(self._add(30).status_code, 200)
        added = self._add(20, wasteType='Glass')
        self.assertEqual(added.json()['entry']['processedBy'], 'Factory Manager')
        self.assertEqual(added.json()['statistics']['currentLevel'], 50.0)

        recycled = self.client.post('/factory-waste-bin/recycle', headers={'X-Actor-Name': 'Plant Lead'})
        self.assertEqual(recycled.status_code, 200)
        self.assertEqual(recycled.json()['recycledAmount'], 50.0)
        self.assertEqual(recycled.json()['bin']['lastRecycledBy'], 'Plant Lead')

        empty = self.client.post('/factory-waste-bin/recycle')
        self.assertEqual(empty.status_code, 400)
        self.assertEqual(empty.json()['message'], 'No waste to recycle. The bin is already empty.')

        overview = self.client.get('/factory-waste-bin').json()
        self.assertEqual(overview['bin']['totalRecycled'], 50.0)
        self.assertEqual(overview['statistics']['fillBand'], 'Empty')

        history = self.client.get('/factory-waste-bin/history', params={'wasteType': 'Glass'}).json()
        self.assertEqual(history['totalCount'], 1)
        self.assertEqual(history['totalPages'], 1)

    def test_add_waste_validation(self) -> None:
        response = self._add(0)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['message'], 'Invalid wasteWeight')

        missing = self._add(5, sourceBranchId=None)
        self.assertEqual(missing.json()['message'], 'Missing required fields: sourceBranchId')

    def test_history_limit_bounds(self) -> None:
        self.assertEqual(self.client.get('/factory-waste-bin/history', params={'limit': 0}).status_code, 400)


class EmergencyAndReportApiTests(ApiTestCase):
    def test_low_water_level_creates_single_request(self) -> None:
        body = {'brigadeId': 'FB-07', 'brigadeName': 'Borella Unit', 'waterLevel': 30, 'coordinates': {'lat': 6.91, 'lng': 79.87}}

        first = self.client.post('/emergency/water-level', json=body).json()
        second = self.client.post('/emergency/water-level', json={**body, 'waterLevel': 25}).json()

        self.assertTrue(first['requestCreated'])
        self.assertEqual(first['request']['priority'], 'Critical')
        self.assertEqual(first['request']['coordinates'], {'lat': 6.91, 'lng': 79.87})
        self.assertFalse(second['requestCreated'])
        requests = self.client.get('/emergency/requests', params={'brigadeId': 'FB-07'}).json()['requests']
        self.assertEqual(len(requests), 1)

    def test_branch_report_and_activities(self) -> None:
        order_id = self.client.post('/orders', json=order_payload()).json()['order']['id']
        self.client.put(f'/orders/{order_id}/status', json={'status': 'Shipped'})
        self.client.put(f'/orders/{order_id}/status', json={'status': 'Delivered'})

        report = self.client.get('/reports/branches/BR003').json()['report']
        activities = self.client.get('/reports/activities').json()['activities']

        self.assertEqual(report['totalQuantity'], 5)
        self.assertEqual(report['deliveredOrders'], 1)
        self.assertEqual(report['utilisationPercentage'], round(5 / 60 * 100, 1))
        self.assertTrue(any(activity['type'] == 'order' for activity in activities))

    def test_monthly_report_counts_this_months_delivery(self) -> None:
        order_id = self.client.post('/orders', json=order_payload()).json()['order']['id']
        self.client.put(f'/orders/{order_id}/status', json={'status': 'Shipped'})
        self.client.put(f'/orders/{order_id}/status', json={'status': 'Delivered'})
        now = datetime.now(tz=timezone.utc)

        body = self.client.get('/reports/monthly', params={'year': now.year}).json()

        self.assertEqual(body['year'], now.year)
        self.assertEqual(len(body['monthlyData']), 12)
        self.assertEqual(body['monthlyData'][now.month - 1]['production'], 5)
        self.assertEqual(body['summary'], {'totalProduction': 5, 'totalRecycling': 0, 'totalOrders': 1})
        self.assertEqual(self.client.get('/reports/monthly', params={'year': 0}).status_code, 400)

    def test_unexpected_errors_are_hidden(self) -> None:
        client = TestClient(app, raise_server_exceptions=False)
        with patch('aqualink.routers.reports.recent_activities', side_effect=RuntimeError('db exploded')):
            with self.assertLogs('aqualink.errors', level='ERROR'):
                response = client.get('/reports/activities')

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {'message': 'Internal server error'})


if __name__ == '__main__':
    unittest.main()

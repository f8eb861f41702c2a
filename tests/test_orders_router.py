from __future__ import annotations

import unittest
from decimal import Decimal

from fastapi.testclient import TestClient

from reseller_orders.db import get_db
from reseller_orders.main import app
from reseller_orders.models import OrderStatus
from tests.db_support import add_supplier, add_variant, make_session


class OrdersRouterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        add_supplier(self.db, 1, 'Supplier A')
        add_supplier(self.db, 2, 'Supplier B')
        add_variant(
            self.db,
            10,
            'X',
            costs={1: Decimal('100000'), 2: Decimal('120000')},
            pct_ctv='1.1',
            pct_khach='1.3',
            pct_promo='0.1',
        )
        self.db.commit()

        def _override():
            yield self.db

        app.dependency_overrides[get_db] = _override
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self.db.close()

    def test_calculate_price(self) -> None:
        response = self.client.post(
            '/api/calculate-price',
            json={'san_pham_name': 'X', 'id_order': 'MAVC123', 'order_date': '2024-06-01'},
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['price'], 132000)
        self.assertEqual(body['resellPrice'], 132000)
        self.assertEqual(body['customerPrice'], 172000)
        self.assertEqual(body['days'], 30)
        self.assertEqual(body['order_expired'], '2024-06-30')

    def test_calculate_price_errors(self) -> None:
        missing = self.client.post('/api/calculate-price', json={'id_order': 'MAVC1'})
        self.assertEqual(missing.status_code, 400)
        self.assertEqual(missing.json()['detail'], 'Missing product name')

        unknown = self.client.post('/api/calculate-price', json={'san_pham_name': 'Nope'})
        self.assertEqual(unknown.status_code, 404)

    def test_order_lifecycle_over_http(self) -> None:
        created = self.client.post('/api/orders', json={'id_product': 'X', 'id_order': 'MAVL55', 'customer': 'Lan'})
        self.assertEqual(created.status_code, 201)
        order_id = created.json()['id']
        self.assertEqual(created.json()['status'], OrderStatus.UNPAID.value)

        paid = self.client.put(f'/api/orders/{order_id}', json={'status': OrderStatus.PAID.value})
        self.assertEqual(paid.status_code, 200)
        self.assertTrue(paid.json()['check_flag'])
        self.assertEqual(paid.json()['warnings'], [])

        deleted = self.client.request('DELETE', f'/api/orders/{order_id}', json={'can_hoan': 1000})
        self.assertEqual(deleted.status_code, 200)
        self.assertTrue(deleted.json()['success'])
        self.assertEqual(deleted.json()['movedTo'], 'canceled')

        missing = self.client.put(f'/api/orders/{order_id}', json={'note': 'gone'})
        self.assertEqual(missing.status_code, 404)

        refunded = self.client.patch('/api/orders/canceled/1/refund')
        self.assertEqual(refunded.status_code, 200)
        self.assertEqual(refunded.json()['status'], OrderStatus.REFUNDED.value)

    def test_bad_transition_is_rejected(self) -> None:
        created = self.client.post('/api/orders', json={'id_product': 'X', 'cost': 1000, 'price': 2000})
        order_id = created.json()['id']

        response = self.client.put(f'/api/orders/{order_id}', json={'status': OrderStatus.REFUNDED.value})
        self.assertEqual(response.status_code, 400)

    def test_delete_unpaid_order_without_body(self) -> None:
        created = self.client.post('/api/orders', json={'id_product': 'X', 'cost': 1000, 'price': 2000})
        order_id = created.json()['id']

        response = self.client.delete(f'/api/orders/{order_id}')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['movedTo'], 'deleted')


if __name__ == '__main__':
    unittest.main()

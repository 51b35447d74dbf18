from __future__ import annotations

import unittest
from unittest.mock import patch

from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.db import get_db
from app.dependencies import get_client_ip
from app.main import app
from app.models import Item
from app.services.email_service import MockMailer
from app.services.provider_factory import get_mailer, get_push_sender
from app.services.push_service import MockPushSender
from tests.support import make_session_factory

SECRET = 'test-secret'


class ActionRouterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = make_session_factory()
        self.push = MockPushSender()
        self.mailer = MockMailer()

        def _override_db():
            db = self.session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = _override_db
        app.dependency_overrides[get_push_sender] = lambda: self.push
        app.dependency_overrides[get_mailer] = lambda: self.mailer
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self.session_factory.kw['bind'].dispose()

    def call(self, action: str, data: dict | None = None, secret: str = SECRET) -> dict:
        response = self.client.post('/', json={'action': action, 'data': data or {}, 'secret': secret})
        self.assertEqual(response.status_code, 200)
        return response.json()

    def test_wrong_secret_is_unauthorized(self) -> None:
        body = self.call('GET_ITEMS', secret='nope')

        self.assertEqual(body, {'status': 'error', 'error': 'Unauthorized'})

    def test_unknown_action(self) -> None:
        body = self.call('LAUNCH_ROCKET')

        self.assertEqual(body, {'status': 'error', 'error': 'Invalid action'})

    def test_deduct_flow_through_envelope(self) -> None:
        self.call('ADD_EMPLOYEE', {'name': 'Boss', 'pin': '9999', 'role': 'admin', 'email': 'boss@example.com'})
        self.call('UPDATE_LOW_STOCK_THRESHOLD', {'threshold': 5})
        added = self.call('ADD_ITEM', {'name': 'Tape', 'category': 'Supplies', 'stock': 10})
        self.assertEqual(added['data']['id'], 'ITM00001')
        task = self.call('ADD_TASK', {'title': 'Pack', 'items': [{'item_id': 'ITM00001', 'required_qty': 3}]})
        self.assertEqual(task['data'], {'task_id': 'TASK00001'})

        body = self.call(
            'DEDUCT_ITEM',
            {'employeeId': 'EMP00001', 'employeeName': 'Boss', 'items': [{'itemId': 'ITM00001', 'qty': 6}]},
        )

        self.assertEqual(body['status'], 'success')
        self.assertEqual(body['data']['stock'], {'ITM00001': 4})
        self.assertEqual(body['data']['low_stock'], [{'id': 'ITM00001', 'name': 'Tape', 'stock': 4}])
        self.assertEqual(body['data']['undistributed'], {'ITM00001': 3})
        alerts = [m for m in self.mailer.sent if m['subject'].startswith('Low Stock Alert')]
        self.assertEqual([m['to'] for m in alerts], [['boss@example.com']])

        history = self.call('GET_HISTORY', {'employeeId': 'EMP00001'})['data']
        self.assertEqual([(h['action'], h['qty']) for h in history], [('deduct', 6)])

        tasks = self.call('GET_TASKS')['data']
        self.assertEqual(tasks[0]['items'][0]['required_qty'], 0)

        with self.session_factory() as db:
            self.assertEqual(db.get(Item, 'ITM00001').stock, 4)

    def test_validation_error_becomes_error_envelope(self) -> None:
        body = self.call('DEDUCT_ITEM', {'employeeId': 'EMP00001', 'employeeName': 'Boss', 'items': []})

        self.assertEqual(body['status'], 'error')
        self.assertIn('items', body['error'])

    def test_not_found_rolls_back(self) -> None:
        self.call('ADD_ITEM', {'name': 'Tape', 'stock': 3})

        body = self.call(
            'DEDUCT_ITEM',
            {
                'employeeId': 'EMP00001',
                'employeeName': 'Boss',
                'items': [{'itemId': 'ITM00001', 'qty': 1}, {'itemId': 'ITM00404', 'qty': 1}],
            },
        )

        self.assertEqual(body['status'], 'error')
        self.assertIn('ITM00404', body['error'])
        items = self.call('GET_ITEMS')['data']
        self.assertEqual(items[0]['stock'], 3)

    def test_failed_commit_sends_no_low_stock_alert(self) -> None:
        self.call('ADD_EMPLOYEE', {'name': 'Boss', 'pin': '9999', 'role': 'admin', 'email': 'boss@example.com'})
        self.call('ADD_ITEM', {'name': 'Tape', 'stock': 1})
        client = TestClient(app, raise_server_exceptions=False)

        with patch.object(Session, 'commit', side_effect=OperationalError('COMMIT', {}, Exception('disk full'))):
            response = client.post(
                '/',
                json={
                    'action': 'DEDUCT_ITEM',
                    'data': {'employeeId': 'EMP00001', 'employeeName': 'Boss', 'items': [{'itemId': 'ITM00001', 'qty': 1}]},
                    'secret': SECRET,
                },
            )

        self.assertEqual(response.status_code, 500)
        self.assertEqual(self.mailer.sent, [])
        self.assertEqual(self.call('GET_ITEMS')['data'][0]['stock'], 1)

    def test_client_ip_prefers_proxy_headers(self) -> None:
        def _request(headers: dict) -> Request:
            raw = [(k.lower().encode(), v.encode()) for k, v in headers.items()]
            return Request({'type': 'http', 'headers': raw, 'client': ('10.0.0.9', 5000)})

        self.assertEqual(get_client_ip(_request({'X-Forwarded-For': '203.0.113.7, 10.0.0.1'})), '203.0.113.7')
        self.assertEqual(get_client_ip(_request({'X-Real-IP': '198.51.100.4'})), '198.51.100.4')
        self.assertEqual(get_client_ip(_request({})), '10.0.0.9')

    def test_threshold_defaults_to_one(self) -> None:
        body = self.call('GET_LOW_STOCK_THRESHOLD')

        self.assertEqual(body['data'], {'threshold': 1})

    def test_login_and_task_acknowledgement(self) -> None:
        self.call('ADD_EMPLOYEE', {'name': 'Ana', 'pin': '1234'})
        self.call('ADD_TASK', {'title': 'Count shelves'})

        login = self.call('LOGIN', {'name': 'Ana', 'pin': '1234'})
        self.assertEqual(login['data']['id'], 'EMP00001')

        self.call('UPDATE_TASK_READ_STATUS', {'taskId': 'TASK00001', 'employeeId': 'EMP00001'})
        self.call('UPDATE_TASK_CHECK_STATUS', {'taskId': 'TASK00001', 'employeeId': 'EMP00001'})
        task = self.call('GET_TASKS', {'employeeId': 'EMP00001'})['data'][0]
        self.assertEqual(task['read_by_list'], ['EMP00001'])
        self.assertEqual(task['checked_by_count'], 1)

        bad = self.call('LOGIN', {'name': 'Ana', 'pin': '0000'})
        self.assertEqual(bad, {'status': 'error', 'error': 'Invalid name or PIN'})

    def test_cors_headers_and_preflight(self) -> None:
        response = self.client.options('/')
        self.assertEqual(response.status_code, 204)
        self.assertEqual(response.headers['access-control-allow-origin'], '*')

        response = self.client.get('/health')
        self.assertEqual(response.json(), {'status': 'ok'})
        self.assertEqual(response.headers['access-control-allow-methods'], 'POST')


if __name__ == '__main__':
    unittest.main()

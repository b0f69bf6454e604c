from __future__ import annotations

import asyncio
import unittest
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

from sqlalchemy.exc import OperationalError
from starlette.datastructures import FormData

from packhouse.auth import Principal, Role
from packhouse.routers.sales import sales_submit
from packhouse.services.sales_service import SoldKeyCache


def _request() -> SimpleNamespace:
    form = FormData(
        [
            ('transaction_key', 'tx-juan'),
            ('client_name', 'Juan Pérez'),
            ('sold_on', '2025-01-03'),
            ('line_quantity', '300'),
            ('line_label', 'EXTRA'),
            ('line_unit_price', '10'),
            ('action', 'save'),
        ]
    )

    async def read_form():
        return form

    return SimpleNamespace(form=read_form, headers={}, client=SimpleNamespace(host='10.0.0.5'))


def _record() -> SimpleNamespace:
    return SimpleNamespace(transaction_key='tx-juan', note_number=17, client_name='Juan Pérez', total=Decimal('3000.00'))


def _submit(db, sold_keys: SoldKeyCache):
    principal = Principal(id=3, username='secretaria', role=Role.SECRETARY, active=True)
    return asyncio.run(sales_submit(_request(), principal=principal, db=db, sold_keys=sold_keys, _=None))


class SalesSubmitTests(unittest.TestCase):
    @patch('packhouse.routers.sales.log_audit')
    @patch('packhouse.routers.sales.create_sale')
    def test_key_is_cached_after_commit(self, create_sale_mock, log_audit_mock) -> None:
        create_sale_mock.return_value = _record()
        sold_keys = SoldKeyCache()
        db = SimpleNamespace(committed=False)

        def commit() -> None:
            self.assertNotIn('tx-juan', sold_keys)
            db.committed = True

        db.commit = commit

        response = _submit(db, sold_keys)

        self.assertTrue(db.committed)
        self.assertIn('tx-juan', sold_keys)
        self.assertEqual(response.status_code, 303)
        self.assertEqual(response.headers['location'], '/sales?note=17')
        log_audit_mock.assert_called_once()

    @patch('packhouse.routers.sales.log_audit')
    @patch('packhouse.routers.sales.create_sale')
    def test_failed_commit_leaves_key_sellable(self, create_sale_mock, _log_audit_mock) -> None:
        create_sale_mock.return_value = _record()
        sold_keys = SoldKeyCache()

        def commit() -> None:
            raise OperationalError('COMMIT', {}, Exception('connection lost'))

        db = SimpleNamespace(commit=commit)

        with self.assertRaises(OperationalError):
            _submit(db, sold_keys)

        self.assertNotIn('tx-juan', sold_keys)


if __name__ == '__main__':
    unittest.main()

from __future__ import annotations

import unittest
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

from packhouse.errors import DuplicateClient, EmptySubmission, InvalidLine, InvalidPhone, MissingSelection
from packhouse.services.intake_service import NEW_CLIENT_CHOICE, IntakeLineInput, create_intake, list_recent_intake_groups


class IntakeServiceTests(unittest.TestCase):
    @patch('packhouse.services.intake_service._insert_intake_rows')
    @patch('packhouse.services.intake_service._known_clients')
    def test_rows_share_one_transaction_key(self, known_clients_mock, insert_mock) -> None:
        known_clients_mock.return_value = ['Juan Pérez']

        result = create_intake(
            SimpleNamespace(),
            client_choice='Juan Pérez',
            lines=[
                IntakeLineInput(product_type='Negro Tamaño', quantity='500'),
                IntakeLineInput(product_type='Desecho', quantity='200'),
                IntakeLineInput(product_type='', quantity=''),
            ],
        )

        rows = insert_mock.call_args.args[1]
        self.assertEqual(len(rows), 2)
        self.assertEqual({row.transaction_key for row in rows}, {result.transaction_key})
        self.assertEqual(result.total_quantity, Decimal('700.00'))
        self.assertTrue(all(row.client_phone is None for row in rows))

    @patch('packhouse.services.intake_service._insert_intake_rows')
    @patch('packhouse.services.intake_service._known_clients')
    def test_new_client_keeps_phone(self, known_clients_mock, insert_mock) -> None:
        known_clients_mock.return_value = ['Juan Pérez']

        result = create_intake(
            SimpleNamespace(),
            client_choice=NEW_CLIENT_CHOICE,
            new_client_name='  María López ',
            phone='4521234567',
            lines=[IntakeLineInput(product_type='Loca Proceso', quantity='12.5')],
        )

        rows = insert_mock.call_args.args[1]
        self.assertEqual(result.client_name, 'María López')
        self.assertEqual(rows[0].client_phone, '4521234567')
        self.assertEqual(rows[0].quantity, Decimal('12.50'))

    @patch('packhouse.services.intake_service._insert_intake_rows')
    @patch('packhouse.services.intake_service._known_clients')
    def test_new_client_validation(self, known_clients_mock, insert_mock) -> None:
        known_clients_mock.return_value = ['Juan Pérez']
        lines = [IntakeLineInput(product_type='Desecho', quantity='10')]

        with self.assertRaises(DuplicateClient):
            create_intake(SimpleNamespace(), client_choice=NEW_CLIENT_CHOICE, new_client_name='juan pérez', lines=lines)
        with self.assertRaises(InvalidPhone):
            create_intake(
                SimpleNamespace(),
                client_choice=NEW_CLIENT_CHOICE,
                new_client_name='Pedro',
                phone='452-123',
                lines=lines,
            )
        with self.assertRaises(MissingSelection):
            create_intake(SimpleNamespace(), client_choice=NEW_CLIENT_CHOICE, new_client_name=' ', lines=lines)
        insert_mock.assert_not_called()

    @patch('packhouse.services.intake_service._insert_intake_rows')
    @patch('packhouse.services.intake_service._known_clients')
    def test_line_validation(self, known_clients_mock, insert_mock) -> None:
        known_clients_mock.return_value = []

        with self.assertRaises(EmptySubmission):
            create_intake(SimpleNamespace(), client_choice='Ana', lines=[IntakeLineInput('Desecho', '')])
        with self.assertRaises(InvalidLine):
            create_intake(SimpleNamespace(), client_choice='Ana', lines=[IntakeLineInput('Hass', '10')])
        with self.assertRaises(InvalidLine):
            create_intake(SimpleNamespace(), client_choice='Ana', lines=[IntakeLineInput('Desecho', '0')])
        insert_mock.assert_not_called()


def _intake_row(row_id: int, key: str, hour: int, quantity: str) -> SimpleNamespace:
    return SimpleNamespace(
        id=row_id,
        transaction_key=key,
        client_name='Ana' if key == 'tx-old' else 'Luis',
        client_phone=None,
        received_at=datetime(2025, 1, 2, hour),
        quantity=Decimal(quantity),
    )


class RecentIntakeGroupTests(unittest.TestCase):
    @patch('packhouse.services.intake_service._intake_rows_for_keys')
    @patch('packhouse.services.intake_service._recent_intake_rows')
    def test_full_window_reloads_cut_groups_whole(self, recent_mock, by_keys_mock) -> None:
        recent_mock.return_value = [
            _intake_row(3, 'tx-new', 12, '400'),
            _intake_row(2, 'tx-old', 9, '300'),
        ]
        by_keys_mock.return_value = [
            _intake_row(3, 'tx-new', 12, '400'),
            _intake_row(2, 'tx-old', 9, '300'),
            _intake_row(1, 'tx-old', 8, '250'),
        ]

        groups = list_recent_intake_groups(SimpleNamespace(), row_limit=2)

        by_keys_mock.assert_called_once()
        self.assertEqual(by_keys_mock.call_args.args[1], {'tx-new', 'tx-old'})
        self.assertEqual(list(groups), ['tx-new', 'tx-old'])
        self.assertEqual(groups['tx-old'].total_quantity, Decimal('550'))
        self.assertEqual(len(groups['tx-old'].rows), 2)

    @patch('packhouse.services.intake_service._intake_rows_for_keys')
    @patch('packhouse.services.intake_service._recent_intake_rows')
    def test_short_window_is_used_as_is(self, recent_mock, by_keys_mock) -> None:
        recent_mock.return_value = [_intake_row(1, 'tx-old', 8, '250')]

        groups = list_recent_intake_groups(SimpleNamespace(), row_limit=500)

        by_keys_mock.assert_not_called()
        self.assertEqual(groups['tx-old'].total_quantity, Decimal('250'))


if __name__ == '__main__':
    unittest.main()

from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

from packhouse.services.grouping_service import group_grading_rows, group_intake_rows


def _intake(row_id: int, key: str | None, client: str, kg: str, received_at: datetime, phone: str | None = None):
    return SimpleNamespace(
        id=row_id,
        transaction_key=key,
        client_name=client,
        product_type='Negro Tamaño',
        quantity=Decimal(kg),
        client_phone=phone,
        received_at=received_at,
    )


def _ts(day: int, hour: int = 8) -> datetime:
    return datetime(2025, 1, day, hour, tzinfo=timezone.utc)


class GroupingServiceTests(unittest.TestCase):
    def test_group_total_is_sum_of_members(self) -> None:
        rows = [
            _intake(1, 'tx-a', 'Ana', '100.25', _ts(1)),
            _intake(2, 'tx-a', 'Ana', '200.50', _ts(1)),
            _intake(3, 'tx-b', 'Beto', '50', _ts(2)),
        ]

        groups = group_intake_rows(rows)

        self.assertEqual(groups['tx-a'].total_quantity, Decimal('300.75'))
        self.assertEqual(groups['tx-b'].total_quantity, Decimal('50'))
        self.assertEqual(len(groups['tx-a'].rows), 2)

    def test_display_timestamp_is_latest_member(self) -> None:
        rows = [
            _intake(1, 'tx-a', 'Ana', '1', _ts(3, 7)),
            _intake(2, 'tx-a', 'Ana', '1', _ts(3, 11)),
            _intake(3, 'tx-a', 'Ana', '1', _ts(3, 9)),
        ]

        self.assertEqual(group_intake_rows(rows)['tx-a'].timestamp, _ts(3, 11))

    def test_rows_without_key_stay_singletons(self) -> None:
        rows = [
            _intake(7, None, 'Ana', '10', _ts(1)),
            _intake(8, None, 'Ana', '20', _ts(1)),
        ]

        groups = group_intake_rows(rows)

        self.assertEqual(set(groups), {'single-7', 'single-8'})
        self.assertIsNone(groups['single-7'].transaction_key)

    def test_groups_ordered_newest_first_with_stable_ties(self) -> None:
        rows = [
            _intake(1, 'tx-old', 'Ana', '1', _ts(1)),
            _intake(2, 'tx-tie-1', 'Beto', '1', _ts(5)),
            _intake(3, 'tx-tie-2', 'Caro', '1', _ts(5)),
            _intake(4, 'tx-new', 'Dani', '1', _ts(9)),
        ]

        self.assertEqual(list(group_intake_rows(rows)), ['tx-new', 'tx-tie-1', 'tx-tie-2', 'tx-old'])

    def test_first_seen_client_name_and_phone(self) -> None:
        rows = [
            _intake(1, 'tx-a', 'Ana', '1', _ts(1)),
            _intake(2, 'tx-a', 'Ana María', '1', _ts(1), phone='4520000000'),
        ]

        group = group_intake_rows(rows)['tx-a']

        self.assertEqual(group.client_name, 'Ana')
        self.assertEqual(group.client_phone, '4520000000')

    def test_grading_groups_sum_boxes_and_kg(self) -> None:
        rows = [
            SimpleNamespace(id=1, transaction_key='tx', client_name='Ana', graded_on=date(2025, 1, 2), size_category='EXTRA', box_count=10, quantity=Decimal('300')),
            SimpleNamespace(id=2, transaction_key='tx', client_name='Ana', graded_on=date(2025, 1, 4), size_category='1RA', box_count=None, quantity='200'),
        ]

        group = group_grading_rows(rows)['tx']

        self.assertEqual(group.total_boxes, 10)
        self.assertEqual(group.total_quantity, Decimal('500'))
        self.assertEqual(group.timestamp, date(2025, 1, 4))
        self.assertEqual(group.total_tonnes, Decimal('0.50'))
        self.assertEqual(group.lines_by_category[1], ('1RA', 0, Decimal('200')))


if __name__ == '__main__':
    unittest.main()

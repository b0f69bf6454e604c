from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from decimal import Decimal
from io import BytesIO
from types import SimpleNamespace

from openpyxl import load_workbook

from packhouse.services.export_service import (
    GRADING_COLUMNS,
    INTAKE_COLUMNS,
    SALES_COLUMNS,
    SALES_DETAIL_COLUMNS,
    ExportData,
    build_workbook,
    fetch_all_pages,
    workbook_bytes,
)


def _sale(sale_id: int, note_number: int, items: list[dict]) -> SimpleNamespace:
    return SimpleNamespace(
        id=sale_id,
        note_number=note_number,
        sold_on=date(2025, 1, 3),
        transaction_key=f'tx-{sale_id}',
        client_name='Juan Pérez',
        address=None,
        city='Uruapan',
        plates=None,
        total=Decimal('3000.00'),
        created_at=datetime(2025, 1, 3, 15, 30, tzinfo=timezone.utc),
        line_items=items,
    )


class FetchAllPagesTests(unittest.TestCase):
    def test_stops_on_short_page(self) -> None:
        data = list(range(2500))
        calls: list[tuple[int, int]] = []

        def load_page(offset: int, limit: int):
            calls.append((offset, limit))
            return data[offset : offset + limit]

        rows = fetch_all_pages(load_page, page_size=1000)

        self.assertEqual(rows, data)
        self.assertEqual(calls, [(0, 1000), (1000, 1000), (2000, 1000)])

    def test_exact_multiple_needs_one_empty_page(self) -> None:
        data = list(range(2000))
        calls: list[int] = []

        def load_page(offset: int, limit: int):
            calls.append(offset)
            return data[offset : offset + limit]

        self.assertEqual(len(fetch_all_pages(load_page, page_size=1000)), 2000)
        self.assertEqual(calls, [0, 1000, 2000])

    def test_rejects_non_positive_page_size(self) -> None:
        with self.assertRaises(ValueError):
            fetch_all_pages(lambda _offset, _limit: [], page_size=0)


class WorkbookTests(unittest.TestCase):
    def setUp(self) -> None:
        self.data = ExportData(
            sales=[
                _sale(1, 1, [{'quantity': '300', 'label': 'EXTRA', 'unit_price': '10', 'amount': '3000.00'}]),
                _sale(
                    2,
                    2,
                    [
                        {'quantity': '100', 'label': '1RA', 'unit_price': '8'},
                        {'quantity': '50', 'label': '2DA', 'unit_price': '4'},
                    ],
                ),
            ],
            intake=[
                SimpleNamespace(
                    id=10,
                    received_at=datetime(2025, 1, 1, 9, tzinfo=timezone.utc),
                    client_name='Juan Pérez',
                    quantity=Decimal('500'),
                    product_type='Negro Tamaño',
                    client_phone=None,
                    transaction_key='tx-1',
                )
            ],
            grading=[],
        )

    def test_sheets_and_headers(self) -> None:
        workbook = build_workbook(self.data)

        self.assertEqual(workbook.sheetnames, ['Sales', 'Sales_Detail', 'Intake', 'Grading'])
        for title, columns in (
            ('Sales', SALES_COLUMNS),
            ('Sales_Detail', SALES_DETAIL_COLUMNS),
            ('Intake', INTAKE_COLUMNS),
            ('Grading', GRADING_COLUMNS),
        ):
            header = [cell.value for cell in workbook[title][1]]
            self.assertEqual(header, columns)

    def test_detail_has_one_row_per_line_item(self) -> None:
        workbook = build_workbook(self.data)

        self.assertEqual(workbook['Sales'].max_row, 3)
        self.assertEqual(workbook['Sales_Detail'].max_row, 4)
        self.assertEqual(workbook['Grading'].max_row, 1)
        detail = [[cell.value for cell in row] for row in workbook['Sales_Detail'].iter_rows(min_row=2)]
        self.assertEqual([row[0] for row in detail], [1, 2, 2])
        self.assertEqual(detail[2][3], '2DA')

    def test_bytes_reload_with_naive_timestamps(self) -> None:
        reloaded = load_workbook(BytesIO(workbook_bytes(self.data)))

        created_at = reloaded['Sales'].cell(row=2, column=SALES_COLUMNS.index('created_at') + 1).value
        self.assertEqual(created_at, datetime(2025, 1, 3, 15, 30))


if __name__ == '__main__':
    unittest.main()

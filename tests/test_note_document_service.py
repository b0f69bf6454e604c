from __future__ import annotations

import unittest
from datetime import date
from types import SimpleNamespace

from packhouse.services.note_document_service import note_filename, render_sales_note


def _page_count(content: bytes) -> int:
    return content.count(b'/Type /Page') - content.count(b'/Type /Pages')


def _record(line_count: int) -> SimpleNamespace:
    return SimpleNamespace(
        note_number=42,
        sold_on=date(2025, 1, 3),
        client_name='Juan Pérez & Hijos',
        address=None,
        city='Uruapan',
        plates='',
        line_items=[
            {'quantity': '300', 'label': 'EXTRA', 'unit_price': '10', 'amount': '3000.00'}
            for _ in range(line_count)
        ],
        total=0,
    )


class SalesNoteTests(unittest.TestCase):
    def test_filename_uses_padded_folio(self) -> None:
        self.assertEqual(note_filename(_record(1)), 'nota_venta_0042.pdf')

    def test_renders_pdf(self) -> None:
        content = render_sales_note(_record(2))

        self.assertTrue(content.startswith(b'%PDF'))

    def test_long_notes_span_pages(self) -> None:
        short = render_sales_note(_record(1))
        long = render_sales_note(_record(120))

        self.assertGreater(_page_count(long), _page_count(short))


if __name__ == '__main__':
    unittest.main()

from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from decimal import Decimal

from packhouse.services.formatting import folio, kilos, money, short_date, tonnes


class FormattingTests(unittest.TestCase):
    def test_money(self) -> None:
        self.assertEqual(money(Decimal('1234.5')), '$1,234.50')
        self.assertEqual(money('3000'), '$3,000.00')
        self.assertEqual(money(None), '$0.00')
        self.assertEqual(money(Decimal('-2')), '-$2.00')

    def test_folio_pads_to_four_digits(self) -> None:
        self.assertEqual(folio(7), '0007')
        self.assertEqual(folio(12345), '12345')

    def test_short_date(self) -> None:
        self.assertEqual(short_date(date(2025, 1, 3)), '03/01/2025')
        self.assertEqual(short_date(datetime(2025, 1, 3, 23, 59, tzinfo=timezone.utc)), '03/01/2025')
        self.assertEqual(short_date('2025-01-03T00:00:00+00:00'), '03/01/2025')
        self.assertEqual(short_date(None), '')

    def test_weights(self) -> None:
        self.assertEqual(kilos(Decimal('1500')), '1,500.00')
        self.assertEqual(tonnes(Decimal('1500')), '1.50')


if __name__ == '__main__':
    unittest.main()

from __future__ import annotations

import unittest
from datetime import date, datetime, timezone

from app.models import HistoryAction
from app.services.deduction_service import deduct_items
from app.services.history_service import delete_history, list_history, record_history, update_history
from tests.support import DbTestCase


class HistoryServiceTests(DbTestCase):
    def _record(self, employee_id: str, when: datetime, qty: int = 1):
        record = record_history(
            self.db,
            employee_id=employee_id,
            employee_name=employee_id,
            item_id='ITM00001',
            item_name='Tape',
            qty=qty,
            action=HistoryAction.DEDUCT,
        )
        record.timestamp = when
        self.db.flush()
        return record

    def test_deductions_are_listed_newest_first(self) -> None:
        self.make_item('ITM00001', stock=100)
        self.make_item('ITM00002', stock=100)
        before = len(list_history(self.db))

        for item_id, qty in [('ITM00001', 1), ('ITM00002', 2), ('ITM00001', 3)]:
            deduct_items(self.db, employee_id='EMP00002', employee_name='Ana', lines=[(item_id, qty)])

        records = list_history(self.db)
        self.assertEqual(len(records) - before, 3)
        self.assertEqual([(r.item_id, r.qty) for r in records], [('ITM00001', 3), ('ITM00002', 2), ('ITM00001', 1)])

    def test_filter_by_employee(self) -> None:
        self._record('EMP00001', datetime(2025, 6, 1, 10, tzinfo=timezone.utc))
        self._record('EMP00002', datetime(2025, 6, 1, 11, tzinfo=timezone.utc))

        records = list_history(self.db, employee_id='EMP00002')

        self.assertEqual([r.employee_id for r in records], ['EMP00002'])

    def test_date_range_includes_whole_end_day(self) -> None:
        self._record('EMP00001', datetime(2025, 5, 31, 23, 59, tzinfo=timezone.utc), qty=1)
        self._record('EMP00001', datetime(2025, 6, 1, 0, 0, tzinfo=timezone.utc), qty=2)
        self._record('EMP00001', datetime(2025, 6, 2, 23, 30, tzinfo=timezone.utc), qty=3)
        self._record('EMP00001', datetime(2025, 6, 3, 0, 0, tzinfo=timezone.utc), qty=4)

        records = list_history(self.db, start_date=date(2025, 6, 1), end_date=date(2025, 6, 2))

        self.assertEqual([r.qty for r in records], [3, 2])

    def test_limit_keeps_newest(self) -> None:
        for qty in range(1, 6):
            self._record('EMP00001', datetime(2025, 6, 1, 9, qty, tzinfo=timezone.utc), qty=qty)

        records = list_history(self.db, limit=2)

        self.assertEqual([r.qty for r in records], [5, 4])

    def test_update_history_fields(self) -> None:
        record = self._record('EMP00001', datetime(2025, 6, 1, tzinfo=timezone.utc), qty=4)

        update_history(self.db, record_id=record.id, qty=2, action='restock', admin_note=' miscount ')

        self.assertEqual(record.qty, 2)
        self.assertEqual(record.action, HistoryAction.RESTOCK)
        self.assertEqual(record.admin_note, 'miscount')

    def test_update_history_rejects_unknown_action(self) -> None:
        record = self._record('EMP00001', datetime(2025, 6, 1, tzinfo=timezone.utc))

        with self.assertRaises(ValueError):
            update_history(self.db, record_id=record.id, action='steal')

    def test_delete_history(self) -> None:
        record = self._record('EMP00001', datetime(2025, 6, 1, tzinfo=timezone.utc))

        delete_history(self.db, record_id=record.id)

        self.assertEqual(list_history(self.db), [])
        with self.assertRaises(ValueError):
            delete_history(self.db, record_id=record.id)


if __name__ == '__main__':
    unittest.main()

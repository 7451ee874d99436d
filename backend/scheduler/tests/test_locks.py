from __future__ import annotations

import threading

from django.test import SimpleTestCase

from scheduler.locks import _local_lock, advisory_lock_id


class AdvisoryLockIdTests(SimpleTestCase):
    def test_stable_signed_64_bit(self):
        lock_id = advisory_lock_id("run_due_scheduled_triggers")
        self.assertEqual(lock_id, advisory_lock_id("run_due_scheduled_triggers"))
        self.assertTrue(-(2**63) <= lock_id < 2**63)
        self.assertNotEqual(lock_id, advisory_lock_id("something_else"))


class LocalLockTests(SimpleTestCase):
    def test_second_holder_is_refused_until_release(self):
        """The fallback lock never blocks; a concurrent attempt just reports failure."""
        results = []

        with _local_lock("test-dispatch") as first:
            worker = threading.Thread(target=lambda: results.append(_try("test-dispatch")))
            worker.start()
            worker.join()

        self.assertTrue(first)
        self.assertEqual(results, [False])
        self.assertTrue(_try("test-dispatch"))

    def test_distinct_names_do_not_contend(self):
        with _local_lock("a") as first, _local_lock("b") as second:
            self.assertTrue(first)
            self.assertTrue(second)


def _try(name: str) -> bool:
    with _local_lock(name) as acquired:
        return acquired

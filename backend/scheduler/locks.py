"""Named, non-blocking mutual exclusion for dispatch passes."""

from __future__ import annotations

import hashlib
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from django.db import DatabaseError, connection

logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()
_process_locks: dict[str, threading.Lock] = {}


def advisory_lock_id(name: str) -> int:
    """Map a lock name onto the signed 64-bit key space used by Postgres advisory locks."""
    digest = hashlib.blake2b(name.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


def _process_lock(name: str) -> threading.Lock:
    with _registry_lock:
        lock = _process_locks.get(name)
        if lock is None:
            lock = threading.Lock()
            _process_locks[name] = lock
        return lock


@contextmanager
def _advisory_lock(name: str) -> Iterator[bool]:
    lock_id = advisory_lock_id(name)
    with connection.cursor() as cursor:
        cursor.execute("SELECT pg_try_advisory_lock(%s)", [lock_id])
        acquired = bool(cursor.fetchone()[0])
    try:
        yield acquired
    finally:
        if acquired:
            try:
                with connection.cursor() as cursor:
                    cursor.execute("SELECT pg_advisory_unlock(%s)", [lock_id])
            except DatabaseError:
                # A dead session has already dropped the lock.
                logger.warning("Failed to release advisory lock %s", name, exc_info=True)


@contextmanager
def _local_lock(name: str) -> Iterator[bool]:
    lock = _process_lock(name)
    acquired = lock.acquire(blocking=False)
    try:
        yield acquired
    finally:
        if acquired:
            lock.release()


@contextmanager
def try_named_lock(name: str) -> Iterator[bool]:
    """
    Try once to take the lock called `name`; yield whether it was acquired.

    On Postgres this is a session-level advisory lock, so it is released when
    the holding connection goes away. Other databases fall back to a
    process-wide lock, which only serializes dispatch within one process.
    """
    if connection.vendor == "postgresql":
        with _advisory_lock(name) as acquired:
            yield acquired
    else:
        with _local_lock(name) as acquired:
            yield acquired

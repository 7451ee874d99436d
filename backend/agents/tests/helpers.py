from __future__ import annotations

import threading
import time
from typing import Any

from django.db import OperationalError, close_old_connections

from agents.lifecycle import provision_agent
from agents.models import AgentStatus, Job, WorkerRegistration
from agents.queue import enqueue_job
from catalog.models import Project, TestDefinition, TestKind


def make_agent(project: Project, *, name: str = "perf-1", capacity: int = 1, online: bool = True, **kwargs):
    agent, raw_key = provision_agent(project=project, name=name, agent_id=name, capacity=capacity, **kwargs)
    if online:
        WorkerRegistration.objects.filter(pk=agent.pk).update(status=AgentStatus.ONLINE)
        agent.status = AgentStatus.ONLINE
    return agent, raw_key


def make_job(project: Project, run_id: str, *, kind: str = TestKind.PERFORMANCE, **kwargs) -> Job:
    test = TestDefinition.objects.create(project=project, name=f"test {run_id}", kind=kind, test_plan="<plan/>")
    return enqueue_job(test=test, run_id=run_id, **kwargs)


def run_parallel(callables: list) -> tuple[list[Any], list[BaseException]]:
    """Run each callable on its own thread, released together by a barrier; collect results and errors."""
    barrier = threading.Barrier(len(callables))
    results: list[Any] = [None] * len(callables)
    errors: list[BaseException] = []
    lock = threading.Lock()

    def worker(index: int, fn):
        try:
            close_old_connections()
            barrier.wait(timeout=5)
            for attempt in range(4):
                try:
                    results[index] = fn()
                    return
                except OperationalError as exc:
                    # SQLite raises transient lock errors under concurrent writes.
                    if "database table is locked" not in str(exc).lower() or attempt == 3:
                        raise
                    close_old_connections()
                    time.sleep(0.05 * (attempt + 1))
        except BaseException as exc:  # noqa: BLE001
            with lock:
                errors.append(exc)
        finally:
            close_old_connections()

    threads = [threading.Thread(target=worker, args=(idx, fn)) for idx, fn in enumerate(callables)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)
    return results, errors

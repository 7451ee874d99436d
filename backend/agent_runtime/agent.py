"""
The long-running worker process.

One `Agent` registers with the control plane, heartbeats on its own thread,
and polls for work on the calling thread while it has a free capacity unit.
Claimed jobs run on short-lived execution threads through `JobExecutor`.
"""

from __future__ import annotations

import logging
import os
import platform
import socket
import threading
from typing import Any

from .client import AgentApiClient
from .config import AgentConfig
from .errors import AgentApiError, ToolNotFoundError
from .executor import ExecutionResult, JobExecutor
from .tooling import locate_jmeter

logger = logging.getLogger(__name__)

POLL_INTERVAL_SETTING = "agent_poll_interval_seconds"
HEARTBEAT_INTERVAL_SETTING = "agent_heartbeat_interval_seconds"

# JMeter saturates the host; never run more than one plan at a time.
MAX_CONCURRENT_EXECUTIONS = 1

_OWNED_STATUSES = ("assigned", "running")
# Answers to `start` meaning another agent or a cancel took the job away.
_LOST_JOB_STATUS_CODES = (403, 404, 409)


def system_info() -> dict[str, Any]:
    info: dict[str, Any] = {
        "hostname": socket.gethostname(),
        "platform": platform.system(),
        "os_release": platform.release(),
        "python_version": platform.python_version(),
        "cpu_count": os.cpu_count(),
    }
    try:
        info["load_average"] = [round(value, 2) for value in os.getloadavg()]
    except (AttributeError, OSError):
        info["load_average"] = None
    return info


def _positive_int(value: Any) -> int | None:
    if isinstance(value, dict):
        value = value.get("value")
    if isinstance(value, bool):
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


class Agent:
    def __init__(
        self,
        config: AgentConfig,
        *,
        client: AgentApiClient | None = None,
        executor: JobExecutor | None = None,
    ) -> None:
        self.config = config
        self.client = client or AgentApiClient(
            config.api_base_url,
            config.api_key,
            timeout=config.request_timeout,
        )
        self.executor = executor or JobExecutor(config)
        self.agent_id: str | None = config.agent_id

        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._running_jobs = 0
        self._heartbeat_thread: threading.Thread | None = None
        self._execution_threads: list[threading.Thread] = []

    @property
    def running_jobs(self) -> int:
        with self._lock:
            return self._running_jobs

    @property
    def effective_capacity(self) -> int:
        return min(self.config.capacity, MAX_CONCURRENT_EXECUTIONS)

    def has_free_capacity(self) -> bool:
        return self.running_jobs < self.effective_capacity

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Ask the poll and heartbeat loops to exit; in-flight jobs still finish."""
        if not self._stop.is_set():
            logger.info("Stop requested for agent %s", self.agent_id)
        self._stop.set()

    # Startup

    def register(self) -> dict:
        """Announce identity to the control plane. Raises `AgentApiError` when rejected."""
        registration = self.client.register(
            agent_id=self.config.agent_id,
            name=self.config.name,
            capacity=self.config.capacity,
            capabilities=list(self.config.capabilities),
            system_info=system_info(),
        )
        self.agent_id = registration.get("agent_id") or self.agent_id
        logger.info(
            "Registered as agent %s (%s), capacity %s",
            self.agent_id,
            registration.get("name"),
            registration.get("capacity"),
        )
        return registration

    def verify_tool(self) -> str | None:
        try:
            path = locate_jmeter(explicit_path=self.config.jmeter_path, jmeter_home=self.config.jmeter_home)
        except ToolNotFoundError as exc:
            logger.warning("%s Jobs will fail until it is installed.", exc)
            return None
        logger.info("Using JMeter at %s", path)
        return path

    def load_runtime_settings(self) -> None:
        poll = self._fetch_interval(POLL_INTERVAL_SETTING)
        heartbeat = self._fetch_interval(HEARTBEAT_INTERVAL_SETTING)
        self.config = self.config.with_intervals(poll_interval=poll, heartbeat_interval=heartbeat)
        logger.info(
            "Polling every %ss, heartbeat every %ss",
            self.config.poll_interval,
            self.config.heartbeat_interval,
        )

    def _fetch_interval(self, key: str) -> int | None:
        try:
            value = self.client.get_setting(key)
        except AgentApiError as exc:
            logger.warning("Could not fetch setting %s, using default: %s", key, exc)
            return None
        parsed = _positive_int(value)
        if parsed is None and value is not None:
            logger.warning("Ignoring invalid %s value %r", key, value)
        return parsed

    # Heartbeat

    def send_heartbeat(self) -> bool:
        running = self.running_jobs
        try:
            self.client.heartbeat(
                current_capacity=max(self.config.capacity - running, 0),
                max_capacity=self.config.capacity,
                running_jobs=running,
                system_info=system_info(),
            )
        except AgentApiError as exc:
            logger.warning("Heartbeat failed: %s", exc)
            return False
        logger.debug("Heartbeat sent (running_jobs=%s)", running)
        return True

    def _heartbeat_loop(self) -> None:
        while not self._stop.wait(self.config.heartbeat_interval):
            self.send_heartbeat()

    def start_heartbeat(self) -> None:
        self.send_heartbeat()
        self._heartbeat_thread = threading.Thread(target=self._heartbeat_loop, name="agent-heartbeat", daemon=True)
        self._heartbeat_thread.start()

    # Polling

    def poll_once(self) -> dict | None:
        """
        Run one poll tick: ask for work if a capacity unit is free and claim it.

        Returns the claimed job (already handed to an execution thread), or
        None when at capacity, nothing was offered, or the claim was lost.
        """
        if not self.has_free_capacity():
            logger.debug("At capacity (%s running), skipping poll", self.running_jobs)
            return None
        try:
            jobs = self.client.poll()
        except AgentApiError as exc:
            logger.warning("Poll failed: %s", exc)
            return None

        for offered in jobs:
            try:
                job = self.client.claim(offered["id"])
            except AgentApiError as exc:
                logger.warning("Claim of job %s failed: %s", offered["id"], exc)
                continue
            if job is None:
                continue
            self._launch(job)
            return job
        return None

    def _launch(self, job: dict) -> None:
        with self._lock:
            self._running_jobs += 1
        thread = threading.Thread(
            target=self.process_job,
            args=(job,),
            name=f"agent-job-{job['id']}",
            daemon=True,
        )
        self._execution_threads.append(thread)
        thread.start()

    def run(self) -> None:
        """Poll until `stop()` is called, then wait for in-flight jobs."""
        logger.info("Agent %s polling for jobs", self.agent_id)
        while not self._stop.is_set():
            self.poll_once()
            self._reap_threads()
            self._stop.wait(self.config.poll_interval)
        self.wait_for_jobs()

    def _reap_threads(self) -> None:
        self._execution_threads = [thread for thread in self._execution_threads if thread.is_alive()]

    def wait_for_jobs(self, timeout: float | None = None) -> None:
        for thread in list(self._execution_threads):
            thread.join(timeout)
        self._reap_threads()

    # Execution

    def process_job(self, job: dict) -> None:
        """
        Start, execute and report one claimed job.

        The caller has already counted the job in `running_jobs`; it is
        released here however the job ends.
        """
        job_id = job["id"]
        try:
            try:
                job = self.client.start(job_id) or job
            except AgentApiError as exc:
                if exc.status_code in _LOST_JOB_STATUS_CODES:
                    logger.warning("Job %s is no longer ours to start, abandoning it: %s", job_id, exc)
                    return
                # The job is still held; fail it so the retry policy can requeue it.
                logger.warning("Could not start job %s: %s", job_id, exc)
                self.report(job_id, ExecutionResult(status="failed", error_message=f"Could not start job: {exc}"))
                return
            logger.info("Job %s (%s) started", job_id, job.get("run_id"))
            result = self.executor.execute(job)
            self.report(job_id, result)
        except Exception:
            logger.exception("Unexpected error while processing job %s", job_id)
        finally:
            with self._lock:
                self._running_jobs = max(self._running_jobs - 1, 0)

    def still_owns(self, job_id: int) -> bool:
        try:
            current = self.client.get_job(job_id)
        except AgentApiError as exc:
            # The server refuses reports from non-holders, so go ahead and let it decide.
            logger.warning("Ownership check for job %s failed: %s", job_id, exc)
            return True
        return current.get("agent_id") == self.agent_id and current.get("status") in _OWNED_STATUSES

    def report(self, job_id: int, result: ExecutionResult) -> bool:
        if not self.still_owns(job_id):
            logger.warning("Job %s is no longer held by this agent; dropping %s result", job_id, result.status)
            return False
        try:
            self.client.report(job_id, result.as_report())
        except AgentApiError as exc:
            logger.error("Reporting job %s as %s failed: %s", job_id, result.status, exc)
            return False
        logger.info("Job %s reported as %s", job_id, result.status)
        return True

    def close(self) -> None:
        self.client.close()

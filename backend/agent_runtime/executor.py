"""Runs one performance job: scratch dir, decode plan, JMeter subprocess, parse, package artifacts."""

from __future__ import annotations

import base64
import binascii
import logging
import shutil
import subprocess
import tempfile
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO

from .config import AgentConfig
from .errors import AgentRuntimeError, PayloadDecodeError, ToolExecutionError
from .results import parse_results_log, render_report
from .tooling import locate_jmeter

logger = logging.getLogger(__name__)

PLAN_FILENAME = "test.jmx"
RESULTS_FILENAME = "results.jtl"
# Cap on how much stderr is quoted back in a failure message.
_STDERR_TAIL_CHARS = 4000


@dataclass
class ExecutionResult:
    status: str
    summary: dict = field(default_factory=dict)
    results_log_base64: str = ""
    report_base64: str = ""
    error_message: str = ""
    duration_seconds: float | None = None

    def as_report(self) -> dict:
        payload = {
            "status": self.status,
            "summary": self.summary,
            "results_log_base64": self.results_log_base64,
            "report_base64": self.report_base64,
            "duration_seconds": self.duration_seconds,
        }
        if self.error_message:
            payload["error_message"] = self.error_message
        return payload


@dataclass
class _ProcessOutput:
    returncode: int
    stdout: str
    stderr: str


def decode_test_plan(payload: dict) -> bytes:
    encoded = payload.get("test_plan_base64")
    if not encoded:
        raise PayloadDecodeError("Job payload has no test plan.")
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PayloadDecodeError("Failed to decode test plan from base64.") from exc


def property_flags(parameters: dict | None) -> list[str]:
    """Turn job parameter overrides into JMeter `-Jname=value` property flags."""
    flags = []
    for name, value in sorted((parameters or {}).items()):
        if value is None or value == "":
            continue
        flags.append(f"-J{name}={value}")
    return flags


def _pump(stream: IO[str], sink: list[str], level: int, label: str) -> None:
    for line in stream:
        sink.append(line)
        logger.log(level, "JMeter %s: %s", label, line.rstrip())


class JobExecutor:
    def __init__(
        self,
        config: AgentConfig,
        *,
        locate_tool: Callable[..., str] = locate_jmeter,
    ) -> None:
        self.config = config
        self._locate_tool = locate_tool

    def scratch_dir_for(self, job_id) -> Path:
        base = Path(self.config.work_dir) if self.config.work_dir else Path(tempfile.gettempdir())
        return base / f"perf-{job_id}"

    def execute(self, job: dict) -> ExecutionResult:
        """
        Run `job` to an outcome. Never raises for job-level problems.

        The scratch directory is removed afterwards whatever happened.
        """
        job_id = job["id"]
        payload = job.get("payload") or {}
        started = time.monotonic()
        work_dir = self.scratch_dir_for(job_id)

        try:
            work_dir.mkdir(parents=True, exist_ok=True)
            logger.info("Executing job %s in %s", job_id, work_dir)
            return self._run(job, payload, work_dir, started)
        except AgentRuntimeError as exc:
            logger.error("Job %s failed: %s", job_id, exc)
            return ExecutionResult(
                status="failed",
                error_message=str(exc),
                duration_seconds=round(time.monotonic() - started, 3),
            )
        except Exception as exc:
            logger.exception("Job %s failed unexpectedly", job_id)
            return ExecutionResult(
                status="failed",
                error_message=f"Unexpected error: {exc}",
                duration_seconds=round(time.monotonic() - started, 3),
            )
        finally:
            self._cleanup(work_dir)

    def _run(self, job: dict, payload: dict, work_dir: Path, started: float) -> ExecutionResult:
        plan_path = work_dir / PLAN_FILENAME
        plan_path.write_bytes(decode_test_plan(payload))

        jmeter = self._locate_tool(explicit_path=self.config.jmeter_path, jmeter_home=self.config.jmeter_home)
        results_path = work_dir / RESULTS_FILENAME
        parameters = payload.get("parameters") or {}
        command = [
            jmeter,
            "-n",
            "-t",
            str(plan_path),
            "-l",
            str(results_path),
            *property_flags(parameters),
        ]
        output = self._run_process(command, cwd=work_dir)
        if output.returncode != 0:
            stderr = output.stderr.strip()[-_STDERR_TAIL_CHARS:]
            raise ToolExecutionError(f"JMeter exited with code {output.returncode}. stderr: {stderr}")

        results_text = ""
        try:
            results_text = results_path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            logger.warning("Job %s: could not read result log %s", job["id"], results_path)

        summary = parse_results_log(results_text)
        execution_ms = int((time.monotonic() - started) * 1000)
        report = render_report(
            summary,
            job_id=job["id"],
            test_name=payload.get("test_name", ""),
            execution_ms=execution_ms,
            parameters=parameters,
        )
        return ExecutionResult(
            status="completed",
            summary=summary.to_dict() if summary else {},
            results_log_base64=base64.b64encode(results_text.encode("utf-8")).decode("ascii") if results_text else "",
            report_base64=base64.b64encode(report.encode("utf-8")).decode("ascii"),
            duration_seconds=round(execution_ms / 1000, 3),
        )

    def _run_process(self, command: list[str], *, cwd: Path) -> _ProcessOutput:
        logger.info("Starting JMeter: %s", " ".join(command))
        try:
            process = subprocess.Popen(
                command,
                cwd=cwd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except OSError as exc:
            raise ToolExecutionError(f"Failed to start JMeter: {exc}") from exc

        stdout: list[str] = []
        stderr: list[str] = []
        pumps = [
            threading.Thread(target=_pump, args=(process.stdout, stdout, logging.DEBUG, "stdout"), daemon=True),
            threading.Thread(target=_pump, args=(process.stderr, stderr, logging.WARNING, "stderr"), daemon=True),
        ]
        for pump in pumps:
            pump.start()

        try:
            returncode = process.wait(timeout=self.config.tool_timeout)
        except subprocess.TimeoutExpired as exc:
            process.kill()
            process.wait()
            raise ToolExecutionError(f"JMeter did not finish within {self.config.tool_timeout}s and was killed.") from exc
        finally:
            for pump in pumps:
                pump.join(timeout=5)

        logger.info("JMeter exited with code %s", returncode)
        return _ProcessOutput(returncode=returncode, stdout="".join(stdout), stderr="".join(stderr))

    def _cleanup(self, work_dir: Path) -> None:
        try:
            shutil.rmtree(work_dir)
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning("Failed to clean up work directory %s", work_dir, exc_info=True)

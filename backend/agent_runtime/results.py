"""JMeter result-log (JTL, CSV flavour) parsing and the Markdown run report."""

from __future__ import annotations

import csv
import io
import math
from dataclasses import asdict, dataclass

# A header must name one of these for the file to be treated as a result log.
_RECOGNIZED_COLUMNS = ("timestamp", "elapsed")


@dataclass(frozen=True)
class ResultSummary:
    total_requests: int = 0
    success_count: int = 0
    error_count: int = 0
    error_rate: float = 0.0
    avg_response_time: int = 0
    min_response_time: int = 0
    max_response_time: int = 0
    p90_response_time: int = 0
    p95_response_time: int = 0
    p99_response_time: int = 0
    total_bytes: int = 0

    def to_dict(self) -> dict[str, int | float]:
        return asdict(self)


@dataclass(frozen=True)
class _Columns:
    elapsed: int | None
    success: int | None
    bytes: int | None

    @classmethod
    def from_header(cls, header: list[str]) -> _Columns | None:
        names = [name.strip().lower() for name in header]
        if not any(name in _RECOGNIZED_COLUMNS for name in names):
            return None

        def index_of(name: str) -> int | None:
            return names.index(name) if name in names else None

        return cls(elapsed=index_of("elapsed"), success=index_of("success"), bytes=index_of("bytes"))


def _cell(row: list[str], index: int | None) -> str | None:
    if index is None or index >= len(row):
        return None
    return row[index].strip()


def _to_int(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return int(float(value))
    except ValueError:
        return None


def percentile(sorted_values: list[int], fraction: float) -> int:
    """Nearest-rank style: the value at index floor(n * fraction) of the ascending list."""
    if not sorted_values:
        return 0
    index = min(int(math.floor(len(sorted_values) * fraction)), len(sorted_values) - 1)
    return sorted_values[index]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def parse_results_log(text: str) -> ResultSummary | None:
    """
    Summarize a CSV result log.

    Returns None when the first line is not a recognizable header (no
    timestamp or elapsed column) or there are no data rows; callers report
    that as an empty summary. Malformed cells are skipped, never raised.
    """
    if not text or not text.strip():
        return None

    reader = csv.reader(io.StringIO(text.strip()))
    header = next(reader, None)
    if not header:
        return None
    columns = _Columns.from_header(header)
    if columns is None:
        return None

    total = 0
    successes = 0
    errors = 0
    elapsed_values: list[int] = []
    byte_values: list[int] = []

    for row in reader:
        if not row or not any(cell.strip() for cell in row):
            continue
        total += 1

        elapsed = _to_int(_cell(row, columns.elapsed))
        if elapsed is not None:
            elapsed_values.append(elapsed)

        if columns.success is not None:
            if (_cell(row, columns.success) or "").lower() == "true":
                successes += 1
            else:
                errors += 1

        size = _to_int(_cell(row, columns.bytes))
        if size is not None:
            byte_values.append(size)

    if total == 0:
        return None

    elapsed_values.sort()
    return ResultSummary(
        total_requests=total,
        success_count=successes,
        error_count=errors,
        error_rate=round(errors / total * 100, 2),
        avg_response_time=_round_half_up(sum(elapsed_values) / len(elapsed_values)) if elapsed_values else 0,
        min_response_time=elapsed_values[0] if elapsed_values else 0,
        max_response_time=elapsed_values[-1] if elapsed_values else 0,
        p90_response_time=percentile(elapsed_values, 0.90),
        p95_response_time=percentile(elapsed_values, 0.95),
        p99_response_time=percentile(elapsed_values, 0.99),
        total_bytes=sum(byte_values),
    )


def render_report(
    summary: ResultSummary | None,
    *,
    job_id: int | str,
    test_name: str = "",
    execution_ms: int,
    parameters: dict | None = None,
) -> str:
    summary = summary or ResultSummary()
    parameters = parameters or {}

    lines = [
        "# Performance Test Report",
        "",
        "## Test Summary",
        f"- **Job ID**: {job_id}",
    ]
    if test_name:
        lines.append(f"- **Test**: {test_name}")
    lines.append(f"- **Execution Time**: {execution_ms}ms")
    if parameters:
        for key in sorted(parameters):
            lines.append(f"- **{key}**: {parameters[key]}")
    else:
        lines.append("- **Parameters**: plan defaults")

    lines += [
        "",
        "## Results",
        f"- **Total Requests**: {summary.total_requests}",
        f"- **Successful**: {summary.success_count}",
        f"- **Failed**: {summary.error_count}",
        f"- **Error Rate**: {summary.error_rate}%",
        "",
        "## Response Times",
        f"- **Average**: {summary.avg_response_time}ms",
        f"- **Min**: {summary.min_response_time}ms",
        f"- **Max**: {summary.max_response_time}ms",
        f"- **90th Percentile**: {summary.p90_response_time}ms",
        f"- **95th Percentile**: {summary.p95_response_time}ms",
        f"- **99th Percentile**: {summary.p99_response_time}ms",
        "",
        "## Data Transfer",
        f"- **Total Bytes**: {summary.total_bytes}",
    ]
    return "\n".join(lines) + "\n"

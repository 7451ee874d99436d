from __future__ import annotations

from django.test import SimpleTestCase

from agent_runtime.results import ResultSummary, parse_results_log, percentile, render_report

HEADER = "timeStamp,elapsed,label,responseCode,success,bytes\n"


def _log(rows: list[tuple[int, str, int]]) -> str:
    lines = [f"1700000000000,{elapsed},Home,200,{success},{size}" for elapsed, success, size in rows]
    return HEADER + "\n".join(lines) + "\n"


class PercentileTests(SimpleTestCase):
    def test_indexes_at_floor_of_n_times_fraction(self):
        self.assertEqual(percentile([10, 20, 30, 40, 50], 0.90), 50)
        self.assertEqual(percentile([10, 20, 30, 40, 50], 0.5), 30)
        self.assertEqual(percentile(list(range(1, 101)), 0.90), 91)

    def test_empty_list_is_zero(self):
        self.assertEqual(percentile([], 0.99), 0)


class ParseResultsLogTests(SimpleTestCase):
    def test_summarizes_rows(self):
        summary = parse_results_log(
            _log([(10, "true", 100), (20, "true", 100), (30, "false", 50), (40, "true", 100), (50, "true", 100)])
        )
        assert summary is not None
        self.assertEqual(summary.total_requests, 5)
        self.assertEqual(summary.success_count, 4)
        self.assertEqual(summary.error_count, 1)
        self.assertEqual(summary.error_rate, 20.0)
        self.assertEqual(summary.avg_response_time, 30)
        self.assertEqual(summary.min_response_time, 10)
        self.assertEqual(summary.max_response_time, 50)
        self.assertEqual(summary.p90_response_time, 50)
        self.assertEqual(summary.p95_response_time, 50)
        self.assertEqual(summary.p99_response_time, 50)
        self.assertEqual(summary.total_bytes, 450)

    def test_error_rate_rounds_to_two_decimals(self):
        summary = parse_results_log(_log([(10, "false", 0), (10, "true", 0), (10, "true", 0)]))
        assert summary is not None
        self.assertEqual(summary.error_rate, 33.33)

    def test_all_successful_has_zero_error_rate(self):
        summary = parse_results_log(_log([(5, "true", 1), (7, "true", 1)]))
        assert summary is not None
        self.assertEqual(summary.error_rate, 0.0)
        self.assertEqual(summary.avg_response_time, 6)

    def test_unrecognized_header_yields_none(self):
        self.assertIsNone(parse_results_log("label,responseCode\nHome,200\n"))

    def test_header_only_yields_none(self):
        self.assertIsNone(parse_results_log(HEADER))

    def test_empty_text_yields_none(self):
        self.assertIsNone(parse_results_log(""))

    def test_quoted_cells_with_commas_do_not_shift_columns(self):
        text = HEADER + '1700000000000,15,"Checkout, step 2",200,true,42\n'
        summary = parse_results_log(text)
        assert summary is not None
        self.assertEqual(summary.total_bytes, 42)
        self.assertEqual(summary.max_response_time, 15)

    def test_without_success_column_no_errors_are_counted(self):
        summary = parse_results_log("timeStamp,elapsed\n1,10\n2,30\n")
        assert summary is not None
        self.assertEqual(summary.total_requests, 2)
        self.assertEqual(summary.error_count, 0)
        self.assertEqual(summary.error_rate, 0.0)
        self.assertEqual(summary.total_bytes, 0)

    def test_malformed_elapsed_cells_are_skipped(self):
        summary = parse_results_log("timeStamp,elapsed,success\n1,abc,true\n2,12.0,true\n")
        assert summary is not None
        self.assertEqual(summary.total_requests, 2)
        self.assertEqual(summary.min_response_time, 12)


class RenderReportTests(SimpleTestCase):
    def test_contains_statistics_and_overrides(self):
        summary = ResultSummary(total_requests=10, success_count=9, error_count=1, error_rate=10.0, p90_response_time=120)
        report = render_report(summary, job_id=7, test_name="Checkout", execution_ms=1500, parameters={"threads": 20})

        self.assertTrue(report.startswith("# Performance Test Report"))
        self.assertIn("- **Job ID**: 7", report)
        self.assertIn("- **Test**: Checkout", report)
        self.assertIn("- **threads**: 20", report)
        self.assertIn("- **Error Rate**: 10.0%", report)
        self.assertIn("- **90th Percentile**: 120ms", report)

    def test_missing_summary_renders_zeros(self):
        report = render_report(None, job_id=1, execution_ms=0)
        self.assertIn("- **Total Requests**: 0", report)
        self.assertIn("- **Parameters**: plan defaults", report)

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from unittest.mock import patch

from django.test import SimpleTestCase

from agent_runtime.errors import ToolNotFoundError
from agent_runtime.tooling import JMETER_BINARY, jmeter_candidates, locate_jmeter


def _make_executable(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n")
    path.chmod(0o755)
    return path


class LocateJmeterTests(SimpleTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.addCleanup(self._tmp.cleanup)
        # Keep real installs on the test host out of the lookup.
        patcher = patch("agent_runtime.tooling.WELL_KNOWN_JMETER_PATHS", ())
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_explicit_path_wins(self):
        explicit = _make_executable(self.root / "custom" / "jmeter")
        _make_executable(self.root / "home" / "bin" / JMETER_BINARY)

        found = locate_jmeter(explicit_path=str(explicit), jmeter_home=str(self.root / "home"))
        self.assertEqual(found, str(explicit))

    def test_jmeter_home_bin_is_used(self):
        expected = _make_executable(self.root / "home" / "bin" / JMETER_BINARY)
        self.assertEqual(locate_jmeter(jmeter_home=str(self.root / "home")), str(expected))

    def test_falls_back_to_path(self):
        with patch("agent_runtime.tooling.shutil.which", return_value="/usr/bin/jmeter") as which:
            self.assertEqual(locate_jmeter(explicit_path=str(self.root / "missing")), "/usr/bin/jmeter")
        which.assert_called_once_with(JMETER_BINARY)

    def test_not_found_raises(self):
        with patch("agent_runtime.tooling.shutil.which", return_value=None):
            with self.assertRaises(ToolNotFoundError) as ctx:
                locate_jmeter()
        self.assertIn("JMeter not found", str(ctx.exception))

    def test_non_executable_file_is_skipped(self):
        plain = self.root / "jmeter"
        plain.write_text("not executable")
        os.chmod(plain, 0o644)
        with patch("agent_runtime.tooling.shutil.which", return_value=None):
            with self.assertRaises(ToolNotFoundError):
                locate_jmeter(explicit_path=str(plain))


class CandidateOrderTests(SimpleTestCase):
    def test_order_is_explicit_then_home_then_well_known(self):
        candidates = jmeter_candidates(explicit_path="/x/jmeter", jmeter_home="/opt/jm")
        self.assertEqual(candidates[0], Path("/x/jmeter"))
        self.assertEqual(candidates[1], Path("/opt/jm") / "bin" / JMETER_BINARY)
        self.assertEqual(candidates[2], Path("/opt/apache-jmeter/bin/jmeter"))

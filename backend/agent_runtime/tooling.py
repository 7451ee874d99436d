from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from .errors import ToolNotFoundError

logger = logging.getLogger(__name__)

JMETER_BINARY = "jmeter.bat" if os.name == "nt" else "jmeter"

WELL_KNOWN_JMETER_PATHS = (
    "/opt/apache-jmeter/bin/jmeter",
    "/usr/local/apache-jmeter/bin/jmeter",
    "/usr/share/jmeter/bin/jmeter",
    "/opt/jmeter/bin/jmeter",
    "~/apache-jmeter/bin/jmeter",
)


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def jmeter_candidates(*, explicit_path: str | None = None, jmeter_home: str | None = None) -> list[Path]:
    """Install locations to try, in lookup order, before falling back to PATH."""
    candidates: list[Path] = []
    if explicit_path:
        candidates.append(Path(explicit_path).expanduser())
    if jmeter_home:
        candidates.append(Path(jmeter_home).expanduser() / "bin" / JMETER_BINARY)
    candidates.extend(Path(path).expanduser() for path in WELL_KNOWN_JMETER_PATHS)
    return candidates


def locate_jmeter(*, explicit_path: str | None = None, jmeter_home: str | None = None) -> str:
    """
    Return the JMeter executable to run.

    Checks the configured path, then `JMETER_HOME/bin`, then well-known
    install locations, then `PATH`. Raises `ToolNotFoundError` if none resolve.
    """
    if explicit_path and not _is_executable(Path(explicit_path).expanduser()):
        logger.warning("Configured JMeter path %s is not an executable file", explicit_path)
    for candidate in jmeter_candidates(explicit_path=explicit_path, jmeter_home=jmeter_home):
        if _is_executable(candidate):
            return str(candidate)

    found = shutil.which(JMETER_BINARY)
    if found:
        return found
    raise ToolNotFoundError(
        "JMeter not found. Install Apache JMeter and add it to PATH, or set JMETER_HOME or JMETER_PATH."
    )

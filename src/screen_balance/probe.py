"""Advisory lookup of running processes that the active focus session blocks."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

import psutil

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RunningApp:
    pid: int
    name: str


def _iter_processes() -> Iterable[RunningApp]:
    for proc in psutil.process_iter(["pid", "name"]):
        try:
            name = proc.info.get("name")
        except (psutil.Error, ProcessLookupError):
            continue
        if name:
            yield RunningApp(pid=proc.info["pid"], name=name)


def _comparable(name: str) -> str:
    lowered = name.strip().lower()
    if lowered.endswith(".exe"):
        lowered = lowered[: -len(".exe")]
    return lowered


def find_blocked_processes(
    is_blocked: Callable[[str], bool],
    blocked_names: Iterable[str],
    processes: Optional[Iterable[RunningApp]] = None,
) -> list[RunningApp]:
    """Return running processes whose name matches a blocked app.

    Process names are matched case-insensitively and without an ``.exe``
    suffix; the match is then confirmed against ``is_blocked`` with the
    configured app name so only an active session reports anything.
    """
    wanted = {_comparable(name): name for name in blocked_names}
    if not wanted:
        return []
    matches: list[RunningApp] = []
    for proc in processes if processes is not None else _iter_processes():
        app_name = wanted.get(_comparable(proc.name))
        if app_name is not None and is_blocked(app_name):
            matches.append(proc)
    logger.debug("Found %d running blocked processes.", len(matches))
    return matches

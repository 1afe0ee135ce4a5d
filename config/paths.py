# config/paths.py
"""
Centralized path management for showrec.

Design goals
- One place that knows where recordings and logs live
- Honors these env vars:
    SHOWREC_OUTPUT_ROOT (overrides the document's outputDirectory)
    SHOWREC_LOGS_ROOT
- Sensible OS defaults when env vars are not provided
- Deterministic, collision-free recording file names
"""

from __future__ import annotations

import errno
import os
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

RECORDING_TS = "%Y%m%d%H%M%S"
RECORDING_EXT = ".mp4"
LOG_FILE_NAME = "recorder.log"
EVENTS_FILE_NAME = "events.jsonl"


# ---------- OS defaults (used only if env vars not set) ----------

def _platform_default_base() -> Path:
    """
    Returns an OS-specific base directory for application state:
    - Windows: %LOCALAPPDATA%/showrec
    - macOS:   ~/Library/Application Support/showrec
    - Linux:   ~/.local/state/showrec
    """
    if sys.platform.startswith("win"):
        base = os.getenv("LOCALAPPDATA") or os.getenv("APPDATA") or str(Path.home() / "AppData" / "Local")
        return Path(base) / "showrec"
    elif sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "showrec"
    else:
        return Path(os.getenv("XDG_STATE_HOME", Path.home() / ".local" / "state")) / "showrec"


def _env_or_default_output_root(configured: Optional[Path]) -> Path:
    env = os.getenv("SHOWREC_OUTPUT_ROOT")
    if env:
        return Path(env)
    if configured is not None:
        return Path(configured)
    return _platform_default_base() / "recordings"


def _env_or_default_logs_root() -> Path:
    return Path(os.getenv("SHOWREC_LOGS_ROOT", _platform_default_base() / "logs"))


# ---------- Core dataclass ----------

@dataclass(frozen=True)
class Paths:
    """
    Canonical path container.

    Most callers should obtain a singleton instance via get_paths().
    """
    output_root: Path
    logs_root: Path

    @staticmethod
    def from_env(output_directory: Optional[Path] = None) -> "Paths":
        return Paths(
            output_root=_env_or_default_output_root(output_directory),
            logs_root=_env_or_default_logs_root(),
        )

    # ----- layout helpers -----

    @property
    def log_file(self) -> Path:
        return self.logs_root / LOG_FILE_NAME

    @property
    def events_file(self) -> Path:
        return self.logs_root / EVENTS_FILE_NAME

    def source_dir(self, source_name: str) -> Path:
        """Per-source recording directory, e.g. <output>/Radio."""
        return self.output_root / source_name

    def recording_path(self, source_name: str, window_start: datetime) -> Path:
        """
        Output file for one window, e.g.:
          recording_path("Radio", 2024-01-01 20:00) -> <output>/Radio/Radio_20240101200000.mp4
        """
        stamp = window_start.strftime(RECORDING_TS)
        return self.source_dir(source_name) / f"{source_name}_{stamp}{RECORDING_EXT}"

    def recordings(self, source_name: str) -> list[Path]:
        """Recorded files of a source, newest first."""
        folder = self.source_dir(source_name)
        if not folder.is_dir():
            return []
        files = [p for p in folder.glob(f"{source_name}_*{RECORDING_EXT}") if p.is_file()]
        return sorted(files, key=lambda p: p.name, reverse=True)

    # ----- setup / validation -----

    def ensure_all(self) -> None:
        for p in [self.output_root, self.logs_root]:
            p.mkdir(parents=True, exist_ok=True)

    def verify_writeable(self) -> None:
        """
        Raise OSError if the output or log roots are not writeable.
        """
        for p in [self.output_root, self.logs_root]:
            try:
                p.mkdir(parents=True, exist_ok=True)
                test = p / ".write_test"
                test.write_text("ok", encoding="utf-8")
                test.unlink(missing_ok=True)
            except OSError as e:
                raise OSError(errno.EACCES, f"Not writeable: {p}", e)


# ---------- Singleton access ----------

_paths_singleton: Optional[Paths] = None

def get_paths(output_directory: Optional[Path] = None, force_refresh: bool = False) -> Paths:
    """
    Return a cached Paths instance; the first call (or force_refresh) decides
    the output root.
    """
    global _paths_singleton
    if force_refresh or _paths_singleton is None:
        _paths_singleton = Paths.from_env(output_directory)
        _paths_singleton.ensure_all()
    return _paths_singleton


# ---------- CLI sanity check ----------

if __name__ == "__main__":
    p = get_paths(force_refresh=True)
    try:
        p.verify_writeable()
    except OSError as e:
        print(f"[WARN] Writeability check failed: {e}")

    print("Output root:", p.output_root)
    print("Logs root:  ", p.logs_root)
    print("Log file:   ", p.log_file)
    print("Events file:", p.events_file)

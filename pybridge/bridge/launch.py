"""
Interpreter launch settings.

Resolves which python executable to run, classifies the bridge target
(module, script or inline code) and builds the subprocess command line.
"""

from __future__ import annotations

import logging
import os
import shutil
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from .errors import SpawnError

if TYPE_CHECKING:
    from pybridge.config import PyBridgeConfig

logger = logging.getLogger(__name__)

WORKER_SOURCE_PATH = Path(__file__).with_name("worker.py")

# Virtualenv directories searched upward from the working directory
VENV_DIR_NAMES = ["venv", ".venv"]
VENV_BIN = "Scripts" if sys.platform == "win32" else "bin"


class TargetKind(str, Enum):
    """How the worker should load the bridge target."""

    MODULE = "module"
    SCRIPT = "script"
    CODE = "code"


@dataclass
class LaunchConfig:
    """Configuration for one interpreter subprocess."""

    # Interpreter executable, absolute or looked up in venv / PATH
    python: str = "python3"

    # Working directory of the subprocess (host cwd if None)
    cwd: Optional[Path] = None

    # Look for venv/bin or .venv/bin above cwd before searching PATH
    use_venv: bool = True

    # Start from the host environment and overlay env_vars
    inherit_env: bool = True
    env_vars: dict[str, str] = field(default_factory=dict)

    # Timeouts (seconds)
    startup_timeout: float = 30.0
    shutdown_timeout: float = 5.0

    # Block open() until the worker reports ready
    wait_for_ready: bool = False

    @classmethod
    def from_config(cls, config: "PyBridgeConfig") -> "LaunchConfig":
        """Build launch settings from the application configuration."""
        return cls(
            python=config.interpreter.python,
            cwd=config.interpreter.cwd,
            use_venv=config.interpreter.use_venv,
            inherit_env=config.interpreter.inherit_env,
            env_vars=dict(config.interpreter.env_vars),
            startup_timeout=config.bridge.startup_timeout,
            shutdown_timeout=config.bridge.shutdown_timeout,
            wait_for_ready=config.bridge.wait_for_ready,
        )

    @property
    def working_dir(self) -> Path:
        return Path(self.cwd) if self.cwd else Path.cwd()

    def build_env(self) -> dict[str, str]:
        """Environment for the subprocess."""
        env = dict(os.environ) if self.inherit_env else {}
        env.update(self.env_vars)
        env["PYTHONUNBUFFERED"] = "1"
        return env


def classify_target(target: str) -> TargetKind:
    """
    Decide how a bridge target is loaded.

    Anything containing whitespace is inline source, a name ending in ``.py``
    is a script path, everything else is an importable module name.
    """
    if any(ch.isspace() for ch in target):
        return TargetKind.CODE
    if target.endswith(".py"):
        return TargetKind.SCRIPT
    return TargetKind.MODULE


def describe_target(target: str, limit: int = 50) -> str:
    """Short single-line form of a target for log messages."""
    return target.replace("\n", "\\n")[:limit]


def find_parent_path(name: str, start: Path) -> Optional[Path]:
    """Return the first ``<dir>/name`` that exists walking up from ``start``."""
    current = start.resolve()
    for directory in [current, *current.parents]:
        candidate = directory / name
        if candidate.exists():
            return candidate
    return None


def resolve_python(config: LaunchConfig) -> str:
    """
    Resolve the interpreter executable.

    Raises:
        SpawnError: If the interpreter cannot be found
    """
    python = config.python
    if os.path.isabs(python):
        if not os.path.exists(python):
            raise SpawnError(f"Python interpreter not found: {python}")
        return python

    if config.use_venv:
        for venv_name in VENV_DIR_NAMES:
            venv_bin = find_parent_path(f"{venv_name}/{VENV_BIN}", config.working_dir)
            if venv_bin:
                candidate = shutil.which(python, path=str(venv_bin))
                if candidate:
                    logger.debug(f"Using virtualenv interpreter {candidate}")
                    return candidate

    found = shutil.which(python)
    if found is None:
        raise SpawnError(
            f"Python interpreter '{python}' not found on PATH",
            {"cwd": str(config.working_dir)},
        )
    return found


def worker_source() -> str:
    """Source of the interpreter-side bootstrap script."""
    return WORKER_SOURCE_PATH.read_text(encoding="utf-8")


def build_command(python: str, target: str, kind: Optional[TargetKind] = None) -> list[str]:
    """Command line that runs the worker for ``target``."""
    kind = kind or classify_target(target)
    return [python, "-c", worker_source(), kind.value, target]

"""External toolchain (wgrib2 + GDAL) probing and command execution."""

from __future__ import annotations

import json
import os
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from starlette.concurrency import run_in_threadpool

from constants import ERROR_DETAIL_MAX_CHARS


class ToolchainCommandError(RuntimeError):
    def __init__(self, args: Sequence[str], returncode, stdout: str = "", stderr: str = "", reason: str = ""):
        self.cmd = list(args)
        self.returncode = returncode
        self.stdout = stdout or ""
        self.stderr = stderr or ""
        detail = reason or self.stderr.strip() or self.stdout.strip() or "unknown error"
        super().__init__(f"Command failed ({' '.join(self.cmd)}): {detail}")


@dataclass
class ToolchainStatus:
    missing: List[str] = field(default_factory=list)

    @property
    def available(self) -> bool:
        return not self.missing


def has_cmd(cmd: str) -> bool:
    """Explicit paths must exist; bare names must resolve on PATH."""
    if not cmd:
        return False
    if "/" in cmd or "\\" in cmd:
        return os.path.isfile(cmd)
    return shutil.which(cmd) is not None


def _probe_sync(tools: Dict[str, str]) -> ToolchainStatus:
    return ToolchainStatus(missing=[name for name, exe in tools.items() if not has_cmd(exe)])


async def probe_toolchain(tools: Dict[str, str]) -> ToolchainStatus:
    """Check each required executable; `tools` maps display name -> executable path or name."""
    return await run_in_threadpool(_probe_sync, tools)


def _text(out) -> str:
    if isinstance(out, bytes):
        return out.decode("utf-8", errors="replace")
    return out or ""


def _run_sync(args: Sequence[str], timeout: Optional[float] = None) -> subprocess.CompletedProcess:
    try:
        result = subprocess.run(list(args), stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as exc:
        # error_details() reads stderr first
        stderr = f"timed out after {timeout}s. {_text(exc.stderr)}".strip()
        raise ToolchainCommandError(args, None, _text(exc.stdout), stderr) from exc
    except OSError as exc:
        raise ToolchainCommandError(args, None, reason=str(exc)) from exc
    if result.returncode != 0:
        raise ToolchainCommandError(args, result.returncode, result.stdout, result.stderr)
    return result


async def run_cmd(args: Sequence[str], timeout: Optional[float] = None) -> subprocess.CompletedProcess:
    """Run a command off the event loop; a hung tool is killed after `timeout` seconds."""
    return await run_in_threadpool(_run_sync, args, timeout)


async def run_cmd_json(args: Sequence[str], timeout: Optional[float] = None) -> dict:
    result = await run_cmd(args, timeout)
    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as exc:
        raise ToolchainCommandError(args, result.returncode, result.stdout, result.stderr,
                                    reason="failed to parse JSON output") from exc


def error_details(exc, limit: int = ERROR_DETAIL_MAX_CHARS) -> str:
    """Short one-line diagnostic: stderr, else stdout, else the message."""
    if exc is None:
        return "unknown error"
    text = getattr(exc, "stderr", "") or getattr(exc, "stdout", "") or str(exc) or exc.__class__.__name__
    return re.sub(r"\s+", " ", str(text)).strip()[:limit]

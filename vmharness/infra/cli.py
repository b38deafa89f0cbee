"""Async subprocess helpers for kubectl and the diagnostics tools."""

from __future__ import annotations

import asyncio
import json
import shlex
from pathlib import Path
from typing import Any

from loguru import logger

from vmharness.core.exceptions import HarnessError


class CommandError(HarnessError):
    """A command exited non-zero or could not be started."""

    def __init__(self, cmd: str, returncode: int | None, stderr: str) -> None:
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        exit_info = f"exit {returncode}" if returncode is not None else "not started"
        super().__init__(f"{cmd} failed ({exit_info}): {stderr}")


async def run(binary: str, *args: str, cwd: Path | str | None = None) -> str:
    cmd = shlex.join((binary, *args))
    logger.bind(component="cli").debug("$ {cmd}", cmd=cmd)
    try:
        proc = await asyncio.create_subprocess_exec(
            binary, *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
    except OSError as e:
        raise CommandError(cmd, None, str(e)) from e

    try:
        stdout, stderr = await proc.communicate()
    except asyncio.CancelledError:
        # Context ended mid-command: don't leave the child running.
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
        raise

    if proc.returncode != 0:
        raise CommandError(cmd, proc.returncode, stderr.decode().strip())
    return stdout.decode().strip()


async def run_json(binary: str, *args: str, cwd: Path | str | None = None) -> Any:
    out = await run(binary, *args, cwd=cwd)
    return json.loads(out)

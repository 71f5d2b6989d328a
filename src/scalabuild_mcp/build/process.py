"""Subprocess execution shared by the compile service, resolver and JVM runner."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Output buffer limits (security: prevent DoS)
MAX_OUTPUT_BYTES: int = 5_000_000  # 5MB total
MAX_OUTPUT_LINE: int = 10_000  # 10KB per line


@dataclass
class ProcessResult:
    """Exit code and captured output of a finished process."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0


async def _read_stream(
    stream: asyncio.StreamReader | None,
    lines: list[str],
) -> None:
    if stream is None:
        return
    byte_count = 0
    while True:
        line = await stream.readline()
        if not line:
            break
        decoded = line.decode("utf-8", errors="replace")
        # Truncate long lines
        if len(decoded) > MAX_OUTPUT_LINE:
            decoded = decoded[:MAX_OUTPUT_LINE] + "...[truncated]\n"
        lines.append(decoded)
        byte_count += len(decoded)
        # Drop old lines if buffer too large
        while byte_count > MAX_OUTPUT_BYTES and lines:
            removed = lines.pop(0)
            byte_count -= len(removed)


async def run_process(
    command: Sequence[str],
    cwd: str | os.PathLike[str] | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
) -> ProcessResult:
    """Run command with output capture.

    No timeout is imposed unless one is given: the process's own lifetime
    bounds the call.

    Args:
        command: Command and arguments
        cwd: Working directory
        env: Extra environment variables, merged over the current environment
        timeout: Optional timeout in seconds

    Returns:
        Exit code and captured output

    Raises:
        FileNotFoundError: If the executable does not exist
        asyncio.TimeoutError: If timeout exceeded
    """
    full_env = None
    if env:
        full_env = {**os.environ, **env}

    logger.debug(f"Running: {' '.join(command)}")
    # Never use shell=True (security)
    process = await asyncio.create_subprocess_exec(
        *command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=None if cwd is None else str(cwd),
        env=full_env,
    )

    stdout_lines: list[str] = []
    stderr_lines: list[str] = []
    try:
        await asyncio.wait_for(
            asyncio.gather(
                _read_stream(process.stdout, stdout_lines),
                _read_stream(process.stderr, stderr_lines),
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning(f"Process timeout after {timeout}s: {command[0]}")
        process.kill()
        raise

    await process.wait()
    exit_code = process.returncode or 0
    return ProcessResult(exit_code, "".join(stdout_lines), "".join(stderr_lines))

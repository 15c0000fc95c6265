"""Git subprocess helpers with a wall-clock timeout and an output size cap."""
from __future__ import annotations

import asyncio
import logging
import re
import time
from pathlib import Path
from typing import Sequence

from codemanage import config
from codemanage.observability import record_git_command

logger = logging.getLogger("codemanage.git")

STDERR_CAPTURE_BYTES = 4096
STDERR_MESSAGE_CHARS = 500
_READ_CHUNK_BYTES = 64 * 1024

_NUMSTAT_RE = re.compile(r"^(\d+|-)\t(\d+|-)\t")


class GitCommandError(RuntimeError):
    """A git invocation failed to start, exited non-zero, or was killed."""

    def __init__(self, message: str, *, argv: Sequence[str], returncode: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr


class GitTimeoutError(GitCommandError):
    pass


class GitOutputLimitError(GitCommandError):
    pass


def _kill(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass


async def run_capped(
    argv: Sequence[str],
    cwd: Path | str,
    *,
    timeout_seconds: float,
    max_output_bytes: int,
) -> str:
    """Run ``argv`` without a shell and return its stdout.

    The process is killed when it runs longer than ``timeout_seconds`` or
    writes more than ``max_output_bytes`` to stdout.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise GitCommandError(f"failed to start {argv[0]}: {exc}", argv=argv) from exc

    chunks: list[bytes] = []
    stderr_buffer = bytearray()
    total_bytes = 0

    async def _read_stdout() -> None:
        nonlocal total_bytes
        assert process.stdout is not None
        while True:
            chunk = await process.stdout.read(_READ_CHUNK_BYTES)
            if not chunk:
                return
            total_bytes += len(chunk)
            if total_bytes > max_output_bytes:
                raise GitOutputLimitError(
                    f"{argv[0]} output exceeded maximum size of {max_output_bytes} bytes",
                    argv=argv,
                )
            chunks.append(chunk)

    async def _read_stderr() -> None:
        assert process.stderr is not None
        while True:
            chunk = await process.stderr.read(_READ_CHUNK_BYTES)
            if not chunk:
                return
            room = STDERR_CAPTURE_BYTES - len(stderr_buffer)
            if room > 0:
                stderr_buffer.extend(chunk[:room])

    try:
        await asyncio.wait_for(
            asyncio.gather(_read_stdout(), _read_stderr(), process.wait()),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError:
        _kill(process)
        await process.wait()
        raise GitTimeoutError(f"{argv[0]} timed out after {timeout_seconds:g}s", argv=argv) from None
    except GitOutputLimitError:
        _kill(process)
        await process.wait()
        raise

    stderr = stderr_buffer.decode("utf-8", errors="replace")
    if process.returncode != 0:
        raise GitCommandError(
            f"{argv[0]} exited with code {process.returncode}: {stderr[:STDERR_MESSAGE_CHARS]}",
            argv=argv,
            returncode=process.returncode,
            stderr=stderr,
        )
    return b"".join(chunks).decode("utf-8", errors="replace")


async def spawn_git(
    args: Sequence[str],
    cwd: Path | str,
    *,
    timeout_seconds: float | None = None,
    max_output_bytes: int | None = None,
) -> str:
    """Run ``git <args>`` in ``cwd`` and return stdout; raises ``GitCommandError``."""
    argv = ["git", *args]
    started = time.perf_counter()
    try:
        output = await run_capped(
            argv,
            cwd,
            timeout_seconds=timeout_seconds if timeout_seconds is not None else config.GIT_TIMEOUT_SECONDS,
            max_output_bytes=max_output_bytes if max_output_bytes is not None else config.GIT_MAX_OUTPUT_BYTES,
        )
    except GitTimeoutError:
        record_git_command("timeout", (time.perf_counter() - started) * 1000)
        raise
    except GitOutputLimitError:
        record_git_command("overflow", (time.perf_counter() - started) * 1000)
        raise
    except GitCommandError as exc:
        logger.debug("git %s failed in %s: %s", " ".join(args), cwd, exc)
        record_git_command("error", (time.perf_counter() - started) * 1000)
        raise
    record_git_command("success", (time.perf_counter() - started) * 1000)
    return output


def parse_numstat_line(line: str) -> tuple[int, int] | None:
    """Parse ``added<TAB>removed<TAB>path``; binary files (``-``) count as zero."""
    match = _NUMSTAT_RE.match(line)
    if not match:
        return None
    added, removed = match.groups()
    return (
        0 if added == "-" else int(added),
        0 if removed == "-" else int(removed),
    )

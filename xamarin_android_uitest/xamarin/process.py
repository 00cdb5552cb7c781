"""Blocking execution of external tools with live output logging."""

import codecs
import os
import selectors
import shlex
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from xamarin_android_uitest.utils.logging import get_logger, log_tool_line

logger = get_logger(__name__)

READ_CHUNK_SIZE = 4096


@dataclass
class CommandResult:
    """Result of an external tool invocation."""

    command: list[str]
    exit_code: int | None
    output: str = ""
    duration_seconds: float = 0.0
    timed_out: bool = False
    launch_error: str | None = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def printable_command(self) -> str:
        return format_command(self.command)


def format_command(cmd: list[str]) -> str:
    """Render a command the way it would be typed in a shell."""
    return " ".join(shlex.quote(part) for part in cmd)


class CommandRunner:
    """
    Runs external tools one at a time.

    Output is streamed to the log as it is produced and also collected
    for later parsing. Invocations never overlap.
    """

    def __init__(self, cwd: Path | None = None, heartbeat_seconds: int = 30):
        """
        Initialize runner.

        Args:
            cwd: Working directory for child processes
            heartbeat_seconds: Log a progress line after this much silence
        """
        self.cwd = cwd
        self.heartbeat_seconds = heartbeat_seconds

    def run(
        self,
        cmd: list[str],
        tag: str,
        description: str,
        timeout: int | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        """
        Run a command to completion.

        Args:
            cmd: Command and arguments
            tag: Log tag for output lines (e.g. BUILD)
            description: Human readable description
            timeout: Timeout in seconds, None waits indefinitely
            env: Extra environment variables for the child

        Returns:
            CommandResult; launch failures and timeouts are reported, not raised
        """
        logger.info(f"[{tag}] {description}")
        logger.info(f"[{tag}] $ {format_command(cmd)}")

        child_env = None
        if env:
            child_env = {**os.environ, **env}

        start_time = time.monotonic()
        deadline = start_time + timeout if timeout is not None else None
        lines: list[str] = []

        try:
            process = subprocess.Popen(
                cmd,
                cwd=self.cwd,
                env=child_env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except OSError as e:
            logger.error(f"[{tag}] Failed to start {cmd[0]}: {e}")
            return CommandResult(
                command=cmd,
                exit_code=None,
                launch_error=str(e),
            )

        # Raw reads return whatever is available, so a partial line never
        # blocks the deadline check.
        fd = process.stdout.fileno()
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        sel = selectors.DefaultSelector()
        sel.register(fd, selectors.EVENT_READ)
        last_output_time = start_time
        timed_out = False

        try:
            while True:
                now = time.monotonic()
                if deadline is not None and now >= deadline:
                    timed_out = True
                    break

                wait = 1.0 if deadline is None else min(1.0, deadline - now)
                events = sel.select(timeout=wait)
                if not events:
                    silence = time.monotonic() - last_output_time
                    if silence > self.heartbeat_seconds:
                        logger.info(f"[{tag}] ... still running ({now - start_time:.0f}s elapsed)")
                        last_output_time = time.monotonic()
                    continue

                chunk = os.read(fd, READ_CHUNK_SIZE)
                if not chunk:
                    break
                last_output_time = time.monotonic()
                pending = self._emit_lines(pending + decoder.decode(chunk), lines, tag)

            if not timed_out:
                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                try:
                    process.wait(timeout=remaining)
                except subprocess.TimeoutExpired:
                    timed_out = True

            if timed_out:
                process.kill()
                logger.error(f"[{tag}] Command timed out after {timeout}s")
        finally:
            sel.close()
            process.stdout.close()
            process.wait()

        pending += decoder.decode(b"", final=True)
        if pending.strip():
            self._emit_lines(pending + "\n", lines, tag)

        duration = time.monotonic() - start_time
        exit_code = None if timed_out else process.returncode
        logger.info(f"[{tag}] Completed in {duration:.1f}s with exit code {exit_code}")

        return CommandResult(
            command=cmd,
            exit_code=exit_code,
            output="\n".join(lines),
            duration_seconds=duration,
            timed_out=timed_out,
        )

    @staticmethod
    def _emit_lines(text: str, lines: list[str], tag: str) -> str:
        """Log and collect every complete line; return the unfinished remainder."""
        *complete, remainder = text.split("\n")
        for line in complete:
            line = line.rstrip()
            lines.append(line)
            log_tool_line(logger, tag, line)
        return remainder

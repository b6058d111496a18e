"""Claude Code subprocess management.

Executes the Claude Code CLI as an async subprocess inside the managed
working directory, streaming its output to the operator console as it
arrives while buffering it for post-hoc inspection. The run succeeds
only on a zero exit status.

The agent is restricted to file edits, file writes, and ``git add`` /
``git commit``; it gets no broader shell access. No timeout is enforced
unless one is configured explicitly.
"""

import asyncio
import logging
import os
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

logger = logging.getLogger(__name__)

AGENT_ALLOWED_TOOLS = (
    "Edit",
    "Write",
    "Bash(git add:*)",
    "Bash(git commit:*)",
)

AGENT_PROMPT_TEMPLATE = """You are helping to make code changes to this repository.

Request: {request}
{references}
Please make the necessary code changes to fulfill this request. After making changes:
1. Use git add to stage your changes
2. Use git commit with a descriptive message

Focus only on making the requested changes. Do not make unrelated modifications."""


def build_agent_prompt(
    request_text: str, attachment_paths: Sequence[Path] = ()
) -> str:
    """Wrap a change request in the agent's instruction template.

    Args:
        request_text: The natural-language change request.
        attachment_paths: Absolute paths of reference files for the agent.

    Returns:
        The full prompt passed to Claude Code.
    """
    references = ""
    if attachment_paths:
        listed = "\n".join(f"- {path}" for path in attachment_paths)
        references = (
            "\nReference images (read them before making changes):\n"
            f"{listed}\n"
        )
    return AGENT_PROMPT_TEMPLATE.format(
        request=request_text, references=references
    )


@dataclass
class AgentResult:
    """Result of a Claude Code execution.

    Attributes:
        success: True when the process exited with code 0.
        exit_code: Process exit code (-1 for timeout/OS errors).
        stdout: Captured standard output.
        stderr: Captured standard error.
        duration_seconds: Wall-clock execution time.
    """

    success: bool
    exit_code: int
    stdout: str
    stderr: str
    duration_seconds: float


class ClaudeRunner:
    """Manages Claude Code subprocess execution.

    Attributes:
        claude_path: Path or name of the claude executable.
        model: Model alias passed with ``--model``.
        timeout_seconds: Optional limit; None runs to completion.
        echo: Whether output lines are written to the operator console.
    """

    def __init__(
        self,
        claude_path: str = "claude",
        model: str = "sonnet",
        timeout_seconds: Optional[float] = None,
        echo: bool = True,
    ):
        self.claude_path = claude_path
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.echo = echo

    async def run(
        self,
        prompt: str,
        working_directory: Path,
        allowed_tools: Sequence[str] = AGENT_ALLOWED_TOOLS,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> AgentResult:
        """Execute Claude Code against the working directory.

        Args:
            prompt: Prompt passed with ``-p``.
            working_directory: Directory the agent runs in.
            allowed_tools: Capability allow-list; empty grants no tools.
            model: Overrides the runner's default model.
            timeout_seconds: Overrides the runner's default timeout.

        Returns:
            AgentResult with exit code, captured output, and duration.
            A timed-out run keeps whatever output arrived before the kill.
        """
        start_time = time.monotonic()
        timeout = (
            timeout_seconds if timeout_seconds is not None else self.timeout_seconds
        )
        command = self.build_command(prompt, model or self.model, allowed_tools)
        stdout_lines: list[str] = []
        stderr_lines: list[str] = []

        process = None
        try:
            process = await self._start_process(command, working_directory)
            await self._collect_output_with_timeout(
                process, timeout, stdout_lines, stderr_lines
            )
            exit_code = process.returncode if process.returncode is not None else -1
        except asyncio.TimeoutError:
            return await self._handle_timeout(
                process, timeout, start_time, stdout_lines, stderr_lines
            )
        except (OSError, ValueError) as exc:
            # ValueError: arguments the OS refuses, e.g. an embedded NUL byte
            return self._handle_start_error(exc, start_time)

        duration = time.monotonic() - start_time
        return self._build_result(
            exit_code, "\n".join(stdout_lines), "\n".join(stderr_lines), duration
        )

    def build_command(
        self,
        prompt: str,
        model: str,
        allowed_tools: Sequence[str],
    ) -> list[str]:
        """Build the argument vector for one invocation."""
        command = [self.claude_path, "--print", "--model", model]
        if allowed_tools:
            command += [
                "--dangerously-skip-permissions",
                "--allowedTools",
                *allowed_tools,
            ]
        command += ["-p", prompt]
        return command

    async def _start_process(
        self, command: list[str], working_directory: Path
    ) -> asyncio.subprocess.Process:
        """Launch the claude subprocess.

        Raises:
            OSError: If the executable cannot be found or started.
        """
        logger.info(
            "Starting Claude Code",
            extra={
                "working_directory": str(working_directory),
                "model": command[3],
                "timeout": self.timeout_seconds,
            },
        )

        env = dict(os.environ)
        env["CLAUDE_CODE_DISABLE_NONESSENTIAL_TRAFFIC"] = "1"

        return await asyncio.create_subprocess_exec(
            *command,
            cwd=str(working_directory),
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

    async def _collect_output_with_timeout(
        self,
        process: asyncio.subprocess.Process,
        timeout: Optional[float],
        stdout_lines: list[str],
        stderr_lines: list[str],
    ) -> None:
        """Stream process output into the given buffers.

        Reads stdout and stderr concurrently, streaming each line as it
        arrives. The buffers hold everything read so far even when the
        timeout fires.

        Raises:
            asyncio.TimeoutError: If the process exceeds the timeout.
        """

        async def stream_stdout():
            async for line in self._read_stream(process.stdout):
                stdout_lines.append(line)
                self._emit_line("stdout", line)

        async def stream_stderr():
            async for line in self._read_stream(process.stderr):
                stderr_lines.append(line)
                self._emit_line("stderr", line)

        await asyncio.wait_for(
            self._gather_streams(stream_stdout, stream_stderr, process),
            timeout=timeout,
        )

    async def _gather_streams(
        self,
        stdout_reader: Callable,
        stderr_reader: Callable,
        process: asyncio.subprocess.Process,
    ) -> None:
        await asyncio.gather(stdout_reader(), stderr_reader())
        await process.wait()

    async def _read_stream(self, stream: Optional[asyncio.StreamReader]):
        """Yield decoded lines from an async stream."""
        if stream is None:
            return

        while True:
            raw_line = await stream.readline()
            if not raw_line:
                break
            yield raw_line.decode("utf-8", errors="replace").rstrip("\n")

    def _emit_line(self, stream_name: str, line: str) -> None:
        """Send one output line to the operator console and the logger."""
        if self.echo:
            console = sys.stdout if stream_name == "stdout" else sys.stderr
            console.write(line + "\n")
            console.flush()
        logger.debug("claude %s: %s", stream_name, line)

    async def _handle_timeout(
        self,
        process: Optional[asyncio.subprocess.Process],
        timeout: Optional[float],
        start_time: float,
        stdout_lines: list[str],
        stderr_lines: list[str],
    ) -> AgentResult:
        """Kill and reap the process; return a failure with the partial output."""
        if process is not None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
        duration = time.monotonic() - start_time
        logger.error("Claude Code timed out after %ss", timeout)
        stderr_lines.append(f"Process timed out after {timeout}s")
        return AgentResult(
            success=False,
            exit_code=-1,
            stdout="\n".join(stdout_lines),
            stderr="\n".join(stderr_lines),
            duration_seconds=duration,
        )

    def _handle_start_error(self, exc: Exception, start_time: float) -> AgentResult:
        """Return a failure result when the process cannot be started."""
        duration = time.monotonic() - start_time
        logger.error("Failed to start Claude Code: %s", exc)
        return AgentResult(
            success=False,
            exit_code=-1,
            stdout="",
            stderr=f"Failed to start Claude Code: {exc}",
            duration_seconds=duration,
        )

    def _build_result(
        self,
        exit_code: int,
        stdout: str,
        stderr: str,
        duration: float,
    ) -> AgentResult:
        is_success = exit_code == 0

        if is_success:
            logger.info("Claude Code completed successfully in %.1fs", duration)
        else:
            logger.error(
                "Claude Code failed with exit code %d in %.1fs",
                exit_code,
                duration,
            )

        return AgentResult(
            success=is_success,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            duration_seconds=duration,
        )

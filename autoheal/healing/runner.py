"""Playwright test runner subprocess."""

import asyncio
import logging
import os
import shlex
import signal
import time
from pathlib import Path
from typing import List, Optional

from autoheal.config.settings import Settings, get_settings
from autoheal.core.interfaces import ArtifactRunner
from autoheal.core.types import RunOutput
from autoheal.error_handling.exceptions import RunnerError

logger = logging.getLogger(__name__)


class PlaywrightRunner(ArtifactRunner):
    """Runs one spec file with ``npx playwright test``.

    A non-zero exit status is the normal signal for failing tests, so the
    runner never raises on it; output is returned for parsing either way.
    On timeout the process group is killed and whatever was printed so far
    is kept.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

    def build_command(self, artifact_path: Path) -> List[str]:
        settings = self.settings
        command = shlex.split(settings.runner_command)
        command.append(str(artifact_path))
        if settings.runner_config_path:
            command.append(f"--config={settings.runner_config_path}")
        if settings.runner_project:
            command.append(f"--project={settings.runner_project}")
        command.append(f"--timeout={settings.runner_test_timeout_ms}")
        command.append("--reporter=list")
        return command

    async def run(self, artifact_path: Path) -> RunOutput:
        """
        Execute the artifact under the runner.

        Args:
            artifact_path: Spec file, relative to the working directory or absolute

        Returns:
            RunOutput with captured stdout/stderr

        Raises:
            RunnerError: the runner binary could not be started
        """
        command = self.build_command(artifact_path)
        timeout = self.settings.runner_timeout_seconds
        env = {**os.environ, "FORCE_COLOR": "0", "CI": os.environ.get("CI", "1")}

        logger.info(
            f"Executing: {' '.join(command)}",
            extra={"timeout_seconds": timeout, "cwd": str(self.settings.working_dir)},
        )

        start = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(self.settings.working_dir),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                start_new_session=True,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise RunnerError(
                f"Could not start test runner: {e}", command=command, cause=e
            ) from e

        stdout_chunks: List[bytes] = []
        stderr_chunks: List[bytes] = []
        readers = asyncio.gather(
            self._drain(process.stdout, stdout_chunks),
            self._drain(process.stderr, stderr_chunks),
        )

        timed_out = False
        try:
            await asyncio.wait_for(asyncio.shield(readers), timeout=timeout)
            await process.wait()
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning(
                f"Test runner timed out after {timeout}s, killing",
                extra={"artifact": str(artifact_path)},
            )
            self._kill(process)
            await process.wait()
            await readers

        duration = time.monotonic() - start
        stdout = self._decode(stdout_chunks)
        stderr = self._decode(stderr_chunks)
        if timed_out:
            stderr = f"{stderr}\nTimeout: test runner exceeded {timeout}s and was killed".lstrip()

        logger.info(
            f"Runner finished with exit code {process.returncode} in {duration:.2f}s",
            extra={"exit_code": process.returncode, "timed_out": timed_out},
        )
        return RunOutput(
            stdout=stdout,
            stderr=stderr,
            exit_code=process.returncode,
            timed_out=timed_out,
            duration_seconds=round(duration, 2),
        )

    async def _drain(self, stream: Optional[asyncio.StreamReader], chunks: List[bytes]) -> None:
        """Read a stream to EOF, keeping at most the configured buffer."""
        if stream is None:
            return
        limit = self.settings.runner_max_output_bytes
        size = 0
        while True:
            chunk = await stream.read(65536)
            if not chunk:
                break
            if size < limit:
                kept = chunk[: limit - size]
                chunks.append(kept)
                size += len(kept)

    @staticmethod
    def _decode(chunks: List[bytes]) -> str:
        return b"".join(chunks).decode("utf-8", errors="replace")

    @staticmethod
    def _kill(process: asyncio.subprocess.Process) -> None:
        try:
            os.killpg(os.getpgid(process.pid), signal.SIGKILL)
        except (ProcessLookupError, PermissionError, OSError):
            try:
                process.kill()
            except ProcessLookupError:
                pass

"""asyncio implementation of the ProcessRunner port."""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

from ..application.domain import ProcessResult, ProcessRunner


def _decode(data: Optional[bytes]) -> str:
    return (data or b"").decode("utf-8", errors="replace")


class AsyncProcessRunner(ProcessRunner):
    """
    Runs an executable with both output streams captured concurrently.

    Every failure, including a missing executable, a spawn error and a
    timeout, comes back as a ProcessResult; nothing is raised to the caller,
    and the child is always reaped before returning.
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    async def _dispose(self, process: asyncio.subprocess.Process):
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

    async def run(
        self,
        executable: Path,
        args: Sequence[str] = (),
        cwd: Optional[Path] = None,
        timeout: float = 300,
    ) -> ProcessResult:
        """
        Run a command and wait for it, up to a timeout.

        Args:
            executable: Path to the program. It is not looked up on PATH.
            args: Arguments passed verbatim.
            cwd: Working directory, or the current one.
            timeout: Seconds to wait before the process is killed.

        Returns:
            The exit code and captured output, with success meaning exit
            code 0, or a failure result explaining what went wrong.
        """

        executable = Path(executable)
        if not executable.is_file():
            return ProcessResult.failure(f"Executable not found: {executable}")

        command = [str(executable), *[str(arg) for arg in args]]
        self.logger.debug(f"Running {' '.join(command)}")

        process = None
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(cwd) if cwd else None,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            try:
                stdout, stderr = await asyncio.wait_for(
                    process.communicate(), timeout=timeout
                )
            except asyncio.TimeoutError:
                self.logger.warning(
                    f"{executable.name} did not finish within {timeout}s, killing it"
                )
                return ProcessResult.failure(
                    f"{executable.name} timed out after {timeout}s", timed_out=True
                )
        except (OSError, ValueError) as e:
            return ProcessResult.failure(f"Failed to start {executable.name}: {e}")
        finally:
            if process is not None:
                await self._dispose(process)

        exit_code = process.returncode
        result = ProcessResult(
            success=exit_code == 0,
            exit_code=exit_code,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
            message=f"{executable.name} exited with code {exit_code}",
        )
        self.logger.debug(result.message)
        return result

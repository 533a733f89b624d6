"""
Database engine bootstrap: data directory initialization and credentials.

Every step shells out through the ProcessRunner and is judged by exit code,
plus a success phrase or an on-disk marker where the exit code alone is not
trustworthy.
"""

import asyncio
import logging
import os
import shutil
import sys
import tempfile
from pathlib import Path
from typing import List, NamedTuple, Sequence

from ..application.domain import ParameterSet, ProcessResult, ProcessRunner
from ..application.exceptions import InfrastructureError

from .config_writer import forward_slashes, render_credentials_sql, write_artifact

ALIVE_PHRASE = r"is alive"

EXE_SUFFIX = ".exe" if sys.platform == "win32" else ""


class InitStrategy(NamedTuple):
    label: str
    program: str
    args: Sequence[str]
    clear_data_dir: bool


class DatabaseBootstrapper:
    """Initializes the data directory and applies the application credentials."""

    def __init__(
        self,
        runner: ProcessRunner,
        params: ParameterSet,
        init_timeout: float = 300,
        client_timeout: float = 60,
        exe_suffix: str = EXE_SUFFIX,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.runner = runner
        self.params = params
        self.layout = params.layout
        self.init_timeout = init_timeout
        self.client_timeout = client_timeout
        self.exe_suffix = exe_suffix

    def executable(self, program: str) -> Path:
        return self.layout.mariadb_dir / "bin" / f"{program}{self.exe_suffix}"

    def is_initialized(self) -> bool:
        return (self.layout.data_dir / "mysql").is_dir()

    def strategies(self) -> List[InitStrategy]:
        datadir = f"--datadir={self.layout.data_dir}"
        port = f"--port={self.params.db_port}"
        return [
            InitStrategy("mariadb-install-db", "mariadb-install-db", [datadir, port], False),
            InitStrategy("mysql_install_db", "mysql_install_db", [datadir, port], False),
            InitStrategy(
                "mariadb-install-db on a clean data directory",
                "mariadb-install-db",
                [datadir, port],
                True,
            ),
            InitStrategy(
                "mysqld --initialize-insecure",
                "mysqld",
                [
                    f"--defaults-file={self.layout.my_ini}",
                    "--initialize-insecure",
                    "--console",
                ],
                True,
            ),
        ]

    async def initialize(self) -> ProcessResult:
        """
        Create the system tables, escalating through the known strategies.

        Returns:
            The result of the strategy that worked, or of the last one tried.
            Success requires exit code 0 and the 'mysql' schema on disk.
        """

        if self.is_initialized():
            self.logger.info(f"Data directory {self.layout.data_dir} already initialized")
            return ProcessResult(success=True, exit_code=0, message="already initialized")

        result = ProcessResult.failure("No initialization strategy ran")
        for strategy in self.strategies():
            if strategy.clear_data_dir and self.layout.data_dir.exists():
                shutil.rmtree(self.layout.data_dir, ignore_errors=True)

            self.logger.info(f"Initializing database with {strategy.label}...")
            result = await self.runner.run(
                self.executable(strategy.program),
                strategy.args,
                cwd=self.layout.mariadb_dir,
                timeout=self.init_timeout,
            )
            if result.success and self.is_initialized():
                self.logger.info("Database data directory initialized")
                return result
            self.logger.warning(
                f"{strategy.label} did not initialize the database: {result.message}"
            )
        if result.success:
            return ProcessResult.failure(
                f"No 'mysql' schema in {self.layout.data_dir} after initialization"
            )
        return result

    def _client_args(self) -> List[str]:
        return [
            "--host=127.0.0.1",
            f"--port={self.params.db_port}",
            "--user=root",
        ]

    async def ping(self) -> bool:
        result = await self.runner.run(
            self.executable("mysqladmin"),
            [*self._client_args(), "ping"],
            timeout=self.client_timeout,
        )
        return result.success and result.output_contains(ALIVE_PHRASE)

    async def shutdown(self) -> ProcessResult:
        return await self.runner.run(
            self.executable("mysqladmin"),
            [*self._client_args(), "shutdown"],
            timeout=self.client_timeout,
        )

    async def apply_credentials(self) -> ProcessResult:
        """
        Run the credential script through the command-line client.

        The script holds the application password, so it lives in a randomly
        named temp file that is removed as soon as the client returns,
        whatever the outcome.
        """

        self.layout.tmp_dir.mkdir(parents=True, exist_ok=True)
        handle, name = tempfile.mkstemp(
            prefix="credentials-", suffix=".sql", dir=self.layout.tmp_dir
        )
        os.close(handle)
        script = Path(name)
        try:
            write_artifact(script, render_credentials_sql(self.params))
            result = await self.runner.run(
                self.executable("mysql"),
                [
                    *self._client_args(),
                    "--default-character-set=utf8mb4",
                    f"--execute=source {forward_slashes(script)}",
                ],
                timeout=self.client_timeout,
            )
        finally:
            script.unlink(missing_ok=True)

        if result.success:
            self.logger.info(
                f"Database '{self.params.db_name}' and user '{self.params.db_user}' ready"
            )
        return result


class TemporaryDatabaseServer:
    """
    Runs the database server for the duration of an 'async with' block.

    The server is considered up once 'mysqladmin ping' reports it alive. On
    exit it is asked to shut down and killed if it does not stop in time.
    """

    def __init__(
        self,
        bootstrapper: DatabaseBootstrapper,
        start_timeout: float = 60,
        poll_interval: float = 1.0,
        spawn=asyncio.create_subprocess_exec,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.bootstrapper = bootstrapper
        self.start_timeout = start_timeout
        self.poll_interval = poll_interval
        self.spawn = spawn
        self.process = None

    async def _wait_until_alive(self) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.start_timeout
        while loop.time() < deadline:
            if self.process.returncode is not None:
                return False
            if await self.bootstrapper.ping():
                return True
            await asyncio.sleep(self.poll_interval)
        return False

    async def _stop(self):
        if self.process is None or self.process.returncode is not None:
            return
        await self.bootstrapper.shutdown()
        try:
            await asyncio.wait_for(self.process.wait(), timeout=self.start_timeout)
        except asyncio.TimeoutError:
            self.logger.warning("Database server ignored shutdown, killing it")
            self.process.kill()
            await self.process.wait()

    async def __aenter__(self) -> "TemporaryDatabaseServer":
        mysqld = self.bootstrapper.executable("mysqld")
        if not mysqld.is_file():
            raise InfrastructureError(f"Database server not found at {mysqld}")

        self.logger.info("Starting a temporary database server...")
        try:
            self.process = await self.spawn(
                str(mysqld),
                f"--defaults-file={self.bootstrapper.layout.my_ini}",
                "--console",
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise InfrastructureError(f"Could not start {mysqld}: {e}") from e

        if not await self._wait_until_alive():
            if self.process.returncode is None:
                self.process.kill()
                await self.process.wait()
            raise InfrastructureError(
                f"Database server did not answer on port "
                f"{self.bootstrapper.params.db_port} within {self.start_timeout}s; "
                f"see {self.bootstrapper.layout.logs_dir / 'mariadb_error.log'}"
            )
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self._stop()

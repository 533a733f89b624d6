import sys

import pytest

from portable_stack.infrastructure.processes import AsyncProcessRunner


@pytest.fixture
def runner():
    return AsyncProcessRunner()


async def test_captures_stdout_and_exit_code(runner, tmp_path):
    result = await runner.run(
        sys.executable, ["-c", "print('mysqld is alive')"], cwd=tmp_path, timeout=30
    )

    assert result.success
    assert result.exit_code == 0
    assert result.output_contains(r"is alive")


async def test_non_zero_exit_is_a_failure_with_stderr(runner):
    result = await runner.run(
        sys.executable,
        ["-c", "import sys; sys.stderr.write('access denied'); sys.exit(3)"],
        timeout=30,
    )

    assert not result.success
    assert result.exit_code == 3
    assert "access denied" in result.stderr
    assert not result.timed_out


async def test_timeout_kills_the_process(runner):
    result = await runner.run(
        sys.executable, ["-c", "import time; time.sleep(30)"], timeout=0.5
    )

    assert not result.success
    assert result.timed_out
    assert "timed out" in result.message


async def test_missing_executable_is_a_failure(runner, tmp_path):
    result = await runner.run(tmp_path / "bin" / "mysqld.exe", ["--console"])

    assert not result.success
    assert result.exit_code is None
    assert "not found" in result.message


async def test_undecodable_output_is_replaced(runner):
    result = await runner.run(
        sys.executable,
        ["-c", "import sys; sys.stdout.buffer.write(b'ok \\xff done')"],
        timeout=30,
    )

    assert result.success
    assert result.stdout.startswith("ok ")
    assert "\ufffd" in result.stdout

"""
Sandbox utilities for bounded code execution

Every run gets a private work directory inside a shared artifact area. The
directory name comes from a process-wide counter plus a random token and is
claimed with os.mkdir, so concurrent runs can never share a source file.
Child processes are supervised: whatever happens, the process group is killed
and reaped, and the work directory is removed.
"""

import asyncio
import itertools
import logging
import os
import secrets
import shutil
import signal
import subprocess
import tempfile
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from .languages import LanguageSpec
from .models import ExecutionResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_MAX_OUTPUT_BYTES = 1024 * 1024
DEFAULT_ARTIFACT_DIR = os.path.join(tempfile.gettempdir(), 'coderoom_artifacts')

_READ_CHUNK_BYTES = 64 * 1024
_MAX_ALLOCATION_ATTEMPTS = 8

_artifact_counter = itertools.count(1)


class OutputLimitExceeded(Exception):
    """A child wrote more than the allowed number of bytes to one stream"""


@dataclass(frozen=True)
class ArtifactPaths:
    """Filesystem layout of a single invocation"""
    token: str
    workdir: str
    source: str
    binary: str


@dataclass
class CommandOutcome:
    """Result of one supervised child process"""
    returncode: Optional[int] = None
    stdout: str = ''
    stderr: str = ''
    timed_out: bool = False
    output_exceeded: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return (
            self.returncode == 0
            and not self.timed_out
            and not self.output_exceeded
            and self.error is None
        )


@dataclass
class _OutputCapture:
    limit: int
    buffer: bytearray = field(default_factory=bytearray)

    def text(self) -> str:
        return self.buffer.decode('utf-8', errors='replace')


def new_artifact_token() -> str:
    """Collision-resistant token: monotonic counter plus 64 random bits"""
    return f"{os.getpid()}_{next(_artifact_counter)}_{secrets.token_hex(8)}"


def allocate_artifact(artifact_dir: str, spec: LanguageSpec) -> ArtifactPaths:
    """
    Claim a fresh work directory for one invocation

    Args:
        artifact_dir: Shared artifact area
        spec: Toolchain descriptor, used for file naming

    Returns:
        ArtifactPaths for the new directory

    Raises:
        OSError: If the area cannot be created or no unique name was found
    """
    os.makedirs(artifact_dir, exist_ok=True)

    for _ in range(_MAX_ALLOCATION_ATTEMPTS):
        token = new_artifact_token()
        workdir = os.path.join(artifact_dir, f"run_{token}")
        try:
            os.mkdir(workdir, 0o700)
        except FileExistsError:
            logger.warning(f"[Sandbox] Artifact name collision on {token}, retrying")
            continue

        return ArtifactPaths(
            token=token,
            workdir=workdir,
            source=os.path.join(workdir, spec.source_filename(token)),
            binary=os.path.join(workdir, f"program_{token}"),
        )

    raise OSError(f"Could not allocate a unique artifact directory in {artifact_dir}")


def write_source(paths: ArtifactPaths, source_text: str) -> None:
    """Persist the source text verbatim"""
    with open(paths.source, 'w', encoding='utf-8', newline='') as f:
        f.write(source_text)


def cleanup_artifact(paths: ArtifactPaths) -> None:
    """
    Remove the work directory with source, binary and build products

    Args:
        paths: Artifact layout returned by allocate_artifact
    """
    try:
        shutil.rmtree(paths.workdir)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"[Sandbox] Failed to cleanup artifact directory {paths.workdir}: {e}")


def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    try:
        if os.name == 'posix':
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except ProcessLookupError:
        pass


@asynccontextmanager
async def supervised_process(argv: List[str], cwd: str):
    """
    Start a child process that is guaranteed to be dead and reaped on exit

    The child leads its own process group so that grandchildren (e.g. the
    binary started by `go run`, or anything the program left running in the
    background) are killed with it, even when the child itself has exited.
    """
    process = await asyncio.create_subprocess_exec(
        *argv,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        cwd=cwd,
        start_new_session=(os.name == 'posix'),
    )
    try:
        yield process
    finally:
        _kill_process_group(process)
        await process.wait()


async def _read_capped(stream: asyncio.StreamReader, capture: _OutputCapture) -> None:
    while True:
        chunk = await stream.read(_READ_CHUNK_BYTES)
        if not chunk:
            return
        capture.buffer.extend(chunk)
        if len(capture.buffer) > capture.limit:
            del capture.buffer[capture.limit:]
            raise OutputLimitExceeded()


async def _wait_for_exit(process: asyncio.subprocess.Process, readers: List[asyncio.Future]) -> int:
    """
    Wait for the child to exit, then drain its output

    Leftover members of the process group are killed as soon as the child
    exits: they inherit the pipes and would otherwise hold them open.
    """
    exited = asyncio.ensure_future(process.wait())
    try:
        pending = {exited, *readers}
        while exited in pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if task is not exited:
                    task.result()  # surfaces OutputLimitExceeded
    finally:
        exited.cancel()

    _kill_process_group(process)
    await asyncio.gather(*readers)
    return exited.result()


async def run_command(
    argv: List[str],
    cwd: str,
    timeout_seconds: float,
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
) -> CommandOutcome:
    """
    Run one command under a wall-clock timeout and an output cap

    Args:
        argv: Command and arguments
        cwd: Working directory
        timeout_seconds: Time left for this command
        max_output_bytes: Cap applied to stdout and stderr separately

    Returns:
        CommandOutcome; never raises for child failures
    """
    if timeout_seconds <= 0:
        return CommandOutcome(timed_out=True)

    stdout = _OutputCapture(max_output_bytes)
    stderr = _OutputCapture(max_output_bytes)
    outcome = CommandOutcome()

    try:
        async with supervised_process(argv, cwd) as process:
            readers = [
                asyncio.ensure_future(_read_capped(process.stdout, stdout)),
                asyncio.ensure_future(_read_capped(process.stderr, stderr)),
            ]
            try:
                outcome.returncode = await asyncio.wait_for(
                    _wait_for_exit(process, readers),
                    timeout=timeout_seconds,
                )
            except asyncio.TimeoutError:
                outcome.timed_out = True
            except OutputLimitExceeded:
                outcome.output_exceeded = True
            finally:
                for reader in readers:
                    reader.cancel()
                await asyncio.gather(*readers, return_exceptions=True)
    except FileNotFoundError:
        outcome.error = f"Toolchain not available: {argv[0]}"
    except OSError as e:
        outcome.error = f"Failed to start {argv[0]}: {e}"

    outcome.stdout = stdout.text()
    outcome.stderr = stderr.text()
    return outcome


def _failure_message(outcome: CommandOutcome, timeout_seconds: float, max_output_bytes: int) -> str:
    if outcome.error:
        return outcome.error
    if outcome.timed_out:
        return f"Execution timed out after {timeout_seconds:g} seconds"
    if outcome.output_exceeded:
        return f"Output exceeded {max_output_bytes} bytes"
    return outcome.stderr or f"Process exited with code {outcome.returncode}"


def _result(
    spec: LanguageSpec,
    started: float,
    succeeded: bool,
    stdout: str = '',
    stderr: str = '',
    status: str = 'error'
) -> ExecutionResult:
    return ExecutionResult(
        succeeded=succeeded,
        standardOutput=stdout,
        standardError=stderr,
        producedAt=datetime.now(timezone.utc).isoformat(),
        status='success' if succeeded else status,
        language=spec.language,
        executionTime=(time.monotonic() - started) * 1000,
    )


async def execute_with_sandbox(
    source_text: str,
    spec: LanguageSpec,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    artifact_dir: str = DEFAULT_ARTIFACT_DIR,
    python_interpreter: Optional[str] = None
) -> ExecutionResult:
    """
    Execute source text with sandbox protection

    Args:
        source_text: Program to run, written verbatim
        spec: Resolved toolchain descriptor
        timeout_seconds: Wall-clock budget for compile and run together
        max_output_bytes: Per-stream output cap
        artifact_dir: Shared artifact area
        python_interpreter: Runtime for the python toolchain (default: this interpreter)

    Returns:
        ExecutionResult; failures are encoded, never raised
    """
    started = time.monotonic()
    deadline = started + timeout_seconds
    paths: Optional[ArtifactPaths] = None

    try:
        try:
            paths = allocate_artifact(artifact_dir, spec)
            write_source(paths, source_text)
        except OSError as e:
            logger.error(f"[Sandbox] Failed to write {spec.language.value} source: {e}")
            return _result(spec, started, False, stderr=f"Failed to write code to file: {e}")

        commands = spec.build_commands(paths.source, paths.binary, paths.workdir, python=python_interpreter)
        outcome = CommandOutcome()
        for argv in commands:
            outcome = await run_command(
                argv,
                cwd=paths.workdir,
                timeout_seconds=deadline - time.monotonic(),
                max_output_bytes=max_output_bytes,
            )
            if not outcome.ok:
                break

        if outcome.ok:
            return _result(spec, started, True, outcome.stdout, outcome.stderr)

        status = 'timeout' if outcome.timed_out else 'error'
        logger.info(
            f"[Sandbox] {spec.language.value} run failed ({status}): "
            f"returncode={outcome.returncode}, exceeded={outcome.output_exceeded}"
        )
        return _result(
            spec,
            started,
            False,
            stdout=outcome.stdout,
            stderr=_failure_message(outcome, timeout_seconds, max_output_bytes),
            status=status,
        )

    except Exception as e:
        logger.error(f"[Sandbox] Unexpected failure running {spec.language.value}: {e}", exc_info=True)
        return _result(spec, started, False, stderr=str(e))

    finally:
        if paths:
            cleanup_artifact(paths)

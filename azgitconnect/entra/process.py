"""Running external CLI tools for the ``az`` directory backend."""

from __future__ import annotations

import contextlib
import pathlib
import shutil
import subprocess
import tempfile
import typing as typ

import msgspec

from azgitconnect.entra.errors import CommandFailedError, ExecutableNotFoundError
from azgitconnect.logging import get_logger, log_debug

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)

DEFAULT_COMMAND_TIMEOUT_S = 120.0


class CommandRunner(typ.Protocol):
    """Run a command and return its standard output."""

    def run(self, command: str, args: cabc.Sequence[str]) -> str:
        """Run ``command`` with ``args``.

        Raises
        ------
        CommandFailedError
            If the command exits with a non-zero status.

        """
        ...


def require_exe(name: str) -> str:
    """Return the absolute path of ``name`` on ``PATH``.

    Raises
    ------
    ExecutableNotFoundError
        If the executable is not found in PATH.

    """
    path = shutil.which(name)
    if path is None:
        raise ExecutableNotFoundError.missing(name)
    return path


class SubprocessRunner:
    """:class:`CommandRunner` backed by :func:`subprocess.run`."""

    def __init__(self, timeout_s: float = DEFAULT_COMMAND_TIMEOUT_S) -> None:
        self._timeout_s = timeout_s

    def run(self, command: str, args: cabc.Sequence[str]) -> str:
        """Run ``command`` with captured output and return stdout."""
        executable = require_exe(command)
        log_debug(logger, "Running %s %s", command, " ".join(args))
        try:
            result = subprocess.run(  # noqa: S603
                [executable, *args],
                capture_output=True,
                text=True,
                check=False,
                timeout=self._timeout_s,
            )
        except subprocess.TimeoutExpired as exc:
            raise CommandFailedError.exited(
                command, tuple(args), -1, f"timed out after {self._timeout_s}s"
            ) from exc
        if result.returncode != 0:
            raise CommandFailedError.exited(
                command, tuple(args), result.returncode, result.stderr or ""
            )
        return result.stdout


@contextlib.contextmanager
def json_temp_file(payload: object) -> cabc.Iterator[pathlib.Path]:
    """Write ``payload`` as JSON to a temporary file and remove it afterwards.

    The file is deleted when the block exits, whether or not it raised, and
    when writing it fails. Payloads msgspec cannot encode never create a file.
    """
    content = msgspec.json.encode(payload)
    handle = tempfile.NamedTemporaryFile(  # noqa: SIM115
        mode="wb", suffix=".json", delete=False
    )
    path = pathlib.Path(handle.name)
    try:
        with handle:
            handle.write(content)
        yield path
    finally:
        path.unlink(missing_ok=True)

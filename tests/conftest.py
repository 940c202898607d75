"""Shared fixtures for azgitconnect tests."""

from __future__ import annotations

import dataclasses
import subprocess
import typing as typ

import pytest


@dataclasses.dataclass(slots=True)
class MockSubprocessCapture:
    """Captured data from mocked subprocess.run calls."""

    calls: list[tuple[str, ...]]
    kwargs: list[dict[str, object]]
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    timeout: bool = False


@pytest.fixture
def mock_subprocess_run(
    monkeypatch: pytest.MonkeyPatch,
) -> MockSubprocessCapture:
    """Mock subprocess.run and shutil.which for the process helpers.

    Tests adjust ``returncode``, ``stdout``, ``stderr`` and ``timeout`` on
    the returned capture before exercising the code under test.
    """
    capture = MockSubprocessCapture(calls=[], kwargs=[])

    def _mock_run(
        args: list[str], **kwargs: object
    ) -> subprocess.CompletedProcess[str]:
        capture.calls.append(tuple(args))
        capture.kwargs.append(kwargs)
        if capture.timeout:
            raise subprocess.TimeoutExpired(args, typ.cast("float", kwargs["timeout"]))
        return subprocess.CompletedProcess(
            args=args,
            returncode=capture.returncode,
            stdout=capture.stdout,
            stderr=capture.stderr,
        )

    monkeypatch.setattr("subprocess.run", _mock_run)
    monkeypatch.setattr("shutil.which", lambda name: f"/usr/bin/{name}")
    return capture

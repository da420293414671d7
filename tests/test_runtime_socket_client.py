"""Tests for RuntimeSocketClient."""

import asyncio
import json
import os
import socket
import tempfile
from unittest.mock import AsyncMock, Mock, patch

import pytest

from kstrace.errors import RuntimeSocketError
from kstrace.runtime import RuntimeSocketClient, normalize_endpoint, socket_path

ENDPOINT = "unix:///run/crio/crio.sock"


def fake_process(stdout=b"", stderr=b"", returncode=0):
    process = Mock()
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    process.wait = AsyncMock(return_value=returncode)
    process.returncode = returncode
    return process


def inspect_output(pid, state="CONTAINER_RUNNING"):
    return json.dumps({"status": {"id": "abc", "state": state}, "info": {"pid": pid}}).encode()


class TestEndpoints:
    """Tests for endpoint normalization."""

    @pytest.mark.parametrize(
        "value",
        ["/run/crio/crio.sock", "unix:///run/crio/crio.sock", "unix://run/crio/crio.sock", "run/crio/crio.sock"],
    )
    def test_normalize(self, value):
        assert normalize_endpoint(value) == ENDPOINT

    def test_empty(self):
        with pytest.raises(RuntimeSocketError):
            normalize_endpoint("")

    def test_socket_path(self):
        assert socket_path(ENDPOINT) == "/run/crio/crio.sock"


class TestCheckSocket:
    """Tests for RuntimeSocketClient.check_socket()."""

    def test_missing_socket(self, tmp_path):
        client = RuntimeSocketClient(str(tmp_path / "missing.sock"))

        with pytest.raises(RuntimeSocketError, match="unreachable"):
            client.check_socket()

    def test_regular_file(self, tmp_path):
        path = tmp_path / "crio.sock"
        path.write_text("")

        with pytest.raises(RuntimeSocketError, match="not a socket"):
            RuntimeSocketClient(str(path)).check_socket()

    def test_unix_socket(self):
        # Short directory: unix socket paths are limited to ~108 bytes
        with tempfile.TemporaryDirectory() as directory:
            path = os.path.join(directory, "r.sock")
            server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            try:
                server.bind(path)
                RuntimeSocketClient(path).check_socket()
            finally:
                server.close()


class TestContainerPid:
    """Tests for RuntimeSocketClient.container_pid()."""

    @pytest.mark.asyncio
    async def test_resolves_pid(self):
        """Test the host PID is read from crictl inspect output."""
        process = fake_process(stdout=inspect_output(4242))
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)) as exec_mock:
            pid = await RuntimeSocketClient(ENDPOINT, timeout=3).container_pid("abc")

        assert pid == 4242
        command = exec_mock.call_args.args
        assert command == (
            "crictl", "--runtime-endpoint", ENDPOINT, "--timeout", "3s",
            "inspect", "--output", "json", "abc",
        )

    @pytest.mark.asyncio
    async def test_stopped_container(self):
        process = fake_process(stdout=inspect_output(0, state="CONTAINER_EXITED"))
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            with pytest.raises(RuntimeSocketError, match="CONTAINER_EXITED"):
                await RuntimeSocketClient(ENDPOINT).container_pid("abc")

    @pytest.mark.asyncio
    async def test_unknown_container(self):
        """Test crictl's error output is surfaced."""
        process = fake_process(stderr=b'container "abc" not found\n', returncode=1)
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            with pytest.raises(RuntimeSocketError, match='container "abc" not found'):
                await RuntimeSocketClient(ENDPOINT).container_pid("abc")

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        process = fake_process(stdout=b"not json")
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            with pytest.raises(RuntimeSocketError, match="invalid inspect output"):
                await RuntimeSocketClient(ENDPOINT).container_pid("abc")

    @pytest.mark.asyncio
    async def test_crictl_missing(self):
        with patch("asyncio.create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError())):
            with pytest.raises(RuntimeSocketError, match="crictl not found"):
                await RuntimeSocketClient(ENDPOINT).container_pid("abc")

    @pytest.mark.asyncio
    async def test_runtime_hangs(self):
        """Test a runtime that never answers is killed and reported."""
        process = fake_process()
        process.communicate = Mock(return_value=None)
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            with patch("asyncio.wait_for", AsyncMock(side_effect=asyncio.TimeoutError())):
                with pytest.raises(RuntimeSocketError, match="did not answer"):
                    await RuntimeSocketClient(ENDPOINT, timeout=1).container_pid("abc")

        process.kill.assert_called_once()

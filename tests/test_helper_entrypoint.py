"""Tests for the helper pod entrypoint."""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from kstrace.errors import RuntimeSocketError
from kstrace.helper import build_parser, main, strace_command

ARGS = ["--container-id", "abc123", "--runtime-endpoint", "unix:///run/crio/crio.sock"]


@pytest.fixture
def runtime_client():
    """Patch the runtime client used by the entrypoint."""
    instance = Mock()
    instance.container_pid = AsyncMock(return_value=4242)
    with patch("kstrace.helper.entrypoint.RuntimeSocketClient", return_value=instance) as cls:
        yield cls, instance


@pytest.fixture
def termination_log(tmp_path):
    path = tmp_path / "termination-log"
    with patch("kstrace.helper.entrypoint.TERMINATION_LOG", str(path)):
        yield path


def test_strace_command():
    """Test strace follows forks with timestamps and attaches by pid."""
    assert strace_command(4242) == ["strace", "-f", "-tt", "-p", "4242"]


def test_strace_command_extra_args():
    assert strace_command(1, extra_args=["--", "-e", "trace=network"]) == [
        "strace", "-f", "-tt", "-e", "trace=network", "-p", "1",
    ]


def test_parser_requires_container_id():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--runtime-endpoint", "unix:///run/crio/crio.sock"])


class TestMain:
    """Tests for main()."""

    def test_execs_strace(self, runtime_client):
        """Test the process is replaced with strace attached to the resolved pid."""
        cls, instance = runtime_client
        with patch("os.execvp") as execvp:
            main(ARGS)

        cls.assert_called_once_with("unix:///run/crio/crio.sock", crictl="crictl", timeout=10.0)
        instance.check_socket.assert_called_once()
        instance.container_pid.assert_awaited_once_with("abc123")
        execvp.assert_called_once_with("strace", ["strace", "-f", "-tt", "-p", "4242"])

    def test_resolution_failure(self, runtime_client, termination_log):
        """Test a failed lookup exits non-zero with a termination message."""
        _, instance = runtime_client
        instance.container_pid = AsyncMock(side_effect=RuntimeSocketError("container abc123 not found"))

        with patch("os.execvp") as execvp:
            code = main(ARGS)

        assert code == 2
        execvp.assert_not_called()
        assert termination_log.read_text() == "container abc123 not found"

    def test_socket_missing(self, runtime_client, termination_log):
        _, instance = runtime_client
        instance.check_socket.side_effect = RuntimeSocketError("runtime socket /run/crio/crio.sock unreachable")

        with patch("os.execvp"):
            assert main(ARGS) == 2

        assert "unreachable" in termination_log.read_text()

    def test_strace_missing(self, runtime_client, termination_log):
        with patch("os.execvp", side_effect=FileNotFoundError(2, "No such file or directory")):
            assert main(ARGS) == 127

        assert termination_log.read_text() == "cannot run strace: No such file or directory"

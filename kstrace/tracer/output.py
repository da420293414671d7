"""Output destinations for trace bytes."""

import sys
from pathlib import Path
from typing import BinaryIO, Protocol

from ..config import CONSOLE_OUTPUT
from ..models import Target, artifact_name


class IOutputSink(Protocol):
    """Receives the trace output of one container, in arrival order."""

    @property
    def description(self) -> str:
        """Where the bytes go, for logs and errors."""
        ...

    def write(self, chunk: bytes) -> None:
        """Write a chunk. Raises OSError on failure."""
        ...

    def close(self) -> None:
        """Flush and release the destination. Idempotent."""
        ...


class FileSink:
    """Writes one container's trace output to a file."""

    def __init__(self, path: Path):
        self._path = path
        self._file: BinaryIO | None = None
        self._closed = False

    @property
    def description(self) -> str:
        return str(self._path)

    @property
    def path(self) -> Path:
        return self._path

    def open(self) -> None:
        """Create the parent directory and truncate the artifact."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self._path, "wb")

    def write(self, chunk: bytes) -> None:
        if self._file is None:
            self.open()
        self._file.write(chunk)
        self._file.flush()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._file is not None:
            self._file.close()


class ConsoleSink:
    """Writes trace output to the operator's console. The stream is never closed."""

    def __init__(self, stream: BinaryIO | None = None):
        self._stream = stream

    @property
    def description(self) -> str:
        return "stdout"

    def open(self) -> None:
        if self._stream is None:
            self._stream = sys.stdout.buffer

    def write(self, chunk: bytes) -> None:
        if self._stream is None:
            self.open()
        self._stream.write(chunk)
        self._stream.flush()

    def close(self) -> None:
        if self._stream is not None:
            self._stream.flush()


def open_sinks(
    target: Target, output: str, console_stream: BinaryIO | None = None
) -> dict[str, FileSink | ConsoleSink]:
    """
    Create and open one sink per target container.

    Args:
        target: Target whose containers are traced.
        output: Output directory, or "-" for the console.
        console_stream: Binary stream used instead of stdout in console mode.

    Returns:
        Mapping of container name to sink.

    Raises:
        OSError: the output directory or an artifact cannot be created.
    """
    sinks: dict[str, FileSink | ConsoleSink] = {}
    try:
        for name in target.container_names:
            if output == CONSOLE_OUTPUT:
                sink = ConsoleSink(console_stream)
            else:
                sink = FileSink(Path(output) / artifact_name(target.pod, target.namespace, name))
            sink.open()
            sinks[name] = sink
    except OSError:
        for sink in sinks.values():
            sink.close()
        raise
    return sinks

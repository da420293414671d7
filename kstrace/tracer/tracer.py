"""Tracer implementation: the lifecycle of one helper pod."""

import asyncio
import contextlib
from typing import BinaryIO, Protocol

from ..cluster import ICluster, build_helper_pod
from ..cluster.pod_spec import TERMINATION_GRACE_PERIOD
from ..config import TraceSettings
from ..errors import (
    AttachError,
    CleanupError,
    ClusterError,
    NotFoundError,
    OutputError,
    PlacementError,
)
from ..logging_config import get_logger
from ..models import PodStatus, Target, TracerState, helper_pod_name
from ..tracker import ITracker
from .output import IOutputSink, open_sinks

logger = get_logger(__name__)

# Waiting reasons after which a helper container will never start
FATAL_WAITING_REASONS = frozenset(
    {
        "ErrImagePull",
        "ImagePullBackOff",
        "ErrImageNeverPull",
        "InvalidImageName",
        "CreateContainerConfigError",
        "CreateContainerError",
        "RunContainerError",
    }
)

# Seconds to let log streams flush after the helper pod is asked to stop
DRAIN_TIMEOUT = TERMINATION_GRACE_PERIOD + 5
EXIT_STATUS_ATTEMPTS = 5


class ITracer(Protocol):
    """Owns the full lifecycle of a single helper pod."""

    @property
    def state(self) -> TracerState:
        ...

    @property
    def target(self) -> Target:
        ...

    async def start(self) -> None:
        """Create the helper pod and block until it runs or definitely fails."""
        ...

    async def wait(self) -> None:
        """Wait until output capture ends."""
        ...

    async def stop(self) -> None:
        """Terminate capture and finalize output. Idempotent."""
        ...

    async def cleanup(self) -> None:
        """Remove the helper pod if it still exists. Idempotent."""
        ...


class Tracer:
    """Traces every container of one target through a privileged helper pod.

    States move strictly CREATED -> LAUNCHING -> ATTACHED -> STOPPING -> CLEANED;
    a failed start skips ATTACHED, and CLEANED is reached on every path.
    """

    def __init__(
        self,
        cluster: ICluster,
        target: Target,
        namespace: str,
        settings: TraceSettings,
        tracker: ITracker,
        trace_duration: float = 0.0,
        console_stream: BinaryIO | None = None,
    ):
        self._cluster = cluster
        self._target = target
        self._namespace = namespace
        self._settings = settings
        self._tracker = tracker
        self._duration = trace_duration
        self._console_stream = console_stream

        self._pod_name = helper_pod_name(target)
        self._state = TracerState.CREATED
        self._submitted = False
        self._delete_attempted = False
        self._stop_requested = False
        self._stop_done = asyncio.Event()
        self._sinks: dict[str, IOutputSink] = {}
        self._capture_tasks: dict[str, asyncio.Task] = {}
        self._timer: asyncio.Task | None = None
        self._cleanup_error: CleanupError | None = None

    @property
    def state(self) -> TracerState:
        return self._state

    @property
    def target(self) -> Target:
        return self._target

    @property
    def pod_name(self) -> str:
        return self._pod_name

    @property
    def destinations(self) -> list[str]:
        """Where each container's output is written."""
        return [sink.description for sink in self._sinks.values()]

    def _transition(self, state: TracerState) -> None:
        logger.debug("Tracer %s: %s -> %s", self._pod_name, self._state.value, state.value)
        self._state = state
        self._track("tracer_state", {"state": state.value})

    def _track(self, event_type: str, data: dict) -> None:
        self._tracker.track(
            event_type,
            f"tracer:{self._pod_name}",
            {"target": str(self._target), "pod": self._pod_name, **data},
        )

    async def start(self) -> None:
        """
        Submit the helper pod into the run namespace and wait for it to run.

        Returns once the pod is running and capture has begun; the trace
        duration, if any, is measured from that moment.

        Raises:
            PlacementError: admission, image pull, kubelet rejection or timeout.
            OutputError: the output destination cannot be opened.
        """
        if self._state is not TracerState.CREATED:
            raise RuntimeError(f"Tracer {self._pod_name} already started")
        self._transition(TracerState.LAUNCHING)

        try:
            self._sinks = open_sinks(self._target, self._settings.output, self._console_stream)
        except OSError as e:
            raise OutputError(self._target, f"cannot open output {self._settings.output!r}: {e}") from e

        manifest = build_helper_pod(
            name=self._pod_name,
            namespace=self._namespace,
            target=self._target,
            image=self._settings.image,
            socket_path=self._settings.socket_path,
        )
        # Set before the call: a timed-out request may still have created the pod
        self._submitted = True
        try:
            await self._cluster.create_pod(self._namespace, manifest)
        except ClusterError as e:
            raise PlacementError(self._target, f"helper pod {self._pod_name} rejected: {e}") from e

        logger.info(
            "Created helper pod %s/%s on node %s for %s",
            self._namespace,
            self._pod_name,
            self._target.node,
            self._target,
        )
        self._track("helper_pod_created", {"namespace": self._namespace, "node": self._target.node})

        await self._wait_running()
        if self._stop_requested:
            return

        self._transition(TracerState.ATTACHED)
        for container, sink in self._sinks.items():
            self._capture_tasks[container] = asyncio.create_task(
                self._capture(container, sink), name=f"capture:{self._pod_name}/{container}"
            )
        if self._duration > 0:
            self._timer = asyncio.create_task(self._expire(), name=f"timer:{self._pod_name}")

    async def _wait_running(self) -> None:
        """Poll the helper pod until it runs, bounded by the request timeout."""
        loop = asyncio.get_running_loop()
        timeout = self._settings.request_timeout_seconds
        deadline = loop.time() + timeout

        while not self._stop_requested:
            try:
                status = await self._cluster.read_pod_status(self._namespace, self._pod_name)
            except NotFoundError:
                status = None  # not visible yet
            except ClusterError as e:
                raise PlacementError(self._target, f"cannot read helper pod status: {e}") from e

            if status is not None and self._is_started(status):
                return

            if loop.time() >= deadline:
                phase = status.phase if status else "Unknown"
                raise PlacementError(
                    self._target,
                    f"helper pod {self._pod_name} not running after {timeout:g}s (phase {phase})",
                )
            await asyncio.sleep(self._settings.poll_interval)

    def _is_started(self, status: PodStatus) -> bool:
        """True once the helper ran; raises PlacementError on definite failure."""
        for container in status.containers:
            if container.waiting_reason in FATAL_WAITING_REASONS:
                raise PlacementError(
                    self._target,
                    f"helper container {container.name} cannot start: "
                    f"{container.waiting_reason}: {container.message or ''}".rstrip(": "),
                )

        if status.phase in ("Running", "Succeeded"):
            return True
        if status.phase == "Failed":
            # Containers that ran and exited are attach failures, reported by wait()
            if any(container.terminated for container in status.containers):
                return True
            raise PlacementError(
                self._target,
                f"helper pod {self._pod_name} rejected by node {self._target.node}: "
                f"{status.reason or 'Failed'}: {status.message or ''}".rstrip(": "),
            )
        return False

    async def _capture(self, container: str, sink: IOutputSink) -> None:
        """Forward one helper container's log to its sink until the stream ends."""
        try:
            stream = self._cluster.stream_logs(self._namespace, self._pod_name, container)
            async with contextlib.aclosing(stream):
                async for chunk in stream:
                    try:
                        sink.write(chunk)
                    except OSError as e:
                        raise OutputError(
                            self._target, f"cannot write {sink.description}: {e}"
                        ) from e
        except ClusterError as e:
            if self._stop_requested:
                return
            raise AttachError(
                self._target, f"log stream of helper container {container} failed: {e}"
            ) from e

    async def _expire(self) -> None:
        await asyncio.sleep(self._duration)
        logger.info("Trace duration of %gs elapsed for %s", self._duration, self._target)
        self._track("trace_timeout", {"duration": self._duration})
        await self._stop_quietly()

    async def wait(self) -> None:
        """
        Wait until output capture ends, then stop.

        Capture ends when the tracer is stopped (explicitly or by timeout),
        when the helper exits, or when an output write fails.

        Raises:
            OutputError: a sink failed; the tracer is stopped first.
            AttachError: the helper exited with an error without being stopped.
        """
        if not self._capture_tasks:
            return

        done, _ = await asyncio.wait(
            self._capture_tasks.values(), return_when=asyncio.FIRST_EXCEPTION
        )
        error = next(
            (task.exception() for task in done if not task.cancelled() and task.exception()),
            None,
        )
        if error is not None:
            self._track("tracer_failed", {"phase": getattr(error, "phase", "trace"), "error": str(error)})
            await self._stop_quietly()
            raise error

        if not self._stop_requested:
            try:
                await self._check_exit()
            finally:
                await self._stop_quietly()
        else:
            await self._stop_done.wait()

    async def _stop_quietly(self) -> None:
        try:
            await self.stop()
        except CleanupError as e:
            # Reported again by cleanup(), which the teardown collects
            logger.warning("%s", e)
            self._cleanup_error = e

    async def _check_exit(self) -> None:
        """Inspect a helper that ended on its own."""
        status = None
        for _ in range(EXIT_STATUS_ATTEMPTS):
            try:
                status = await self._cluster.read_pod_status(self._namespace, self._pod_name)
            except NotFoundError as e:
                raise AttachError(self._target, f"helper pod {self._pod_name} disappeared") from e
            except ClusterError as e:
                raise AttachError(self._target, f"cannot read helper pod status: {e}") from e
            if all(container.terminated for container in status.containers):
                break
            await asyncio.sleep(self._settings.poll_interval)

        failed = [
            container
            for container in status.containers
            if container.terminated and container.exit_code not in (0, None)
        ]
        if failed:
            detail = "; ".join(
                f"helper container {c.name} exited with code {c.exit_code}: "
                f"{(c.message or c.reason or '').strip()}".rstrip(": ")
                for c in failed
            )
            self._track("tracer_failed", {"phase": AttachError.phase, "error": detail})
            raise AttachError(self._target, detail)

        running = [container.name for container in status.containers if not container.terminated]
        if running:
            logger.warning(
                "Log stream of %s ended while helper containers %s still run",
                self._pod_name,
                ", ".join(running),
            )
        else:
            logger.info("Helper for %s finished: traced process exited", self._target)

    async def stop(self) -> None:
        """
        Ask the helper to terminate capture and finalize the output.

        Deleting the helper pod delivers the termination signal to strace.
        A no-op before start and after a previous stop; a concurrent second
        call waits for the first to finish.
        """
        if self._state in (TracerState.CREATED, TracerState.CLEANED):
            return
        if self._state is TracerState.STOPPING:
            await self._stop_done.wait()
            return

        self._stop_requested = True
        self._transition(TracerState.STOPPING)
        if self._timer is not None and self._timer is not asyncio.current_task():
            self._timer.cancel()

        try:
            if self._submitted and not self._delete_attempted:
                await self._delete_pod(TERMINATION_GRACE_PERIOD)
        finally:
            await self._drain()
            self._close_sinks()
            self._stop_done.set()

    async def _drain(self) -> None:
        """Let capture tasks flush what the helper wrote before it exited."""
        tasks = [task for task in self._capture_tasks.values() if not task.done()]
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=DRAIN_TIMEOUT)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending)
            logger.warning("Gave up draining %d log stream(s) of %s", len(pending), self._pod_name)

    async def cleanup(self) -> None:
        """
        Remove the helper pod if it still exists and release the outputs.

        Safe to call at any point, including after a failed or partial start.

        Raises:
            CleanupError: the helper pod could not be deleted, here or by an
                earlier stop that ended the trace.
        """
        if self._state is TracerState.CLEANED:
            return

        leftovers = [task for task in self._capture_tasks.values() if not task.done()]
        if self._timer is not None and not self._timer.done() and self._timer is not asyncio.current_task():
            leftovers.append(self._timer)
        for task in leftovers:
            task.cancel()
        if leftovers:
            await asyncio.gather(*leftovers, return_exceptions=True)

        try:
            if self._submitted and not self._delete_attempted:
                await self._delete_pod(0)
        finally:
            self._close_sinks()
            self._stop_done.set()
            self._transition(TracerState.CLEANED)

        if self._cleanup_error is not None:
            error, self._cleanup_error = self._cleanup_error, None
            raise error

    async def _delete_pod(self, grace_period: int) -> None:
        # Attempted exactly once; the run namespace deletion sweeps up failures
        self._delete_attempted = True
        try:
            await self._cluster.delete_pod(
                self._namespace, self._pod_name, grace_period_seconds=grace_period
            )
        except NotFoundError:
            logger.debug("Helper pod %s already deleted", self._pod_name)
            return
        except ClusterError as e:
            self._track("helper_pod_cleanup_failed", {"error": str(e)})
            raise CleanupError(f"cannot delete helper pod {self._namespace}/{self._pod_name}: {e}") from e

        logger.info("Deleted helper pod %s/%s", self._namespace, self._pod_name)
        self._track("helper_pod_deleted", {"namespace": self._namespace})

    def _close_sinks(self) -> None:
        for sink in self._sinks.values():
            try:
                sink.close()
            except OSError as e:
                logger.error("Cannot close %s: %s", sink.description, e)

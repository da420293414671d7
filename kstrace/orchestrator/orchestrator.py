"""Orchestrator: fans out one Tracer per target and supervises teardown."""

import asyncio
from dataclasses import dataclass
from typing import BinaryIO, Callable, Protocol

from ..cluster import ICluster
from ..config import TraceSettings, parse_duration
from ..errors import KStraceError, RunError, TracerError, ValidationError
from ..logging_config import get_logger
from ..models import Target, TracerFailure, helper_pod_name
from ..namespace import INamespaceManager, NamespaceManager
from ..tracer import ITracer, Tracer
from ..tracker import ITracker, Tracker
from .teardown import TeardownStack

logger = get_logger(__name__)

TracerFactory = Callable[[Target, str, float], ITracer]


@dataclass
class RunPlan:
    """The validated shape of a run, computed before any cluster mutation."""

    targets: list[Target]
    trace_duration: float  # seconds, 0 = until stopped
    helper_pods: dict[str, Target]


class IOrchestrator(Protocol):
    """Fan-out and supervision of all tracers for one invocation."""

    def validate(self, targets: list[Target]) -> RunPlan:
        """Pre-flight checks. Raises ValidationError."""
        ...

    async def run(self, targets: list[Target]) -> None:
        """Trace every target; every helper resource is gone when this returns."""
        ...


class Orchestrator:
    """Runs tracers concurrently inside one disposable namespace."""

    def __init__(
        self,
        cluster: ICluster,
        settings: TraceSettings,
        tracker: ITracker | None = None,
        namespace_manager: INamespaceManager | None = None,
        tracer_factory: TracerFactory | None = None,
        console_stream: BinaryIO | None = None,
    ):
        self._cluster = cluster
        self._settings = settings
        self._tracker = tracker or Tracker()
        self._namespaces = namespace_manager or NamespaceManager(cluster, self._tracker)
        self._tracer_factory = tracer_factory
        self._console_stream = console_stream

        self._namespace: str | None = None
        self._tracers: list[ITracer] = []
        self._teardown_errors: list[tuple[str, Exception]] = []

    @property
    def tracker(self) -> ITracker:
        return self._tracker

    @property
    def tracers(self) -> list[ITracer]:
        return list(self._tracers)

    @property
    def namespace(self) -> str | None:
        """Run namespace of the current or last run."""
        return self._namespace

    @property
    def teardown_errors(self) -> list[tuple[str, Exception]]:
        """Cleanup failures of the last run; reported, never raised."""
        return list(self._teardown_errors)

    def validate(self, targets: list[Target]) -> RunPlan:
        """
        Fail fast, before any cluster mutation.

        Raises:
            ValidationError: no targets, console output with more than one
                target or container, a bad trace duration, or two targets
                mapping onto the same helper pod.
        """
        if not targets:
            raise ValidationError("a target pod must be defined")

        if self._settings.console_output:
            if len(targets) > 1:
                raise ValidationError("cannot have multiple target pods but output to standard out")
            if len(targets[0].containers) > 1:
                raise ValidationError(
                    f"there are multiple containers defined for pod {targets[0].pod!r}. "
                    "unable to output to standard out for pods with multiple containers"
                )

        for target in targets:
            if not target.containers:
                raise ValidationError(f"{target} has no containers to trace")

        try:
            duration = parse_duration(self._settings.trace_timeout)
        except ValueError as e:
            raise ValidationError(f"invalid trace timeout: {e}") from e

        helper_pods: dict[str, Target] = {}
        for target in targets:
            name = helper_pod_name(target)
            if name in helper_pods:
                raise ValidationError(
                    f"{target} and {helper_pods[name]} map to the same helper pod {name!r}"
                )
            helper_pods[name] = target

        return RunPlan(targets=list(targets), trace_duration=duration, helper_pods=helper_pods)

    def _make_tracer(self, target: Target, namespace: str, duration: float) -> ITracer:
        if self._tracer_factory is not None:
            return self._tracer_factory(target, namespace, duration)
        return Tracer(
            cluster=self._cluster,
            target=target,
            namespace=namespace,
            settings=self._settings,
            tracker=self._tracker,
            trace_duration=duration,
            console_stream=self._console_stream,
        )

    async def run(self, targets: list[Target]) -> None:
        """
        Trace every target and tear everything down.

        Teardown runs in reverse registration order: tracers last started
        first, the run namespace last. It runs the same way on success, on
        failure and on cancellation.

        Raises:
            ValidationError: pre-flight checks failed; nothing was created.
            NamespaceError: the run namespace could not be created.
            RunError: one or more tracers failed; names every failed target.
        """
        plan = self.validate(targets)
        self._tracers = []
        self._teardown_errors = []

        namespace = await self._namespaces.create_namespace()
        self._namespace = namespace
        teardown = TeardownStack()
        teardown.push(f"namespace {namespace}", lambda: self._namespaces.cleanup_namespace(namespace))

        failures: list[TracerFailure] = []
        try:
            self._tracers = [
                self._make_tracer(target, namespace, plan.trace_duration)
                for target in plan.targets
            ]
            failures = await self._start_all(self._tracers, teardown)
            if failures:
                logger.error("%d tracer(s) failed to start, tearing down", len(failures))
            else:
                logger.info(
                    "Tracing %d target(s)%s",
                    len(self._tracers),
                    f" for {plan.trace_duration:g}s" if plan.trace_duration else " until interrupted",
                )
                failures = await self._wait_all(self._tracers)
        finally:
            await teardown.unwind()
            self._teardown_errors = teardown.errors
            self._tracker.track(
                "run_finished",
                "orchestrator",
                {
                    "namespace": namespace,
                    "failed_targets": [str(failure.target) for failure in failures],
                    "teardown_errors": [description for description, _ in teardown.errors],
                },
            )

        if failures:
            raise RunError(failures)

    async def _start_all(
        self, tracers: list[ITracer], teardown: TeardownStack
    ) -> list[TracerFailure]:
        """Start tracers concurrently; each is registered for teardown as it starts."""
        semaphore = asyncio.Semaphore(self._settings.concurrency)

        async def start_one(tracer: ITracer) -> TracerFailure | None:
            async with semaphore:
                teardown.push(str(tracer.target), lambda: self._teardown_tracer(tracer))
                try:
                    await tracer.start()
                except KStraceError as e:
                    logger.error("Failed to start tracer for %s: %s", tracer.target, e)
                    return TracerFailure(tracer.target, _phase(e, "start"), e)
            return None

        results = await asyncio.gather(
            *(start_one(tracer) for tracer in tracers), return_exceptions=True
        )
        return _collect(results)

    async def _wait_all(self, tracers: list[ITracer]) -> list[TracerFailure]:
        """Wait for every tracer; one failing never aborts its siblings."""

        async def wait_one(tracer: ITracer) -> TracerFailure | None:
            try:
                await tracer.wait()
            except KStraceError as e:
                logger.error("Tracer for %s failed: %s", tracer.target, e)
                return TracerFailure(tracer.target, _phase(e, "trace"), e)
            return None

        results = await asyncio.gather(
            *(wait_one(tracer) for tracer in tracers), return_exceptions=True
        )
        return _collect(results)

    @staticmethod
    async def _teardown_tracer(tracer: ITracer) -> None:
        try:
            await tracer.stop()
        finally:
            await tracer.cleanup()


def _phase(error: KStraceError, default: str) -> str:
    return error.phase if isinstance(error, TracerError) else default


def _collect(results: list) -> list[TracerFailure]:
    """Failures from gathered results; anything unexpected is re-raised."""
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return [result for result in results if result is not None]

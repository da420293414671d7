"""Tests for the helper pod manifest."""

from kstrace.cluster import build_helper_pod, helper_args, runtime_endpoint
from kstrace.cluster.pod_spec import RUNTIME_SOCKET_VOLUME, TARGET_POD_ANNOTATION

SOCKET = "/run/crio/crio.sock"


def build(target, socket_path=SOCKET):
    return build_helper_pod(
        name="kstrace-web-1-abcdef12",
        namespace="kstrace-run001",
        target=target,
        image="quay.io/example/tracer:1",
        socket_path=socket_path,
    )


def test_runtime_endpoint():
    assert runtime_endpoint(SOCKET) == "unix:///run/crio/crio.sock"


def test_helper_args():
    assert helper_args("abc123", SOCKET) == [
        "--container-id",
        "abc123",
        "--runtime-endpoint",
        "unix:///run/crio/crio.sock",
    ]


class TestBuildHelperPod:
    """Tests for build_helper_pod()."""

    def test_pinned_to_target_node(self, make_target):
        """Test the pod is placed directly on the target's node."""
        pod = build(make_target(node="node-7"))

        assert pod.spec.node_name == "node-7"
        assert pod.metadata.namespace == "kstrace-run001"
        assert pod.metadata.annotations[TARGET_POD_ANNOTATION] == "web-1"

    def test_host_pid_and_privileges(self, make_target):
        """Test the helper can see and ptrace host processes."""
        pod = build(make_target())

        assert pod.spec.host_pid is True
        assert pod.spec.restart_policy == "Never"
        context = pod.spec.containers[0].security_context
        assert context.privileged is True
        assert "SYS_PTRACE" in context.capabilities.add

    def test_one_container_per_target_container(self, make_target):
        pod = build(make_target(containers=("app", "sidecar")))

        assert [c.name for c in pod.spec.containers] == ["app", "sidecar"]
        assert pod.spec.containers[1].args[:2] == ["--container-id", "sidecar-web-1-id"]
        assert all(c.image == "quay.io/example/tracer:1" for c in pod.spec.containers)

    def test_socket_mounted_at_host_path(self, make_target):
        """Test the runtime socket appears at the same path inside the helper."""
        pod = build(make_target(), socket_path="/run/containerd/containerd.sock")

        volume = pod.spec.volumes[0]
        assert volume.name == RUNTIME_SOCKET_VOLUME
        assert volume.host_path.path == "/run/containerd/containerd.sock"
        assert volume.host_path.type == "Socket"
        mount = pod.spec.containers[0].volume_mounts[0]
        assert mount.mount_path == "/run/containerd/containerd.sock"
        assert pod.spec.containers[0].args[-1] == "unix:///run/containerd/containerd.sock"

    def test_tolerates_tainted_nodes(self, make_target):
        pod = build(make_target())

        assert pod.spec.tolerations[0].operator == "Exists"

    def test_runs_helper_command(self, make_target):
        """Test every helper container runs kstrace-helper instead of the image entrypoint."""
        pod = build(make_target(containers=("app", "sidecar")))

        assert [c.command for c in pod.spec.containers] == [["kstrace-helper"], ["kstrace-helper"]]

import json
import os
import sys
import time
from datetime import datetime, timedelta

import pytest

from kindling import nodes
from kindling.cri import Mount
from kindling.exec import CommandError
from kindling.node import Node, NodeError

_FAKE = """
import json, os, sys
here = os.path.dirname(os.path.abspath(__file__))
with open(os.path.join(here, "config.json")) as f:
    cfg = json.load(f)
args = sys.argv[1:]
with open(os.path.join(here, "calls.jsonl"), "a") as f:
    f.write(json.dumps(args) + "\\n")
verb = args[0] if args else ""
out = ""
status = 0
if verb == "inspect":
    out = cfg.get("roles", {}).get(args[-1], "") + "\\n"
elif verb in ("ps", "exec", "run", "info", "network", "rm"):
    out = cfg.get(verb, "")
    status = cfg.get(verb + "_status", 0)
sys.stdout.write(out)
sys.exit(status)
"""

_PROXY_VARS = ("HTTP_PROXY", "HTTPS_PROXY", "NO_PROXY")


class FakeDocker:
    def __init__(self, bindir):
        self.bindir = bindir
        self.configure()

    def configure(self, **cfg):
        (self.bindir / "config.json").write_text(json.dumps(cfg))

    def calls(self):
        path = self.bindir / "calls.jsonl"
        if not path.exists():
            return []
        return [json.loads(line) for line in path.read_text().splitlines()]


@pytest.fixture
def fake_docker(tmp_path, monkeypatch):
    bindir = tmp_path / "bin"
    bindir.mkdir()
    script = bindir / "fake_docker.py"
    script.write_text(_FAKE)
    wrapper = bindir / "docker"
    wrapper.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{script}" "$@"\n')
    wrapper.chmod(0o755)
    monkeypatch.setenv("PATH", f"{bindir}{os.pathsep}{os.environ.get('PATH', '')}")
    for name in _PROXY_VARS:
        monkeypatch.delenv(name, raising=False)
        monkeypatch.delenv(name.lower(), raising=False)
    return FakeDocker(bindir)


def test_list_nodes_parses_names_and_passes_filters(fake_docker):
    fake_docker.configure(ps="kind-control-plane\tkind\nother-worker,alias\tother\n")
    result = nodes.list_nodes("status=running")
    assert [node.name for node in result] == ["kind-control-plane", "other-worker"]
    (call,) = fake_docker.calls()
    assert call[0] == "ps"
    assert "label=io.k8s.sigs.kind.cluster" in call
    assert call[-2:] == ["--filter", "status=running"]


def test_list_by_cluster_groups_nodes(fake_docker):
    fake_docker.configure(ps="a\tkind\nb\tother\nc\tkind\n")
    result = nodes.list_by_cluster()
    assert {k: [n.name for n in v] for k, v in result.items()} == {
        "kind": ["a", "c"],
        "other": ["b"],
    }


def test_list_rejects_invalid_line(fake_docker):
    fake_docker.configure(ps="no-tab-here\n")
    with pytest.raises(NodeError, match="invalid output when listing nodes"):
        nodes.list_nodes()


def test_list_failure_raises(fake_docker):
    fake_docker.configure(ps_status=1)
    with pytest.raises(NodeError, match="failed to list nodes"):
        nodes.list_by_cluster()


def test_delete_without_nodes_runs_nothing(fake_docker):
    fake_docker.configure(rm_status=1)
    assert nodes.delete() is None
    assert fake_docker.calls() == []


def test_delete_removes_containers(fake_docker):
    nodes.delete(Node("a"), Node("b"))
    assert fake_docker.calls() == [["rm", "-f", "-v", "a", "b"]]
    fake_docker.configure(rm_status=1)
    with pytest.raises((NodeError, CommandError)):
        nodes.delete(Node("a"), Node("b"))


def _cluster(fake_docker, roles):
    fake_docker.configure(roles=roles)
    return [Node(name) for name in roles]


def test_select_and_control_plane_ordering(fake_docker):
    all_nodes = _cluster(
        fake_docker,
        {
            "cp-b": "control-plane",
            "worker": "worker",
            "cp-a": "'control-plane'",
        },
    )
    assert [n.name for n in nodes.select_nodes_by_role(all_nodes, "worker")] == ["worker"]
    assert [n.name for n in nodes.control_plane_nodes(all_nodes)] == ["cp-a", "cp-b"]
    assert nodes.bootstrap_control_plane_node(all_nodes).name == "cp-a"
    assert [n.name for n in nodes.secondary_control_plane_nodes(all_nodes)] == ["cp-b"]


def test_bootstrap_requires_control_plane(fake_docker):
    all_nodes = _cluster(fake_docker, {"w": "worker"})
    with pytest.raises(NodeError, match="expected at least one control-plane node"):
        nodes.bootstrap_control_plane_node(all_nodes)
    with pytest.raises(NodeError, match="expected at least one control-plane node"):
        nodes.secondary_control_plane_nodes(all_nodes)


def test_external_load_balancer_node(fake_docker):
    all_nodes = _cluster(
        fake_docker, {"lb": "external-load-balancer", "cp": "control-plane"}
    )
    assert nodes.external_load_balancer_node(all_nodes).name == "lb"
    assert nodes.external_load_balancer_node(all_nodes[1:]) is None


def test_multiple_load_balancers_is_an_error(fake_docker):
    all_nodes = _cluster(
        fake_docker, {"lb1": "external-load-balancer", "lb2": "external-load-balancer"}
    )
    with pytest.raises(NodeError, match="unexpected number"):
        nodes.external_load_balancer_node(all_nodes)


def _run_call(fake_docker):
    return next(call for call in fake_docker.calls() if call[0] == "run")


def test_create_worker_node(fake_docker):
    mount = Mount(container_path="/c", host_path="/h", readonly=True)
    node = nodes.create_worker_node("kind-worker", "img:1", "io.k8s.sigs.kind.cluster=kind", [mount], None)
    assert node.name == "kind-worker"
    call = _run_call(fake_docker)
    assert call[-1] == "img:1"
    assert "io.k8s.sigs.kind.role=worker" in call
    assert "--volume=/h:/c:ro" in call
    assert "--userns=host" not in call
    assert call[call.index("--name") + 1] == "kind-worker"


def test_create_node_extra_args_and_userns(fake_docker):
    fake_docker.configure(info="'[\"name=userns\"]'\n")
    node = nodes.create_node("n", "img", "label", "control-plane", None, None, "--expose", "1234")
    assert node.name == "n"
    call = _run_call(fake_docker)
    assert "--userns=host" in call
    assert call.index("--expose") < call.index("--userns=host")
    assert call[call.index("--expose") + 1] == "1234"


def test_create_node_passes_proxy_settings(fake_docker, monkeypatch):
    monkeypatch.setenv("HTTP_PROXY", "http://proxy.example.com:3128")
    fake_docker.configure(network="172.17.0.0/16 \n")
    node = nodes.create_worker_node("n", "img", "label", None, None)
    assert node.name == "n"
    call = _run_call(fake_docker)
    assert "HTTP_PROXY=http://proxy.example.com:3128" in call
    assert "http_proxy=http://proxy.example.com:3128" in call
    assert "NO_PROXY=172.17.0.0/16," in call


def test_create_node_failure_carries_handle(fake_docker):
    fake_docker.configure(run="boom\n", run_status=1)
    with pytest.raises(NodeError, match="docker run error") as info:
        nodes.create_worker_node("broken", "img", "label", None, None)
    assert info.value.node.name == "broken"


def test_wait_for_ready_true(fake_docker):
    fake_docker.configure(exec="'True True'\n")
    assert nodes.wait_for_ready(Node("cp"), datetime.now() + timedelta(seconds=30)) is True
    call = fake_docker.calls()[0]
    assert call[:3] == ["exec", "--privileged", "cp"]


def test_wait_for_ready_times_out(fake_docker):
    fake_docker.configure(exec="'True False'\n")
    assert nodes.wait_for_ready(Node("cp"), time.time() + 0.3) is False


def test_wait_for_ready_past_deadline_does_nothing(fake_docker):
    assert nodes.wait_for_ready(Node("cp"), time.time() - 1) is False
    assert fake_docker.calls() == []
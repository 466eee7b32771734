"""Listing, creating, deleting and selecting kind node containers."""

from __future__ import annotations

import time
from datetime import datetime
from typing import Callable, Iterable

from kindling import docker, dockerrun
from kindling import exec as kexec
from kindling.constants import (
    CLUSTER_LABEL_KEY,
    CONTROL_PLANE_NODE_ROLE_VALUE,
    EXTERNAL_LOAD_BALANCER_NODE_ROLE_VALUE,
    NODE_ROLE_KEY,
    WORKER_NODE_ROLE_VALUE,
)
from kindling.cri import Mount, PortMapping
from kindling.exec import CommandError
from kindling.node import Node, NodeError, get_proxy_details

_DOCKER = "docker"


def delete(*args: Node) -> None:
    """Remove the given node containers and their volumes."""
    if not args:
        return
    ids = [node.name for node in args]
    kexec.command(_DOCKER, "rm", "-f", "-v", *ids).run()


def _list(visit: Callable[[str, Node], None], filters: Iterable[str]) -> None:
    args = [
        "ps",
        "-q",
        "-a",
        "--no-trunc",
        "--filter",
        f"label={CLUSTER_LABEL_KEY}",
        "--format",
        f'{{{{.Names}}}}\\t{{{{.Label "{CLUSTER_LABEL_KEY}"}}}}',
    ]
    for extra in filters:
        args.extend(["--filter", extra])
    try:
        lines = kexec.combined_output_lines(kexec.command(_DOCKER, *args))
    except CommandError as err:
        raise NodeError(f"failed to list nodes: {err}") from err
    for line in lines:
        parts = line.split("\t")
        if len(parts) != 2:
            raise NodeError(f"invalid output when listing nodes: {line}")
        names = parts[0].split(",")
        visit(parts[1], Node(names[0]))


def list_nodes(*args: str) -> list[Node]:
    """Return all kind node containers, optionally narrowed by docker ps filters."""
    result: list[Node] = []
    _list(lambda cluster, node: result.append(node), args)
    return result


def list_by_cluster(*args: str) -> dict[str, list[Node]]:
    """Return kind node containers grouped by their cluster name."""
    result: dict[str, list[Node]] = {}
    _list(lambda cluster, node: result.setdefault(cluster, []).append(node), args)
    return result


def _deadline(until: datetime | float) -> float:
    if isinstance(until, datetime):
        return until.timestamp()
    return float(until)


def _try_until(deadline: float, attempt: Callable[[], bool]) -> bool:
    while deadline > time.time():
        if attempt():
            return True
    return False


def wait_for_ready(node: Node, until: datetime | float) -> bool:
    """Wait until every control plane node reports Ready, or ``until`` passes.

    ``until`` is a datetime or a POSIX timestamp. Returns whether the nodes
    became ready in time.
    """

    def ready() -> bool:
        cmd = node.command(
            "kubectl",
            "--kubeconfig=/etc/kubernetes/admin.conf",
            "get",
            "nodes",
            "--selector=node-role.kubernetes.io/master",
            "-o=jsonpath='{.items..status.conditions[-1:].status}'",
        )
        try:
            lines = kexec.combined_output_lines(cmd)
        except CommandError:
            return False
        if not lines:
            return False
        return all("True" in status for status in lines[0].split())

    return _try_until(_deadline(until), ready)


def select_nodes_by_role(all_nodes: Iterable[Node], role: str) -> list[Node]:
    """Return the nodes whose role is ``role``."""
    return [node for node in all_nodes if node.role() == role]


def external_load_balancer_node(all_nodes: Iterable[Node]) -> Node | None:
    """Return the external load balancer node, or None if there is none."""
    balancers = select_nodes_by_role(all_nodes, EXTERNAL_LOAD_BALANCER_NODE_ROLE_VALUE)
    if not balancers:
        return None
    if len(balancers) > 1:
        raise NodeError(
            f"unexpected number of {EXTERNAL_LOAD_BALANCER_NODE_ROLE_VALUE} "
            f"nodes {len(balancers)}"
        )
    return balancers[0]


def control_plane_nodes(all_nodes: Iterable[Node]) -> list[Node]:
    """Return the control plane nodes sorted by name; the first bootstraps."""
    nodes = select_nodes_by_role(all_nodes, CONTROL_PLANE_NODE_ROLE_VALUE)
    return sorted(nodes, key=lambda node: node.name)


def bootstrap_control_plane_node(all_nodes: Iterable[Node]) -> Node:
    """Return the bootstrap control plane node."""
    nodes = control_plane_nodes(all_nodes)
    if not nodes:
        raise NodeError(f"expected at least one {CONTROL_PLANE_NODE_ROLE_VALUE} node")
    return nodes[0]


def secondary_control_plane_nodes(all_nodes: Iterable[Node]) -> list[Node]:
    """Return the control plane nodes other than the bootstrap one."""
    nodes = control_plane_nodes(all_nodes)
    if not nodes:
        raise NodeError(f"expected at least one {CONTROL_PLANE_NODE_ROLE_VALUE} node")
    return nodes[1:]


def create_node(
    name: str,
    image: str,
    cluster_label: str,
    role: str,
    mounts: Iterable[Mount] | None,
    port_mappings: Iterable[PortMapping] | None,
    *args: str,
) -> Node:
    """Start a node container with ``docker run`` and return a handle to it.

    Extra ``args`` are appended to the run arguments. If docker run fails
    the raised NodeError carries the handle in ``node`` for cleanup.
    """
    run_args = [
        "--detach",
        "--tty",
        "--privileged",
        "--security-opt", "seccomp=unconfined",
        "--tmpfs", "/tmp",
        "--tmpfs", "/run",
        "--volume", "/var",
        "--volume", "/lib/modules:/lib/modules:ro",
        "--hostname", name,
        "--name", name,
        "--network kind",
        "--ip 192.168.64.10",
        "--label", cluster_label,
        "--label", f"{NODE_ROLE_KEY}={role}",
    ]

    try:
        proxy_envs = get_proxy_details()
    except (NodeError, CommandError) as err:
        raise NodeError(f"proxy setup error: {err}") from err
    for key, value in proxy_envs.items():
        run_args.extend(["-e", f"{key}={value}"])

    run_args.extend(args)

    if docker.userns_remap():
        run_args.append("--userns=host")

    handle = Node(name)
    try:
        dockerrun.run(
            image,
            run_args=run_args,
            mounts=mounts or (),
            port_mappings=port_mappings or (),
        )
    except CommandError as err:
        error = NodeError(f"docker run error: {err}")
        error.node = handle  # type: ignore[attr-defined]
        raise error from err
    return handle


def create_worker_node(
    name: str,
    image: str,
    cluster_label: str,
    mounts: Iterable[Mount] | None,
    port_mappings: Iterable[PortMapping] | None,
) -> Node:
    """Start a worker node container."""
    return create_node(
        name, image, cluster_label, WORKER_NODE_ROLE_VALUE, mounts, port_mappings
    )
"""A handle to a kind node container and the operations run on it."""

from __future__ import annotations

import io
import json
import os
import posixpath
import re
import threading
from dataclasses import dataclass, field
from typing import IO, Any, Mapping

from kindling import docker
from kindling import exec as kexec
from kindling.constants import NODE_ROLE_KEY
from kindling.docker import ContainerCmder
from kindling.exec import Cmd, Cmder, CommandError

DEFAULT_NETWORK = "bridge"
"""The name of docker's default bridge network."""

HTTP_PROXY = "HTTP_PROXY"
HTTPS_PROXY = "HTTPS_PROXY"
NO_PROXY = "NO_PROXY"

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1
_INTEGER = re.compile(r"[+-]?[0-9]+")


class NodeError(Exception):
    """An operation on a node failed or returned unexpected output."""


@dataclass
class _NodeCache:
    kubernetes_version: str = ""
    ipv4: str = ""
    ipv6: str = ""
    ports: dict[int, int] = field(default_factory=dict)
    role: str = ""


class Node(Cmder):
    """A handle to a node, named by its container name or ID.

    Facts read from the container are cached; the handle is thread safe.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.Lock()
        self._cache = _NodeCache()

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"Node({self.name!r})"

    def _remember_ports(self, ports: Mapping[int, int]) -> None:
        with self._lock:
            self._cache.ports = dict(ports)

    def cmder(self) -> Cmder:
        """Return a cmder that runs commands on the node via docker exec."""
        return ContainerCmder(self.name)

    def command(self, command: str, *args: str) -> Cmd:
        """Return a command that runs on the node."""
        return self.cmder().command(command, *args)

    def copy_to(self, source: str, dest: str) -> None:
        """Copy ``source`` on the host to ``dest`` on the node."""
        docker.copy_to(source, self.name, dest)

    def copy_from(self, source: str, dest: str) -> None:
        """Copy ``source`` on the node to ``dest`` on the host."""
        docker.copy_from(self.name, source, dest)

    def kube_version(self) -> str:
        """Return the Kubernetes version installed on the node."""
        with self._lock:
            cached = self._cache.kubernetes_version
        if cached:
            return cached
        try:
            lines = kexec.combined_output_lines(self.command("cat", "/kind/version"))
        except CommandError as err:
            raise NodeError(f"failed to get file: {err}") from err
        if len(lines) != 1:
            raise NodeError(f"file should only be one line, got {len(lines)} lines")
        version = lines[0]
        with self._lock:
            self._cache.kubernetes_version = version
        return version

    def ip(self) -> tuple[str, str]:
        """Return the node's ``(ipv4, ipv6)`` addresses."""
        with self._lock:
            cached = (self._cache.ipv4, self._cache.ipv6)
        if cached[0] and cached[1]:
            return cached
        try:
            lines = docker.inspect(
                self.name,
                "{{range .NetworkSettings.Networks}}"
                "{{.IPAddress}},{{.GlobalIPv6Address}}{{end}}",
            )
        except CommandError as err:
            raise NodeError(f"failed to get container details: {err}") from err
        if len(lines) != 1:
            raise NodeError(f"file should only be one line, got {len(lines)} lines")
        ips = lines[0].split(",")
        if len(ips) != 2:
            raise NodeError(
                f"container addresses should have 2 values, got {len(ips)} values"
            )
        with self._lock:
            self._cache.ipv4, self._cache.ipv6 = ips
        return ips[0], ips[1]

    def ports(self, container_port: int) -> int:
        """Return the host port mapped to the node's TCP ``container_port``."""
        with self._lock:
            cached = self._cache.ports.get(container_port)
        if cached is not None:
            return cached
        template = (
            "{{(index (index .NetworkSettings.Ports "
            f'"{container_port}/tcp") 0).HostPort}}}}'
        )
        try:
            lines = docker.inspect(self.name, template)
        except CommandError as err:
            raise NodeError(f"failed to get file: {err}") from err
        if len(lines) != 1:
            raise NodeError(f"file should only be one line, got {len(lines)} lines")
        text = lines[0]
        if not _INTEGER.fullmatch(text):
            raise NodeError(f"failed to get file: invalid port {text!r}")
        host_port = int(text)
        if not _INT32_MIN <= host_port <= _INT32_MAX:
            raise NodeError(f"failed to get file: port out of range {text!r}")
        with self._lock:
            self._cache.ports[container_port] = host_port
        return host_port

    def role(self) -> str:
        """Return the node's role, read from its role label."""
        with self._lock:
            cached = self._cache.role
        if cached:
            return cached
        template = f"{{{{index .Config.Labels {json.dumps(NODE_ROLE_KEY)}}}}}"
        try:
            lines = docker.inspect(self.name, template)
        except CommandError as err:
            raise NodeError(f"failed to get {NODE_ROLE_KEY!r} label: {err}") from err
        if len(lines) != 1:
            raise NodeError(
                f"{NODE_ROLE_KEY!r} label should only be one line, "
                f"got {len(lines)} lines"
            )
        role = lines[0].strip("'")
        with self._lock:
            self._cache.role = role
        return role

    def write_file(self, dest: str, content: str) -> None:
        """Write ``content`` to ``dest`` on the node, creating its directory."""
        try:
            kexec.run_logging_output_on_fail(
                self.command("mkdir", "-p", posixpath.dirname(dest))
            )
        except CommandError as err:
            raise NodeError(f"failed to create directory {dest}: {err}") from err
        cmd = self.command("cp", "/dev/stdin", dest)
        cmd.set_stdin(io.BytesIO(content.encode()))
        cmd.run()

    def image_id(self, image: str) -> str:
        """Return the ID of ``image`` as the node's container runtime sees it."""
        out = io.BytesIO()
        cmd = self.command("crictl", "inspecti", image)
        cmd.set_stdout(out)
        cmd.run()
        try:
            data: Any = json.loads(out.getvalue())
        except ValueError as err:
            raise NodeError(f"invalid image details: {err}") from err
        if data is None:
            return ""
        if not isinstance(data, dict):
            raise NodeError("invalid image details: expected an object")
        status = data.get("status")
        if status is None:
            return ""
        if not isinstance(status, dict):
            raise NodeError("invalid image details: status is not an object")
        image_id = status.get("id")
        if image_id is None:
            return ""
        if not isinstance(image_id, str):
            raise NodeError("invalid image details: id is not a string")
        return image_id

    def load_image_archive(self, image: IO[bytes]) -> None:
        """Import the image archive read from ``image`` into the k8s.io namespace."""
        cmd = self.command("ctr", "--namespace=k8s.io", "images", "import", "-")
        cmd.set_stdin(image)
        try:
            cmd.run()
        except CommandError as err:
            raise NodeError(f"failed to load image: {err}") from err

    def enable_ipv6(self) -> None:
        """Enable IPv6 and IPv6 forwarding inside the node."""
        try:
            kexec.run_logging_output_on_fail(
                self.command("sysctl", "net.ipv6.conf.all.disable_ipv6=0")
            )
        except CommandError as err:
            raise NodeError(f"failed to enable ipv6: {err}") from err
        try:
            kexec.run_logging_output_on_fail(
                self.command("sysctl", "net.ipv6.conf.all.forwarding=1")
            )
        except CommandError as err:
            raise NodeError(f"failed to enable ipv6 forwarding: {err}") from err


def get_proxy_details() -> dict[str, str]:
    """Return the host's proxy environment to pass on to nodes.

    Each variable is given in upper and lower case. When any proxy is set
    the default docker network's subnets are prepended to NO_PROXY.
    """
    envs: dict[str, str] = {}
    for name in (HTTP_PROXY, HTTPS_PROXY, NO_PROXY):
        value = os.environ.get(name) or os.environ.get(name.lower())
        if value:
            envs[name] = value
            envs[name.lower()] = value
    if envs:
        subnets = get_subnets(DEFAULT_NETWORK)
        no_proxy = ",".join([*subnets, envs.get(NO_PROXY, "")])
        envs[NO_PROXY] = no_proxy
        envs[NO_PROXY.lower()] = no_proxy
    return envs


def get_subnets(network_name: str) -> list[str]:
    """Return the subnets of the docker network ``network_name``."""
    template = '{{range (index (index . "IPAM") "Config")}}{{index . "Subnet"}} {{end}}'
    lines = docker.network_inspect([network_name], template)
    if not lines:
        raise NodeError(f"no details returned for network {network_name!r}")
    return lines[0].strip().split(" ")
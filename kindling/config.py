"""Cluster configuration types (v1alpha3) and their defaulting."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from kindling.cri import Mount, PortMapping

DEFAULT_IMAGE = (
    "kindest/node:v1.15.3@sha256:"
    "27e388752544890482a86b90d8ac50fcfa63a2e8656a96ec5337b902ec8e5157"
)
"""The default node image."""

GROUP_NAME = "kind.sigs.k8s.io"
"""API group of the configuration types."""

VERSION = "v1alpha3"
"""API version of the configuration types."""

API_VERSION = f"{GROUP_NAME}/{VERSION}"
"""The apiVersion value for this configuration version."""

KIND = "Cluster"
"""The kind value of a cluster configuration."""

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


class NodeRole(str, Enum):
    """Role of a node in the cluster."""

    CONTROL_PLANE = "control-plane"
    WORKER = "worker"


class ClusterIPFamily(str, Enum):
    """IP family of the cluster network."""

    IPV4 = "ipv4"
    IPV6 = "ipv6"


def _require_mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"expected an object for {what}, got {data!r}")
    return data


def _get(data: Mapping[str, Any], key: str, kind: type, default: Any) -> Any:
    value = data.get(key)
    if value is None:
        return default
    if kind is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"invalid value for {key!r}: {value!r}")
        if not _INT32_MIN <= value <= _INT32_MAX:
            raise ValueError(f"value for {key!r} out of range: {value}")
    elif not isinstance(value, kind):
        raise ValueError(f"invalid value for {key!r}: {value!r}")
    return value


def _get_list(data: Mapping[str, Any], key: str) -> list[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"invalid value for {key!r}: expected a list, got {value!r}")
    return value


def _coerce(enum_cls: type[Enum], value: str) -> Any:
    """Return the enum member for ``value`` if there is one, else ``value``."""
    try:
        return enum_cls(value)
    except ValueError:
        return value


def _text(value: Any) -> str:
    return value.value if isinstance(value, Enum) else value


@dataclass
class Node:
    """A node container of the cluster."""

    role: str = ""
    image: str = ""
    extra_mounts: list[Mount] = field(default_factory=list)
    extra_port_mappings: list[PortMapping] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialize, leaving out empty fields."""
        out: dict[str, Any] = {}
        if self.role:
            out["role"] = _text(self.role)
        if self.image:
            out["image"] = self.image
        if self.extra_mounts:
            out["extraMounts"] = [mount.to_dict() for mount in self.extra_mounts]
        if self.extra_port_mappings:
            out["extraPortMappings"] = [
                mapping.to_dict() for mapping in self.extra_port_mappings
            ]
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Node:
        """Parse the serialized form of a node."""
        data = _require_mapping(data, "node")
        return cls(
            role=_coerce(NodeRole, _get(data, "role", str, "")),
            image=_get(data, "image", str, ""),
            extra_mounts=[Mount.from_dict(item) for item in _get_list(data, "extraMounts")],
            extra_port_mappings=[
                PortMapping.from_dict(item)
                for item in _get_list(data, "extraPortMappings")
            ],
        )


@dataclass
class Networking:
    """Cluster wide network settings."""

    ip_family: str = ""
    api_server_port: int = 0
    api_server_address: str = ""
    pod_subnet: str = ""
    service_subnet: str = ""
    disable_default_cni: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Serialize, leaving out empty fields."""
        out: dict[str, Any] = {}
        if self.ip_family:
            out["ipFamily"] = _text(self.ip_family)
        if self.api_server_port:
            out["apiServerPort"] = self.api_server_port
        if self.api_server_address:
            out["apiServerAddress"] = self.api_server_address
        if self.pod_subnet:
            out["podSubnet"] = self.pod_subnet
        if self.service_subnet:
            out["serviceSubnet"] = self.service_subnet
        if self.disable_default_cni:
            out["disableDefaultCNI"] = True
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Networking:
        """Parse the serialized form of the network settings."""
        data = _require_mapping(data, "networking")
        return cls(
            ip_family=_coerce(ClusterIPFamily, _get(data, "ipFamily", str, "")),
            api_server_port=_get(data, "apiServerPort", int, 0),
            api_server_address=_get(data, "apiServerAddress", str, ""),
            pod_subnet=_get(data, "podSubnet", str, ""),
            service_subnet=_get(data, "serviceSubnet", str, ""),
            disable_default_cni=_get(data, "disableDefaultCNI", bool, False),
        )


@dataclass
class PatchJSON6902:
    """An inline JSON 6902 patch and the resource it targets."""

    group: str = ""
    version: str = ""
    kind: str = ""
    name: str = ""
    namespace: str = ""
    patch: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize; name and namespace are left out when empty."""
        out: dict[str, Any] = {
            "group": self.group,
            "version": self.version,
            "kind": self.kind,
        }
        if self.name:
            out["name"] = self.name
        if self.namespace:
            out["namespace"] = self.namespace
        out["patch"] = self.patch
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PatchJSON6902:
        """Parse the serialized form of a patch."""
        data = _require_mapping(data, "patch")
        return cls(
            group=_get(data, "group", str, ""),
            version=_get(data, "version", str, ""),
            kind=_get(data, "kind", str, ""),
            name=_get(data, "name", str, ""),
            namespace=_get(data, "namespace", str, ""),
            patch=_get(data, "patch", str, ""),
        )


@dataclass
class Cluster:
    """A kind cluster configuration."""

    kind: str = ""
    api_version: str = ""
    nodes: list[Node] = field(default_factory=list)
    networking: Networking = field(default_factory=Networking)
    kubeadm_config_patches: list[str] = field(default_factory=list)
    kubeadm_config_patches_json6902: list[PatchJSON6902] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialize; networking is always written, other empty fields are not."""
        out: dict[str, Any] = {}
        if self.kind:
            out["kind"] = self.kind
        if self.api_version:
            out["apiVersion"] = self.api_version
        if self.nodes:
            out["nodes"] = [node.to_dict() for node in self.nodes]
        out["networking"] = self.networking.to_dict()
        if self.kubeadm_config_patches:
            out["kubeadmConfigPatches"] = list(self.kubeadm_config_patches)
        if self.kubeadm_config_patches_json6902:
            out["kubeadmConfigPatchesJson6902"] = [
                patch.to_dict() for patch in self.kubeadm_config_patches_json6902
            ]
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Cluster:
        """Parse the serialized form of a cluster configuration."""
        data = _require_mapping(data, "cluster")
        patches = _get_list(data, "kubeadmConfigPatches")
        for patch in patches:
            if not isinstance(patch, str):
                raise ValueError(f"invalid kubeadm config patch: {patch!r}")
        networking = data.get("networking")
        return cls(
            kind=_get(data, "kind", str, ""),
            api_version=_get(data, "apiVersion", str, ""),
            nodes=[Node.from_dict(item) for item in _get_list(data, "nodes")],
            networking=Networking() if networking is None else Networking.from_dict(networking),
            kubeadm_config_patches=list(patches),
            kubeadm_config_patches_json6902=[
                PatchJSON6902.from_dict(item)
                for item in _get_list(data, "kubeadmConfigPatchesJson6902")
            ],
        )


def set_defaults_cluster(cluster: Cluster) -> Cluster:
    """Fill the unset fields of ``cluster`` with defaults, in place."""
    if not cluster.nodes:
        cluster.nodes = [Node(image=DEFAULT_IMAGE, role=NodeRole.CONTROL_PLANE)]
    net = cluster.networking
    if not net.ip_family:
        net.ip_family = ClusterIPFamily.IPV4
    ipv6 = net.ip_family == ClusterIPFamily.IPV6
    if not net.api_server_address:
        net.api_server_address = "::1" if ipv6 else "127.0.0.1"
    if not net.pod_subnet:
        net.pod_subnet = "fd00:10:244::/64" if ipv6 else "10.244.0.0/16"
    if not net.service_subnet:
        net.service_subnet = "fd00:10:96::/112" if ipv6 else "10.96.0.0/12"
    return cluster


def set_defaults_node(node: Node) -> Node:
    """Fill the unset fields of ``node`` with defaults, in place."""
    if not node.image:
        node.image = DEFAULT_IMAGE
    if not node.role:
        node.role = NodeRole.CONTROL_PLANE
    return node
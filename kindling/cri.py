"""Container runtime mount and port mapping types with their JSON forms."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Mapping

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


class MountPropagation(IntEnum):
    """How mounts propagate between host and container."""

    NONE = 0
    HOST_TO_CONTAINER = 1
    BIDIRECTIONAL = 2


class PortMappingProtocol(IntEnum):
    """Protocol of a port mapping."""

    TCP = 0
    UDP = 1
    SCTP = 2


_PROPAGATION_NAMES = {
    MountPropagation.NONE: "None",
    MountPropagation.HOST_TO_CONTAINER: "HostToContainer",
    MountPropagation.BIDIRECTIONAL: "Bidirectional",
}
_PROPAGATION_VALUES = {name: value for value, name in _PROPAGATION_NAMES.items()}

_PROTOCOL_NAMES = {
    PortMappingProtocol.TCP: "TCP",
    PortMappingProtocol.UDP: "UDP",
    PortMappingProtocol.SCTP: "SCTP",
}
_PROTOCOL_VALUES = {name: value for value, name in _PROTOCOL_NAMES.items()}


def _field(data: Mapping[str, Any], key: str, kind: type, default: Any) -> Any:
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


def _require_mapping(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"expected an object, got {data!r}")
    return data


@dataclass
class Mount:
    """A host path mounted into a container."""

    container_path: str = ""
    host_path: str = ""
    readonly: bool = False
    selinux_relabel: bool = False
    propagation: MountPropagation = MountPropagation.NONE

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the propagation written as its name."""
        try:
            name = _PROPAGATION_NAMES[MountPropagation(self.propagation)]
        except ValueError:
            raise ValueError(f"unknown propagation value: {self.propagation}") from None
        out: dict[str, Any] = {"propagation": name}
        if self.container_path:
            out["containerPath"] = self.container_path
        if self.host_path:
            out["hostPath"] = self.host_path
        if self.readonly:
            out["readOnly"] = True
        if self.selinux_relabel:
            out["selinuxRelabel"] = True
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Mount:
        """Parse the serialized form; an absent propagation means None."""
        data = _require_mapping(data)
        mount = cls(
            container_path=_field(data, "containerPath", str, ""),
            host_path=_field(data, "hostPath", str, ""),
            readonly=_field(data, "readOnly", bool, False),
            selinux_relabel=_field(data, "selinuxRelabel", bool, False),
        )
        name = _field(data, "propagation", str, "")
        if name:
            try:
                mount.propagation = _PROPAGATION_VALUES[name]
            except KeyError:
                raise ValueError(f"unknown propagation value: {name}") from None
        return mount


@dataclass
class PortMapping:
    """A host port mapped to a container port."""

    container_port: int = 0
    host_port: int = 0
    listen_address: str = ""
    protocol: PortMappingProtocol = PortMappingProtocol.TCP

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the protocol written as its name."""
        try:
            name = _PROTOCOL_NAMES[PortMappingProtocol(self.protocol)]
        except ValueError:
            raise ValueError(f"unknown protocol value: {self.protocol}") from None
        out: dict[str, Any] = {"protocol": name}
        if self.container_port:
            out["containerPort"] = self.container_port
        if self.host_port:
            out["hostPort"] = self.host_port
        if self.listen_address:
            out["listenAddress"] = self.listen_address
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PortMapping:
        """Parse the serialized form; the protocol name is case-insensitive."""
        data = _require_mapping(data)
        mapping = cls(
            container_port=_field(data, "containerPort", int, 0),
            host_port=_field(data, "hostPort", int, 0),
            listen_address=_field(data, "listenAddress", str, ""),
        )
        name = _field(data, "protocol", str, "")
        if name:
            try:
                mapping.protocol = _PROTOCOL_VALUES[name.upper()]
            except KeyError:
                raise ValueError(f"unknown protocol value: {name}") from None
        return mapping
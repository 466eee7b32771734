"""Creating containers with ``docker run`` from mounts and port mappings."""

from __future__ import annotations

import logging
from typing import Iterable

from kindling import exec as kexec
from kindling.cri import Mount, MountPropagation, PortMapping, PortMappingProtocol
from kindling.exec import CommandError

logger = logging.getLogger(__name__)

_PROPAGATION_FLAGS = {
    MountPropagation.BIDIRECTIONAL: "rshared",
    MountPropagation.HOST_TO_CONTAINER: "rslave",
}

_PROTOCOL_NAMES = {
    PortMappingProtocol.TCP: "TCP",
    PortMappingProtocol.UDP: "UDP",
    PortMappingProtocol.SCTP: "SCTP",
}


def generate_mount_bindings(*args: Mount) -> list[str]:
    """Return ``--volume=<host>:<container>[:options]`` flags for the mounts.

    Options are ``ro`` for read-only mounts, ``Z`` for SELinux relabeling
    and ``rshared``/``rslave`` for propagation; unknown propagation modes
    fall back to private.
    """
    result = []
    for mount in args:
        bind = f"{mount.host_path}:{mount.container_path}"
        attrs = []
        if mount.readonly:
            attrs.append("ro")
        if mount.selinux_relabel:
            attrs.append("Z")
        if mount.propagation in _PROPAGATION_FLAGS:
            attrs.append(_PROPAGATION_FLAGS[mount.propagation])
        elif mount.propagation != MountPropagation.NONE:
            logger.warning("unknown propagation mode for hostPath %r", mount.host_path)
        if attrs:
            bind = f"{bind}:{','.join(attrs)}"
        result.append(f"--volume={bind}")
    return result


def _join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def generate_port_mappings(*args: PortMapping) -> list[str]:
    """Return ``--publish=<binding>:<containerPort>/<PROTOCOL>`` flags.

    Unknown protocols are published as TCP.
    """
    result = []
    for mapping in args:
        if mapping.listen_address:
            binding = _join_host_port(mapping.listen_address, mapping.host_port)
        else:
            binding = str(mapping.host_port)
        protocol = _PROTOCOL_NAMES.get(mapping.protocol, "TCP")
        result.append(f"--publish={binding}:{mapping.container_port}/{protocol}")
    return result


def run(
    image: str,
    run_args: Iterable[str] = (),
    container_args: Iterable[str] = (),
    mounts: Iterable[Mount] = (),
    port_mappings: Iterable[PortMapping] = (),
) -> None:
    """Create a container with ``docker run args... image container_args...``.

    On failure the command's output is logged as errors and the
    CommandError is raised again.
    """
    args = ["run", *run_args]
    for mount in mounts:
        args.extend(generate_mount_bindings(mount))
    for mapping in port_mappings:
        args.extend(generate_port_mappings(mapping))
    args.append(image)
    args.extend(container_args)
    try:
        kexec.combined_output_lines(kexec.command("docker", *args))
    except CommandError as err:
        for line in err.output:
            logger.error(line)
        raise
"""Helpers for working with docker through its command line."""

from __future__ import annotations

import logging
import time
from typing import Sequence

from kindling import exec as kexec
from kindling.exec import Cmd, Cmder, CommandError

logger = logging.getLogger(__name__)

_DOCKER = "docker"


class ContainerCmder(Cmder):
    """Creates commands that run inside a docker container via ``docker exec``."""

    def __init__(self, name_or_id: str) -> None:
        self.name_or_id = name_or_id

    def command(self, command: str, *args: str) -> Cmd:
        return ContainerCmd(self.name_or_id, command, *args)


class ContainerCmd(Cmd):
    """A command run inside a docker container."""

    def __init__(self, name_or_id: str, program: str, *args: str) -> None:
        super().__init__()
        self.name_or_id = name_or_id
        self.program = program
        self.args = list(args)

    def run(self) -> None:
        # privileged so that commands in the container can remount etc.
        args = ["exec", "--privileged"]
        if self.stdin is not None:
            args.append("-i")
        for entry in self.env or ():
            args.extend(["-e", entry])
        args.extend([self.name_or_id, self.program, *self.args])
        cmd = kexec.command(_DOCKER, *args)
        if self.stdin is not None:
            cmd.set_stdin(self.stdin)
        if self.stderr is not None:
            cmd.set_stderr(self.stderr)
        if self.stdout is not None:
            cmd.set_stdout(self.stdout)
        cmd.run()


def copy_to(host_path: str, container_name_or_id: str, dest_path: str) -> None:
    """Copy the file at ``host_path`` into the container at ``dest_path``."""
    kexec.command(_DOCKER, "cp", host_path, f"{container_name_or_id}:{dest_path}").run()


def copy_from(container_name_or_id: str, src_path: str, host_path: str) -> None:
    """Copy ``src_path`` in the container to ``host_path`` on the host."""
    kexec.command(_DOCKER, "cp", f"{container_name_or_id}:{src_path}", host_path).run()


def split_image(image: str) -> tuple[str, str]:
    """Split an image reference into ``(registry, tag)``.

    The digest, if any, is treated as part of the tag and an implicit
    ``latest`` tag is made explicit. Raises ValueError for malformed images.
    """
    first_colon = image.find(":")
    first_at = image.find("@")
    if (
        first_colon == 0
        or first_at == 0
        or first_colon + 1 == len(image)
        or first_at + 1 == len(image)
    ):
        raise ValueError(f"unexpected image: {image!r}")

    # the order of these cases matters
    if first_colon == -1 and first_at == -1:
        return image, "latest"
    if first_colon == -1:
        raise ValueError(f"unexpected image: {image!r}")
    if first_at != -1 and first_at < first_colon:
        return image[:first_at], "latest" + image[first_at:]
    return image[:first_colon], image[first_colon + 1 :]


def image_inspect(container_name_or_id: str, template: str) -> list[str]:
    """Return the lines of ``docker image inspect -f template``."""
    cmd = kexec.command(_DOCKER, "image", "inspect", "-f", template, container_name_or_id)
    return kexec.combined_output_lines(cmd)


def image_id(container_name_or_id: str) -> str:
    """Return the ID of a local image."""
    lines = image_inspect(container_name_or_id, "{{ .Id }}")
    if len(lines) != 1:
        raise CommandError(
            f"Docker image ID should only be one line, got {len(lines)} lines",
            output=lines,
        )
    return lines[0]


def inspect(container_name_or_id: str, template: str) -> list[str]:
    """Return the lines of ``docker inspect -f template`` for a container."""
    cmd = kexec.command(_DOCKER, "inspect", "-f", template, container_name_or_id)
    return kexec.combined_output_lines(cmd)


def kill(signal: str, container_name_or_id: str) -> None:
    """Send the named signal to the container."""
    kexec.command(_DOCKER, "kill", "-s", signal, container_name_or_id).run()


def network_inspect(network_names: Sequence[str], template: str) -> list[str]:
    """Return the lines of ``docker network inspect -f template`` for networks."""
    cmd = kexec.command(
        _DOCKER, "network", "inspect", "-f", template, " ".join(network_names)
    )
    return kexec.combined_output_lines(cmd)


def pull_if_not_present(image: str, retries: int) -> bool:
    """Pull ``image`` unless it is present locally; return whether a pull ran."""
    try:
        kexec.command(_DOCKER, "inspect", "--type=image", image).run()
    except CommandError:
        pull(image, retries)
        return True
    logger.info("Image: %s present locally", image)
    return False


def pull(image: str, retries: int) -> None:
    """Pull ``image``, retrying up to ``retries`` times with growing pauses."""
    logger.info("Pulling image: %s ...", image)
    try:
        kexec.command(_DOCKER, "pull", image).run()
        return
    except CommandError as err:
        error = err
    for attempt in range(retries):
        time.sleep(attempt + 1)
        logger.info("Trying again to pull image: %s ... (%s)", image, error)
        try:
            kexec.command(_DOCKER, "pull", image).run()
            return
        except CommandError as err:
            error = err
    logger.info("Failed to pull image: %s (%s)", image, error)
    raise error


def save(image: str, dest: str) -> None:
    """Save ``image`` to the archive ``dest``, as ``docker save`` does."""
    kexec.command(_DOCKER, "save", "-o", dest, image).run()


def userns_remap() -> bool:
    """Report whether userns-remap is enabled in the docker daemon."""
    cmd = kexec.command(_DOCKER, "info", "--format", "'{{json .SecurityOptions}}'")
    try:
        lines = kexec.combined_output_lines(cmd)
    except CommandError:
        return False
    return bool(lines) and "name=userns" in lines[0]
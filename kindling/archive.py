"""Reading and rewriting image tags in docker image archives (tarballs).

Supports the v1, v1.1 and v1.2 docker image archive formats.
"""

from __future__ import annotations

import io
import json
import os
import tarfile
from typing import IO, Any, Callable

_REPOSITORIES = "repositories"
_MANIFEST = "manifest.json"


class ArchiveError(Exception):
    """An image archive is malformed or lacks the expected metadata."""


def _dumps(value: Any) -> bytes:
    return json.dumps(value, separators=(",", ":"), sort_keys=True).encode()


def _parse_repositories(raw: bytes) -> dict[str, dict[str, str]]:
    """Parse a repositories file into repository -> tag -> ref."""
    try:
        data = json.loads(raw)
    except ValueError as err:
        raise ArchiveError(f"invalid repositories file: {err}") from err
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ArchiveError("invalid repositories file: expected an object")
    for repository, tags in data.items():
        if tags is None:
            continue
        if not isinstance(tags, dict) or not all(
            isinstance(ref, str) for ref in tags.values()
        ):
            raise ArchiveError(f"invalid tags for repository {repository!r}")
    return {repo: (tags or {}) for repo, tags in data.items()}


def get_archive_tags(path: str | os.PathLike[str]) -> list[str]:
    """Return the ``repo:tag`` image tags recorded in the archive at ``path``."""
    with open(path, "rb") as handle:
        try:
            with tarfile.open(fileobj=handle, mode="r:") as tar:
                for member in tar:
                    if member.name == _REPOSITORIES:
                        extracted = tar.extractfile(member) if member.isfile() else None
                        raw = extracted.read() if extracted is not None else b""
                        break
                else:
                    raise ArchiveError("could not find image metadata")
        except tarfile.TarError as err:
            raise ArchiveError(f"invalid image archive: {err}") from err
    return [
        f"{repo}:{tag}"
        for repo, tags in _parse_repositories(raw).items()
        for tag in tags
    ]


def _edit_repositories_file(raw: bytes, edit: Callable[[str], str]) -> bytes:
    fixed = {edit(repo): tags for repo, tags in _parse_repositories(raw).items()}
    return _dumps(fixed)


def _edit_manifest(raw: bytes, edit: Callable[[str], str]) -> bytes:
    try:
        entries = json.loads(raw)
    except ValueError as err:
        raise ArchiveError(f"invalid manifest: {err}") from err
    if entries is None:
        return b"null"
    if not isinstance(entries, list):
        raise ArchiveError("invalid manifest: expected a list")

    fixed_entries = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ArchiveError(f"invalid manifest entry: {entry!r}")
        repo_tags = entry.get("RepoTags") or []
        if not isinstance(repo_tags, list) or not all(
            isinstance(tag, str) for tag in repo_tags
        ):
            raise ArchiveError(f"invalid RepoTags in manifest entry: {entry!r}")
        fixed_tags = []
        for tag in repo_tags:
            parts = tag.split(":")
            if len(parts) > 2:
                raise ArchiveError(f"invalid repotag: {entry}")
            parts[0] = edit(parts[0])
            fixed_tags.append(":".join(parts))
        fixed_entries.append(
            {
                "Config": entry.get("Config") or "",
                "RepoTags": fixed_tags,
                "Layers": entry.get("Layers"),
            }
        )
    return json.dumps(fixed_entries, separators=(",", ":")).encode()


def edit_archive_repositories(
    reader: IO[bytes],
    writer: IO[bytes],
    edit_repositories: Callable[[str], str],
) -> None:
    """Copy the archive from ``reader`` to ``writer``, renaming repositories.

    ``edit_repositories`` maps each image repository (the part before the
    ``:tag``) to its new name; every other entry is copied unchanged.
    """
    try:
        with tarfile.open(fileobj=reader, mode="r|") as tar_in, tarfile.open(
            fileobj=writer, mode="w|"
        ) as tar_out:
            for member in tar_in:
                data = b""
                if member.isfile():
                    extracted = tar_in.extractfile(member)
                    if extracted is not None:
                        data = extracted.read()
                if member.name == _REPOSITORIES:
                    data = _edit_repositories_file(data, edit_repositories)
                    member.size = len(data)
                elif member.name == _MANIFEST:
                    data = _edit_manifest(data, edit_repositories)
                    member.size = len(data)
                tar_out.addfile(member, io.BytesIO(data) if data else None)
    except tarfile.TarError as err:
        raise ArchiveError(f"invalid image archive: {err}") from err
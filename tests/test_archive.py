import io
import json
import tarfile

import pytest

from kindling.archive import ArchiveError, edit_archive_repositories, get_archive_tags

REPOSITORIES = {
    "busybox": {"latest": "abc123", "1.31": "abc123"},
    "alpine": {"3.10": "def456"},
}
MANIFEST = [
    {
        "Config": "abc123.json",
        "RepoTags": ["busybox:latest", "busybox:1.31"],
        "Layers": ["layer1/layer.tar"],
    }
]
LAYER = b"layer-bytes" * 100


def _make_archive(entries, with_dir=False):
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        if with_dir:
            info = tarfile.TarInfo("layer1")
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            tar.addfile(info)
        for name, data in entries:
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def _standard_archive():
    return _make_archive(
        [
            ("layer1/layer.tar", LAYER),
            ("repositories", json.dumps(REPOSITORIES).encode()),
            ("manifest.json", json.dumps(MANIFEST).encode()),
        ],
        with_dir=True,
    )


def _read_members(data):
    out = {}
    names = []
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as tar:
        for member in tar:
            names.append(member.name)
            if member.isfile():
                out[member.name] = tar.extractfile(member).read()
    return names, out


def test_get_archive_tags(tmp_path):
    path = tmp_path / "image.tar"
    path.write_bytes(_standard_archive())
    expected = sorted(
        f"{repo}:{tag}" for repo, tags in REPOSITORIES.items() for tag in tags
    )
    assert sorted(get_archive_tags(path)) == expected


def test_get_archive_tags_without_metadata(tmp_path):
    path = tmp_path / "image.tar"
    path.write_bytes(_make_archive([("layer.tar", LAYER)]))
    with pytest.raises(ArchiveError, match="could not find image metadata"):
        get_archive_tags(path)


def test_get_archive_tags_invalid_json(tmp_path):
    path = tmp_path / "image.tar"
    path.write_bytes(_make_archive([("repositories", b"{not json")]))
    with pytest.raises(ArchiveError):
        get_archive_tags(path)


def test_get_archive_tags_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        get_archive_tags(tmp_path / "absent.tar")


def test_edit_archive_repositories_renames_everything():
    prefix = "registry.example.com/"
    out = io.BytesIO()
    edit_archive_repositories(io.BytesIO(_standard_archive()), out, lambda r: prefix + r)

    original_names, _ = _read_members(_standard_archive())
    names, files = _read_members(out.getvalue())
    assert names == original_names
    assert files["layer1/layer.tar"] == LAYER

    repos = json.loads(files["repositories"])
    assert repos == {prefix + repo: tags for repo, tags in REPOSITORIES.items()}

    manifest = json.loads(files["manifest.json"])
    assert manifest[0]["RepoTags"] == [prefix + tag for tag in MANIFEST[0]["RepoTags"]]
    assert manifest[0]["Config"] == MANIFEST[0]["Config"]
    assert manifest[0]["Layers"] == MANIFEST[0]["Layers"]


def test_edit_archive_then_read_tags(tmp_path):
    out = io.BytesIO()
    edit_archive_repositories(io.BytesIO(_standard_archive()), out, str.upper)
    path = tmp_path / "edited.tar"
    path.write_bytes(out.getvalue())
    expected = sorted(
        f"{repo.upper()}:{tag}" for repo, tags in REPOSITORIES.items() for tag in tags
    )
    assert sorted(get_archive_tags(path)) == expected


def test_repositories_written_compact_and_sorted():
    archive = _make_archive(
        [("repositories", json.dumps({"b": {"t": "r"}, "a": {"u": "s"}}).encode())]
    )
    out = io.BytesIO()
    edit_archive_repositories(io.BytesIO(archive), out, lambda r: r)
    _, files = _read_members(out.getvalue())
    assert files["repositories"] == b'{"a":{"u":"s"},"b":{"t":"r"}}'


def test_manifest_keeps_only_known_fields():
    manifest = [{"RepoTags": ["x:1"], "Extra": 1}]
    archive = _make_archive([("manifest.json", json.dumps(manifest).encode())])
    out = io.BytesIO()
    edit_archive_repositories(io.BytesIO(archive), out, lambda r: r)
    _, files = _read_members(out.getvalue())
    assert json.loads(files["manifest.json"]) == [
        {"Config": "", "RepoTags": ["x:1"], "Layers": None}
    ]


def test_invalid_repotag_raises():
    manifest = [{"RepoTags": ["host:5000/img:tag"]}]
    archive = _make_archive([("manifest.json", json.dumps(manifest).encode())])
    with pytest.raises(ArchiveError, match="invalid repotag"):
        edit_archive_repositories(io.BytesIO(archive), io.BytesIO(), lambda r: r)


def test_invalid_manifest_json_raises():
    archive = _make_archive([("manifest.json", b"[{")])
    with pytest.raises(ArchiveError):
        edit_archive_repositories(io.BytesIO(archive), io.BytesIO(), lambda r: r)


def test_other_entries_copied_unchanged():
    archive = _make_archive([("a.txt", b"alpha"), ("b.bin", b"\x00\x01\x02")])
    out = io.BytesIO()
    edit_archive_repositories(io.BytesIO(archive), out, lambda r: "changed")
    names, files = _read_members(out.getvalue())
    assert names == ["a.txt", "b.bin"]
    assert files == {"a.txt": b"alpha", "b.bin": b"\x00\x01\x02"}
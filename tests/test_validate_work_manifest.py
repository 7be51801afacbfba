import json
import struct

import pytest
from PIL import Image

from validate_work_manifest import (
    EXIT_BAD_MANIFEST,
    EXIT_INVALID_ENTRIES,
    EXIT_OK,
    artifact_kind,
    check_entry,
    load_manifest,
    main,
    validate,
)


def glb_bytes(version=2, pad=b"", length=None):
    body = pad
    total = 12 + len(body) if length is None else length
    return struct.pack("<4sII", b"glTF", version, total) + body


def write_manifest(project, items):
    path = project / "WORK_DISPLAY" / "manifest.json"
    path.write_text(json.dumps({"items": items}, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def png(project):
    path = project / "WORK_DISPLAY" / "A" / "DISPLAY_IMAGE" / "x.png"
    path.parent.mkdir(parents=True)
    Image.new("RGB", (8, 8), (200, 30, 30)).save(path)
    return path


def test_artifact_kind():
    assert artifact_kind("WORK_DISPLAY/A/DISPLAY_IMAGE/x.PNG") == "image"
    assert artifact_kind("WORK_DISPLAY/B/CAD_MODEL/scene.glb") == "model"
    assert artifact_kind("WORK_DISPLAY/B/readme.txt") == "unknown"


def test_valid_entries_pass(project, png, make_file):
    gltf = {"asset": {"version": "2.0"}, "scenes": []}
    make_file(project / "WORK_DISPLAY" / "B" / "CAD_MODEL" / "scene.gltf", json.dumps(gltf).encode())
    make_file(project / "WORK_DISPLAY" / "C" / "CAD_MODEL" / "scene.glb", glb_bytes(pad=b"\x00" * 8))
    manifest = write_manifest(
        project,
        [
            {"name": "A", "model": "WORK_DISPLAY/A/DISPLAY_IMAGE/x.png"},
            {"name": "B", "model": "WORK_DISPLAY/B/CAD_MODEL/scene.gltf"},
            {"name": "C", "model": "WORK_DISPLAY/C/CAD_MODEL/scene.glb"},
        ],
    )

    report = validate(manifest, project)
    assert [e["status"] for e in report["entries"]] == ["ok", "ok", "ok"]
    assert report["all_checks_passed"] is True


def test_missing_file_is_reported(project):
    result = check_entry({"name": "Gone", "model": "WORK_DISPLAY/Gone/x.png"}, project)
    assert result.status == "missing_file"


def test_backslash_paths_are_rejected(project, png):
    result = check_entry({"name": "A", "model": "WORK_DISPLAY\\A\\DISPLAY_IMAGE\\x.png"}, project)
    assert result.status == "invalid_path"


def test_undecodable_image_is_invalid(project, make_file):
    make_file(project / "WORK_DISPLAY" / "A" / "DISPLAY_IMAGE" / "x.png", b"not really a png")
    result = check_entry({"name": "A", "model": "WORK_DISPLAY/A/DISPLAY_IMAGE/x.png"}, project)
    assert result.status == "invalid"
    assert "does not decode" in result.detail


def test_gltf_version_one_is_rejected(project, make_file):
    make_file(
        project / "WORK_DISPLAY" / "B" / "old.gltf",
        json.dumps({"asset": {"version": "1.0"}}).encode(),
    )
    result = check_entry({"name": "B", "model": "WORK_DISPLAY/B/old.gltf"}, project)
    assert result.status == "invalid"
    assert "unsupported glTF version 1.0" in result.detail


def test_gltf_without_asset_is_rejected(project, make_file):
    make_file(project / "WORK_DISPLAY" / "B" / "bad.gltf", b"{}")
    result = check_entry({"name": "B", "model": "WORK_DISPLAY/B/bad.gltf"}, project)
    assert result.detail == "missing asset.version"


@pytest.mark.parametrize(
    "data, detail",
    [
        (b"glTF", "truncated GLB header"),
        (struct.pack("<4sII", b"fake", 2, 12), "bad GLB magic"),
        (glb_bytes(version=1), "unsupported GLB container version 1"),
        (glb_bytes(length=400), "does not match file size"),
    ],
)
def test_broken_glb_headers(project, make_file, data, detail):
    make_file(project / "WORK_DISPLAY" / "C" / "m.glb", data)
    result = check_entry({"name": "C", "model": "WORK_DISPLAY/C/m.glb"}, project)
    assert result.status == "invalid"
    assert detail in result.detail


@pytest.mark.parametrize(
    "data",
    [
        b"Kaydara FBX Binary  \x00\x1a\x00",
        b"; FBX 7.4.0 project file\n; ----------------------------\n",
    ],
)
def test_well_formed_fbx_is_unsupported_by_viewer(project, make_file, data):
    make_file(project / "WORK_DISPLAY" / "D" / "CAD_MODEL" / "scene.fbx", data)
    manifest = write_manifest(project, [{"name": "D", "model": "WORK_DISPLAY/D/CAD_MODEL/scene.fbx"}])

    report = validate(manifest, project)
    (entry,) = report["entries"]
    assert entry["status"] == "unsupported_by_viewer"
    assert "glTF/GLB" in entry["detail"]
    assert report["all_checks_passed"] is False


def test_text_starting_with_semicolon_is_not_fbx(project, make_file):
    make_file(project / "WORK_DISPLAY" / "D" / "m.fbx", b"; just a comment, not FBX\n")
    result = check_entry({"name": "D", "model": "WORK_DISPLAY/D/m.fbx"}, project)
    assert result.status == "invalid"
    assert result.detail == "not an FBX file"


def test_default_project_root_is_current_directory(project, png, monkeypatch):
    write_manifest(project, [{"name": "A", "model": "WORK_DISPLAY/A/DISPLAY_IMAGE/x.png"}])
    monkeypatch.chdir(project)
    assert main([]) == EXIT_OK


def test_duplicate_names_fail_validation(project, png):
    manifest = write_manifest(
        project,
        [
            {"name": "A", "model": "WORK_DISPLAY/A/DISPLAY_IMAGE/x.png"},
            {"name": "A", "model": "WORK_DISPLAY/A/DISPLAY_IMAGE/x.png"},
        ],
    )
    report = validate(manifest, project)
    assert report["duplicate_names"] == ["A"]
    assert report["all_checks_passed"] is False


def test_load_manifest_rejects_wrong_shape(tmp_path):
    path = tmp_path / "manifest.json"
    path.write_text(json.dumps({"files": []}), encoding="utf-8")
    with pytest.raises(ValueError):
        load_manifest(path)

    path.write_text(json.dumps({"items": [{"name": "A"}]}), encoding="utf-8")
    with pytest.raises(ValueError):
        load_manifest(path)


def test_main_exit_statuses(project, png, capsys):
    assert main(["--project-root", str(project)]) == EXIT_BAD_MANIFEST

    write_manifest(project, [{"name": "A", "model": "WORK_DISPLAY/A/DISPLAY_IMAGE/x.png"}])
    assert main(["--project-root", str(project)]) == EXIT_OK
    assert "Checked 1 entries, 0 failed" in capsys.readouterr().out

    write_manifest(project, [{"name": "Z", "model": "WORK_DISPLAY/Z/missing.glb"}])
    assert main(["--project-root", str(project)]) == EXIT_INVALID_ENTRIES

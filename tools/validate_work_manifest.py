#!/usr/bin/env python3
"""Check that every WORK_DISPLAY/manifest.json entry is well-formed and loadable by the site viewer."""

from __future__ import annotations

import argparse
import json
import pathlib
import struct
import sys
from dataclasses import asdict, dataclass
from typing import Any

from PIL import Image, UnidentifiedImageError

from generate_work_manifest import (
    DEFAULT_PROJECT_ROOT,
    IMAGE_EXTENSIONS,
    KIND_MODEL,
    MODEL_EXTENSIONS,
    ManifestConfig,
)

EXIT_OK = 0
EXIT_INVALID_ENTRIES = 1
EXIT_BAD_MANIFEST = 2

GLB_MAGIC = b"glTF"
GLB_VERSION = 2
GLB_HEADER = struct.Struct("<4sII")
FBX_BINARY_MAGIC = b"Kaydara FBX Binary"
FBX_ASCII_MAGIC = b"; FBX"
# Extensions the site's CADViewer can load (it only wires in GLTFLoader).
VIEWER_MODEL_EXTENSIONS = frozenset({".gltf", ".glb"})


@dataclass
class EntryCheck:
    name: str
    model: str
    kind: str
    status: str
    detail: str = ""


def load_manifest(path: pathlib.Path) -> list[dict[str, str]]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    items = payload.get("items") if isinstance(payload, dict) else None
    if not isinstance(items, list):
        raise ValueError(f"Malformed manifest at {path}: missing 'items' list")
    for idx, item in enumerate(items):
        if not isinstance(item, dict) or not isinstance(item.get("name"), str) or not isinstance(item.get("model"), str):
            raise ValueError(f"Malformed manifest entry #{idx} at {path}")
    return items


def artifact_kind(model_path: str) -> str:
    suffix = pathlib.PurePosixPath(model_path).suffix.lower()
    if suffix in IMAGE_EXTENSIONS:
        return "image"
    if suffix in MODEL_EXTENSIONS:
        return KIND_MODEL
    return "unknown"


def check_image(path: pathlib.Path) -> str | None:
    try:
        with Image.open(path) as image:
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        return f"image does not decode: {exc}"
    return None


def check_gltf(path: pathlib.Path) -> str | None:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        return f"not glTF JSON: {exc}"
    asset = payload.get("asset") if isinstance(payload, dict) else None
    version = asset.get("version") if isinstance(asset, dict) else None
    if not isinstance(version, str):
        return "missing asset.version"
    try:
        major = int(version.split(".")[0])
    except ValueError:
        return f"unreadable asset.version {version!r}"
    if major < 2:
        return f"unsupported glTF version {version} (viewer needs >= 2.0)"
    return None


def check_glb(path: pathlib.Path) -> str | None:
    with path.open("rb") as fh:
        header = fh.read(GLB_HEADER.size)
    if len(header) < GLB_HEADER.size:
        return "truncated GLB header"
    magic, version, length = GLB_HEADER.unpack(header)
    if magic != GLB_MAGIC:
        return f"bad GLB magic {magic!r}"
    if version != GLB_VERSION:
        return f"unsupported GLB container version {version}"
    size = path.stat().st_size
    if length != size:
        return f"GLB header length {length} does not match file size {size}"
    return None


def check_fbx(path: pathlib.Path) -> str | None:
    with path.open("rb") as fh:
        head = fh.read(len(FBX_BINARY_MAGIC))
    if head == FBX_BINARY_MAGIC:
        return None
    if head.lstrip().startswith(FBX_ASCII_MAGIC):
        return None
    return "not an FBX file"


def check_entry(item: dict[str, str], project_root: pathlib.Path) -> EntryCheck:
    name, model = item["name"], item["model"]
    kind = artifact_kind(model)
    result = EntryCheck(name=name, model=model, kind=kind, status="ok")

    if "\\" in model or model.startswith("/"):
        result.status = "invalid_path"
        result.detail = "path must be project-relative with forward slashes"
        return result

    path = project_root / pathlib.PurePosixPath(model)
    if not path.is_file():
        result.status = "missing_file"
        return result

    if kind == "image":
        problem = check_image(path)
    elif kind == KIND_MODEL:
        suffix = path.suffix.lower()
        try:
            if suffix == ".gltf":
                problem = check_gltf(path)
            elif suffix == ".glb":
                problem = check_glb(path)
            else:
                problem = check_fbx(path)
        except OSError as exc:
            problem = f"unreadable: {exc}"
    else:
        problem = "unsupported extension"

    if problem is not None:
        result.status = "invalid"
        result.detail = problem
    elif kind == KIND_MODEL and path.suffix.lower() not in VIEWER_MODEL_EXTENSIONS:
        result.status = "unsupported_by_viewer"
        result.detail = "well-formed, but the site viewer only loads glTF/GLB"
    return result


def validate(manifest_path: pathlib.Path, project_root: pathlib.Path) -> dict[str, Any]:
    items = load_manifest(manifest_path)
    checks = [check_entry(item, project_root) for item in items]
    names = [item["name"] for item in items]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    return {
        "manifest": str(manifest_path),
        "entries": [asdict(c) for c in checks],
        "duplicate_names": duplicates,
        "all_checks_passed": all(c.status == "ok" for c in checks) and not duplicates,
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--project-root", type=pathlib.Path, default=DEFAULT_PROJECT_ROOT)
    parser.add_argument("--manifest", type=pathlib.Path, default=None, help="Defaults to WORK_DISPLAY/manifest.json.")
    args = parser.parse_args(argv)

    config = ManifestConfig.for_project(args.project_root)
    manifest_path = args.manifest.resolve() if args.manifest is not None else config.manifest_path

    try:
        report = validate(manifest_path, config.project_root)
    except (OSError, ValueError) as exc:
        print(f"Cannot read manifest {manifest_path}: {exc}", file=sys.stderr)
        return EXIT_BAD_MANIFEST

    print(json.dumps(report, indent=2))
    failed = [e for e in report["entries"] if e["status"] != "ok"]
    print(f"Checked {len(report['entries'])} entries, {len(failed)} failed")
    return EXIT_OK if report["all_checks_passed"] else EXIT_INVALID_ENTRIES


if __name__ == "__main__":
    sys.exit(main())

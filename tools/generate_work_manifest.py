#!/usr/bin/env python3
"""Generate WORK_DISPLAY/manifest.json for the portfolio viewer."""

from __future__ import annotations

import argparse
import json
import os
import pathlib
import sys
from dataclasses import dataclass
from typing import Callable

DEFAULT_PROJECT_ROOT = pathlib.Path(".")

WORK_DISPLAY_DIR_NAME = "WORK_DISPLAY"
MANIFEST_FILE_NAME = "manifest.json"
DISPLAY_IMAGE_DIR_NAME = "DISPLAY_IMAGE"
RENDER_IMAGES_DIR_NAME = "RENDER_IMAGES"
MODEL_DIR_NAME = "CAD_MODEL"

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp"})
MODEL_EXTENSIONS = frozenset({".gltf", ".glb", ".fbx"})
MAX_SEARCH_DEPTH = 6

EXIT_OK = 0
EXIT_MISSING_ROOT = 2
EXIT_WRITE_FAILED = 3

KIND_DISPLAY_IMAGE = "display_image"
KIND_RENDER_IMAGE = "render_image"
KIND_MODEL = "model"


@dataclass
class ManifestConfig:
    project_root: pathlib.Path
    work_display_dir: pathlib.Path
    manifest_path: pathlib.Path
    display_image_dir: str = DISPLAY_IMAGE_DIR_NAME
    render_images_dir: str = RENDER_IMAGES_DIR_NAME
    model_dir: str = MODEL_DIR_NAME
    image_extensions: frozenset[str] = IMAGE_EXTENSIONS
    model_extensions: frozenset[str] = MODEL_EXTENSIONS
    max_depth: int = MAX_SEARCH_DEPTH

    @classmethod
    def for_project(cls, project_root: pathlib.Path) -> ManifestConfig:
        root = pathlib.Path(project_root).resolve()
        work_display = root / WORK_DISPLAY_DIR_NAME
        return cls(
            project_root=root,
            work_display_dir=work_display,
            manifest_path=work_display / MANIFEST_FILE_NAME,
        )


@dataclass
class ManifestItem:
    name: str
    path: str
    kind: str

    def to_json(self) -> dict[str, str]:
        return {"name": self.name, "model": self.path}


class ManifestRootError(Exception):
    """The directory to scan is missing or cannot be listed."""


def has_extension(name: str, extensions: frozenset[str]) -> bool:
    return pathlib.PurePath(name).suffix.lower() in extensions


def list_entries(directory: pathlib.Path) -> list[os.DirEntry] | None:
    """Directory entries in listing order, or None when the directory can't be read."""
    try:
        with os.scandir(directory) as it:
            return list(it)
    except OSError:
        return None


def find_first_image(folder: pathlib.Path, extensions: frozenset[str]) -> pathlib.Path | None:
    if folder.is_symlink() or not folder.is_dir():
        return None
    entries = list_entries(folder)
    if entries is None:
        return None
    for entry in entries:
        if entry.is_file(follow_symlinks=False) and has_extension(entry.name, extensions):
            return pathlib.Path(entry.path)
    return None


def find_first_model(
    directory: pathlib.Path,
    extensions: frozenset[str],
    max_depth: int,
    depth: int = 0,
) -> pathlib.Path | None:
    """Depth-first search for a model file; files at a level win over subfolders.

    Symlinks are never followed, so cycles cannot occur.
    """
    if depth > max_depth or directory.is_symlink():
        return None
    entries = list_entries(directory)
    if entries is None:
        return None

    for entry in entries:
        if entry.is_file(follow_symlinks=False) and has_extension(entry.name, extensions):
            return pathlib.Path(entry.path)

    for entry in entries:
        if entry.is_dir(follow_symlinks=False):
            found = find_first_model(pathlib.Path(entry.path), extensions, max_depth, depth + 1)
            if found is not None:
                return found
    return None


Finder = Callable[[pathlib.Path, ManifestConfig], pathlib.Path | None]


def _display_image(folder: pathlib.Path, config: ManifestConfig) -> pathlib.Path | None:
    return find_first_image(folder / config.display_image_dir, config.image_extensions)


def _render_image(folder: pathlib.Path, config: ManifestConfig) -> pathlib.Path | None:
    return find_first_image(folder / config.render_images_dir, config.image_extensions)


def _model(folder: pathlib.Path, config: ManifestConfig) -> pathlib.Path | None:
    for start in (folder / config.model_dir, folder):
        found = find_first_model(start, config.model_extensions, config.max_depth)
        if found is not None:
            return found
    return None


# Priority order: first finder with a hit decides the item.
FINDERS: list[tuple[str, Finder]] = [
    (KIND_DISPLAY_IMAGE, _display_image),
    (KIND_RENDER_IMAGE, _render_image),
    (KIND_MODEL, _model),
]


def to_web_path(path: pathlib.Path, project_root: pathlib.Path) -> str:
    return path.relative_to(project_root).as_posix()


def resolve_item(folder: pathlib.Path, config: ManifestConfig) -> ManifestItem | None:
    for kind, finder in FINDERS:
        found = finder(folder, config)
        if found is not None:
            return ManifestItem(
                name=folder.name,
                path=to_web_path(found, config.project_root),
                kind=kind,
            )
    return None


def build_manifest(config: ManifestConfig) -> list[ManifestItem]:
    root = config.work_display_dir
    if not root.is_dir():
        raise ManifestRootError(f"{WORK_DISPLAY_DIR_NAME} directory not found at: {root}")
    entries = list_entries(root)
    if entries is None:
        raise ManifestRootError(f"Cannot list {WORK_DISPLAY_DIR_NAME} directory at: {root}")

    items: list[ManifestItem] = []
    for entry in entries:
        if not entry.is_dir(follow_symlinks=False):
            continue
        item = resolve_item(pathlib.Path(entry.path), config)
        if item is None:
            print(f"No image or model found under {entry.name} - skipping", file=sys.stderr)
            continue
        print(f"Found {item.kind} for {item.name} -> {item.path}")
        items.append(item)
    return items


def render_manifest(items: list[ManifestItem]) -> str:
    payload = {"items": [item.to_json() for item in items]}
    return json.dumps(payload, indent=2) + "\n"


def write_manifest(items: list[ManifestItem], out: pathlib.Path) -> None:
    out.write_text(render_manifest(items), encoding="utf-8")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--project-root",
        type=pathlib.Path,
        default=DEFAULT_PROJECT_ROOT,
        help="Site checkout containing WORK_DISPLAY/ (default: current directory).",
    )
    args = parser.parse_args(argv)

    config = ManifestConfig.for_project(args.project_root)
    try:
        items = build_manifest(config)
    except ManifestRootError as exc:
        print(exc, file=sys.stderr)
        return EXIT_MISSING_ROOT

    try:
        write_manifest(items, config.manifest_path)
    except OSError as exc:
        print(f"Failed to write manifest to {config.manifest_path}: {exc}", file=sys.stderr)
        return EXIT_WRITE_FAILED

    print(f"Wrote {len(items)} entries to {config.manifest_path}")
    if not items:
        print(
            f"Generated manifest has no items. Check {WORK_DISPLAY_DIR_NAME} folder structure.",
            file=sys.stderr,
        )
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())

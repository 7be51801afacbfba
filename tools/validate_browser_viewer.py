#!/usr/bin/env python3
"""Load every manifest model in the site's CADViewer and check it renders in the browser."""

from __future__ import annotations

import argparse
import json
import pathlib
import sys
import time
from typing import Any

from PIL import Image, ImageStat
from playwright.sync_api import sync_playwright

from generate_work_manifest import DEFAULT_PROJECT_ROOT, ManifestConfig
from validate_work_manifest import VIEWER_MODEL_EXTENSIONS, load_manifest

VIEWER_SIZE = {"width": 640, "height": 480}
MIN_TEXTURE_STDDEV = 2.0


def viewer_items(items: list[dict[str, str]]) -> list[dict[str, str]]:
    return [item for item in items if pathlib.PurePosixPath(item["model"]).suffix.lower() in VIEWER_MODEL_EXTENSIONS]


def container_id(index: int) -> str:
    return f"work-viewer-check-{index}"


def wait_for_viewer_class(page, timeout_s: float = 30.0) -> None:
    deadline = time.time() + timeout_s
    while time.time() < deadline:
        if page.evaluate("() => typeof window.CADViewer === 'function'"):
            return
        time.sleep(0.2)
    raise TimeoutError("Timed out waiting for window.CADViewer to be defined")


def mount_viewer(page, index: int, model_path: str) -> None:
    page.evaluate(
        """([id, modelPath, size]) => {
            const div = document.createElement('div');
            div.id = id;
            div.style.width = size.width + 'px';
            div.style.height = size.height + 'px';
            document.body.appendChild(div);
            window.__WORK_VIEWERS__ = window.__WORK_VIEWERS__ || {};
            window.__WORK_VIEWERS__[id] = new window.CADViewer(id, modelPath);
        }""",
        [container_id(index), model_path, VIEWER_SIZE],
    )


def wait_for_model(page, index: int, timeout_s: float) -> bool:
    deadline = time.time() + timeout_s
    while time.time() < deadline:
        loaded = page.evaluate(
            "(id) => !!(window.__WORK_VIEWERS__[id] && window.__WORK_VIEWERS__[id].model)",
            container_id(index),
        )
        if loaded:
            return True
        time.sleep(0.2)
    return False


def unmount_viewer(page, index: int) -> None:
    page.evaluate(
        """(id) => {
            const viewer = window.__WORK_VIEWERS__[id];
            if (viewer) viewer.dispose();
            delete window.__WORK_VIEWERS__[id];
            const div = document.getElementById(id);
            if (div) div.remove();
        }""",
        container_id(index),
    )


def texture_stddev(image_path: pathlib.Path) -> float:
    with Image.open(image_path) as image:
        stat = ImageStat.Stat(image.convert("RGB"))
    return float(sum(stat.stddev) / 3.0)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--url", default="http://127.0.0.1:8000/index.html")
    parser.add_argument("--project-root", type=pathlib.Path, default=DEFAULT_PROJECT_ROOT)
    parser.add_argument("--out-dir", default="artifacts/viewer_validation")
    parser.add_argument("--headless", action="store_true", default=True)
    parser.add_argument("--load-timeout-s", type=float, default=30.0)
    args = parser.parse_args(argv)

    config = ManifestConfig.for_project(args.project_root)
    try:
        items = viewer_items(load_manifest(config.manifest_path))
    except (OSError, ValueError) as exc:
        print(f"Cannot read manifest {config.manifest_path}: {exc}", file=sys.stderr)
        return 1

    out_dir = pathlib.Path(args.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    result: dict[str, Any] = {
        "url": args.url,
        "manifest": str(config.manifest_path),
        "models": {},
        "checks": {},
        "all_checks_passed": False,
    }

    with sync_playwright() as p:
        browser = p.chromium.launch(headless=args.headless)
        context = browser.new_context(viewport={"width": 1280, "height": 900})
        page = context.new_page()

        console_errors: list[str] = []
        page_errors: list[str] = []
        page.on(
            "console",
            lambda msg: console_errors.append(msg.text)
            if msg.type == "error"
            else None,
        )
        page.on("pageerror", lambda err: page_errors.append(str(err)))

        page.goto(args.url, wait_until="domcontentloaded", timeout=120_000)
        wait_for_viewer_class(page)

        for idx, item in enumerate(items):
            errors_before = len(console_errors)
            mount_viewer(page, idx, item["model"])
            loaded = wait_for_model(page, idx, args.load_timeout_s)

            entry: dict[str, Any] = {"model": item["model"], "loaded": loaded}
            if loaded:
                # Let damping settle for a few frames before capturing.
                time.sleep(0.5)
                shot = out_dir / f"viewer_{idx:02d}_{item['name']}.png"
                page.locator(f"#{container_id(idx)}").screenshot(path=str(shot))
                entry["screenshot"] = str(shot)
                entry["texture_stddev"] = texture_stddev(shot)
                entry["nonflat"] = entry["texture_stddev"] > MIN_TEXTURE_STDDEV
            entry["console_errors"] = console_errors[errors_before:]
            result["models"][item["name"]] = entry
            unmount_viewer(page, idx)

        context.close()
        browser.close()

    models = result["models"].values()
    result["checks"]["all_models_loaded"] = all(m["loaded"] for m in models)
    result["checks"]["all_renders_nonflat"] = all(m.get("nonflat", False) for m in models)
    result["checks"]["no_runtime_console_errors"] = len(console_errors) == 0
    result["checks"]["no_page_exceptions"] = len(page_errors) == 0
    result["runtime"] = {
        "console_error_count": len(console_errors),
        "page_error_count": len(page_errors),
    }
    result["all_checks_passed"] = all(bool(v) for v in result["checks"].values())

    report_path = out_dir / "viewer_validation_report.json"
    report_path.write_text(json.dumps(result, indent=2), encoding="utf-8")

    print(json.dumps(result, indent=2))
    print(f"Viewer validation report written to: {report_path}")

    return 0 if result["all_checks_passed"] else 1


if __name__ == "__main__":
    sys.exit(main())

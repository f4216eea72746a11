"""Path primitives shared by the route, asset and build layers.

File I/O helpers run the blocking call in a worker thread so the event loop
only ever suspends at these boundaries.
"""

from __future__ import annotations

import asyncio
import os
import shutil
from pathlib import Path, PurePosixPath

IGNORED_DIR_NAMES = frozenset({"node_modules", "__pycache__"})


def split_path_cwd(cwd: str | Path, path: str | Path) -> str:
    """Return ``path`` relative to ``cwd`` when it lives under it, else unchanged."""
    try:
        return Path(path).relative_to(cwd).as_posix()
    except ValueError:
        return str(path)


def is_under(path: str | Path, directory: str | Path) -> bool:
    return Path(path).resolve().is_relative_to(Path(directory).resolve())


def list_files(root: Path) -> list[Path]:
    """Recursively list files under ``root``, skipping hidden entries.

    A missing root yields an empty list.
    """
    if not root.is_dir():
        return []

    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d for d in dirnames if not d.startswith(".") and d not in IGNORED_DIR_NAMES
        )
        for name in sorted(filenames):
            if not name.startswith("."):
                found.append(Path(dirpath) / name)
    return found


def hashed_name(path: str | Path, content_hash: str | None) -> Path:
    """``assets/app.css`` + ``abc123`` → ``assets/app.abc123.css``."""
    p = Path(path)
    if not content_hash:
        return p
    return p.with_name(f"{p.stem}.{content_hash}{p.suffix}")


def page_output_path(output_root: Path, page_url: str, view_dir: str, name: str) -> Path:
    """Join the output root, the page URL, the view's directory and its placed name."""
    parts = [part for part in PurePosixPath(page_url).parts if part != "/"]
    if view_dir and view_dir != ".":
        parts.extend(PurePosixPath(view_dir).parts)
    parts.extend(part for part in PurePosixPath(name).parts if part != "/")
    return output_root.joinpath(*parts)


def url_path(output_root: Path, output_path: Path) -> str:
    """Site-absolute URL of an output file, e.g. ``/2/posts/a.html``."""
    return "/" + output_path.relative_to(output_root).as_posix()


async def read_text(path: Path) -> str:
    return await asyncio.to_thread(path.read_text, encoding="utf-8")


def _write_text_sync(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


async def write_text(path: Path, text: str) -> None:
    """Write ``text`` to ``path``, creating parent directories."""
    await asyncio.to_thread(_write_text_sync, path, text)


async def remove_tree(path: Path) -> bool:
    """Delete a directory tree. Returns False when there was nothing to delete."""
    if not path.exists():
        return False
    await asyncio.to_thread(shutil.rmtree, path)
    return True

"""Relative path between two files of the same output tree.

One processed asset is linked from pages at different depths, so the link
is computed per (asset, page) pair and never stored on the asset.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from itertools import zip_longest
from pathlib import Path

from pagewright.errors import BuildError, ErrorCode

TRAIL = "../"


@dataclass(frozen=True)
class Distance:
    root: str  # shared leading directories, "/"-terminated
    source_only: str  # source segments below root, file name included
    target_only: str  # target segments below root
    trail: str  # one "../" per directory of source_only
    distance: str  # trail + target_only


def _segments(path: str | Path) -> list[str]:
    return [part for part in str(path).split(os.sep) if part]


def path_distance(source: str | Path, target: str | Path) -> Distance:
    """Path from the ``source`` file to ``target``, e.g. ``../../assets/app.css``.

    Raises ``PATHS_NOT_SAME_ROOT`` when the two paths share no leading segment.
    """
    root: list[str] = []
    source_only: list[str] = []
    target_only: list[str] = []

    diverged = False
    for s_part, t_part in zip_longest(_segments(source), _segments(target)):
        if not diverged and s_part is not None and s_part == t_part:
            root.append(s_part)
            continue
        diverged = True
        if s_part is not None:
            source_only.append(s_part)
        if t_part is not None:
            target_only.append(t_part)

    if not root:
        raise BuildError(
            code=ErrorCode.PATHS_NOT_SAME_ROOT,
            message=f"Paths do not exist in the same root directory: {source!s} -> {target!s}",
            suggestion="Assets and pages must both be written under the configured output path.",
            recoverable=False,
        )

    # The page's own file name is not a level to climb out of.
    trail = TRAIL * max(len(source_only) - 1, 0)
    target_rel = "/".join(target_only)

    return Distance(
        root="".join(f"{part}/" for part in root),
        source_only="/".join(source_only),
        target_only=target_rel,
        trail=trail,
        distance=trail + target_rel,
    )

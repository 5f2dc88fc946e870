"""Naming conventions that double as the pipeline's durable state.

Group directories carry a lifecycle tag prefix (``S1---`` accepting raw
material, ``S2---`` consumed by a merge) and normalized outputs carry an
ordinal suffix (``<stem>---<N>.mp4``). There is no separate index: everything
here is a pure function of names, so state is rebuilt identically from a
directory listing after every restart.
"""

import re
from pathlib import Path
from typing import Iterable, Optional

VIDEO_EXTENSIONS = (
    ".mp4", ".avi", ".mov", ".mkv", ".wmv",
    ".flv", ".webm", ".m4v", ".3gp", ".ogg",
)
OUTPUT_SEPARATOR = "---"
OUTPUT_EXTENSION = ".mp4"
PENDING_TAG = "S1---"
CONSUMED_TAG = "S2---"

_ORDINAL_RE = re.compile(r"^[^.].*---(\d+)\.mp4$")


def is_video_file(path: Path, extensions: Iterable[str] = VIDEO_EXTENSIONS) -> bool:
    allowed = {(ext if ext.startswith(".") else f".{ext}").lower() for ext in extensions}
    return path.suffix.lower() in allowed


def parse_ordinal(name: str) -> Optional[int]:
    """'Shoes---3.mp4' → 3; anything that is not a normalized output → None."""
    match = _ORDINAL_RE.match(name)
    if not match:
        return None
    return int(match.group(1))


def is_normalized_output(path: Path) -> bool:
    return parse_ordinal(path.name) is not None


def is_hidden(path: Path) -> bool:
    return any(part.startswith(".") for part in path.parts if part not in (".", ".."))


def is_pending_group_name(name: str, pending_tag: str = PENDING_TAG) -> bool:
    return name.startswith(pending_tag) and len(name) > len(pending_tag)


def group_stem(group_name: str, pending_tag: str = PENDING_TAG) -> str:
    """Group name without its lifecycle tag ('S1---Shoes' → 'Shoes')."""
    if group_name.startswith(pending_tag):
        return group_name[len(pending_tag):]
    return group_name


def consumed_name(group_name: str, pending_tag: str = PENDING_TAG, consumed_tag: str = CONSUMED_TAG) -> str:
    """Flips the lifecycle tag of a group name ('S1---Shoes' → 'S2---Shoes')."""
    return f"{consumed_tag}{group_stem(group_name, pending_tag)}"


def next_ordinal(names: Iterable[str]) -> int:
    """Max existing ordinal + 1; gaps are never reused."""
    highest = 0
    for name in names:
        ordinal = parse_ordinal(name)
        if ordinal is not None and ordinal > highest:
            highest = ordinal
    return highest + 1


def output_name(stem: str, ordinal: int) -> str:
    return f"{stem}{OUTPUT_SEPARATOR}{ordinal}{OUTPUT_EXTENSION}"


def is_raw_clip(
    path: Path,
    root: Path,
    extensions: Iterable[str] = VIDEO_EXTENSIONS,
    pending_tag: str = PENDING_TAG,
) -> bool:
    """True for a not-yet-normalized video sitting directly in a pending group.

    Only direct children of the watched root are groups; files whose own name
    carries the pending tag are ignored, as are hidden files (`._clip.mp4`
    sidecars) and normalized outputs.
    """
    if not is_video_file(path, extensions) or is_normalized_output(path):
        return False
    if is_hidden(Path(path.name)):
        return False
    if path.name.startswith(pending_tag):
        return False
    group_dir = path.parent
    if group_dir.parent != root:
        return False
    return is_pending_group_name(group_dir.name, pending_tag)

import logging
import os
from pathlib import Path
from typing import Generator, List
from clipbatch.domain.models import NormalizedOutput, SourceGroup
from clipbatch.domain.naming import (
    PENDING_TAG,
    VIDEO_EXTENSIONS,
    group_stem,
    is_pending_group_name,
    is_raw_clip,
    parse_ordinal,
)

class FileScanner:
    """Reads source groups and their clips straight from directory listings.

    Results are sorted deterministically so that every restart derives the
    same groups, ordinals and merge selection from the same tree.
    """

    def __init__(self, extensions: List[str] = list(VIDEO_EXTENSIONS), pending_tag: str = PENDING_TAG):
        self.extensions = [(ext if ext.startswith(".") else f".{ext}").lower() for ext in extensions]
        self.pending_tag = pending_tag
        self.logger = logging.getLogger(__name__)

    def group_dirs(self, root: Path) -> List[Path]:
        """Pending-tagged direct subdirectories of root, sorted by name."""
        try:
            entries = sorted(os.scandir(root), key=lambda e: e.name)
        except OSError as e:
            self.logger.warning(f"Cannot list {root}: {e}")
            return []
        dirs = []
        for entry in entries:
            try:
                if entry.is_dir() and is_pending_group_name(entry.name, self.pending_tag):
                    dirs.append(Path(entry.path))
            except OSError:
                # Skip entries we can't access
                continue
        return dirs

    def outputs_of(self, group_dir: Path) -> List[NormalizedOutput]:
        """Normalized outputs of a group, highest ordinal first."""
        outputs = []
        for path in self._files_of(group_dir):
            ordinal = parse_ordinal(path.name)
            if ordinal is not None:
                outputs.append(NormalizedOutput(path=path, ordinal=ordinal))
        outputs.sort(key=lambda o: o.ordinal, reverse=True)
        return outputs

    def raw_clips_of(self, group_dir: Path) -> List[Path]:
        root = group_dir.parent
        return [
            p for p in self._files_of(group_dir)
            if is_raw_clip(p, root, self.extensions, self.pending_tag)
        ]

    def scan_group(self, group_dir: Path) -> SourceGroup:
        return SourceGroup(
            path=group_dir,
            name=group_dir.name,
            stem=group_stem(group_dir.name, self.pending_tag),
            raw_clips=self.raw_clips_of(group_dir),
            outputs=self.outputs_of(group_dir),
        )

    def source_groups(self, root: Path) -> List[SourceGroup]:
        return [self.scan_group(d) for d in self.group_dirs(root)]

    def scan(self, root: Path) -> Generator[Path, None, None]:
        """Yields raw clips already waiting in pending groups (start-up scan)."""
        for group_dir in self.group_dirs(root):
            for clip in self.raw_clips_of(group_dir):
                yield clip

    def _files_of(self, directory: Path) -> List[Path]:
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as e:
            self.logger.warning(f"Cannot list {directory}: {e}")
            return []
        files = []
        for entry in entries:
            try:
                if entry.is_file():
                    files.append(Path(entry.path))
            except OSError:
                continue
        return files

import logging
import re
from pathlib import Path
from clipbatch.domain.naming import PENDING_TAG, is_pending_group_name

CONCAT_LIST_PREFIX = "concat_list_"

_PARTIAL_OUTPUT_RE = re.compile(r"^.+---\d+\.tmp$")

class HousekeepingService:
    """Removes leftovers of abandoned transcodes and merges.

    A partial output is only ever written as `.tmp` and renamed after
    verification, so a partial found at start-up or after stop is invalid.
    Only names the pipeline itself writes are touched: `<stem>---<N>.tmp`
    directly inside pending groups, `<archive_prefix><ms>.tmp` in staging and
    concat lists in the scratch directory.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def _remove(self, path: Path) -> bool:
        try:
            path.unlink()
            self.logger.info(f"Housekeeping removed {path}")
            return True
        except OSError as e:
            self.logger.warning(f"Housekeeping could not remove {path}: {e}")
            return False

    def _remove_matching(self, directory: Path, pattern: re.Pattern) -> int:
        removed = 0
        if not directory.is_dir():
            return removed
        for path in sorted(directory.iterdir()):
            if path.is_file() and pattern.match(path.name):
                if self._remove(path):
                    removed += 1
        return removed

    def cleanup_partial_outputs(self, root: Path, pending_tag: str = PENDING_TAG) -> int:
        """Removes `<stem>---<N>.tmp` partials left in the pending groups of `root`."""
        removed = 0
        if not root.is_dir():
            return removed
        for group_dir in sorted(root.iterdir()):
            if group_dir.is_dir() and is_pending_group_name(group_dir.name, pending_tag):
                removed += self._remove_matching(group_dir, _PARTIAL_OUTPUT_RE)
        return removed

    def cleanup_partial_archives(self, staging_dir: Path, archive_prefix: str = PENDING_TAG) -> int:
        """Removes `<archive_prefix><ms>.tmp` archives an interrupted merge left behind."""
        pattern = re.compile(rf"^{re.escape(archive_prefix)}\d+\.tmp$")
        return self._remove_matching(staging_dir, pattern)

    def cleanup_concat_lists(self, directory: Path) -> int:
        """Removes concat list files left in the scratch directory."""
        pattern = re.compile(rf"^{re.escape(CONCAT_LIST_PREFIX)}.*\.txt$")
        return self._remove_matching(directory, pattern)

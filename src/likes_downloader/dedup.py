"""Index of media files already present in an output directory.

Files are named ``"{author} {post_id} {index}.{ext}"``, so the directory
listing itself is the resume checkpoint: an item whose filename, or whose
(author, post_id, index) triple, is already on disk is not fetched again.
The index is built once per run and never updated.
"""

import logging
from pathlib import Path

from .models import Item

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".part"


def split_stem(stem: str) -> tuple[str, str, str] | None:
    """Split a file stem into (author, post_id, index), or None."""
    parts = stem.split(" ")
    if len(parts) != 3 or not all(parts):
        return None
    return parts[0], parts[1], parts[2]


class DedupIndex:
    def __init__(self, filenames: set[str] | None = None):
        self._filenames: set[str] = set()
        self._triples: set[tuple[str, str, str]] = set()
        for name in filenames or ():
            self._add(name)

    @classmethod
    def scan(cls, directory: Path) -> "DedupIndex":
        """Build an index from the files in ``directory`` (missing = empty)."""
        index = cls()
        if not directory.is_dir():
            logger.info("No existing downloads in %s. Starting fresh.", directory)
            return index
        for path in directory.iterdir():
            if path.is_file() and path.suffix != PARTIAL_SUFFIX:
                index._add(path.name)
        logger.info("Found %d downloaded files in %s", index.count, directory)
        return index

    def _add(self, filename: str) -> None:
        self._filenames.add(filename)
        triple = split_stem(Path(filename).stem)
        if triple:
            self._triples.add(triple)

    def contains(self, filename: str) -> bool:
        if filename in self._filenames:
            return True
        triple = split_stem(Path(filename).stem)
        return triple is not None and triple in self._triples

    def __contains__(self, item: Item) -> bool:
        return self.contains(item.filename)

    @property
    def count(self) -> int:
        return len(self._filenames)

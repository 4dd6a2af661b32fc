"""
Scoped ownership of request-owned temporary image files.

Every file a request writes into the identity upload directory is tracked by
a ``TempImageGuard``. When the guard exits the file is gone unless it was
explicitly handed over with ``rename_to``.
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class TempImage:
    """A file written during acquisition."""
    path: Path
    filename: str

    @classmethod
    def from_path(cls, path: Path) -> "TempImage":
        path = Path(path)
        return cls(path=path, filename=path.name)


class TempImageGuard:
    """
    Context manager owning at most one temporary image.

    Usage:
        with TempImageGuard() as guard:
            guard.track(path)
            ...
            guard.rename_to(final_path)  # keep it
        # otherwise the file is deleted here, on success and on error
    """

    def __init__(self):
        self._owned: Optional[TempImage] = None
        self.original: Optional[TempImage] = None

    def __enter__(self) -> "TempImageGuard":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.discard()
        return False

    @property
    def current(self) -> Optional[TempImage]:
        """The file still owned by the guard, if any."""
        return self._owned

    def track(self, path: Path) -> TempImage:
        """Take ownership of a freshly written file."""
        if self._owned is not None and self._owned.path != Path(path):
            # A request owns a single image; drop the previous one first
            self.discard()
        temp = TempImage.from_path(path)
        self._owned = temp
        if self.original is None:
            self.original = temp
        return temp

    def rename_to(self, target: Path) -> Path:
        """
        Move the owned file to ``target`` and release ownership.

        Raises:
            OSError: If the rename fails. The file stays owned so the
                guard still cleans it up.
        """
        if self._owned is None:
            raise FileNotFoundError("No temporary image to rename")
        target = Path(target)
        os.replace(self._owned.path, target)
        logger.info(f"Image renamed to: {target.name}")
        self._owned = None
        return target

    def discard(self) -> bool:
        """
        Delete the owned file now.

        Returns True when nothing is left on disk. Failures are logged and
        swallowed so they never mask the error being handled.
        """
        if self._owned is None:
            return True
        path = self._owned.path
        self._owned = None
        try:
            path.unlink(missing_ok=True)
            logger.debug(f"Cleaned up temporary file {path.name}")
            return True
        except OSError as e:
            logger.error(f"Error cleaning up temp file {path}: {e}")
            return False

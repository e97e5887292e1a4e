"""Atomic artifact relocation.

The destination is usually the game's ``Paks`` folder, which the game
(or a launcher) may be reading while a build runs.  Artifacts are
therefore never written there in place: each file is copied next to its
final name with a ``.tmp`` suffix and renamed over the final name in one
step, so the folder only ever shows a missing file or a complete one.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from .errors import RelocationError

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"


@dataclass(frozen=True)
class Relocator:
    """Move artifacts into ``destination_dir``."""

    destination_dir: Path

    def relocate(self, src_path: Path) -> Path:
        """Move ``src_path`` into the destination and return the new path.

        An existing file with the same name is replaced.  If the copy
        fails the temporary file is removed and the source is left as it
        was.  If the copy succeeds but the source cannot be deleted a
        :class:`RelocationError` with ``duplicated=True`` is raised; the
        destination copy is kept.
        """
        src_path = Path(src_path)
        final_path = self.destination_dir / src_path.name
        tmp_path = final_path.with_name(final_path.name + TEMP_SUFFIX)
        if final_path.resolve() == src_path.resolve():
            raise RelocationError(f"{src_path.name} is already in {self.destination_dir}")

        try:
            self.destination_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise RelocationError(f"cannot create {self.destination_dir}: {exc}") from exc

        try:
            shutil.copy2(str(src_path), str(tmp_path))
            os.replace(tmp_path, final_path)
        except OSError as exc:
            try:
                tmp_path.unlink()
            except FileNotFoundError:
                pass
            except OSError:
                logger.warning("Could not remove temporary file %s", tmp_path)
            raise RelocationError(f"copy {src_path.name}: {exc}") from exc

        try:
            src_path.unlink()
        except OSError as exc:
            raise RelocationError(
                f"remove {src_path.name}: {exc}", duplicated=True
            ) from exc

        logger.debug("Relocated %s -> %s", src_path, final_path)
        return final_path

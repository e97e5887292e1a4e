"""Mod discovery for Pak Builder.

A *unit* is one immediate sub-folder of the configured mods directory.
Each folder is packed independently by the external tool, so the
repository simply lists those folders, derives a human friendly display
name for the menu and hands back immutable :class:`Unit` descriptors.

Folder names in the wild often carry packaging decorations, for example
``z_MyMod_0007_P``: the ``z_`` prefix forces a late load order and the
``_0007_P`` suffix is the patch chunk marker the game expects.  The
display name drops both so the menu shows ``MyMod``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

from .errors import UnitsNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Unit:
    """One buildable mod folder."""

    id: str
    display_name: str
    source_path: Path


def _is_chunk_code(token: str) -> bool:
    return len(token) == 4 and all("0" <= ch <= "9" for ch in token)


def format_display_name(folder_name: str) -> str:
    """Return the cosmetic menu label for ``folder_name``.

    The leading ``z_`` marker (any case) is removed, a trailing
    ``_NNNN_P`` chunk code is dropped when ``NNNN`` is four digits, and
    the remaining underscores become spaces.
    """
    name = folder_name
    if name[:2].lower() == "z_":
        name = name[2:]
    if name.endswith("_P"):
        parts = name.split("_")
        if len(parts) >= 2 and _is_chunk_code(parts[-2]):
            name = "_".join(parts[:-2])
    return name.replace("_", " ")


def discover(root_dir: Path) -> List[Unit]:
    """Return the mod folders directly below ``root_dir`` sorted by name.

    Hidden folders (leading ``.``) and plain files are skipped.  Raises
    :class:`UnitsNotFoundError` when the directory cannot be read or
    contains no qualifying folders, since the menu would have nothing to
    offer.
    """
    root_dir = Path(root_dir)
    try:
        entries = sorted(root_dir.iterdir(), key=lambda p: p.name)
    except OSError as exc:
        raise UnitsNotFoundError(f"cannot list mods directory {root_dir}: {exc}") from exc

    units: List[Unit] = []
    for entry in entries:
        if entry.name.startswith("."):
            continue
        if not entry.is_dir():
            continue
        units.append(Unit(
            id=entry.name,
            display_name=format_display_name(entry.name),
            source_path=entry.resolve(),
        ))

    if not units:
        raise UnitsNotFoundError(f"no mods found in {root_dir}")
    logger.debug("Discovered %d mod(s) in %s", len(units), root_dir)
    return units

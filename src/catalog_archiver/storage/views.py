"""Alias views over canonical storage units.

Views are symlink trees (``data/by_tags``, ``data/by_creator``) that group the
canonical per-id directories by tag and by creator. They hold no data of their
own and can be deleted and rebuilt from the record store at any time.
"""

import logging
import os
import shutil
from pathlib import Path

from catalog_archiver.errors import LinkConflictError, NotFoundError
from catalog_archiver.storage.layout import ArchiveLayout, ViewKind
from schemas.record import Record

logger = logging.getLogger(__name__)


class ViewLayer:
    """Builds and tears down the tag and creator alias trees.

    Aliases are relative symlinks, so a base directory can be moved without
    breaking them.

    Attributes:
        layout: Layout of the archive the views belong to
    """

    def __init__(self, layout: ArchiveLayout):
        self.layout = layout

    def alias_path(self, kind: ViewKind, key: str, record: Record) -> Path:
        """Where the alias for a record under a view key lives (no side effects)."""
        return self.layout.alias_path(kind, key, record)

    def aliases_for(self, record: Record) -> list[Path]:
        """Every alias path a record should have."""
        return [
            self.alias_path(kind, key, record)
            for kind in ViewKind
            for key in kind.keys_for(record)
        ]

    def link(self, record: Record) -> list[Path]:
        """Create one alias per tag and one for the creator.

        Aliases that already point at this record's canonical unit are left
        alone. Every alias is attempted even if some conflict or cannot be
        created.

        Returns:
            Alias paths that were newly created

        Raises:
            NotFoundError: If the record's canonical unit does not exist
            LinkConflictError: If any alias path is occupied by something else
                or could not be created
        """
        target = self.layout.canonical_dir_of_id(record.id)
        if not target.is_dir():
            raise NotFoundError(
                f"Canonical unit for record {record.id} does not exist: {target}"
            )

        created: list[Path] = []
        conflicts: list[Path] = []

        for alias in dict.fromkeys(self.aliases_for(record)):
            if alias.is_symlink() or alias.exists():
                if self._points_at(alias, target):
                    continue
                logger.warning(f"Alias {alias} already exists with another target")
                conflicts.append(alias)
                continue

            try:
                alias.parent.mkdir(parents=True, exist_ok=True)
                relative_target = os.path.relpath(target, alias.parent)
                os.symlink(relative_target, alias, target_is_directory=True)
            except OSError as e:
                logger.error(f"Could not create alias {alias}: {e}")
                conflicts.append(alias)
                continue
            created.append(alias)

        if conflicts:
            raise LinkConflictError(
                f"{len(conflicts)} alias(es) for record {record.id} could not "
                f"be created",
                conflicts=conflicts,
            )

        logger.debug(f"Linked record {record.id}: {len(created)} new alias(es)")
        return created

    def reset(self, kind: ViewKind) -> None:
        """Delete an entire view tree. Errors are logged, never raised."""
        root = self.layout.view_root(kind)
        try:
            shutil.rmtree(root)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to fully remove {kind.value} view at {root}: {e}")
        else:
            logger.info(f"Removed {kind.value} view at {root}")

    def dangling(self, kind: ViewKind) -> list[Path]:
        """Alias symlinks in a view whose target no longer exists."""
        root = self.layout.view_root(kind)
        if not root.is_dir():
            return []
        broken = []
        for key_dir in sorted(root.iterdir()):
            if not key_dir.is_dir() or key_dir.is_symlink():
                continue
            for alias in sorted(key_dir.iterdir()):
                if alias.is_symlink() and not alias.exists():
                    broken.append(alias)
        return broken

    @staticmethod
    def _points_at(alias: Path, target: Path) -> bool:
        if not alias.is_symlink():
            return False
        try:
            return alias.resolve(strict=True) == target.resolve(strict=True)
        except (FileNotFoundError, RuntimeError):
            return False

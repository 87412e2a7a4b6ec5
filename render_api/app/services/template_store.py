"""
Versioned template storage.

Templates live as flat files in one directory:

    <slug>-v<version>.html    the template text
    <slug>-v<version>.json    optional companion sample data

A save never touches an existing version on purpose: every save
allocates ``max(existing) + 1``. Files are never deleted here.

Concurrency note:
    ``next_version`` followed by ``save`` is a read-then-write sequence.
    Two concurrent saves for the same slug can both observe the same
    next version, and the later write replaces the earlier file. This is
    the default behaviour. Construct the store with ``serialize=True`` to
    hold a per-slug lock around allocation and write (single process
    only).
"""

from __future__ import annotations

import logging
import re
import threading
import weakref
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from render_api.app.core.errors import (
    ArtifactNotFoundError,
    RequestValidationFailure,
    StorageError,
)

logger = logging.getLogger("render_api.template_store")

_INVALID_CHARS_RE = re.compile(r"[^a-z0-9\-_]")
_WHITESPACE_RUN_RE = re.compile(r"\s+")
_DASH_RUN_RE = re.compile(r"-+")


def normalize_name(name: str) -> str:
    """
    Turn a display name into a filesystem-safe slug.

    Lowercases, trims, turns whitespace runs into one dash, drops every
    character outside ``[a-z0-9-_]``, collapses dashes and strips them
    from both ends. May return ``""``; callers must reject that.
    """
    slug = name.strip().lower()
    slug = _WHITESPACE_RUN_RE.sub("-", slug)
    slug = _INVALID_CHARS_RE.sub("", slug)
    slug = _DASH_RUN_RE.sub("-", slug)
    return slug.strip("-")


@dataclass(frozen=True)
class StoredTemplate:
    name: str
    filename: str
    version: int


class TemplateStore:
    def __init__(
        self,
        root: Path,
        *,
        extension: str = "html",
        data_extension: str = "json",
        serialize: bool = False,
    ):
        self.root = Path(root)
        self.extension = extension
        self.data_extension = data_extension
        self.serialize = serialize

        self._listing_re = re.compile(
            rf"^(.+)-v(\d+)\.{re.escape(extension)}$"
        )
        # Entries disappear once no caller holds or waits on the lock
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    def filename_for(self, slug: str, version: int) -> str:
        return f"{slug}-v{version}.{self.extension}"

    def data_filename_for(self, slug: str, version: int) -> str:
        return f"{slug}-v{version}.{self.data_extension}"

    # ------------------------------------------------------------------
    # Version allocation
    # ------------------------------------------------------------------

    def next_version(self, slug: str) -> int:
        """
        One more than the highest stored version of ``slug``, or 1.

        A storage directory that does not exist yet means no versions.
        """
        pattern = re.compile(
            rf"^{re.escape(slug)}-v(\d+)\.{re.escape(self.extension)}$"
        )
        try:
            entries = list(self.root.iterdir())
        except FileNotFoundError:
            return 1
        except OSError as exc:
            logger.warning(
                "template_dir_unreadable",
                extra={"templates_dir": str(self.root), "error": str(exc)},
            )
            return 1

        highest = 0
        for entry in entries:
            match = pattern.match(entry.name)
            if match and entry.is_file():
                highest = max(highest, int(match.group(1)))
        return highest + 1

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _write(self, filename: str, content: bytes) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(
                f"failed to create templates directory: {exc}"
            ) from exc

        try:
            (self.root / filename).write_bytes(content)
        except OSError as exc:
            raise StorageError(f"failed to save file: {exc}") from exc

    def save(
        self,
        slug: str,
        version: int,
        content: str,
        data: Optional[str] = None,
    ) -> str:
        """
        Write ``content`` as ``<slug>-v<version>`` and return its filename.

        When ``data`` is given, a companion JSON file with the same stem
        is written too. Its failure is logged and otherwise ignored.
        """
        filename = self.filename_for(slug, version)
        self._write(filename, content.encode("utf-8"))

        if data:
            data_filename = self.data_filename_for(slug, version)
            try:
                self._write(data_filename, data.encode("utf-8"))
            except StorageError as exc:
                logger.warning(
                    "template_data_save_failed",
                    extra={"data_filename": data_filename, "error": str(exc)},
                )

        logger.info(
            "template_saved",
            extra={"template_filename": filename, "version": version},
        )
        return filename

    def _lock_for(self, slug: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(slug)
            if lock is None:
                lock = threading.Lock()
                self._locks[slug] = lock
            return lock

    def save_new_version(
        self,
        name: str,
        content: str,
        data: Optional[str] = None,
    ) -> StoredTemplate:
        """Normalise ``name``, allocate the next version and persist it."""
        slug = normalize_name(name)
        if not slug:
            raise RequestValidationFailure("invalid name")

        if not self.serialize:
            version = self.next_version(slug)
            filename = self.save(slug, version, content, data)
            return StoredTemplate(slug, filename, version)

        with self._lock_for(slug):
            version = self.next_version(slug)
            filename = self.save(slug, version, content, data)
        return StoredTemplate(slug, filename, version)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(self) -> List[StoredTemplate]:
        """
        Every stored template, newest version first within each name.

        Files that do not follow the versioned naming scheme are listed
        with version 0 and their bare stem as name.
        """
        try:
            entries = list(self.root.iterdir())
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise StorageError(
                f"failed to read templates directory: {exc}"
            ) from exc

        suffix = f".{self.extension}"
        templates: List[StoredTemplate] = []

        for entry in entries:
            if not entry.name.endswith(suffix) or not entry.is_file():
                continue

            match = self._listing_re.match(entry.name)
            if match:
                templates.append(
                    StoredTemplate(match.group(1), entry.name, int(match.group(2)))
                )
            else:
                templates.append(
                    StoredTemplate(entry.name[: -len(suffix)], entry.name, 0)
                )

        templates.sort(key=lambda item: (item.name, -item.version))
        return templates

    def _resolve(self, filename: str) -> Path:
        if (
            not filename
            or filename != Path(filename).name
            or filename in (".", "..")
            or "\\" in filename
        ):
            raise RequestValidationFailure(f"invalid filename: {filename!r}")
        return self.root / filename

    def read(self, filename: str) -> bytes:
        """Contents of a stored artifact referenced by its bare filename."""
        path = self._resolve(filename)
        try:
            return path.read_bytes()
        except (FileNotFoundError, IsADirectoryError):
            raise ArtifactNotFoundError(
                f"template {filename!r} not found"
            ) from None
        except OSError as exc:
            raise StorageError(f"failed to read template file: {exc}") from exc

    def read_data(self, filename: str) -> Optional[str]:
        """Companion JSON text stored next to ``filename``, if any."""
        path = self._resolve(filename)
        data_path = path.with_suffix(f".{self.data_extension}")
        try:
            return data_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning(
                "template_data_read_failed",
                extra={"data_filename": data_path.name, "error": str(exc)},
            )
            return None

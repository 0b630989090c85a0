"""Deterministic ZIP archiving for office documents.

``DeterministicArchiver.build`` and ``rebuild`` are pure functions of the part
list and the file contents: entries are written ascending by name with the
stored timestamp and permission bits, so the same inputs always produce the
same bytes. The clean filter hashes the ``build`` output and the smudge
filter checks the ``rebuild`` output against that hash.
"""

from __future__ import annotations

import io
import logging
import shutil
import stat
import zipfile
from collections.abc import Iterable
from pathlib import Path, PurePosixPath

from pydantic import ValidationError

from docxgit.core.hasher import sha256_hex
from docxgit.errors import ArchiveError, UnsafeArchiveError
from docxgit.models.parts import PartDescriptor, Timestamp

logger = logging.getLogger(__name__)

# DOS date fields cover 1980..2107
ZIP_MIN_YEAR = 1980
ZIP_MAX_YEAR = 2107

_UNIX_SYSTEM = 3
_MSDOS_DIRECTORY = 0x10


def clamp_timestamp(timestamp: Timestamp) -> Timestamp:
    """Clamp the year into the ZIP range; reset other invalid fields to defaults."""
    year, month, day, hour, minute, second = timestamp
    return (
        min(max(year, ZIP_MIN_YEAR), ZIP_MAX_YEAR),
        month if 1 <= month <= 12 else 1,
        day if 1 <= day <= 31 else 1,
        hour if hour <= 23 else 0,
        minute if minute <= 59 else 0,
        second if second <= 59 else 0,
    )


def member_path(name: str) -> PurePosixPath:
    """Validate an archive member name and return it as a relative path."""
    normalized = name.replace("\\", "/")
    relative = PurePosixPath(normalized)
    if relative.is_absolute():
        raise UnsafeArchiveError(f"Unsafe absolute path detected in archive: {name}")
    if not relative.parts:
        raise UnsafeArchiveError(f"Empty path detected in archive: {name}")
    if any(part in {"", ".", ".."} for part in relative.parts):
        raise UnsafeArchiveError(f"Unsafe path detected in archive: {name}")
    return relative


def _open_archive(archive_bytes: bytes) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(io.BytesIO(archive_bytes))
    except (zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
        raise ArchiveError(f"Cannot read document archive: {exc}") from exc


def extract_descriptors(archive_bytes: bytes) -> list[PartDescriptor]:
    """Read each member's original timestamp and permission bits.

    Permissions are taken from the Unix mode only when the entry was written
    by a Unix system; otherwise they are reported as 0 (unknown).
    """
    descriptors: list[PartDescriptor] = []
    seen: set[str] = set()
    with _open_archive(archive_bytes) as archive:
        for info in archive.infolist():
            member_path(info.filename)
            if info.filename in seen:
                raise ArchiveError(f"Duplicate member in archive: {info.filename}")
            seen.add(info.filename)
            permissions = 0
            if info.create_system == _UNIX_SYSTEM:
                permissions = (info.external_attr >> 16) & 0o777
            try:
                descriptors.append(
                    PartDescriptor(
                        name=info.filename,
                        timestamp=tuple(info.date_time),
                        permissions=permissions,
                    )
                )
            except ValidationError as exc:
                raise ArchiveError(f"Invalid member {info.filename!r}: {exc}") from exc
    return descriptors


def unpack(archive_bytes: bytes, destination: Path) -> list[Path]:
    """Extract every member below *destination*, refusing traversal and links."""
    destination = Path(destination)
    destination.mkdir(parents=True, exist_ok=True)
    extracted: list[Path] = []
    with _open_archive(archive_bytes) as archive:
        members = archive.infolist()
        for info in members:
            mode = (info.external_attr >> 16) & 0xFFFF
            if info.create_system == _UNIX_SYSTEM and stat.S_IFMT(mode) == stat.S_IFLNK:
                raise UnsafeArchiveError(f"Unsafe link detected in archive: {info.filename}")
            member_path(info.filename)
        for info in members:
            target = destination.joinpath(*member_path(info.filename).parts)
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            try:
                with archive.open(info, "r") as source, target.open("wb") as sink:
                    shutil.copyfileobj(source, sink)
            except (zipfile.BadZipFile, EOFError) as exc:
                raise ArchiveError(f"Corrupt member {info.filename!r}: {exc}") from exc
            extracted.append(target)
    logger.debug("Unpacked %d files into %s", len(extracted), destination)
    return extracted


class DeterministicArchiver:
    """Builds ZIP archives whose bytes depend only on parts and file contents.

    Parameters
    ----------
    compression:
        ``zipfile`` compression method for file entries.
    compresslevel:
        Optional compression level passed to ``zipfile``.
    """

    def __init__(
        self,
        compression: int = zipfile.ZIP_DEFLATED,
        compresslevel: int | None = None,
    ) -> None:
        self._compression = compression
        self._compresslevel = compresslevel

    def _zipinfo(self, part: PartDescriptor) -> zipfile.ZipInfo:
        info = zipfile.ZipInfo(part.name, date_time=clamp_timestamp(part.timestamp))
        info.create_system = _UNIX_SYSTEM
        if part.is_directory:
            info.external_attr = ((stat.S_IFDIR | part.effective_permissions) << 16) | _MSDOS_DIRECTORY
            info.compress_type = zipfile.ZIP_STORED
        else:
            info.external_attr = (stat.S_IFREG | part.effective_permissions) << 16
            info.compress_type = self._compression
        return info

    def build(self, parts: Iterable[PartDescriptor], source_dir: Path) -> bytes:
        """Zip the files under *source_dir* named by *parts*, ascending by name.

        A part whose backing file is missing is skipped with a warning. Read
        errors on present files propagate and no archive is returned.
        """
        source_dir = Path(source_dir)
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            for part in sorted(parts, key=lambda p: p.name):
                try:
                    path = source_dir.joinpath(*member_path(part.name).parts)
                except UnsafeArchiveError as exc:
                    logger.warning("Skipping part: %s", exc)
                    continue
                if part.is_directory:
                    if not path.is_dir():
                        logger.warning("Missing directory for ZIP: %s", path)
                        continue
                    archive.writestr(self._zipinfo(part), b"")
                    continue
                if not path.is_file():
                    logger.warning("Missing file for ZIP: %s", path)
                    continue
                archive.writestr(
                    self._zipinfo(part),
                    path.read_bytes(),
                    compresslevel=self._compresslevel,
                )
                logger.debug("Added file to ZIP: %s", part.name)
        return buffer.getvalue()

    def rebuild(self, parts: Iterable[PartDescriptor], source_dir: Path) -> bytes:
        """Rebuild an archive from materialized parts; identical to ``build``."""
        return self.build(parts, source_dir)

    def canonical_hash(self, parts: Iterable[PartDescriptor], source_dir: Path) -> str:
        """SHA-256 of the deterministic archive for *parts*."""
        return sha256_hex(self.build(parts, source_dir))

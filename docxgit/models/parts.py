"""Document part descriptors and the pointer record that carries them."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_PERMISSIONS = 0o644

Timestamp = tuple[int, int, int, int, int, int]


class PartDescriptor(BaseModel):
    """Metadata of one part stored inside a document archive.

    ``timestamp`` is the archive's (year, month, day, hour, minute, second)
    sextuple. ``permissions`` holds POSIX mode bits; 0 means unknown.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    timestamp: Timestamp
    permissions: int = 0

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not value:
            raise ValueError("part name must not be empty")
        if value.startswith("/"):
            raise ValueError(f"part name must be relative: {value!r}")
        return value

    @field_validator("timestamp")
    @classmethod
    def _check_timestamp(cls, value: Timestamp) -> Timestamp:
        if any(field < 0 for field in value):
            raise ValueError(f"timestamp fields must be unsigned: {value!r}")
        return value

    @field_validator("permissions")
    @classmethod
    def _check_permissions(cls, value: int) -> int:
        if value < 0:
            raise ValueError(f"permissions must be unsigned: {value!r}")
        return value

    @property
    def is_directory(self) -> bool:
        return self.name.endswith("/")

    @property
    def effective_permissions(self) -> int:
        """Low 9 permission bits, defaulting to 0644 when unknown."""
        return (self.permissions & 0o777) or DEFAULT_PERMISSIONS


class PointerRecord(BaseModel):
    """Decoded pointer record: which tree to restore and how to rezip it."""

    model_config = ConfigDict(frozen=True)

    refname: str
    expected_hash: str
    parts: tuple[PartDescriptor, ...] = ()

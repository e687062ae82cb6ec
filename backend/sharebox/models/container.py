"""Container models - one share transaction and its uploaded files.

A container is written once, after every file has reached the blob store,
and is read-only until the sweeper reclaims it. StoredFile columns added over
time (category, clean_name, extension) are nullable; readers derive missing
values from original_name instead of probing for the field.
"""
import re
import uuid
from datetime import datetime
from pathlib import PurePath

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sharebox.models.base import Base, CreatedAtMixin

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]+")
_UNSAFE_EXT_CHARS = re.compile(r"[^a-z0-9.]+")


def clean_base_name(original_name: str) -> str:
    """File stem reduced to characters that are safe in a download filename."""
    stem = PurePath(original_name or "").stem
    cleaned = _UNSAFE_NAME_CHARS.sub("_", stem).strip("_")
    return cleaned or "file"


def file_extension(original_name: str) -> str:
    return _UNSAFE_EXT_CHARS.sub("", PurePath(original_name or "").suffix.lower())


class Container(Base, CreatedAtMixin):
    __tablename__ = "containers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    public_id: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(500), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)

    files: Mapped[list["StoredFile"]] = relationship(
        back_populates="container",
        cascade="all, delete-orphan",
        order_by="StoredFile.position",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Container {self.public_id} files={len(self.files)} expires_at={self.expires_at}>"


class StoredFile(Base):
    __tablename__ = "container_files"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    container_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("containers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0)
    original_name: Mapped[str] = mapped_column(String(500), nullable=False)
    storage_key: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    url: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    size_bytes: Mapped[int] = mapped_column(BigInteger, default=0)
    content_category: Mapped[str | None] = mapped_column(String(20), nullable=True)
    clean_name: Mapped[str | None] = mapped_column(String(500), nullable=True)
    extension: Mapped[str | None] = mapped_column(String(50), nullable=True)

    container: Mapped["Container"] = relationship(back_populates="files")

    @property
    def is_corrupt(self) -> bool:
        return not self.storage_key or not self.url

    @property
    def display_base_name(self) -> str:
        return self.clean_name or clean_base_name(self.original_name)

    @property
    def display_extension(self) -> str:
        if self.extension is not None:
            return self.extension
        return file_extension(self.original_name)

import os
import time
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from redirector.db import Base


def new_link_id() -> str:
    return str(uuid.uuid4())


def new_event_id() -> str:
    """
    UUIDv7 layout: 48-bit unix-ms timestamp, version/variant bits, random tail.
    Sorts by creation time and is never reused.
    """
    ms = time.time_ns() // 1_000_000
    rand = int.from_bytes(os.urandom(10), "big")
    value = (ms & 0xFFFF_FFFF_FFFF) << 80 | rand
    value = (value & ~(0xF << 76)) | (0x7 << 76)
    value = (value & ~(0x3 << 62)) | (0x2 << 62)
    return str(uuid.UUID(int=value))


class ShortLink(Base):
    __tablename__ = "short_links"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_link_id)
    code: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    original_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    expired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # NULL means unlimited
    click_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ClickEvent(Base):
    __tablename__ = "link_stats"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_event_id)
    link_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("short_links.id", ondelete="CASCADE"), index=True, nullable=False
    )
    click_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    referrer: Mapped[str | None] = mapped_column(Text, nullable=True)
    country: Mapped[str | None] = mapped_column(String(64), nullable=True)
    device_type: Mapped[str | None] = mapped_column(String(32), nullable=True)

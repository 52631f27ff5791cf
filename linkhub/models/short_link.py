"""Short link SQLAlchemy model (dedicated short-code namespace)."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from linkhub.core.database import Base


class ShortLink(Base):
    """Authoritative short-code entry consulted first on every redirect."""

    __tablename__ = "short_links"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    link_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("links.id", ondelete="SET NULL"),
        nullable=True,
        comment="Owning link record (holds the deeplink config)",
    )
    short_code: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        index=True,
    )
    original_url: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="The URL to redirect to when no deeplink rule applies",
    )
    link_type: Mapped[str] = mapped_column(
        String(20),
        default="plain",
        nullable=False,
        comment="One of 'plain', 'deeplink', 'qr'",
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="Whether the short link is active (soft delete)",
    )
    click_count: Mapped[int] = mapped_column(
        default=0,
        nullable=False,
        comment="Total click count (approximate, denormalized)",
    )
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ShortLink {self.short_code} -> {self.original_url[:50]}>"

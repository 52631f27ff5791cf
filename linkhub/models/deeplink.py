"""Deeplink configuration SQLAlchemy model."""

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, ForeignKey, Text, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from linkhub.core.database import Base

if TYPE_CHECKING:
    from linkhub.models.link import Link


class Deeplink(Base):
    """Per-platform destinations of a deeplink (one-to-one with its link)."""

    __tablename__ = "deeplinks"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    link_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("links.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    ios_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    android_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    desktop_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    fallback_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_agent_rules: Mapped[Any | None] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=True,
        comment="Ordered [pattern, url] pairs checked before platform detection",
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

    link: Mapped["Link"] = relationship(back_populates="deeplink")

    def __repr__(self) -> str:
        return f"<Deeplink link={self.link_id}>"

"""Link SQLAlchemy model (profile links, QR links and deeplinks)."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from linkhub.core.database import Base

if TYPE_CHECKING:
    from linkhub.models.deeplink import Deeplink


class Link(Base):
    """A link shown on a profile page.

    Links that carry a ``short_code`` are also reachable through ``/l/{code}``;
    this table is the secondary namespace consulted by the redirect dispatcher.
    """

    __tablename__ = "links"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Destination for plain and QR links; canonical URL for deeplinks",
    )
    link_type: Mapped[str] = mapped_column(
        String(20),
        default="plain",
        nullable=False,
        comment="One of 'plain', 'deeplink', 'qr'",
    )
    short_code: Mapped[str | None] = mapped_column(
        String(20),
        unique=True,
        nullable=True,
        index=True,
    )
    position: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Display order on the profile page",
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="Whether the link is active (soft delete)",
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

    deeplink: Mapped["Deeplink"] = relationship(
        back_populates="link",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        uselist=False,
    )

    def __repr__(self) -> str:
        return f"<Link {self.short_code} -> {self.url[:50]}>"

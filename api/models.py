"""SQLAlchemy models for events, certificate templates and certificates."""

from datetime import UTC, datetime

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship

from core.database import Base


def utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow)

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Event(TimestampMixin, Base):
    """An event that issues certificates to its participants."""

    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Free text as entered by admins ("12-14 March 2025")
    date: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    templates: Mapped[list["CertificateTemplate"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    certificates: Mapped[list["Certificate"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class CertificateTemplate(TimestampMixin, Base):
    """Background image plus name placement for one participant category."""

    __tablename__ = "certificate_templates"
    __table_args__ = (
        UniqueConstraint(
            "event_id", "category_key", name="uq_certificate_templates_event_category"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    # Lower-cased, trimmed category; the lookup key
    category_key: Mapped[str] = mapped_column(String(100), nullable=False)
    template_path: Mapped[str] = mapped_column(Text, nullable=False)
    template_url: Mapped[str] = mapped_column(Text, nullable=False)
    # Percent of image width/height (0-100)
    name_position_x: Mapped[float] = mapped_column(Float, default=50.0)
    name_position_y: Mapped[float] = mapped_column(Float, default=50.0)
    name_font_size: Mapped[int] = mapped_column(Integer, default=48)
    name_font_color: Mapped[str] = mapped_column(String(32), default="#000000")
    name_font_family: Mapped[str] = mapped_column(String(100), default="serif")

    event: Mapped["Event"] = relationship(back_populates="templates")


class Certificate(TimestampMixin, Base):
    """A participant's certificate for one event."""

    __tablename__ = "certificates"
    __table_args__ = (
        UniqueConstraint("email", "event_id", name="uq_certificates_email_event"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Lower-cased and trimmed before insert
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Nullable for certificates added by hand without a managed event
    event_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    # Denormalized from the event at generation time
    event_name: Mapped[str] = mapped_column(String(255), nullable=False)
    date_of_event: Mapped[str | None] = mapped_column(String(255), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tags: Mapped[str | None] = mapped_column(Text, nullable=True)
    certificate_url: Mapped[str] = mapped_column(Text, nullable=False)

    event: Mapped["Event | None"] = relationship(back_populates="certificates")

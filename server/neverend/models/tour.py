"""Tour model definitions: the catalog record and its nested program, prices and inclusions."""

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, Date, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .application import Application


class Tour(Base):
    """Tour entity representing one catalog entry."""

    __tablename__ = "tours"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Tour information
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    short_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    duration: Mapped[str | None] = mapped_column(String(100), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)

    date_start: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    date_end: Mapped[date | None] = mapped_column(Date, nullable=True)

    max_participants: Mapped[int | None] = mapped_column(Integer, nullable=True)
    current_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active", index=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("current_participants >= 0", name="ck_tour_current_participants_non_negative"),
    )

    # Relationships, loaded eagerly so detail responses never lazy-load under asyncio
    programs: Mapped[list["TourProgram"]] = relationship(
        "TourProgram",
        back_populates="tour",
        cascade="all, delete-orphan",
        order_by="TourProgram.day",
        lazy="selectin",
    )
    prices: Mapped[list["TourPrice"]] = relationship(
        "TourPrice",
        back_populates="tour",
        cascade="all, delete-orphan",
        order_by="[TourPrice.price_order, TourPrice.price]",
        lazy="selectin",
    )
    inclusions: Mapped[list["TourInclusion"]] = relationship(
        "TourInclusion",
        back_populates="tour",
        cascade="all, delete-orphan",
        order_by="[TourInclusion.type, TourInclusion.id]",
        lazy="selectin",
    )
    applications: Mapped[list["Application"]] = relationship(
        "Application",
        back_populates="tour",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Tour(id={self.id}, title='{self.title}', status='{self.status}')>"


class TourProgram(Base):
    """One day of a tour's itinerary."""

    __tablename__ = "tour_programs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tour_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("tours.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    day: Mapped[int] = mapped_column(Integer, nullable=False)
    programm: Mapped[str] = mapped_column(Text, nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)

    tour: Mapped["Tour"] = relationship("Tour", back_populates="programs")

    def __repr__(self) -> str:
        return f"<TourProgram(tour_id={self.tour_id}, day={self.day})>"


class TourPrice(Base):
    """A labelled price option; the catalog shows the cheapest one."""

    __tablename__ = "tour_prices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tour_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("tours.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    price_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_tour_price_non_negative"),
    )

    tour: Mapped["Tour"] = relationship("Tour", back_populates="prices")

    def __repr__(self) -> str:
        return f"<TourPrice(tour_id={self.tour_id}, price={self.price})>"


class TourInclusion(Base):
    """An item that is or is not included in the tour price."""

    __tablename__ = "tour_inclusions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tour_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("tours.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    item: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)

    __table_args__ = (
        CheckConstraint("type IN ('included', 'excluded')", name="ck_tour_inclusion_type"),
    )

    tour: Mapped["Tour"] = relationship("Tour", back_populates="inclusions")

    def __repr__(self) -> str:
        return f"<TourInclusion(tour_id={self.tour_id}, type='{self.type}')>"

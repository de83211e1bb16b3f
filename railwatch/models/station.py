"""Locally cached directory of rail stations."""

from sqlalchemy import JSON, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from railwatch.models.base import BaseModel


class Station(BaseModel):
    """
    A rail station as published by the NS stations API.

    Rows are upserted by ``code`` on every sync and are never deleted by
    normal operation. ``uic_code`` is the key trip legs refer to.
    """

    __tablename__ = "stations"

    code: Mapped[str] = mapped_column(
        String(16),
        unique=True,
        nullable=False,
        index=True,
    )
    uic_code: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="",
        index=True,
    )
    name_long: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    name_medium: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    name_short: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    # Alternative spellings, e.g. ["Den Haag", "'s-Gravenhage"]
    synonyms: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    lat: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
    )
    lng: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
    )
    country: Mapped[str] = mapped_column(
        String(8),
        nullable=False,
        default="NL",
    )

    def __repr__(self) -> str:
        """String representation of the station."""
        return f"<Station(code={self.code}, name={self.name_long})>"

"""Spaces (tenants) and their members, used for route access control."""

import enum
import uuid

from sqlalchemy import Boolean, Enum, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from railwatch.models.base import BaseModel


class SpaceRole(str, enum.Enum):
    """Role of a member within a space."""

    CREATOR = "creator"
    ADMIN = "admin"
    MEMBER = "member"


class Space(BaseModel):
    """A shared space; routes attached to it are visible to all members."""

    __tablename__ = "spaces"

    display_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    is_personal: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    created_by: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    members: Mapped[list["SpaceMember"]] = relationship(
        back_populates="space",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        """String representation of the space."""
        return f"<Space(id={self.id}, name={self.display_name})>"


class SpaceMember(BaseModel):
    """Membership of a user in a space."""

    __tablename__ = "space_members"

    space_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("spaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )
    role: Mapped[SpaceRole] = mapped_column(
        Enum(
            SpaceRole,
            name="space_role",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=SpaceRole.MEMBER,
    )

    space: Mapped[Space] = relationship(back_populates="members")

    __table_args__ = (UniqueConstraint("space_id", "user_id", name="uq_space_member"),)

"""
User and profile models.

Users are the owners of every other row in the system. Authentication itself is
delegated to a token issuer; the users table only keeps what is needed to resolve
a bearer token to an owner id. Profiles hold the display name used to resolve
first-person pronouns during extraction.
"""

from sqlalchemy import Column, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from app.models.base import SCHEMA_NAME, Base, TimestampMixin, UUIDMixin


class User(Base, UUIDMixin, TimestampMixin):
    """
    Account that owns captures, events, evidence and jobs.
    """

    __tablename__ = "users"
    __table_args__ = (
        Index("ix_users_username", "username", unique=True),
        {"schema": SCHEMA_NAME},
    )

    username = Column(
        String(50),
        nullable=False,
        comment="Unique username for user identification and login",
    )

    hashed_password = Column(
        String(255),
        nullable=False,
        comment="Bcrypt hashed password for secure authentication",
    )

    profile = relationship(
        "Profile",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
        doc="Display preferences for this user",
    )

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}')>"


class Profile(Base, UUIDMixin, TimestampMixin):
    """
    Per-user display information.
    """

    __tablename__ = "profiles"
    __table_args__ = (
        Index("ix_profiles_user_id", "user_id", unique=True),
        {"schema": SCHEMA_NAME},
    )

    user_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.users.id", ondelete="CASCADE"),
        nullable=False,
        comment="Owner of this profile",
    )

    full_name = Column(String(200), nullable=True, comment="Legal or full name")

    display_name = Column(
        String(100),
        nullable=True,
        comment="Preferred name used when addressing the user and in extraction prompts",
    )

    timezone = Column(
        String(64),
        nullable=True,
        comment="IANA timezone name used to interpret relative times",
    )

    user = relationship("User", back_populates="profile")

    @property
    def speaker_name(self) -> str | None:
        return self.display_name or self.full_name

    def __repr__(self):
        return f"<Profile(user_id={self.user_id}, display_name='{self.display_name}')>"

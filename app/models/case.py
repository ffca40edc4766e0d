"""
Case and subscription models.

Cases describe the legal matter a user is documenting and feed the extraction
context. Subscriptions decide which usage tier applies to the user.
"""

from sqlalchemy import Column, Date, DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import validates

from app.models.base import (
    SCHEMA_NAME,
    Base,
    OwnedMixin,
    TimestampMixin,
    UUIDMixin,
    check_choice,
)

PLAN_TIERS = ("free", "starter", "alpha", "pro", "enterprise")


class Case(Base, UUIDMixin, TimestampMixin, OwnedMixin):
    """
    The custody/family-law matter a user is journaling for.
    """

    __tablename__ = "cases"
    __table_args__ = (
        Index("ix_cases_user_updated", "user_id", "updated_at"),
        {"schema": SCHEMA_NAME},
    )

    case_type = Column(String(50), nullable=True, comment="e.g. custody, divorce, protective order")
    stage = Column(String(50), nullable=True, comment="Procedural stage of the matter")
    your_role = Column(String(50), nullable=True, comment="The user's role, e.g. mother, father, petitioner")
    opposing_party_name = Column(String(200), nullable=True)
    opposing_party_role = Column(String(50), nullable=True)
    goals_summary = Column(Text, nullable=True, comment="What the user wants from the matter")
    children_summary = Column(Text, nullable=True, comment="Children involved, as described by the user")
    parenting_schedule = Column(Text, nullable=True, comment="Current custody/parenting schedule")
    risk_flags = Column(
        ARRAY(String), nullable=False, default=list, server_default="{}", comment="Known risk factors"
    )
    next_court_date = Column(Date, nullable=True)

    def __repr__(self):
        return f"<Case(id={self.id}, case_type='{self.case_type}', stage='{self.stage}')>"


class Subscription(Base, UUIDMixin, TimestampMixin, OwnedMixin):
    """
    Billing state mirrored from the payment provider. Only read here.
    """

    __tablename__ = "subscriptions"
    __table_args__ = (
        Index("ix_subscriptions_user_id", "user_id"),
        {"schema": SCHEMA_NAME},
    )

    plan_tier = Column(
        String(20),
        nullable=False,
        default="free",
        comment="free/starter/alpha/pro/enterprise",
    )

    status = Column(
        String(30),
        nullable=False,
        default="active",
        comment="Provider status; only active and trialing grant the tier",
    )

    current_period_end = Column(DateTime(timezone=True), nullable=True)

    @validates("plan_tier")
    def validate_plan_tier(self, key, value):
        return check_choice(key, value, PLAN_TIERS)

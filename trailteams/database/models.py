"""
SQLAlchemy ORM models for the team walking community.
"""

import enum
import uuid
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Float,
    Date,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from trailteams.database.db import Base


def _uuid_str() -> str:
    return str(uuid.uuid4())


class UserPlan(str, enum.Enum):
    """Subscription tier, lowest to highest."""

    GRATIS = "gratis"
    BASICO = "basico"
    COMPLETO = "completo"


class TeamRole(str, enum.Enum):
    """Role of a member inside a team."""

    LEADER = "leader"
    MEMBER = "member"


class RequestStatus(str, enum.Enum):
    """Lifecycle of invitations and join requests."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class Profile(Base):
    """User profile. The id is issued by the identity provider."""

    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    name = Column(String, nullable=False)
    location = Column(String, nullable=True)  # Free-text city / area
    address = Column(Text, nullable=True)  # Private, never shown to other users
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    avatar_url = Column(String, nullable=True)
    phone_number = Column(String(30), nullable=True)
    start_date = Column(Date, nullable=True)
    user_plan = Column(String(20), default=UserPlan.GRATIS.value, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    memberships = relationship("TeamMember", back_populates="profile")

    __table_args__ = (
        CheckConstraint(
            "(latitude IS NULL AND longitude IS NULL) OR (latitude IS NOT NULL AND longitude IS NOT NULL)",
            name="ck_profiles_coordinates_paired",
        ),
        CheckConstraint(
            "user_plan IN ('gratis', 'basico', 'completo')", name="ck_profiles_user_plan"
        ),
        Index("idx_profiles_created_at", "created_at"),
    )


class Team(Base):
    """Walking team."""

    __tablename__ = "teams"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    name = Column(String, nullable=True)
    created_by = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    max_members = Column(Integer, nullable=False, default=14)  # Hint only, see effective_capacity
    whatsapp_link = Column(String(500), nullable=True)
    avatar_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    creator = relationship("Profile", foreign_keys=[created_by])
    members = relationship(
        "TeamMember",
        back_populates="team",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TeamMember.joined_at",
    )

    __table_args__ = (Index("idx_teams_created_at", "created_at"),)


class TeamMember(Base):
    """Join table (Team ↔ Profile)."""

    __tablename__ = "team_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    role = Column(String(20), default=TeamRole.MEMBER.value, nullable=False)  # 'leader' or 'member'
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    team = relationship("Team", back_populates="members")
    profile = relationship("Profile", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),
        CheckConstraint("role IN ('leader', 'member')", name="ck_team_members_role"),
        Index("idx_team_members_team_id", "team_id"),
        Index("idx_team_members_user_id", "user_id"),
    )


class TeamInvitation(Base):
    """Leader-initiated invitation to join a team."""

    __tablename__ = "team_invitations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    inviter_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    invitee_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    status = Column(String(20), default=RequestStatus.PENDING.value, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    responded_at = Column(DateTime(timezone=True), nullable=True)

    team = relationship("Team")
    inviter = relationship("Profile", foreign_keys=[inviter_id])
    invitee = relationship("Profile", foreign_keys=[invitee_id])

    __table_args__ = (
        # At most one pending invitation per (team, invitee)
        Index(
            "uq_team_invitations_pending",
            "team_id",
            "invitee_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        Index("idx_team_invitations_invitee", "invitee_id"),
    )


class TeamJoinRequest(Base):
    """User-initiated request to join a team."""

    __tablename__ = "team_join_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    requester_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    status = Column(String(20), default=RequestStatus.PENDING.value, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    responded_at = Column(DateTime(timezone=True), nullable=True)

    team = relationship("Team")
    requester = relationship("Profile", foreign_keys=[requester_id])

    __table_args__ = (
        Index(
            "uq_team_join_requests_pending",
            "team_id",
            "requester_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        Index("idx_team_join_requests_requester", "requester_id"),
    )


class WalkCompletion(Base):
    """A completed training walk."""

    __tablename__ = "walk_completions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    week_number = Column(Integer, nullable=False)
    day_of_week = Column(String(20), nullable=False)
    distance_km = Column(Float, nullable=False)
    completed_at = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "week_number", "day_of_week", name="uq_walk_completions_day"),
        Index("idx_walk_completions_user_id", "user_id"),
    )


class PhaseUnlock(Base):
    """A training phase unlocked by completing the previous one."""

    __tablename__ = "phase_unlocks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    phase_number = Column(Integer, nullable=False)
    unlocked_at = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "phase_number", name="uq_phase_unlocks_phase"),
        Index("idx_phase_unlocks_user_id", "user_id"),
    )


class TrailCompletion(Base):
    """A trail from the trail library marked as walked."""

    __tablename__ = "trail_completions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    trail_id = Column(String(100), nullable=False)
    completed_at = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "trail_id", name="uq_trail_completions_trail"),
        Index("idx_trail_completions_user_id", "user_id"),
    )


class BookCompletion(Base):
    """A recommended book marked as read."""

    __tablename__ = "book_completions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    book_id = Column(String(100), nullable=False)
    completed_at = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uq_book_completions_book"),
        Index("idx_book_completions_user_id", "user_id"),
    )


class MagnoliasHikeCompletion(Base):
    """A completed Magnolias group hike."""

    __tablename__ = "magnolias_hikes_completions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    hike_id = Column(String(100), nullable=False)
    completed_at = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "hike_id", name="uq_magnolias_hikes_completions_hike"),
        Index("idx_magnolias_hikes_completions_user_id", "user_id"),
    )

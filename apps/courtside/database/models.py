"""
SQLAlchemy ORM models for the Courtside social and skill score system.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Float,
    DateTime,
    JSON,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from courtside.database.db import Base
from courtside.utils.datetime_utils import utcnow


class PostVisibility(str, enum.Enum):
    """Who may see a post besides its author."""

    PUBLIC = "public"
    FRIENDS = "friends"


class StatOutcome(str, enum.Enum):
    """Outcome reported by a stat, from the reporter's point of view."""

    WIN = "win"
    OTHER = "other"


class StatState(str, enum.Enum):
    """Lifecycle of a live stat. Expired stats are deleted, not flagged."""

    CREATED = "created"
    EDITED = "edited"


class User(Base):
    """Registered athlete with profile and matching preferences."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), nullable=False, unique=True)
    password_hash = Column(String, nullable=False)

    # Profile
    gender = Column(String(20), nullable=True)
    sports = Column(JSON, nullable=False, default=list)  # list of sport names practiced
    skill = Column(Integer, nullable=True)
    location = Column(String, nullable=True)

    # Preferences
    gender_pref = Column(String(20), nullable=True)  # None or "any" matches everyone
    sports_pref = Column(JSON, nullable=False, default=list)
    skill_pref_min = Column(Integer, nullable=True)
    skill_pref_max = Column(Integer, nullable=True)
    location_range = Column(Integer, nullable=True)  # miles; stored, not yet used for matching

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    skill_score = relationship("SkillScore", back_populates="user", uselist=False)

    __table_args__ = (Index("idx_users_username", "username"),)


class FriendRequest(Base):
    """Pending friend request. Accepting or rejecting deletes the row."""

    __tablename__ = "friend_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    receiver_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    # Normalized pair so a request in either direction collides on the same key
    pair_low_id = Column(Integer, nullable=False)
    pair_high_id = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("pair_low_id", "pair_high_id", name="uq_friend_request_pair"),
        CheckConstraint("sender_id <> receiver_id", name="ck_friend_request_not_self"),
        Index("idx_friend_requests_receiver", "receiver_id"),
        Index("idx_friend_requests_sender", "sender_id"),
    )


class Friend(Base):
    """Accepted friendship (User ↔ User), stored with user1_id < user2_id."""

    __tablename__ = "friends"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user1_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    user2_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_by = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )  # User who accepted the request
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("user1_id", "user2_id", name="uq_friends_pair"),
        CheckConstraint("user1_id < user2_id", name="ck_friends_ordered"),
        Index("idx_friends_user1", "user1_id"),
        Index("idx_friends_user2", "user2_id"),
    )


class Post(Base):
    """Free-text post; content "win" with a collaborator reports a match win."""

    __tablename__ = "posts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    author_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    image = Column(String, nullable=True)
    visibility = Column(String(20), nullable=False, default=PostVisibility.PUBLIC.value)
    collaborator_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )  # Reported opponent
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    author = relationship("User", foreign_keys=[author_id])
    collaborator = relationship("User", foreign_keys=[collaborator_id])

    __table_args__ = (
        CheckConstraint("visibility IN ('public', 'friends')", name="ck_posts_visibility"),
        Index("idx_posts_author_created", "author_id", "created_at"),
    )


class Stat(Base):
    """Recorded match outcome feeding both participants' skill scores."""

    __tablename__ = "stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user1_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)  # reporter
    user2_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)  # opponent
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="SET NULL"), nullable=True)
    outcome = Column(String(10), nullable=False)
    stat = Column(Text, nullable=False)  # literal post content at the time of the last update
    applied_delta = Column(Float, nullable=False, default=0.0)  # added to user1, negated for user2
    state = Column(String(10), nullable=False, default=StatState.CREATED.value)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("user1_id <> user2_id", name="ck_stats_not_self"),
        Index("idx_stats_user1", "user1_id"),
        Index("idx_stats_post", "post_id"),
    )


class SkillScore(Base):
    """Accumulated zero-sum skill score, one row per user."""

    __tablename__ = "skill_scores"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    score = Column(Float, nullable=False, default=0.0)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="skill_score")

"""
Pydantic models for API request/response validation.
"""

from typing import Optional, List, Literal
from pydantic import BaseModel, Field, model_validator


# Users
class ProfileFields(BaseModel):
    """Profile attributes."""

    gender: Optional[str] = None
    sports: Optional[List[str]] = None
    skill: Optional[int] = Field(default=None, ge=0)
    location: Optional[str] = None


class PreferenceFields(BaseModel):
    """Matching preferences."""

    gender_pref: Optional[str] = None
    sports_pref: Optional[List[str]] = None
    skill_pref_min: Optional[int] = Field(default=None, ge=0)
    skill_pref_max: Optional[int] = Field(default=None, ge=0)
    location_range: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_skill_range(self):
        if (
            self.skill_pref_min is not None
            and self.skill_pref_max is not None
            and self.skill_pref_min > self.skill_pref_max
        ):
            raise ValueError("skill_pref_min must not exceed skill_pref_max")
        return self


class UserCreate(BaseModel):
    """Registration request."""

    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1)
    profile: ProfileFields = Field(default_factory=ProfileFields)
    preferences: PreferenceFields = Field(default_factory=PreferenceFields)


class UserUpdate(ProfileFields):
    """Profile update request; every field optional."""

    username: Optional[str] = Field(default=None, min_length=1, max_length=50)
    password: Optional[str] = Field(default=None, min_length=1)


class UserResponse(BaseModel):
    """Public user data."""

    id: int
    username: str
    profile: ProfileFields
    preferences: PreferenceFields
    created_at: Optional[str] = None


class LoginRequest(BaseModel):
    """Login request."""

    username: str
    password: str


class TokenResponse(BaseModel):
    """Bearer token."""

    access_token: str
    token_type: str = "bearer"


# Posts
class PostCreate(BaseModel):
    """Create a post; naming a collaborator reports a match against them."""

    content: str = Field(min_length=1)
    image: Optional[str] = None
    visibility: Literal["public", "friends"] = "public"
    collaborator: Optional[str] = None


class PostUpdate(BaseModel):
    """Author edit of a post."""

    content: Optional[str] = Field(default=None, min_length=1)
    image: Optional[str] = None
    visibility: Optional[Literal["public", "friends"]] = None


class PostResponse(BaseModel):
    """Post data."""

    id: int
    author_id: int
    author: Optional[str] = None
    content: str
    image: Optional[str] = None
    visibility: str
    collaborator_id: Optional[int] = None
    collaborator: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# Skill scores
class StatResponse(BaseModel):
    """Reported match outcome."""

    id: int
    user1_id: int
    user2_id: int
    post_id: Optional[int] = None
    stat: str
    outcome: str
    state: str
    applied_delta: float
    created_at: Optional[str] = None
    expires_at: Optional[str] = None
    is_expired: bool


class PostMutationResponse(BaseModel):
    """Post create/update result with any ledger change it caused."""

    msg: str
    post: PostResponse
    stat: Optional[StatResponse] = None
    score: Optional[float] = None


class SkillScoreResponse(BaseModel):
    """A user's skill score."""

    username: str
    score: float


# Friends
class FriendRequestResponse(BaseModel):
    """Pending friend request."""

    id: int
    sender_id: int
    sender: Optional[str] = None
    receiver_id: int
    receiver: Optional[str] = None
    status: str
    created_at: Optional[str] = None


class FriendshipResponse(BaseModel):
    """Accepted friendship."""

    id: int
    user1_id: int
    user2_id: int
    created_by: Optional[int] = None
    created_at: Optional[str] = None


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    msg: str

"""
API request and response models for Foundry Admin REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are kept
separate from the dataclasses in auth/, audit/ and content/, which own the
internal domain shape. Route handlers map between the two.

Wire names follow the admin panel's JSON convention (camelCase). Fields are
declared in snake_case with a camelCase alias; populate_by_name lets handlers
build responses with the Python names.
"""

from __future__ import annotations

from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool

from audit.models import AuditEntry
from auth.models import User

# Document ids are opaque tokens; anything else is rejected before reaching SQL.
_DocId = Annotated[str, Field(min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_-]+$")]


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Errors / generic
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    error: ErrorDetail


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=254)
    password: str = Field(min_length=1, max_length=255)


class SessionResponse(BaseModel):
    uid: str
    name: str
    role: str


class MeResponse(BaseModel):
    uid: str
    name: str
    email: str
    role: str


class BootstrapRequest(_WireModel):
    email: str = Field(min_length=3, max_length=254)
    name: str = Field(default="", max_length=200)
    password: str = Field(min_length=8, max_length=255)
    bootstrap_secret: str = Field(alias="bootstrapSecret", min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Reorder
# ---------------------------------------------------------------------------


class ReorderRequest(_WireModel):
    """Body for PATCH /api/reorder.

    collection is checked against the allow-list in the handler so the error
    message can name the allowed collections.
    """

    collection: str = Field(default="", max_length=64)
    ordered_ids: list[_DocId] = Field(alias="orderedIds", min_length=1, max_length=500)


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


class AuditEntryResponse(_WireModel):
    id: str
    user_id: str = Field(alias="userId")
    user_name: str = Field(alias="userName")
    action: str
    target: str
    details: str = ""
    timestamp: Optional[str] = None

    @classmethod
    def from_entry(cls, entry: AuditEntry) -> "AuditEntryResponse":
        return cls(
            id=entry.id or "",
            user_id=entry.user_id,
            user_name=entry.user_name,
            action=entry.action,
            target=entry.target,
            details=entry.details,
            timestamp=entry.timestamp,
        )


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserResponse(_WireModel):
    uid: str
    name: str
    email: str
    role: str
    active: bool
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    last_login: Optional[str] = Field(default=None, alias="lastLogin")

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            uid=user.uid or "",
            name=user.name,
            email=user.email,
            role=user.role.value,
            active=user.active,
            created_at=user.created_at,
            last_login=user.last_login,
        )


class UserCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=254)
    name: str = Field(default="", max_length=200)
    role: str = "member"
    password: Optional[str] = Field(default=None, min_length=8, max_length=255)


class RoleChangeRequest(_WireModel):
    uid: str = Field(min_length=1, max_length=64)
    new_role: str = Field(alias="newRole", min_length=1, max_length=20)


class ActiveToggleRequest(BaseModel):
    uid: str = Field(min_length=1, max_length=64)
    active: StrictBool


class UserDeleteRequest(BaseModel):
    uid: str = Field(min_length=1, max_length=64)


class TransferRequest(_WireModel):
    target_uid: str = Field(alias="targetUid", min_length=1, max_length=64)


# ---------------------------------------------------------------------------
# Content collections
# ---------------------------------------------------------------------------


class TeamMemberCreate(BaseModel):
    name: str = ""
    role: str = ""
    image: str = ""
    linkedin: str = ""
    batch: Optional[str] = None
    visible: bool = True
    category: str = "member"


class ProgramCreate(BaseModel):
    title: str = ""
    description: str = ""
    icon: str = "TrendingUp"


class ResourceItem(BaseModel):
    title: str = ""
    author: str = ""
    description: str = ""


class ResourceCategoryCreate(BaseModel):
    category: str = ""
    items: list[ResourceItem] = Field(default_factory=list, max_length=200)


class EventCreate(_WireModel):
    title: str = ""
    date: str = ""
    type: str = ""
    status: str = ""
    description: str = ""
    image_url: str = Field(default="", alias="imageURL")
    venue: str = ""
    time: str = ""
    registration_link: str = Field(default="", alias="registrationLink")


class SiteSettingsUpdate(_WireModel):
    """Body for PUT /api/settings. Only the fields sent are changed."""

    club_name: Optional[str] = Field(default=None, alias="clubName")
    tagline: Optional[str] = None
    hero_tagline: Optional[str] = Field(default=None, alias="heroTagline")
    email: Optional[str] = None
    instagram: Optional[str] = None
    linkedin: Optional[str] = None
    whatsapp: Optional[str] = None
    registration_link: Optional[str] = Field(default=None, alias="registrationLink")
    logo_url: Optional[str] = Field(default=None, alias="logoUrl")


class CreatedResponse(BaseModel):
    id: str
    message: str


# ---------------------------------------------------------------------------
# Contact
# ---------------------------------------------------------------------------


class ContactCreate(BaseModel):
    name: Any = ""
    email: Any = ""
    subject: Any = ""
    message: Any = ""


class ContactReadRequest(BaseModel):
    id: _DocId
    read: StrictBool


class ContactDeleteRequest(BaseModel):
    id: _DocId

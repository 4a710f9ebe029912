from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    CLUB_ADMIN = "club_admin"


class Feature(str, Enum):
    GOLFER_LOOKUP = "golfer-lookup"
    GOLFERS = "golfers"
    ROUNDS = "rounds"
    CLOSED_COMPS = "closed-comps"
    NOTIFICATIONS = "notifications"
    ADMIN_USERS = "admin-users"


def _clean_club_ids(value: list[str]) -> list[str]:
    return [str(v).strip() for v in value if str(v).strip()]


class AccessModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class Administrator(AccessModel):
    id: str
    email: str
    name: str
    role: Role
    club_ids: list[str] = Field(default_factory=list)
    features: list[Feature] = Field(default_factory=list)
    is_active: bool = True
    logo_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("club_ids")
    @classmethod
    def clean_club_ids(cls, value: list[str]) -> list[str]:
        return _clean_club_ids(value)

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN

    def has_feature(self, feature: Feature) -> bool:
        return feature in self.features


class AdminUserCreate(AccessModel):
    email: str = Field(..., min_length=3)
    name: str = Field(..., min_length=1)
    role: Role = Role.CLUB_ADMIN
    club_ids: list[str] = Field(default_factory=list)
    features: list[Feature] = Field(default_factory=list)
    logo_url: Optional[str] = None

    @field_validator("club_ids")
    @classmethod
    def clean_club_ids(cls, value: list[str]) -> list[str]:
        return _clean_club_ids(value)


class AdminUserUpdate(AccessModel):
    name: Optional[str] = None
    role: Optional[Role] = None
    club_ids: Optional[list[str]] = None
    features: Optional[list[Feature]] = None
    logo_url: Optional[str] = None

    @field_validator("club_ids")
    @classmethod
    def clean_club_ids(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        return None if value is None else _clean_club_ids(value)

"""Pydantic request and response schemas.  Field names go over the wire in camelCase."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ========================================================================
# Accounts
# ========================================================================

class RegisterRequest(CamelModel):
    email: EmailStr
    name: str = Field(min_length=1, max_length=120)
    password: str = Field(min_length=6, max_length=72)
    confirm_password: str
    create_profile: bool = False


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class AccountOut(CamelModel):
    id: str
    email: str
    roles: List[str] = []
    portfolio_user_id: Optional[int] = None


class AdminUserOut(CamelModel):
    id: str
    email: str
    last_login: Optional[datetime] = None
    roles: List[str] = []


class LinkResponse(CamelModel):
    token: str = ""
    portfolio_user_id: int
    expires: Optional[datetime] = None


# ========================================================================
# Projects
# ========================================================================

class ProjectCreate(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    image_url: str = ""
    version: Optional[int] = None


class ProjectOut(CamelModel):
    id: int
    title: str
    description: str
    image_url: str
    version: Optional[int] = None


class AttachRequest(CamelModel):
    portfolio_user_id: int
    project_id: int


# ========================================================================
# Skills
# ========================================================================

class SkillCreate(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    level: str = Field(min_length=1, max_length=50)
    version: Optional[int] = None


class SkillOut(CamelModel):
    id: int
    name: str
    level: str
    version: Optional[int] = None


# ========================================================================
# Portfolio users
# ========================================================================

class PortfolioUserCreate(CamelModel):
    name: str = Field(min_length=1, max_length=120)
    bio: str = ""
    profile_image_url: str = ""
    projects: List[ProjectCreate] = []
    skills: List[str] = []


class PortfolioUserUpdate(CamelModel):
    name: str = Field(min_length=1, max_length=120)
    bio: str = ""
    profile_image_url: str = ""
    version: Optional[int] = None


class PortfolioUserPatch(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    bio: Optional[str] = None
    profile_image_url: Optional[str] = None
    version: Optional[int] = None


class PortfolioUserOut(CamelModel):
    id: int
    name: str
    bio: str
    profile_image_url: str
    version: Optional[int] = None
    projects: List[ProjectOut] = []
    skills: List[SkillOut] = []


class SkillSyncOut(CamelModel):
    message: str
    added: List[str] = []
    removed: List[str] = []
    unchanged: List[str] = []

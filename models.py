"""SQLAlchemy ORM models for accounts, portfolio users, projects, skills and their join tables."""

import datetime
import uuid

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, ForeignKey, Table
)
from sqlalchemy.orm import relationship

from database import Base


account_roles = Table(
    "account_roles",
    Base.metadata,
    Column("account_id", String(36), ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class Role(Base):
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False)


class ApplicationUser(Base):
    """An authenticatable account, optionally linked to one PortfolioUser."""

    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(120), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    roles = relationship("Role", secondary=account_roles, lazy="selectin")
    # The FK lives on portfolio_users with ON DELETE RESTRICT; never let the
    # ORM null it out when an account is deleted.
    portfolio_user = relationship(
        "PortfolioUser", back_populates="account", uselist=False, passive_deletes="all"
    )

    def has_role(self, name: str) -> bool:
        return any(role.name == name for role in self.roles)


class PortfolioUser(Base):
    __tablename__ = "portfolio_users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False, index=True)
    bio = Column(Text, nullable=False, default="")
    profile_image_url = Column(String(512), nullable=False, default="")
    application_user_id = Column(
        String(36),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        unique=True,
        nullable=True,
    )
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    account = relationship("ApplicationUser", back_populates="portfolio_user")
    project_links = relationship(
        "PortfolioUserProject",
        back_populates="portfolio_user",
        order_by="PortfolioUserProject.project_id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    skill_links = relationship(
        "PortfolioUserSkill",
        back_populates="portfolio_user",
        order_by="PortfolioUserSkill.skill_id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    # Tokens carry the profile id as a claim, so ids must never be reused.
    __table_args__ = {"sqlite_autoincrement": True}
    __mapper_args__ = {"version_id_col": version}


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    image_url = Column(String(512), nullable=False, default="")
    version = Column(Integer, nullable=False)

    user_links = relationship(
        "PortfolioUserProject", back_populates="project", cascade="all", passive_deletes=True
    )

    __mapper_args__ = {"version_id_col": version}


class Skill(Base):
    __tablename__ = "skills"

    id = Column(Integer, primary_key=True, index=True)
    # Unique ignoring case by convention only; see skills_engine.find_skill_by_name.
    name = Column(String(100), nullable=False, index=True)
    level = Column(String(50), nullable=False)
    version = Column(Integer, nullable=False)

    user_links = relationship(
        "PortfolioUserSkill", back_populates="skill", cascade="all", passive_deletes=True
    )

    __mapper_args__ = {"version_id_col": version}


class PortfolioUserProject(Base):
    __tablename__ = "portfolio_user_projects"

    portfolio_user_id = Column(
        Integer, ForeignKey("portfolio_users.id", ondelete="CASCADE"), primary_key=True
    )
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True)
    attached_at = Column(DateTime, default=datetime.datetime.utcnow)

    portfolio_user = relationship("PortfolioUser", back_populates="project_links")
    project = relationship("Project", back_populates="user_links")


class PortfolioUserSkill(Base):
    __tablename__ = "portfolio_user_skills"

    portfolio_user_id = Column(
        Integer, ForeignKey("portfolio_users.id", ondelete="CASCADE"), primary_key=True
    )
    skill_id = Column(Integer, ForeignKey("skills.id", ondelete="CASCADE"), primary_key=True)
    proficiency = Column(String(50), nullable=False, default="")

    portfolio_user = relationship("PortfolioUser", back_populates="skill_links")
    skill = relationship("Skill", back_populates="user_links")

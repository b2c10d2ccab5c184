"""Assemble PortfolioUser rows and their relations into response schemas."""

from typing import List

from sqlalchemy.orm import Session, selectinload

from models import PortfolioUser, PortfolioUserProject, PortfolioUserSkill, Project, Skill
from schemas import PortfolioUserOut, ProjectOut, SkillOut


def project_to_out(project: Project) -> ProjectOut:
    return ProjectOut(
        id=project.id,
        title=project.title,
        description=project.description or "",
        image_url=project.image_url or "",
        version=project.version,
    )


def skill_to_out(skill: Skill) -> SkillOut:
    return SkillOut(id=skill.id, name=skill.name, level=skill.level or "", version=skill.version)


def linked_projects(user: PortfolioUser) -> List[ProjectOut]:
    # A link whose project failed to load is skipped rather than failing the response.
    return [
        project_to_out(link.project)
        for link in (user.project_links or [])
        if link is not None and link.project is not None
    ]


def linked_skills(user: PortfolioUser) -> List[SkillOut]:
    return [
        skill_to_out(link.skill)
        for link in (user.skill_links or [])
        if link is not None and link.skill is not None
    ]


def portfolio_user_to_out(user: PortfolioUser) -> PortfolioUserOut:
    return PortfolioUserOut(
        id=user.id,
        name=user.name,
        bio=user.bio or "",
        profile_image_url=user.profile_image_url or "",
        version=user.version,
        projects=linked_projects(user),
        skills=linked_skills(user),
    )


def with_relations(db: Session):
    """Query for PortfolioUsers with projects and skills eagerly loaded."""
    return db.query(PortfolioUser).options(
        selectinload(PortfolioUser.project_links).selectinload(PortfolioUserProject.project),
        selectinload(PortfolioUser.skill_links).selectinload(PortfolioUserSkill.skill),
    )

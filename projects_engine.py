"""Attach and detach existing Projects to PortfolioUsers through the join table."""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import ConflictError, NotFoundError
from models import PortfolioUser, PortfolioUserProject, Project

logger = logging.getLogger(__name__)


def _find_link(db: Session, portfolio_user_id: int, project_id: int):
    return (
        db.query(PortfolioUserProject)
        .filter(
            PortfolioUserProject.portfolio_user_id == portfolio_user_id,
            PortfolioUserProject.project_id == project_id,
        )
        .first()
    )


def attach_project(db: Session, portfolio_user_id: int, project_id: int) -> PortfolioUserProject:
    """Link one existing project to one existing user.

    The existence check before insert only gives a friendlier error; the
    composite primary key is what actually rejects a duplicate, and a lost
    race surfaces as the same ConflictError.
    """
    user = db.get(PortfolioUser, portfolio_user_id)
    if user is None:
        raise NotFoundError(f"PortfolioUser {portfolio_user_id} not found.")
    project = db.get(Project, project_id)
    if project is None:
        raise NotFoundError(f"Project {project_id} not found.")

    if _find_link(db, portfolio_user_id, project_id) is not None:
        logger.info("Project %s already attached to PortfolioUser %s", project_id, portfolio_user_id)
        raise ConflictError("Project is already attached to this user.")

    link = PortfolioUserProject(portfolio_user=user, project=project)
    db.add(link)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(
            "Concurrent attach of project %s to PortfolioUser %s lost the race",
            project_id, portfolio_user_id,
        )
        raise ConflictError("Project is already attached to this user.")

    logger.info("Attached project %s to PortfolioUser %s", project_id, portfolio_user_id)
    return link


def detach_project(db: Session, portfolio_user_id: int, project_id: int) -> None:
    link = _find_link(db, portfolio_user_id, project_id)
    if link is None:
        raise NotFoundError(
            f"Project {project_id} is not attached to PortfolioUser {portfolio_user_id}."
        )
    db.delete(link)
    db.commit()
    logger.info("Detached project %s from PortfolioUser %s", project_id, portfolio_user_id)

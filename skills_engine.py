"""Reconcile a PortfolioUser's skills against a list of skill names.

Names are matched against the global skill vocabulary ignoring case; missing
skills are created with the default level.  Only the difference between the
current links and the requested set is written, inside a single transaction.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from config import DEFAULT_SKILL_LEVEL
from errors import NotFoundError, PersistenceFailure, ValidationFailure
from models import PortfolioUser, PortfolioUserSkill, Skill

logger = logging.getLogger(__name__)


@dataclass
class SkillSyncResult:
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    created: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


def normalize_skill_names(names: Optional[Iterable[str]]) -> List[str]:
    """Trim, drop blanks and de-duplicate ignoring case, keeping first-seen order and spelling."""
    seen = set()
    result = []
    for raw in names or []:
        if raw is None:
            continue
        name = str(raw).strip()
        if not name:
            continue
        key = name.lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(name)
    return result


def find_skill_by_name(db: Session, name: str) -> Optional[Skill]:
    """Case-insensitive lookup across the whole skill table; the oldest row wins."""
    return (
        db.query(Skill)
        .filter(func.lower(Skill.name) == name.strip().lower())
        .order_by(Skill.id)
        .first()
    )


def get_or_create_skill(db: Session, name: str, level: str = DEFAULT_SKILL_LEVEL):
    """Return ``(skill, created)``.  New skills are flushed so their id is usable right away."""
    skill = find_skill_by_name(db, name)
    if skill is not None:
        return skill, False
    skill = Skill(name=name, level=level)
    db.add(skill)
    db.flush()
    return skill, True


def apply_skill_names(db: Session, user: PortfolioUser, names: List[str]) -> SkillSyncResult:
    """Bring ``user.skill_links`` in line with already-normalized *names* without committing."""
    result = SkillSyncResult()
    target = {name.lower(): name for name in names}
    kept = {}

    for link in list(user.skill_links):
        key = link.skill.name.lower() if link.skill is not None else None
        if key is None or key not in target or key in kept:
            # delete-orphan cascade removes the join row
            user.skill_links.remove(link)
            result.removed.append(link.skill.name if link.skill is not None else str(link.skill_id))
        else:
            kept[key] = link
            result.unchanged.append(link.skill.name)

    for key, name in target.items():
        if key in kept:
            continue
        skill, created = get_or_create_skill(db, name)
        if created:
            result.created.append(skill.name)
        user.skill_links.append(PortfolioUserSkill(skill=skill))
        result.added.append(skill.name)

    return result


def reconcile_user_skills(db: Session, portfolio_user_id: int, names: Optional[Iterable[str]]) -> SkillSyncResult:
    """Make exactly the named skills linked to the user.

    Raises ValidationFailure for a null/empty list, NotFoundError for an
    unknown user and PersistenceFailure when the transaction cannot commit.
    Skill rows are never deleted here, even when no user references them anymore.
    """
    if names is None:
        raise ValidationFailure("Skill list is required.")
    normalized = normalize_skill_names(names)
    if not normalized:
        raise ValidationFailure("Skill list cannot be empty.")

    user = (
        db.query(PortfolioUser)
        .options(selectinload(PortfolioUser.skill_links).selectinload(PortfolioUserSkill.skill))
        .filter(PortfolioUser.id == portfolio_user_id)
        .first()
    )
    if user is None:
        raise NotFoundError(f"PortfolioUser {portfolio_user_id} not found.")

    try:
        result = apply_skill_names(db, user, normalized)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Skill reconciliation failed for PortfolioUser %s: %s", portfolio_user_id, exc)
        raise PersistenceFailure("Could not update skills. Please try again.")

    logger.info(
        "Reconciled skills for PortfolioUser %s: added=%s removed=%s unchanged=%s created=%s",
        portfolio_user_id, result.added, result.removed, result.unchanged, result.created,
    )
    return result

"""Seed roles, the admin account, and sample portfolio users at startup."""

import logging
import uuid

from sqlalchemy.orm import Session

from auth import ADMIN_ROLE, USER_ROLE, get_account_by_email, get_or_create_role, hash_password
from config import ADMIN_EMAIL, ADMIN_PASSWORD
from models import ApplicationUser, PortfolioUser, PortfolioUserProject, Project
from skills_engine import apply_skill_names, normalize_skill_names

logger = logging.getLogger(__name__)

SAMPLE_PROFILES = [
    {
        "name": "Ada Lovelace",
        "bio": "Analytical engine enthusiast and first programmer.",
        "projects": [("Bernoulli Numbers", "Program notes for computing Bernoulli numbers.")],
        "skills": ["Mathematics", "Algorithms"],
    },
    {
        "name": "Grace Hopper",
        "bio": "Compiler pioneer who popularised machine-independent languages.",
        "projects": [("A-0 Compiler", "One of the first compilers."), ("COBOL", "Business-oriented language.")],
        "skills": ["Compilers", "COBOL", "Debugging"],
    },
    {
        "name": "Alan Turing",
        "bio": "Theory of computation and code breaking.",
        "projects": [("Bombe", "Electromechanical code-breaking machine.")],
        "skills": ["Cryptography", "Mathematics"],
    },
]


def _random_image_url(size: int = 200) -> str:
    return f"https://picsum.photos/seed/{uuid.uuid4()}/{size}"


def seed_data(db: Session) -> None:
    """Idempotent: existing roles, admin and profiles are left as they are."""
    try:
        admin_role = get_or_create_role(db, ADMIN_ROLE)
        get_or_create_role(db, USER_ROLE)

        admin = get_account_by_email(db, ADMIN_EMAIL)
        if admin is None:
            admin = ApplicationUser(email=ADMIN_EMAIL.lower(), hashed_password=hash_password(ADMIN_PASSWORD))
            db.add(admin)
            logger.info("Seeded admin account %s", ADMIN_EMAIL)
        if not admin.has_role(ADMIN_ROLE):
            admin.roles.append(admin_role)

        if db.query(PortfolioUser).count() == 0:
            for sample in SAMPLE_PROFILES:
                user = PortfolioUser(
                    name=sample["name"],
                    bio=sample["bio"],
                    profile_image_url=_random_image_url(),
                )
                db.add(user)
                for title, description in sample["projects"]:
                    project = Project(title=title, description=description, image_url=_random_image_url(400))
                    user.project_links.append(PortfolioUserProject(project=project))
                db.flush()
                apply_skill_names(db, user, normalize_skill_names(sample["skills"]))
            logger.info("Seeded %d sample portfolio users", len(SAMPLE_PROFILES))

        db.commit()
    except Exception:
        db.rollback()
        logger.error("Data seeding failed", exc_info=True)
        raise

"""Bind an authenticated account to a PortfolioUser and re-issue its credential.

Per account: Unlinked -> Linked(P) is allowed, Linked(P) -> Linked(P) is a
no-op, Linked(P) -> Linked(Q) is rejected.  The link is the durable result;
a refreshed token is best effort.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from jose import JWTError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth import TokenIssueError, issue_credential
from database import commit_update
from errors import LinkConflictError, NotFoundError, UnauthorizedError
from models import ApplicationUser, PortfolioUser

logger = logging.getLogger(__name__)


@dataclass
class LinkResult:
    portfolio_user_id: int
    token: str = ""
    expires: Optional[datetime] = None


def link_account(db: Session, account_id: Optional[str], portfolio_user_id: int) -> LinkResult:
    profile = db.get(PortfolioUser, portfolio_user_id)
    if profile is None:
        raise NotFoundError(f"PortfolioUser {portfolio_user_id} not found.")

    if not account_id:
        raise UnauthorizedError("Not authenticated")
    account = db.get(ApplicationUser, account_id)
    if account is None:
        raise UnauthorizedError("Account not found")

    current = account.portfolio_user
    if current is not None and current.id != profile.id:
        logger.warning(
            "Rejected re-link of account %s from PortfolioUser %s to %s",
            account.id, current.id, profile.id,
        )
        raise LinkConflictError("This account is already linked to a different PortfolioUser.")
    if profile.application_user_id is not None and profile.application_user_id != account.id:
        logger.warning(
            "Rejected link of account %s to PortfolioUser %s owned by another account",
            account.id, profile.id,
        )
        raise LinkConflictError("This PortfolioUser is already linked to another account.")

    if current is None:
        profile.application_user_id = account.id
        try:
            commit_update(db, PortfolioUser, profile.id, "PortfolioUser")
        except IntegrityError:
            # unique account link lost to a concurrent request
            db.rollback()
            logger.warning("Concurrent link of PortfolioUser %s rejected for account %s", profile.id, account.id)
            raise LinkConflictError("This PortfolioUser was linked by another request.")
        db.refresh(account)
        logger.info("Linked account %s to PortfolioUser %s", account.id, profile.id)

    result = LinkResult(portfolio_user_id=profile.id)
    try:
        result.token, result.expires = issue_credential(account)
    except (TokenIssueError, JWTError):
        logger.error(
            "Could not issue refreshed token for account %s after linking", account.id, exc_info=True
        )
    return result

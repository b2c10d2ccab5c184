"""Authentication utilities: password hashing, JWT credentials, and FastAPI dependencies."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

import bcrypt
from fastapi import Depends, Request
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from config import (
    SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES, JWT_ISSUER, JWT_AUDIENCE,
)
from database import get_db
from errors import ForbiddenError, UnauthorizedError
from models import ApplicationUser, PortfolioUser, Role

logger = logging.getLogger(__name__)

ADMIN_ROLE = "Admin"
USER_ROLE = "User"
PORTFOLIO_USER_CLAIM = "portfolioUserId"


class TokenIssueError(Exception):
    """Raised when a credential cannot be produced (e.g. a weak signing key)."""


@dataclass(frozen=True)
class TokenClaims:
    account_id: str
    email: Optional[str] = None
    roles: List[str] = field(default_factory=list)
    portfolio_user_id: Optional[int] = None

    def has_role(self, name: str) -> bool:
        return name in self.roles


# ---------- Password helpers ----------

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))


# ---------- JWT helpers ----------

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> Tuple[str, datetime]:
    if len(SECRET_KEY.encode("utf-8")) < 32:
        raise TokenIssueError(
            "JWT signing key is too short. HS256 requires at least 256 bits (32 bytes)."
        )
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "iss": JWT_ISSUER, "aud": JWT_AUDIENCE})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM), expire


def decode_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(
            token, SECRET_KEY, algorithms=[ALGORITHM], audience=JWT_AUDIENCE, issuer=JWT_ISSUER
        )
    except JWTError:
        return None


def issue_credential(account: ApplicationUser) -> Tuple[str, datetime]:
    """Build a signed token carrying the account's id, roles and linked profile."""
    claims = {
        "sub": account.id,
        "email": account.email,
        "roles": sorted(role.name for role in account.roles),
    }
    if account.portfolio_user is not None:
        claims[PORTFOLIO_USER_CLAIM] = str(account.portfolio_user.id)
    return create_access_token(claims)


def claims_from_payload(payload: dict) -> Optional[TokenClaims]:
    account_id = payload.get("sub")
    if not account_id:
        return None
    raw_profile_id = payload.get(PORTFOLIO_USER_CLAIM)
    try:
        portfolio_user_id = int(raw_profile_id) if raw_profile_id is not None else None
    except (TypeError, ValueError):
        portfolio_user_id = None
    return TokenClaims(
        account_id=account_id,
        email=payload.get("email"),
        roles=list(payload.get("roles") or []),
        portfolio_user_id=portfolio_user_id,
    )


# ---------- Account CRUD ----------

def get_account_by_email(db: Session, email: str) -> Optional[ApplicationUser]:
    return db.query(ApplicationUser).filter(ApplicationUser.email == email.lower()).first()


def get_or_create_role(db: Session, name: str) -> Role:
    role = db.query(Role).filter(Role.name == name).first()
    if role is None:
        role = Role(name=name)
        db.add(role)
        db.flush()
        logger.info("Created role %s", name)
    return role


def create_account(
    db: Session, email: str, password: str, profile_name: Optional[str] = None
) -> ApplicationUser:
    """Create an account with the User role, plus a linked PortfolioUser when
    profile_name is given.  Both rows are written in a single commit."""
    account = ApplicationUser(
        email=email.lower(),
        hashed_password=hash_password(password),
    )
    account.roles.append(get_or_create_role(db, USER_ROLE))
    if profile_name is not None:
        account.portfolio_user = PortfolioUser(name=profile_name)
    db.add(account)
    db.commit()
    db.refresh(account)
    logger.info("Created account %s", account.email)
    return account


def authenticate_account(db: Session, email: str, password: str) -> Optional[ApplicationUser]:
    account = get_account_by_email(db, email)
    if not account or not verify_password(password, account.hashed_password):
        return None
    return account


# ---------- FastAPI dependencies ----------

def _get_token_from_request(request: Request) -> Optional[str]:
    """Extract JWT from Authorization header or cookie."""
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1]
    return request.cookies.get("access_token")


async def get_current_claims(request: Request) -> TokenClaims:
    """Resolve the caller from the bearer token alone, without touching the database."""
    token = _get_token_from_request(request)
    if not token:
        logger.warning("No token found in request to %s", request.url.path)
        raise UnauthorizedError("Not authenticated")
    payload = decode_token(token)
    if payload is None:
        logger.warning("Invalid token presented to %s", request.url.path)
        raise UnauthorizedError("Invalid token")
    claims = claims_from_payload(payload)
    if claims is None:
        raise UnauthorizedError("Token missing subject claim")
    return claims


async def get_optional_claims(request: Request) -> Optional[TokenClaims]:
    """Same as get_current_claims but returns None instead of raising."""
    try:
        return await get_current_claims(request)
    except UnauthorizedError:
        return None


async def get_current_account(
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
) -> ApplicationUser:
    account = db.get(ApplicationUser, claims.account_id)
    if account is None:
        logger.warning("Account not found: %s", claims.account_id)
        raise UnauthorizedError("Account not found")
    return account


def require_role(name: str):
    """Dependency factory rejecting callers whose token lacks the given role."""

    async def _check(claims: TokenClaims = Depends(get_current_claims)) -> TokenClaims:
        if not claims.has_role(name):
            raise ForbiddenError(f"Role '{name}' is required.")
        return claims

    return _check


def ensure_can_modify(claims: TokenClaims, portfolio_user_id: int) -> None:
    """Only the account linked to a profile (or an admin) may change it."""
    if claims.has_role(ADMIN_ROLE) or claims.portfolio_user_id == portfolio_user_id:
        return
    raise ForbiddenError(f"Not allowed to modify PortfolioUser {portfolio_user_id}.")

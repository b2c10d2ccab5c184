"""SkillSnap  --  Portfolio API (FastAPI application)."""

import datetime
import logging
import time
from typing import List, Optional

from fastapi import Body, Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func
from sqlalchemy.orm import Session
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from config import AUTH_RATE_LIMIT, CORS_ORIGINS, SEED_ON_STARTUP
from database import SessionLocal, commit_update, get_db, init_db
from errors import (
    ConflictError, NotFoundError, PersistenceFailure, SkillSnapError, UnauthorizedError,
    ValidationFailure,
)
from models import ApplicationUser, PortfolioUser, PortfolioUserProject, Project, Role, Skill
from auth import (
    ADMIN_ROLE, TokenClaims, authenticate_account, create_account, ensure_can_modify,
    get_account_by_email, get_current_account, get_current_claims, get_optional_claims,
    issue_credential, require_role,
)
from cache import (
    PORTFOLIO_USER_PREFIX, PORTFOLIO_USERS_KEY, SKILL_PREFIX, SKILLS_KEY,
    cache, invalidate_portfolio_user, invalidate_skills,
)
from schemas import (
    AccountOut, AdminUserOut, AttachRequest, LinkResponse, LoginRequest,
    PortfolioUserCreate, PortfolioUserOut, PortfolioUserPatch, PortfolioUserUpdate,
    ProjectCreate, ProjectOut, RegisterRequest, SkillCreate, SkillOut, SkillSyncOut,
)
from mapping import portfolio_user_to_out, project_to_out, skill_to_out, with_relations
from skills_engine import apply_skill_names, find_skill_by_name, normalize_skill_names, reconcile_user_skills
from projects_engine import attach_project, detach_project
from linking import link_account
from seed import seed_data

# ---------- Logging ----------
logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# ---------- App setup ----------
app = FastAPI(title="SkillSnap API", version="1.0.0")

limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_request_timing(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info("%s %s -> %s in %.1fms", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


@app.on_event("startup")
def on_startup():
    init_db()

    # ---- DB connection check ----
    from sqlalchemy import text
    from database import engine
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
            masked = str(engine.url).replace(str(engine.url.password or ""), "***")
            logger.info("Database connected successfully  |  %s", masked)
    except Exception as e:
        logger.error("Database connection FAILED: %s", e)

    if SEED_ON_STARTUP:
        db = SessionLocal()
        try:
            seed_data(db)
        finally:
            db.close()

    logger.info("SkillSnap API started")


@app.exception_handler(SkillSnapError)
async def skillsnap_exception_handler(request: Request, exc: SkillSnapError):
    logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Validation error for {request.url}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_errors(exc)},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception for {request.url}: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": {"code": "server_error", "message": "Internal server error"}},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry exception objects that JSON cannot encode
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


# ========================================================================
# Helpers
# ========================================================================

def _fetch_portfolio_user_out(db: Session, portfolio_user_id: int) -> Optional[PortfolioUserOut]:
    user = with_relations(db).filter(PortfolioUser.id == portfolio_user_id).first()
    return portfolio_user_to_out(user) if user else None


def _get_portfolio_user_out(db: Session, portfolio_user_id: int) -> PortfolioUserOut:
    out = cache.get_or_set(
        f"{PORTFOLIO_USER_PREFIX}{portfolio_user_id}",
        lambda: _fetch_portfolio_user_out(db, portfolio_user_id),
    )
    if out is None:
        raise NotFoundError(f"PortfolioUser {portfolio_user_id} not found.")
    return out


def _get_or_404(db: Session, model, ident, label: str):
    row = db.get(model, ident)
    if row is None:
        raise NotFoundError(f"{label} {ident} not found.")
    return row


def _check_version(row, expected: Optional[int], label: str) -> None:
    if expected is not None and expected != row.version:
        raise PersistenceFailure(
            f"The {label} was modified by another request. Please refresh and try again."
        )


def _admin_user_out(account: ApplicationUser) -> AdminUserOut:
    return AdminUserOut(
        id=account.id,
        email=account.email,
        last_login=account.last_login,
        roles=sorted(role.name for role in account.roles),
    )


# ========================================================================
# Account API routes
# ========================================================================

@app.post("/api/account/register")
@limiter.limit(AUTH_RATE_LIMIT)
async def api_register(request: Request, payload: RegisterRequest, db: Session = Depends(get_db)):
    if payload.password != payload.confirm_password:
        raise ValidationFailure("Passwords do not match.")
    if get_account_by_email(db, payload.email):
        raise ValidationFailure("Email already registered.")

    account = create_account(
        db, payload.email, payload.password,
        profile_name=payload.name if payload.create_profile else None,
    )
    body = {"message": "Registration successful"}

    if account.portfolio_user is not None:
        invalidate_portfolio_user()
        token, _ = issue_credential(account)
        body.update({"token": token, "portfolioUserId": account.portfolio_user.id})

    return body


@app.post("/api/account/login")
@limiter.limit(AUTH_RATE_LIMIT)
async def api_login(request: Request, payload: LoginRequest, db: Session = Depends(get_db)):
    account = authenticate_account(db, payload.email, payload.password)
    if not account:
        raise UnauthorizedError("Invalid email or password")
    account.last_login = datetime.datetime.utcnow()
    db.commit()
    db.refresh(account)

    token, expires = issue_credential(account)
    resp = JSONResponse({
        "message": "Login successful",
        "token": token,
        "email": account.email,
        "expiration": expires.isoformat(),
    })
    resp.set_cookie("access_token", token, httponly=False, samesite="lax", max_age=86400, path="/")
    return resp


@app.post("/api/account/logout")
async def api_logout():
    resp = JSONResponse({"message": "Logged out successfully"})
    resp.delete_cookie("access_token", path="/")
    return resp


@app.get("/api/account/me", response_model=AccountOut)
async def api_me(account: ApplicationUser = Depends(get_current_account)):
    return AccountOut(
        id=account.id,
        email=account.email,
        roles=sorted(role.name for role in account.roles),
        portfolio_user_id=account.portfolio_user.id if account.portfolio_user else None,
    )


# ========================================================================
# PortfolioUser API routes
# ========================================================================

@app.get("/api/portfoliouser", response_model=List[PortfolioUserOut])
async def list_portfolio_users(db: Session = Depends(get_db)):
    return cache.get_or_set(
        PORTFOLIO_USERS_KEY,
        lambda: [portfolio_user_to_out(u) for u in with_relations(db).order_by(PortfolioUser.id).all()],
    )


@app.get("/api/portfoliouser/unlinked", response_model=List[PortfolioUserOut])
async def list_unlinked_portfolio_users(
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    users = (
        with_relations(db)
        .filter(PortfolioUser.application_user_id.is_(None))
        .order_by(PortfolioUser.id)
        .all()
    )
    return [portfolio_user_to_out(u) for u in users]


@app.get("/api/portfoliouser/me", response_model=PortfolioUserOut)
async def get_my_portfolio_user(
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    if claims.portfolio_user_id is None:
        raise NotFoundError("No PortfolioUser is linked to this account.")
    return _get_portfolio_user_out(db, claims.portfolio_user_id)


@app.get("/api/portfoliouser/name/{name}", response_model=PortfolioUserOut)
async def get_portfolio_user_by_name(name: str, db: Session = Depends(get_db)):
    user = with_relations(db).filter(func.lower(PortfolioUser.name) == name.lower()).first()
    if not user:
        raise NotFoundError(f"PortfolioUser '{name}' not found.")
    return portfolio_user_to_out(user)


@app.get("/api/portfoliouser/{portfolio_user_id}", response_model=PortfolioUserOut)
async def get_portfolio_user(portfolio_user_id: int, db: Session = Depends(get_db)):
    return _get_portfolio_user_out(db, portfolio_user_id)


@app.get("/api/portfoliouser/{portfolio_user_id}/projects", response_model=List[ProjectOut])
async def get_portfolio_user_projects(portfolio_user_id: int, db: Session = Depends(get_db)):
    return _get_portfolio_user_out(db, portfolio_user_id).projects


@app.get("/api/portfoliouser/{portfolio_user_id}/skills", response_model=List[SkillOut])
async def get_portfolio_user_skills(portfolio_user_id: int, db: Session = Depends(get_db)):
    return _get_portfolio_user_out(db, portfolio_user_id).skills


@app.post("/api/portfoliouser", response_model=PortfolioUserOut, status_code=status.HTTP_201_CREATED)
async def create_portfolio_user(
    payload: PortfolioUserCreate,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    user = PortfolioUser(
        name=payload.name,
        bio=payload.bio,
        profile_image_url=payload.profile_image_url,
    )
    db.add(user)
    for p in payload.projects:
        project = Project(title=p.title, description=p.description, image_url=p.image_url)
        user.project_links.append(PortfolioUserProject(project=project))
    db.flush()

    created_skills = []
    names = normalize_skill_names(payload.skills)
    if names:
        created_skills = apply_skill_names(db, user, names).created
    db.commit()

    invalidate_portfolio_user()
    if created_skills:
        invalidate_skills()
    logger.info("Created PortfolioUser %s (%s)", user.id, user.name)
    return _get_portfolio_user_out(db, user.id)


@app.put("/api/portfoliouser/{portfolio_user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_portfolio_user(
    portfolio_user_id: int,
    payload: PortfolioUserUpdate,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    user = _get_or_404(db, PortfolioUser, portfolio_user_id, "PortfolioUser")
    ensure_can_modify(claims, portfolio_user_id)
    _check_version(user, payload.version, "PortfolioUser")

    user.name = payload.name
    user.bio = payload.bio
    user.profile_image_url = payload.profile_image_url
    commit_update(db, PortfolioUser, portfolio_user_id, "PortfolioUser")

    invalidate_portfolio_user(portfolio_user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.patch("/api/portfoliouser/{portfolio_user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def patch_portfolio_user(
    portfolio_user_id: int,
    payload: PortfolioUserPatch,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    user = _get_or_404(db, PortfolioUser, portfolio_user_id, "PortfolioUser")
    ensure_can_modify(claims, portfolio_user_id)
    _check_version(user, payload.version, "PortfolioUser")

    for field_name, value in payload.model_dump(exclude_unset=True, exclude={"version"}).items():
        if value is not None:
            setattr(user, field_name, value)
    commit_update(db, PortfolioUser, portfolio_user_id, "PortfolioUser")

    invalidate_portfolio_user(portfolio_user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.delete("/api/portfoliouser/{portfolio_user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_portfolio_user(
    portfolio_user_id: int,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    user = _get_or_404(db, PortfolioUser, portfolio_user_id, "PortfolioUser")
    ensure_can_modify(claims, portfolio_user_id)
    db.delete(user)
    commit_update(db, PortfolioUser, portfolio_user_id, "PortfolioUser")

    invalidate_portfolio_user(portfolio_user_id)
    logger.info("Deleted PortfolioUser %s", portfolio_user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.put("/api/portfoliouser/{portfolio_user_id}/skills", response_model=SkillSyncOut)
async def update_portfolio_user_skills(
    portfolio_user_id: int,
    names: Optional[List[str]] = Body(None),
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    _get_or_404(db, PortfolioUser, portfolio_user_id, "PortfolioUser")
    ensure_can_modify(claims, portfolio_user_id)
    result = reconcile_user_skills(db, portfolio_user_id, names)

    if result.changed:
        invalidate_portfolio_user(portfolio_user_id)
    if result.created:
        invalidate_skills()
    return SkillSyncOut(
        message="Skills updated successfully.",
        added=result.added,
        removed=result.removed,
        unchanged=result.unchanged,
    )


@app.post("/api/portfoliouser/link/{portfolio_user_id}", response_model=LinkResponse)
async def link_portfolio_user(
    portfolio_user_id: int,
    claims: Optional[TokenClaims] = Depends(get_optional_claims),
    db: Session = Depends(get_db),
):
    result = link_account(db, claims.account_id if claims else None, portfolio_user_id)
    invalidate_portfolio_user(portfolio_user_id)
    return LinkResponse(
        token=result.token,
        portfolio_user_id=result.portfolio_user_id,
        expires=result.expires,
    )


# ========================================================================
# Project API routes
# ========================================================================

@app.get("/api/project", response_model=List[ProjectOut])
async def list_projects(db: Session = Depends(get_db)):
    return [project_to_out(p) for p in db.query(Project).order_by(Project.id).all()]


@app.get("/api/project/{project_id}", response_model=ProjectOut)
async def get_project(project_id: int, db: Session = Depends(get_db)):
    return project_to_out(_get_or_404(db, Project, project_id, "Project"))


@app.post("/api/project", response_model=ProjectOut, status_code=status.HTTP_201_CREATED)
async def create_project(
    payload: ProjectCreate,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    project = Project(title=payload.title, description=payload.description, image_url=payload.image_url)
    db.add(project)
    db.commit()
    db.refresh(project)
    logger.info("Created project %s", project.id)
    return project_to_out(project)


@app.put("/api/project/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_project(
    project_id: int,
    payload: ProjectCreate,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    project = _get_or_404(db, Project, project_id, "Project")
    _check_version(project, payload.version, "Project")

    project.title = payload.title
    project.description = payload.description
    project.image_url = payload.image_url
    commit_update(db, Project, project_id, "Project")

    invalidate_portfolio_user()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.delete("/api/project/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: int,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    project = _get_or_404(db, Project, project_id, "Project")
    db.delete(project)
    commit_update(db, Project, project_id, "Project")

    invalidate_portfolio_user()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/api/project/attach")
async def attach_project_to_user(
    payload: AttachRequest,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    _get_or_404(db, PortfolioUser, payload.portfolio_user_id, "PortfolioUser")
    ensure_can_modify(claims, payload.portfolio_user_id)
    attach_project(db, payload.portfolio_user_id, payload.project_id)
    invalidate_portfolio_user(payload.portfolio_user_id)
    return {"message": "Project attached successfully."}


@app.post("/api/project/detach")
async def detach_project_from_user(
    payload: AttachRequest,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    _get_or_404(db, PortfolioUser, payload.portfolio_user_id, "PortfolioUser")
    ensure_can_modify(claims, payload.portfolio_user_id)
    detach_project(db, payload.portfolio_user_id, payload.project_id)
    invalidate_portfolio_user(payload.portfolio_user_id)
    return {"message": "Project detached successfully."}


# ========================================================================
# Skill API routes
# ========================================================================

@app.get("/api/skill", response_model=List[SkillOut])
async def list_skills(db: Session = Depends(get_db)):
    logger.info("Fetching all skills")
    return cache.get_or_set(
        SKILLS_KEY,
        lambda: [skill_to_out(s) for s in db.query(Skill).order_by(Skill.id).all()],
    )


@app.get("/api/skill/{skill_id}", response_model=SkillOut)
async def get_skill(skill_id: int, db: Session = Depends(get_db)):
    def _fetch():
        skill = db.get(Skill, skill_id)
        return skill_to_out(skill) if skill else None

    out = cache.get_or_set(f"{SKILL_PREFIX}{skill_id}", _fetch)
    if out is None:
        raise NotFoundError(f"Skill {skill_id} not found.")
    return out


@app.post("/api/skill", response_model=SkillOut, status_code=status.HTTP_201_CREATED)
async def create_skill(
    payload: SkillCreate,
    claims: TokenClaims = Depends(require_role(ADMIN_ROLE)),
    db: Session = Depends(get_db),
):
    name = payload.name.strip()
    if find_skill_by_name(db, name) is not None:
        raise ConflictError(f"Skill '{name}' already exists.")
    skill = Skill(name=name, level=payload.level)
    db.add(skill)
    db.commit()
    db.refresh(skill)

    invalidate_skills()
    logger.info("Skill created with ID %s, cache invalidated", skill.id)
    return skill_to_out(skill)


@app.put("/api/skill/{skill_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_skill(
    skill_id: int,
    payload: SkillCreate,
    claims: TokenClaims = Depends(require_role(ADMIN_ROLE)),
    db: Session = Depends(get_db),
):
    skill = _get_or_404(db, Skill, skill_id, "Skill")
    _check_version(skill, payload.version, "Skill")
    name = payload.name.strip()
    existing = find_skill_by_name(db, name)
    if existing is not None and existing.id != skill_id:
        raise ConflictError(f"Skill '{name}' already exists.")

    skill.name = name
    skill.level = payload.level
    commit_update(db, Skill, skill_id, "Skill")

    invalidate_skills(skill_id)
    invalidate_portfolio_user()
    logger.info("Skill %s updated, caches invalidated", skill_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.delete("/api/skill/{skill_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_skill(
    skill_id: int,
    claims: TokenClaims = Depends(require_role(ADMIN_ROLE)),
    db: Session = Depends(get_db),
):
    skill = _get_or_404(db, Skill, skill_id, "Skill")
    db.delete(skill)
    commit_update(db, Skill, skill_id, "Skill")

    invalidate_skills(skill_id)
    invalidate_portfolio_user()
    logger.info("Skill %s deleted, caches invalidated", skill_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ========================================================================
# Admin API routes
# ========================================================================

@app.get("/api/admin/users", response_model=List[AdminUserOut])
async def admin_list_users(
    claims: TokenClaims = Depends(require_role(ADMIN_ROLE)),
    db: Session = Depends(get_db),
):
    accounts = db.query(ApplicationUser).order_by(ApplicationUser.email).all()
    return [_admin_user_out(a) for a in accounts]


@app.get("/api/admin/users/{user_id}", response_model=AdminUserOut)
async def admin_get_user(
    user_id: str,
    claims: TokenClaims = Depends(require_role(ADMIN_ROLE)),
    db: Session = Depends(get_db),
):
    return _admin_user_out(_get_or_404(db, ApplicationUser, user_id, "User"))


def _resolve_account(db: Session, user_id: str) -> ApplicationUser:
    if not user_id or not user_id.strip():
        raise ValidationFailure("UserId is required.")
    return _get_or_404(db, ApplicationUser, user_id, "User with ID")


def _resolve_role(db: Session, role_name: str) -> Role:
    if not role_name or not role_name.strip():
        raise ValidationFailure("RoleName is required.")
    role = db.query(Role).filter(Role.name == role_name).first()
    if role is None:
        raise ValidationFailure(f"Role '{role_name}' does not exist.")
    return role


@app.post("/api/roleassignment/assign")
async def assign_role(
    userId: str,
    roleName: str,
    claims: TokenClaims = Depends(require_role(ADMIN_ROLE)),
    db: Session = Depends(get_db),
):
    account = _resolve_account(db, userId)
    role = _resolve_role(db, roleName)
    if not account.has_role(role.name):
        account.roles.append(role)
        db.commit()
    return {"message": f"Role '{role.name}' assigned to user '{account.email}'."}


@app.post("/api/roleassignment/remove")
async def remove_role(
    userId: str,
    roleName: str,
    claims: TokenClaims = Depends(require_role(ADMIN_ROLE)),
    db: Session = Depends(get_db),
):
    account = _resolve_account(db, userId)
    role = _resolve_role(db, roleName)
    if account.has_role(role.name):
        account.roles.remove(role)
        db.commit()
    return {"message": f"Role '{role.name}' removed from user '{account.email}'."}


@app.get("/api/roleassignment/get-roles/{userId}", response_model=List[str])
async def get_roles(
    userId: str,
    claims: TokenClaims = Depends(require_role(ADMIN_ROLE)),
    db: Session = Depends(get_db),
):
    return sorted(role.name for role in _resolve_account(db, userId).roles)


@app.get("/api/roleassignment/all-roles", response_model=List[str])
async def get_all_roles(
    claims: TokenClaims = Depends(require_role(ADMIN_ROLE)),
    db: Session = Depends(get_db),
):
    return [role.name for role in db.query(Role).order_by(Role.name).all()]


@app.post("/api/roleassignment/update-roles")
async def update_roles(
    userId: str,
    roles: Optional[List[str]] = Body(None),
    claims: TokenClaims = Depends(require_role(ADMIN_ROLE)),
    db: Session = Depends(get_db),
):
    if roles is None:
        raise ValidationFailure("Roles list is required.")
    account = _resolve_account(db, userId)
    wanted = [_resolve_role(db, name) for name in dict.fromkeys(r.strip() for r in roles if r and r.strip())]
    account.roles = wanted
    db.commit()
    names = [role.name for role in wanted]
    return {"message": f"Roles updated successfully for user '{account.email}'.", "roles": names}

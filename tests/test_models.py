"""Tests for cascade rules on the join tables and for profile aggregation."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import make_account, make_profile, make_project, make_skill
from mapping import portfolio_user_to_out
from models import (
    ApplicationUser, PortfolioUser, PortfolioUserProject, PortfolioUserSkill, Project, Skill,
)


def _link_everything(db):
    profile = make_profile(db)
    project = make_project(db)
    skill = make_skill(db)
    db.add_all([
        PortfolioUserProject(portfolio_user=profile, project=project),
        PortfolioUserSkill(portfolio_user=profile, skill=skill, proficiency="Expert"),
    ])
    db.commit()
    return profile, project, skill


class TestCascades:
    def test_deleting_skill_removes_its_join_rows(self, db_session):
        profile, _, skill = _link_everything(db_session)

        db_session.delete(skill)
        db_session.commit()

        assert db_session.query(PortfolioUserSkill).count() == 0
        assert db_session.query(PortfolioUser).count() == 1

    def test_deleting_project_removes_its_join_rows(self, db_session):
        _, project, _ = _link_everything(db_session)

        db_session.delete(project)
        db_session.commit()

        assert db_session.query(PortfolioUserProject).count() == 0

    def test_deleting_user_removes_join_rows_but_not_related_entities(self, db_session):
        profile, _, _ = _link_everything(db_session)

        db_session.delete(profile)
        db_session.commit()

        assert db_session.query(PortfolioUserProject).count() == 0
        assert db_session.query(PortfolioUserSkill).count() == 0
        assert db_session.query(Project).count() == 1
        assert db_session.query(Skill).count() == 1

    def test_deleting_profile_keeps_linked_account(self, db_session):
        account = make_account(db_session)
        profile = make_profile(db_session, account=account)

        db_session.delete(profile)
        db_session.commit()

        assert db_session.query(ApplicationUser).count() == 1

    def test_linked_account_cannot_be_deleted(self, db_session):
        account = make_account(db_session)
        make_profile(db_session, account=account)

        db_session.delete(account)
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_account_can_link_at_most_one_profile(self, db_session):
        account = make_account(db_session)
        make_profile(db_session, name="First", account=account)

        db_session.add(PortfolioUser(name="Second", application_user_id=account.id))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()


class TestAggregation:
    def test_includes_projects_and_skills(self, db_session):
        profile, project, skill = _link_everything(db_session)
        db_session.expire_all()

        out = portfolio_user_to_out(db_session.get(PortfolioUser, profile.id))

        assert out.name == "Jane Doe"
        assert [p.id for p in out.projects] == [project.id]
        assert [s.name for s in out.skills] == ["Python"]

    def test_dangling_links_are_omitted(self):
        live_project = Project(id=1, title="Live", description="", image_url="")
        live_skill = Skill(id=2, name="SQL", level="Beginner")
        profile = PortfolioUser(id=7, name="Partial", bio="", profile_image_url="")
        profile.project_links = [
            PortfolioUserProject(project=live_project),
            PortfolioUserProject(project_id=99),
        ]
        profile.skill_links = [
            PortfolioUserSkill(skill_id=98),
            PortfolioUserSkill(skill=live_skill),
        ]

        out = portfolio_user_to_out(profile)

        assert [p.title for p in out.projects] == ["Live"]
        assert [s.name for s in out.skills] == ["SQL"]

    def test_camel_case_wire_names(self, db_session):
        profile = make_profile(db_session)

        data = portfolio_user_to_out(profile).model_dump(by_alias=True)

        assert data["profileImageUrl"] == "https://img.example.com/p.png"
        assert data["projects"] == [] and data["skills"] == []


def test_deleted_profile_id_is_not_reused(db_session):
    first = make_profile(db_session, name="First")
    first_id = first.id
    db_session.delete(first)
    db_session.commit()

    second = make_profile(db_session, name="Second")

    assert second.id != first_id

"""Tests for the /api/project endpoints, including attach/detach."""

from __future__ import annotations

import pytest

from conftest import make_profile, make_project
from models import PortfolioUserProject


class TestProjectCrud:
    def test_create_and_fetch(self, client, stranger_headers):
        resp = client.post(
            "/api/project",
            json={"title": "CLI Tool", "description": "Handy", "imageUrl": "https://img.example.com/c.png"},
            headers=stranger_headers,
        )
        assert resp.status_code == 201
        project_id = resp.json()["id"]

        resp = client.get(f"/api/project/{project_id}")
        assert resp.status_code == 200
        assert resp.json()["imageUrl"] == "https://img.example.com/c.png"

    def test_unknown_project_is_404(self, client):
        assert client.get("/api/project/999").status_code == 404

    def test_update_refreshes_aggregated_profile(self, client, db_session, owner):
        _, profile, headers = owner
        project = make_project(db_session)
        client.post(
            "/api/project/attach",
            json={"portfolioUserId": profile.id, "projectId": project.id},
            headers=headers,
        )
        assert client.get(f"/api/portfoliouser/{profile.id}").json()["projects"][0]["title"] == "Portfolio Site"

        resp = client.put(f"/api/project/{project.id}", json={"title": "Renamed"}, headers=headers)

        assert resp.status_code == 204
        assert client.get(f"/api/portfoliouser/{profile.id}").json()["projects"][0]["title"] == "Renamed"

    def test_delete_cascades_join_rows(self, client, db_session, owner):
        _, profile, headers = owner
        project = make_project(db_session)
        db_session.add(PortfolioUserProject(portfolio_user=profile, project=project))
        db_session.commit()

        resp = client.delete(f"/api/project/{project.id}", headers=headers)

        assert resp.status_code == 204
        db_session.expire_all()
        assert db_session.query(PortfolioUserProject).count() == 0
        assert client.get(f"/api/portfoliouser/{profile.id}").json()["projects"] == []


class TestAttach:
    def test_attach_then_conflict(self, client, db_session, owner):
        _, profile, headers = owner
        project = make_project(db_session)
        body = {"portfolioUserId": profile.id, "projectId": project.id}

        first = client.post("/api/project/attach", json=body, headers=headers)
        second = client.post("/api/project/attach", json=body, headers=headers)

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["detail"]["code"] == "conflict"
        assert db_session.query(PortfolioUserProject).count() == 1

    def test_unknown_project_is_404(self, client, owner):
        _, profile, headers = owner
        resp = client.post(
            "/api/project/attach", json={"portfolioUserId": profile.id, "projectId": 999}, headers=headers
        )
        assert resp.status_code == 404
        assert "Project" in resp.json()["detail"]["message"]

    def test_unknown_user_is_404_for_admin(self, client, db_session, admin_headers):
        project = make_project(db_session)
        resp = client.post(
            "/api/project/attach", json={"portfolioUserId": 999, "projectId": project.id}, headers=admin_headers
        )
        assert resp.status_code == 404
        assert "PortfolioUser" in resp.json()["detail"]["message"]

    @pytest.mark.parametrize("action", ["attach", "detach"])
    def test_unknown_user_is_404_for_non_admin(self, client, db_session, stranger_headers, action):
        project = make_project(db_session)
        resp = client.post(
            f"/api/project/{action}", json={"portfolioUserId": 999, "projectId": project.id}, headers=stranger_headers
        )
        assert resp.status_code == 404
        assert resp.json()["detail"]["code"] == "not_found"

    def test_attach_to_someone_elses_profile_is_403(self, client, db_session, stranger_headers):
        profile = make_profile(db_session)
        project = make_project(db_session)
        resp = client.post(
            "/api/project/attach",
            json={"portfolioUserId": profile.id, "projectId": project.id},
            headers=stranger_headers,
        )
        assert resp.status_code == 403

    def test_detach(self, client, db_session, owner):
        _, profile, headers = owner
        project = make_project(db_session)
        body = {"portfolioUserId": profile.id, "projectId": project.id}
        client.post("/api/project/attach", json=body, headers=headers)

        assert client.post("/api/project/detach", json=body, headers=headers).status_code == 200
        assert client.post("/api/project/detach", json=body, headers=headers).status_code == 404

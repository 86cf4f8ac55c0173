"""Contract and integration tests for the HTTP endpoints.

Tests the API end to end: projects, requirement mutations, comments.
"""

from unittest.mock import patch

from tests.fixtures import (
    OUTSIDER,
    OWNER,
    create_api_project,
    create_api_requirement,
)

AS_OWNER = {"X-User-Id": OWNER}


class TestHealth:
    async def test_health(self, client):
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestProjectEndpoints:
    async def test_create_and_get(self, client):
        project = await create_api_project(client)
        assert project["members"] == [OWNER]

        resp = await client.get(f"/api/projects/{project['id']}")
        assert resp.status_code == 200
        assert resp.json()["name"] == "API Project"

    async def test_anonymous_create_forbidden(self, client):
        resp = await client.post("/api/projects", json={"name": "P"})
        assert resp.status_code == 403

    async def test_invalid_prefix_rejected(self, client):
        resp = await client.post(
            "/api/projects", json={"name": "P", "section_prefix": "A_B"}, headers=AS_OWNER,
        )
        assert resp.status_code == 422

    async def test_list_for_user(self, client):
        await create_api_project(client)
        await create_api_project(client, user_id=OUTSIDER)

        resp = await client.get("/api/projects", headers=AS_OWNER)
        assert resp.status_code == 200
        assert len(resp.json()) == 1

    async def test_get_not_found(self, client):
        resp = await client.get("/api/projects/nonexistent-id")
        assert resp.status_code == 404

    async def test_patch_by_outsider_forbidden(self, client):
        project = await create_api_project(client)
        resp = await client.patch(
            f"/api/projects/{project['id']}", json={"name": "X"}, headers={"X-User-Id": OUTSIDER},
        )
        assert resp.status_code == 403

    async def test_delete(self, client):
        project = await create_api_project(client)
        resp = await client.delete(f"/api/projects/{project['id']}", headers=AS_OWNER)
        assert resp.status_code == 204
        assert (await client.get(f"/api/projects/{project['id']}")).status_code == 404


class TestRequirementEndpoints:
    async def test_create_returns_result_and_requirement(self, client):
        project = await create_api_project(client)
        resp = await client.post(
            "/api/requirements",
            json={"title": "R1", "project_id": project["id"]},
            headers=AS_OWNER,
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["result"]["regenerated"] is True
        assert data["result"]["error"] is None
        assert data["requirement"]["hierarchical_path"] == "REQ_1"

    async def test_create_missing_parent(self, client):
        project = await create_api_project(client)
        resp = await client.post(
            "/api/requirements",
            json={"title": "X", "project_id": project["id"], "parent_id": "ghost"},
            headers=AS_OWNER,
        )
        assert resp.status_code == 404

    async def test_create_empty_title_rejected(self, client):
        project = await create_api_project(client)
        resp = await client.post(
            "/api/requirements", json={"title": "", "project_id": project["id"]}, headers=AS_OWNER,
        )
        assert resp.status_code == 422

    async def test_list_in_path_order(self, client):
        project = await create_api_project(client)
        r1 = await create_api_requirement(client, project["id"], "R1")
        await create_api_requirement(client, project["id"], "R2")
        await create_api_requirement(client, project["id"], "C1", parent_id=r1["id"])

        resp = await client.get(f"/api/projects/{project['id']}/requirements")
        assert resp.status_code == 200
        assert [r["hierarchical_path"] for r in resp.json()] == ["REQ_1", "REQ_1.1", "REQ_2"]

    async def test_move_scenario(self, client):
        project = await create_api_project(client)
        r1 = await create_api_requirement(client, project["id"], "R1")
        await create_api_requirement(client, project["id"], "R2")
        c1 = await create_api_requirement(client, project["id"], "C1", parent_id=r1["id"])

        resp = await client.post(
            f"/api/requirements/{c1['id']}/move",
            json={"new_parent_id": None, "new_order": 1},
            headers=AS_OWNER,
        )
        assert resp.status_code == 200
        assert resp.json()["requirement"]["hierarchical_path"] == "REQ_1"

        listed = (await client.get(f"/api/projects/{project['id']}/requirements")).json()
        assert [(r["title"], r["hierarchical_path"]) for r in listed] == [
            ("C1", "REQ_1"),
            ("R1", "REQ_2"),
            ("R2", "REQ_3"),
        ]

    async def test_move_into_descendant_conflict(self, client):
        project = await create_api_project(client)
        r1 = await create_api_requirement(client, project["id"], "R1")
        c1 = await create_api_requirement(client, project["id"], "C1", parent_id=r1["id"])

        resp = await client.post(
            f"/api/requirements/{r1['id']}/move",
            json={"new_parent_id": c1["id"], "new_order": 1},
            headers=AS_OWNER,
        )
        assert resp.status_code == 409

    async def test_move_order_below_one_rejected(self, client):
        project = await create_api_project(client)
        r1 = await create_api_requirement(client, project["id"], "R1")
        resp = await client.post(
            f"/api/requirements/{r1['id']}/move", json={"new_order": 0}, headers=AS_OWNER,
        )
        assert resp.status_code == 422

    async def test_patch_records_changelog(self, client):
        project = await create_api_project(client)
        r1 = await create_api_requirement(client, project["id"], "R1")

        resp = await client.patch(
            f"/api/requirements/{r1['id']}",
            json={"title": "Renamed", "status": "review"},
            headers=AS_OWNER,
        )
        assert resp.status_code == 200
        requirement = resp.json()["requirement"]
        assert requirement["title"] == "Renamed"
        assert requirement["change_log"][-1]["type"] == "updated"
        assert set(requirement["change_log"][-1]["changes"]) == {"title", "status"}

    async def test_patch_outsider_forbidden(self, client):
        project = await create_api_project(client)
        r1 = await create_api_requirement(client, project["id"], "R1")
        resp = await client.patch(
            f"/api/requirements/{r1['id']}", json={"title": "X"}, headers={"X-User-Id": OUTSIDER},
        )
        assert resp.status_code == 403

    async def test_delete_with_children_conflict(self, client):
        project = await create_api_project(client)
        r1 = await create_api_requirement(client, project["id"], "R1")
        await create_api_requirement(client, project["id"], "C1", parent_id=r1["id"])

        resp = await client.delete(f"/api/requirements/{r1['id']}", headers=AS_OWNER)
        assert resp.status_code == 409

    async def test_delete_leaf(self, client):
        project = await create_api_project(client)
        r1 = await create_api_requirement(client, project["id"], "R1")

        resp = await client.delete(f"/api/requirements/{r1['id']}", headers=AS_OWNER)
        assert resp.status_code == 200
        assert resp.json()["regenerated"] is True
        assert (await client.get(f"/api/requirements/{r1['id']}")).status_code == 404

    async def test_regeneration_failure_still_succeeds(self, client):
        project = await create_api_project(client)
        with patch(
            "reqtree.requirements.regeneration.generate_paths", side_effect=RuntimeError("boom"),
        ):
            resp = await client.post(
                "/api/requirements",
                json={"title": "R1", "project_id": project["id"]},
                headers=AS_OWNER,
            )
        assert resp.status_code == 201
        assert resp.json()["result"]["regenerated"] is False
        assert "boom" in resp.json()["result"]["error"]

        repair = await client.post(f"/api/projects/{project['id']}/requirements/regenerate")
        assert repair.status_code == 200
        assert repair.json()["project_id"] == project["id"]


class TestCommentEndpoints:
    async def test_add_list_reply_resolve(self, client):
        project = await create_api_project(client)
        r1 = await create_api_requirement(client, project["id"], "R1")
        base = f"/api/requirements/{r1['id']}/comments"

        resp = await client.post(base, json={"body": "Question?"}, headers=AS_OWNER)
        assert resp.status_code == 201
        comment = resp.json()

        resp = await client.post(
            f"{base}/{comment['id']}/replies", json={"body": "Answer."}, headers=AS_OWNER,
        )
        assert resp.status_code == 201
        assert resp.json()["parent_comment_id"] == comment["id"]

        resp = await client.patch(
            f"{base}/{comment['id']}/resolve", json={"resolved": True}, headers=AS_OWNER,
        )
        assert resp.status_code == 200
        assert resp.json()["resolved"] is True

        listed = (await client.get(base)).json()
        assert [c["body"] for c in listed] == ["Question?", "Answer."]

        threads = (await client.get(f"{base}/threads")).json()
        assert len(threads) == 1
        assert threads[0]["replies"][0]["comment"]["body"] == "Answer."

    async def test_comment_on_missing_requirement(self, client):
        resp = await client.post(
            "/api/requirements/ghost/comments", json={"body": "x"}, headers=AS_OWNER,
        )
        assert resp.status_code == 404

    async def test_resolve_missing_comment(self, client):
        project = await create_api_project(client)
        r1 = await create_api_requirement(client, project["id"], "R1")
        resp = await client.patch(
            f"/api/requirements/{r1['id']}/comments/ghost/resolve",
            json={"resolved": True},
            headers=AS_OWNER,
        )
        assert resp.status_code == 404

    async def test_stream_missing_requirement(self, client):
        resp = await client.get("/api/requirements/ghost/comments/stream")
        assert resp.status_code == 404

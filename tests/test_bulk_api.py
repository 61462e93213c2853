from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel

from orgtree import main as app_main
from orgtree.infra import db


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Generator[TestClient, None, None]:
    test_engine = db.build_engine(f"sqlite:///{tmp_path / 'bulk_api_test.db'}")
    SQLModel.metadata.create_all(test_engine)
    monkeypatch.setattr(db, "engine", test_engine)

    client = TestClient(app_main.app)
    yield client
    client.close()
    app_main.app.dependency_overrides.clear()


def _register(client: TestClient, name: str) -> tuple[str, dict[str, str]]:
    email = f"{name.lower()}@example.test"
    response = client.post("/api/identity/users", json={"name": name, "email": email, "password": "secret"})
    assert response.status_code == 201
    user_id = response.json()["id"]
    login = client.post("/api/identity/dev-login", json={"email": email, "password": "secret"})
    assert login.status_code == 200
    return user_id, {"Authorization": f"Bearer {login.json()['access_token']}"}


def _org_with_tree(client: TestClient, headers: dict[str, str]) -> tuple[str, str, str, list[str]]:
    org = client.post("/api/organizations", json={"name": "Acme"}, headers=headers)
    assert org.status_code == 201
    org_id = org.json()["id"]

    root = client.post(f"/api/organizations/{org_id}/departments", json={"name": "Root"}, headers=headers)
    child = client.post(
        f"/api/organizations/{org_id}/departments",
        json={"name": "Child", "parent_id": root.json()["id"]},
        headers=headers,
    )
    assert root.status_code == 201
    assert child.status_code == 201
    people: list[str] = []
    for name in ("Ana", "Ben"):
        response = client.post(
            f"/api/organizations/{org_id}/people",
            json={"department_id": root.json()["id"], "name": name},
            headers=headers,
        )
        assert response.status_code == 201
        people.append(response.json()["id"])
    return org_id, root.json()["id"], child.json()["id"], people


def test_requests_without_token_are_rejected(client: TestClient) -> None:
    response = client.post("/api/organizations/org/people/bulk-delete", json={"person_ids": ["x"]})
    assert response.status_code == 401

    response = client.post(
        "/api/organizations/org/people/bulk-delete",
        json={"person_ids": ["x"]},
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert response.status_code == 401


def test_bulk_delete_people_returns_partial_result(client: TestClient) -> None:
    _owner_id, headers = _register(client, "Owner")
    org_id, _root, _child, people = _org_with_tree(client, headers)

    response = client.post(
        f"/api/organizations/{org_id}/people/bulk-delete",
        json={"person_ids": [people[0], "missing"]},
        headers=headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["deleted_count"] == 1
    assert body["failed_count"] == 1
    assert body["failed"] == [{"id": "missing", "error": "Person not found in this organization"}]


def test_all_failed_batch_is_still_200(client: TestClient) -> None:
    _owner_id, headers = _register(client, "Owner")
    org_id, root, _child, people = _org_with_tree(client, headers)

    response = client.post(
        f"/api/organizations/{org_id}/people/bulk-move",
        json={"person_ids": people, "target_department_id": root},
        headers=headers,
    )

    assert response.status_code == 200
    assert response.json()["success"] is False
    assert response.json()["failed_count"] == 2


def test_bulk_errors_map_to_status_codes(client: TestClient) -> None:
    _owner_id, headers = _register(client, "Owner")
    org_id, root, _child, people = _org_with_tree(client, headers)
    base = f"/api/organizations/{org_id}"

    empty = client.post(f"{base}/people/bulk-delete", json={"person_ids": []}, headers=headers)
    assert empty.status_code == 400
    assert empty.json()["detail"] == "person_ids must be a non-empty array"

    too_many = client.post(
        f"{base}/departments/bulk-delete",
        json={"department_ids": [f"d{index}" for index in range(101)]},
        headers=headers,
    )
    assert too_many.status_code == 400
    assert too_many.json()["detail"] == "Cannot delete more than 100 items at once"

    no_target = client.post(f"{base}/people/bulk-move", json={"person_ids": people}, headers=headers)
    assert no_target.status_code == 400
    assert no_target.json()["detail"] == "target_department_id is required"

    missing_target = client.post(
        f"{base}/people/bulk-move",
        json={"person_ids": people, "target_department_id": "nowhere"},
        headers=headers,
    )
    assert missing_target.status_code == 404

    no_updates = client.put(f"{base}/people/bulk-edit", json={"person_ids": people}, headers=headers)
    assert no_updates.status_code == 400
    assert no_updates.json()["detail"] == "updates object is required and cannot be empty"

    self_parent = client.put(
        f"{base}/departments/bulk-edit",
        json={"department_ids": [root], "updates": {"parent_id": root}},
        headers=headers,
    )
    assert self_parent.status_code == 400
    assert self_parent.json()["detail"] == "Cannot set a department as its own parent"

    unknown_org = client.post(
        "/api/organizations/no-such-org/people/bulk-delete",
        json={"person_ids": people},
        headers=headers,
    )
    assert unknown_org.status_code == 404
    assert unknown_org.json()["detail"] == "Organization not found"


def test_self_registration_cannot_grant_superuser(client: TestClient) -> None:
    _owner_id, owner_headers = _register(client, "Owner")
    org_id, root, _child, people = _org_with_tree(client, owner_headers)

    registered = client.post(
        "/api/identity/users",
        json={"name": "Mallory", "email": "mallory@example.test", "password": "secret", "role": "superuser"},
    )
    assert registered.status_code == 201
    assert registered.json()["role"] == "user"
    login = client.post("/api/identity/dev-login", json={"email": "mallory@example.test", "password": "secret"})
    headers = {"Authorization": f"Bearer {login.json()['access_token']}"}

    response = client.post(
        f"/api/organizations/{org_id}/people/bulk-delete",
        json={"person_ids": people},
        headers=headers,
    )

    assert response.status_code == 404
    assert response.json()["detail"] == "Organization not found"
    listed = client.get(f"/api/organizations/{org_id}/departments/{root}/people", headers=owner_headers)
    assert listed.status_code == 200
    assert len(listed.json()) == 2


def test_viewer_gets_403_and_editor_succeeds(client: TestClient) -> None:
    _owner_id, owner_headers = _register(client, "Owner")
    viewer_id, viewer_headers = _register(client, "Viewer")
    org_id, root, child, people = _org_with_tree(client, owner_headers)
    member = client.put(
        f"/api/organizations/{org_id}/members",
        json={"user_id": viewer_id, "role": "viewer"},
        headers=owner_headers,
    )
    assert member.status_code == 200

    denied = client.put(
        f"/api/organizations/{org_id}/people/bulk-edit",
        json={"person_ids": people, "updates": {"title": "Lead"}},
        headers=viewer_headers,
    )
    assert denied.status_code == 403

    client.put(
        f"/api/organizations/{org_id}/members",
        json={"user_id": viewer_id, "role": "editor"},
        headers=owner_headers,
    )
    edited = client.put(
        f"/api/organizations/{org_id}/people/bulk-edit",
        json={"person_ids": people, "updates": {"title": "Lead", "department_id": child}},
        headers=viewer_headers,
    )
    assert edited.status_code == 200
    assert edited.json()["updated_count"] == 2
    assert {item["department_name"] for item in edited.json()["updated"]} == {"Child"}

    listed = client.get(f"/api/organizations/{org_id}/departments/{child}/people", headers=viewer_headers)
    assert [item["title"] for item in listed.json()] == ["Lead", "Lead"]
    assert client.get(f"/api/organizations/{org_id}/departments/{root}/people", headers=viewer_headers).json() == []


def test_bulk_delete_departments_over_http(client: TestClient) -> None:
    _owner_id, headers = _register(client, "Owner")
    org_id, root, _child, _people = _org_with_tree(client, headers)

    response = client.post(
        f"/api/organizations/{org_id}/departments/bulk-delete",
        json={"department_ids": [root]},
        headers=headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["deleted_count"] == 1
    assert body["warnings"] == [
        "Department 'Root' had 1 sub-department(s) that were also deleted",
        "Department 'Root' had 2 person(s) that were also deleted",
    ]
    tree = client.get(f"/api/organizations/{org_id}/departments/tree", headers=headers)
    assert tree.status_code == 200
    assert tree.json() == []


def test_bulk_edit_departments_over_http(client: TestClient) -> None:
    _owner_id, headers = _register(client, "Owner")
    org_id, root, child, _people = _org_with_tree(client, headers)

    cycle = client.put(
        f"/api/organizations/{org_id}/departments/bulk-edit",
        json={"department_ids": [root], "updates": {"parent_id": child}},
        headers=headers,
    )
    assert cycle.status_code == 200
    assert cycle.json()["failed"] == [{"id": root, "error": "Cannot set parent to a descendant department"}]

    to_root = client.put(
        f"/api/organizations/{org_id}/departments/bulk-edit",
        json={"department_ids": [child], "updates": {"parent_id": None}},
        headers=headers,
    )
    assert to_root.status_code == 200
    assert to_root.json()["updated"][0]["parent_id"] is None
    tree = client.get(f"/api/organizations/{org_id}/departments/tree", headers=headers).json()
    assert sorted(node["name"] for node in tree) == ["Child", "Root"]


def test_directory_routes(client: TestClient) -> None:
    _owner_id, headers = _register(client, "Owner")
    org_id, root, child, people = _org_with_tree(client, headers)
    base = f"/api/organizations/{org_id}"

    renamed = client.patch(f"{base}/departments/{child}", json={"name": "Branch"}, headers=headers)
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Branch"
    assert renamed.json()["parent_id"] == root

    self_parent = client.patch(f"{base}/departments/{child}", json={"parent_id": child}, headers=headers)
    assert self_parent.status_code == 400

    starred = client.put(f"{base}/people/{people[0]}/star", json={"is_starred": True}, headers=headers)
    assert starred.status_code == 200
    assert starred.json()["is_starred"] is True

    deleted = client.delete(f"{base}/departments/{root}", headers=headers)
    assert deleted.status_code == 200
    assert deleted.json() == {"departments_affected": 2, "people_affected": 2}
    assert client.get(f"{base}/departments/{child}", headers=headers).status_code == 404

    me = client.get("/api/identity/me", headers=headers)
    assert me.json()["name"] == "Owner"

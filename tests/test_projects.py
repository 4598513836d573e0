"""
Tests for contractor CRUD on projects, clients, tasks and budget items
"""
import pytest


@pytest.mark.asyncio
async def test_project_crud(async_client, signup, make_project):
    account = await signup()
    headers = account["headers"]
    ids = await make_project(account, budget="25000.50", due_date="2024-09-30")
    url = f"/api/projects/{ids['project_id']}"

    fetched = await async_client.get(url, headers=headers)
    assert fetched.status_code == 200
    assert fetched.json()["budget"] == 25000.5
    assert fetched.json()["due_date"] == "2024-09-30"
    assert fetched.json()["status"] == "planning"

    updated = await async_client.put(url, json={"status": "in_progress", "progress": 40}, headers=headers)
    assert updated.status_code == 200
    assert updated.json()["status"] == "in_progress"
    assert updated.json()["progress"] == 40
    assert updated.json()["name"] == "Kitchen remodel"

    deleted = await async_client.delete(url, headers=headers)
    assert deleted.status_code == 204
    assert (await async_client.get(url, headers=headers)).status_code == 404


@pytest.mark.asyncio
async def test_blank_dates_are_accepted(async_client, signup, make_project):
    account = await signup()

    ids = await make_project(account, start_date="", due_date="")

    project = (await async_client.get(f"/api/projects/{ids['project_id']}", headers=account["headers"])).json()
    assert project["start_date"] is None
    assert project["due_date"] is None


@pytest.mark.asyncio
async def test_invalid_project_status_is_rejected(async_client, signup, make_project):
    account = await signup()
    ids = await make_project(account)

    response = await async_client.put(
        f"/api/projects/{ids['project_id']}", json={"status": "exploded"}, headers=account["headers"]
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_project_for_someone_elses_client_is_rejected(async_client, signup, make_project):
    owner = await signup()
    intruder = await signup()
    ids = await make_project(owner)

    response = await async_client.post(
        "/api/projects", json={"name": "Sneaky", "client_id": ids["client_id"]}, headers=intruder["headers"]
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_contractors_are_isolated(async_client, signup, make_project):
    owner = await signup()
    intruder = await signup()
    ids = await make_project(owner)

    assert (await async_client.get("/api/projects", headers=intruder["headers"])).json() == []
    assert (await async_client.get("/api/clients", headers=intruder["headers"])).json() == []
    for method, url in (
        ("GET", f"/api/projects/{ids['project_id']}"),
        ("PUT", f"/api/projects/{ids['project_id']}"),
        ("DELETE", f"/api/projects/{ids['project_id']}"),
        ("GET", f"/api/clients/{ids['client_id']}"),
        ("DELETE", f"/api/clients/{ids['client_id']}"),
    ):
        kwargs = {"json": {"name": "x"}} if method == "PUT" else {}
        response = await async_client.request(method, url, headers=intruder["headers"], **kwargs)
        assert response.status_code == 404, f"{method} {url}"


@pytest.mark.asyncio
async def test_client_update(async_client, signup, make_project):
    account = await signup()
    ids = await make_project(account)

    response = await async_client.put(
        f"/api/clients/{ids['client_id']}", json={"phone": "555-0100"}, headers=account["headers"]
    )

    assert response.status_code == 200
    assert response.json()["phone"] == "555-0100"
    assert response.json()["name"] == "Acme Homes"


@pytest.mark.asyncio
async def test_tasks_filter_by_project(async_client, signup, make_project):
    account = await signup()
    headers = account["headers"]
    first = await make_project(account)
    second = await make_project(account, client_name="Second", project_name="Deck")

    for project_id, title in ((first["project_id"], "Demo cabinets"), (second["project_id"], "Pour footings")):
        created = await async_client.post(
            "/api/tasks", json={"title": title, "project_id": project_id, "priority": "high"}, headers=headers
        )
        assert created.status_code == 201

    everything = await async_client.get("/api/tasks", headers=headers)
    only_deck = await async_client.get("/api/tasks", params={"project_id": second["project_id"]}, headers=headers)

    assert len(everything.json()) == 2
    assert [task["title"] for task in only_deck.json()] == ["Pour footings"]
    assert only_deck.json()[0]["status"] == "pending"


@pytest.mark.asyncio
async def test_task_update_and_delete(async_client, signup, make_project):
    account = await signup()
    headers = account["headers"]
    ids = await make_project(account)
    task = (await async_client.post(
        "/api/tasks", json={"title": "Order tile", "project_id": ids["project_id"]}, headers=headers
    )).json()

    updated = await async_client.put(f"/api/tasks/{task['id']}", json={"status": "completed"}, headers=headers)
    deleted = await async_client.delete(f"/api/tasks/{task['id']}", headers=headers)

    assert updated.json()["status"] == "completed"
    assert deleted.status_code == 204
    assert (await async_client.get(f"/api/tasks/{task['id']}", headers=headers)).status_code == 404


@pytest.mark.asyncio
async def test_task_on_foreign_project_is_rejected(async_client, signup, make_project):
    owner = await signup()
    intruder = await signup()
    ids = await make_project(owner)

    response = await async_client.post(
        "/api/tasks", json={"title": "x", "project_id": ids["project_id"]}, headers=intruder["headers"]
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_budget_items(async_client, signup, make_project):
    account = await signup()
    headers = account["headers"]
    ids = await make_project(account)

    created = await async_client.post(
        "/api/budget",
        json={
            "project_id": ids["project_id"],
            "category": "materials",
            "description": "Lumber",
            "estimated_cost": "1200.50",
        },
        headers=headers,
    )
    assert created.status_code == 201
    item = created.json()
    assert item["estimated_cost"] == 1200.5
    assert item["quantity"] == 1

    updated = await async_client.put(f"/api/budget/{item['id']}", json={"actual_cost": "1300"}, headers=headers)
    assert updated.json()["actual_cost"] == 1300.0

    listed = await async_client.get("/api/budget", params={"project_id": ids["project_id"]}, headers=headers)
    assert [row["description"] for row in listed.json()] == ["Lumber"]

    assert (await async_client.delete(f"/api/budget/{item['id']}", headers=headers)).status_code == 204
    assert (await async_client.get("/api/budget", headers=headers)).json() == []


@pytest.mark.asyncio
async def test_budget_category_is_validated(async_client, signup, make_project):
    account = await signup()
    ids = await make_project(account)

    response = await async_client.post(
        "/api/budget",
        json={"project_id": ids["project_id"], "category": "snacks", "description": "Donuts"},
        headers=account["headers"],
    )

    assert response.status_code == 422

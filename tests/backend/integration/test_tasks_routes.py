import pytest


pytestmark = pytest.mark.asyncio


async def _login_headers(client, username: str, password: str):
    resp = await client.post("/api/v1/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    client.cookies.clear()
    return {"Authorization": f"Bearer {resp.json()['data']['accessToken']}"}


async def test_task_lifecycle(client, create_admin, create_user):
    admin, admin_password = await create_admin()
    lead, lead_password = await create_user(role="project-lead")
    dev, dev_password = await create_user(role="developer")
    other, other_password = await create_user(role="developer")

    admin_h = await _login_headers(client, admin.username, admin_password)
    lead_h = await _login_headers(client, lead.username, lead_password)
    dev_h = await _login_headers(client, dev.username, dev_password)
    other_h = await _login_headers(client, other.username, other_password)

    payload = {"title": "Rig the hero", "description": "Full body rig", "priority": "High",
               "dueDate": "2030-03-01", "assignee": dev.username}
    assert (await client.post("/api/v1/tasks", headers=dev_h, json=payload)).status_code == 403
    bad = await client.post("/api/v1/tasks", headers=lead_h, json={**payload, "assignee": admin.username})
    assert bad.status_code == 400
    assert (await client.post("/api/v1/tasks", headers=lead_h, json={**payload, "priority": "Urgent"})).status_code == 422

    created = await client.post("/api/v1/tasks", headers=lead_h, json=payload)
    assert created.status_code == 200
    task = created.json()["data"]["task"]
    assert task["status"] == "Pending"
    assert task["dueDate"] == "2030-03-01"
    assert task["createdBy"] == lead.username

    assert (await client.get("/api/v1/tasks", headers=dev_h)).json()["data"]["total"] == 1
    assert (await client.get("/api/v1/tasks", headers=other_h)).json()["data"]["total"] == 0
    assert (await client.get("/api/v1/tasks", headers=admin_h)).json()["data"]["total"] == 1

    assert (await client.post(f"/api/v1/tasks/{task['id']}/complete", headers=other_h)).status_code == 404
    assert (await client.post(f"/api/v1/tasks/{task['id']}/complete", headers=lead_h)).status_code == 403
    done = await client.post(f"/api/v1/tasks/{task['id']}/complete", headers=dev_h)
    assert done.json()["data"]["task"]["status"] == "Completed"

    assert (await client.delete(f"/api/v1/tasks/{task['id']}", headers=dev_h)).status_code == 403
    assert (await client.delete(f"/api/v1/tasks/{task['id']}", headers=lead_h)).status_code == 200
    assert (await client.get("/api/v1/tasks", headers=admin_h)).json()["data"]["total"] == 0


async def test_tasks_require_authentication(client):
    assert (await client.get("/api/v1/tasks")).status_code == 401

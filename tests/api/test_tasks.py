from datetime import timedelta


def task_payload(clock, **overrides):
    payload = {
        "title": "API Test Task",
        "description": "Created via API test",
        "start_date": clock.now.date().isoformat(),
        "start_time": "09:30",
        "priority": "high",
        "deadline": (clock.now + timedelta(days=1)).isoformat(),
        "reminder_minutes": 30,
    }
    payload.update(overrides)
    return payload


def test_create_task(api_client, auth_headers, clock):
    response = api_client.post("/tasks/", json=task_payload(clock), headers=auth_headers)
    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "API Test Task"
    assert data["reminder_minutes"] == 30
    assert data["completed"] is False


def test_create_task_defaults(api_client, auth_headers, clock):
    response = api_client.post("/tasks/", json={
        "title": "Minimal",
        "deadline": (clock.now + timedelta(hours=2)).isoformat()
    }, headers=auth_headers)
    assert response.status_code == 201
    assert response.json()["reminder_minutes"] == 10
    assert response.json()["priority"] == "medium"


def test_create_task_aware_deadline_stored_as_utc(api_client, auth_headers):
    response = api_client.post("/tasks/", json={
        "title": "Zoned",
        "deadline": "2025-03-02T17:30:00+05:30"
    }, headers=auth_headers)
    assert response.status_code == 201
    assert response.json()["deadline"].startswith("2025-03-02T12:00:00")


def test_create_task_validation(api_client, auth_headers, clock):
    negative = api_client.post("/tasks/", json=task_payload(clock, reminder_minutes=-5), headers=auth_headers)
    bad_time = api_client.post("/tasks/", json=task_payload(clock, start_time="25:00"), headers=auth_headers)
    no_deadline = api_client.post("/tasks/", json={"title": "No deadline"}, headers=auth_headers)
    assert negative.status_code == 422
    assert bad_time.status_code == 422
    assert no_deadline.status_code == 422


def test_get_tasks_sorted(api_client, auth_headers, clock):
    api_client.post("/tasks/", json=task_payload(clock, title="Later", priority="high",
                                                  deadline=(clock.now + timedelta(days=3)).isoformat()), headers=auth_headers)
    api_client.post("/tasks/", json=task_payload(clock, title="Sooner", priority="low",
                                                  deadline=(clock.now + timedelta(days=1)).isoformat()), headers=auth_headers)

    by_deadline = api_client.get("/tasks/", headers=auth_headers).json()
    by_priority = api_client.get("/tasks/", params={"sort_by": "priority"}, headers=auth_headers).json()

    assert [t["title"] for t in by_deadline] == ["Sooner", "Later"]
    assert [t["title"] for t in by_priority] == ["Later", "Sooner"]


def test_update_and_complete_task(api_client, auth_headers, clock):
    task_id = api_client.post("/tasks/", json=task_payload(clock), headers=auth_headers).json()["id"]

    response = api_client.put(f"/tasks/{task_id}", json={"completed": True, "title": "Done"}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["completed"] is True
    assert response.json()["title"] == "Done"

    open_tasks = api_client.get("/tasks/", params={"completed": False}, headers=auth_headers).json()
    assert open_tasks == []

    response = api_client.put(f"/tasks/{task_id}", json={"deadline": None}, headers=auth_headers)
    assert response.status_code == 422


def test_tasks_are_owner_scoped(api_client, register, clock):
    ann = register(email="ann@x.com")
    bob = register(email="bob@x.com", name="Bob")
    task_id = api_client.post("/tasks/", json=task_payload(clock), headers=ann).json()["id"]

    assert api_client.get(f"/tasks/{task_id}", headers=bob).status_code == 404
    assert api_client.put(f"/tasks/{task_id}", json={"title": "Hacked"}, headers=bob).status_code == 404
    assert api_client.delete(f"/tasks/{task_id}", headers=bob).status_code == 404
    assert api_client.get("/tasks/", headers=bob).json() == []


def test_delete_task(api_client, auth_headers, clock):
    task_id = api_client.post("/tasks/", json=task_payload(clock), headers=auth_headers).json()["id"]
    assert api_client.delete(f"/tasks/{task_id}", headers=auth_headers).status_code == 204
    assert api_client.get(f"/tasks/{task_id}", headers=auth_headers).status_code == 404

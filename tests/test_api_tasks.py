"""HTTP contract of the task, task link and board endpoints."""

from qahub.services import project_service


def _url(project, suffix=""):
    return f"/api/v1/projects/{project.id}{suffix}"


def _create_task(client, project, headers, **payload):
    res = client.post(_url(project, "/tasks"), headers=headers, json=payload)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def test_task_crud(client, project, qa, auth_header):
    headers = auth_header(qa)
    task = _create_task(client, project, headers, title="Prepare test data")
    assert task["friendly_id"] == "TASK-1"
    assert task["is_parent"] is False

    res = client.put(_url(project, f"/tasks/{task['id']}"), headers=headers,
                     json={"priority": "High", "version": task["version"]})
    assert res.status_code == 200
    assert res.get_json()["priority"] == "High"

    assert client.delete(_url(project, f"/tasks/{task['id']}"), headers=headers).status_code == 200
    assert client.get(_url(project, f"/tasks/{task['id']}"), headers=headers).status_code == 404


def test_dev_reads_but_cannot_write_by_default(client, project, qa, dev, auth_header):
    task = _create_task(client, project, auth_header(qa), title="Visible")
    assert client.get(_url(project, "/tasks"), headers=auth_header(dev)).status_code == 200
    res = client.put(_url(project, f"/tasks/{task['id']}/status"), headers=auth_header(dev),
                     json={"status": "Done"})
    assert res.status_code == 403


def test_parent_and_subtasks(client, project, qa, auth_header):
    headers = auth_header(qa)
    parent = _create_task(client, project, headers, title="Epic")
    child = _create_task(client, project, headers, title="Story")

    res = client.put(_url(project, f"/tasks/{child['id']}/parent"), headers=headers,
                     json={"parent_id": parent["id"]})
    assert res.status_code == 200
    assert res.get_json()["parent_id"] == parent["id"]

    detail = client.get(_url(project, f"/tasks/{parent['id']}"), headers=headers).get_json()
    assert detail["is_parent"] is True
    subtasks = client.get(_url(project, f"/tasks/{parent['id']}/subtasks"),
                          headers=headers).get_json()
    assert [t["id"] for t in subtasks] == [child["id"]]

    # Default nesting depth is one level.
    grandchild = _create_task(client, project, headers, title="Sub-story")
    res = client.put(_url(project, f"/tasks/{grandchild['id']}/parent"), headers=headers,
                     json={"parent_id": child["id"]})
    assert res.status_code == 422

    res = client.put(_url(project, f"/tasks/{parent['id']}/parent"), headers=headers,
                     json={"parent_id": parent["id"]})
    assert res.status_code == 409

    res = client.put(_url(project, f"/tasks/{child['id']}/parent"), headers=headers,
                     json={"parent_id": None})
    assert res.get_json()["parent_id"] is None


def test_parent_id_key_required(client, project, qa, auth_header):
    task = _create_task(client, project, auth_header(qa), title="Orphan")
    res = client.put(_url(project, f"/tasks/{task['id']}/parent"), headers=auth_header(qa),
                     json={})
    assert res.status_code == 422


def test_task_links(client, project, qa, auth_header, ready_bug):
    headers = auth_header(qa)
    task = _create_task(client, project, headers, title="Investigate")
    other = _create_task(client, project, headers, title="Related")
    bug = client.post(_url(project, "/bugs"), headers=headers, json=ready_bug).get_json()

    url = _url(project, f"/tasks/{task['id']}/links")
    assert client.post(url, headers=headers,
                       json={"target_type": "Task", "target_id": other["id"]}).status_code == 201
    res = client.post(url, headers=headers, json={"target_type": "Bug", "target_id": bug["id"]})
    assert [(lk["target_type"], lk["target_id"]) for lk in res.get_json()["links"]] == [
        ("Task", other["id"]), ("Bug", bug["id"]),
    ]

    dup = client.post(url, headers=headers, json={"target_type": "Task", "target_id": other["id"]})
    assert dup.status_code == 409

    bad = client.post(url, headers=headers, json={"target_type": "Epic", "target_id": 1})
    assert bad.status_code == 422
    missing = client.post(url, headers=headers, json={"target_type": "Task", "target_id": 999})
    assert missing.status_code == 422

    res = client.delete(f"{url}/0", headers=headers)
    assert [lk["target_type"] for lk in res.get_json()["links"]] == ["Bug"]
    assert client.delete(f"{url}/5", headers=headers).status_code == 404

    res = client.delete(url, headers=headers,
                        query_string={"target_type": "Bug", "target_id": bug["id"]})
    assert res.get_json()["links"] == []
    assert client.delete(url, headers=headers).status_code == 422


def test_bug_task_link_is_symmetric(client, project, qa, auth_header, ready_bug):
    headers = auth_header(qa)
    task = _create_task(client, project, headers, title="Fix login")
    bug = client.post(_url(project, "/bugs"), headers=headers, json=ready_bug).get_json()

    res = client.put(_url(project, f"/tasks/{task['id']}/bugs/{bug['id']}"), headers=headers)
    assert res.status_code == 200
    assert res.get_json()["linked_bug_ids"] == [bug["id"]]
    linked = client.get(_url(project, f"/bugs/{bug['id']}/linked"), headers=headers).get_json()
    assert [t["id"] for t in linked["tasks"]] == [task["id"]]

    res = client.delete(_url(project, f"/bugs/{bug['id']}/tasks/{task['id']}"), headers=headers)
    assert res.get_json()["linked_task_ids"] == []


def test_board_and_move(client, project, qa, auth_header):
    headers = auth_header(qa)
    parent = _create_task(client, project, headers, title="Epic")
    child = _create_task(client, project, headers, title="Story", parent_id=parent["id"])
    loose = _create_task(client, project, headers, title="Chore", status="Backlog")

    board = client.get(_url(project, "/board"), headers=headers).get_json()
    assert [c["id"] for c in board["columns"]] == ["todo", "doing", "done"]
    standalone, lane = board["groups"]
    assert standalone["key"] == "standalone"
    assert [t["id"] for t in standalone["unmapped"]] == [loose["id"]]
    assert lane["parent"]["id"] == parent["id"]
    assert [t["id"] for t in lane["cells"]["todo"]] == [child["id"]]

    res = client.post(_url(project, "/board/move"), headers=headers,
                      json={"task_id": child["id"], "destination": "standalone:Done"})
    assert res.status_code == 200
    moved = res.get_json()
    assert moved["status"] == "Done"
    assert moved["parent_id"] == parent["id"]

    bad = client.post(_url(project, "/board/move"), headers=headers,
                      json={"task_id": child["id"], "destination": "Done"})
    assert bad.status_code == 422
    assert client.post(_url(project, "/board/move"), headers=headers,
                       json={"destination": "standalone:Done"}).status_code == 422


def test_dev_moves_cards_with_edit_tasks(client, project, qa, dev, auth_header):
    task = _create_task(client, project, auth_header(qa), title="Card")
    project_service.update_permissions(qa, project.id, {"edit_tasks": True})
    res = client.post(_url(project, "/board/move"), headers=auth_header(dev),
                      json={"task_id": task["id"], "destination": "standalone:InProgress"})
    assert res.status_code == 200
    assert res.get_json()["status"] == "InProgress"

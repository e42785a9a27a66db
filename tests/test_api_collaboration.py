"""HTTP contract of comments, notes and notifications."""

from qahub.services import testing_service


def _url(project, suffix=""):
    return f"/api/v1/projects/{project.id}{suffix}"


class TestComments:

    def test_thread_on_bug(self, client, project, qa, dev, auth_header, ready_bug):
        bug = testing_service.create_bug(qa, project.id, ready_bug)
        url = _url(project, f"/bugs/{bug.id}/comments")

        res = client.post(url, headers=auth_header(qa), json={"content": "Repro on Safari"})
        assert res.status_code == 201
        root = res.get_json()
        assert root["user_name"] == qa.name

        res = client.post(url, headers=auth_header(dev),
                          json={"content": "Looking", "parent_id": root["id"]})
        assert res.status_code == 201
        reply = res.get_json()

        nested = client.post(url, headers=auth_header(qa),
                             json={"content": "Thanks", "parent_id": reply["id"]})
        assert nested.status_code == 409

        thread = client.get(url, headers=auth_header(dev)).get_json()
        assert len(thread) == 1
        assert [r["content"] for r in thread[0]["replies"]] == ["Looking"]

    def test_empty_comment_is_422(self, client, project, qa, auth_header, ready_bug):
        bug = testing_service.create_bug(qa, project.id, ready_bug)
        res = client.post(_url(project, f"/bugs/{bug.id}/comments"), headers=auth_header(qa),
                          json={"content": "  "})
        assert res.status_code == 422

    def test_resolve_author_only(self, client, project, qa, dev, auth_header, ready_bug):
        bug = testing_service.create_bug(qa, project.id, ready_bug)
        comment = client.post(_url(project, f"/bugs/{bug.id}/comments"), headers=auth_header(qa),
                              json={"content": "Needs logs"}).get_json()
        resolve_url = _url(project, f"/comments/{comment['id']}/resolve")
        assert client.put(resolve_url, headers=auth_header(dev)).status_code == 403
        res = client.put(resolve_url, headers=auth_header(qa))
        assert res.status_code == 200
        assert res.get_json()["resolved"] is True

        url = _url(project, f"/bugs/{bug.id}/comments")
        assert client.get(url, headers=auth_header(qa)).get_json() == []
        with_resolved = client.get(url, headers=auth_header(qa),
                                   query_string={"include_resolved": "1"}).get_json()
        assert [c["id"] for c in with_resolved] == [comment["id"]]

    def test_comments_on_tasks(self, client, project, qa, auth_header):
        task = client.post(_url(project, "/tasks"), headers=auth_header(qa),
                           json={"title": "Task with notes"}).get_json()
        url = _url(project, f"/tasks/{task['id']}/comments")
        assert client.post(url, headers=auth_header(qa), json={"content": "ok"}).status_code == 201
        assert len(client.get(url, headers=auth_header(qa)).get_json()) == 1

    def test_unknown_subject_is_404(self, client, project, qa, auth_header):
        res = client.get(_url(project, "/bugs/555/comments"), headers=auth_header(qa))
        assert res.status_code == 404


class TestNotes:

    def test_note_lifecycle(self, client, project, qa, dev, auth_header):
        url = _url(project, "/notes")
        res = client.post(url, headers=auth_header(qa),
                          json={"type": "kv", "label": "Env", "content": "staging-2"})
        assert res.status_code == 201
        note = res.get_json()

        assert client.get(url, headers=auth_header(dev)).status_code == 403
        assert client.post(url, headers=auth_header(dev),
                           json={"content": "mine"}).status_code == 403

        res = client.put(f"{url}/{note['id']}", headers=auth_header(qa),
                         json={"content": "staging-3", "pinned": True})
        assert res.status_code == 200
        assert res.get_json()["pinned"] is True

        assert client.delete(f"{url}/{note['id']}", headers=auth_header(qa)).status_code == 200
        assert client.get(url, headers=auth_header(qa)).get_json() == []

    def test_kv_without_label_is_422(self, client, project, qa, auth_header):
        res = client.post(_url(project, "/notes"), headers=auth_header(qa),
                          json={"type": "kv", "content": "value"})
        assert res.status_code == 422


class TestNotifications:

    def test_bug_created_reaches_devs(self, client, project, qa, dev, auth_header, ready_bug):
        client.post(_url(project, "/bugs"), headers=auth_header(qa), json=ready_bug)

        inbox = client.get("/api/v1/notifications", headers=auth_header(dev)).get_json()
        assert inbox["total"] == 1
        assert inbox["unread_count"] == 1
        assert inbox["items"][0]["type"] == "bug_created"

        assert client.get("/api/v1/notifications",
                          headers=auth_header(qa)).get_json()["total"] == 0

    def test_read_and_clear(self, client, project, qa, dev, auth_header, ready_bug):
        testing_service.create_bug(qa, project.id, ready_bug)
        testing_service.create_bug(qa, project.id, {**ready_bug, "title": "Second"})
        headers = auth_header(dev)

        first = client.get("/api/v1/notifications", headers=headers).get_json()["items"][0]
        res = client.put(f"/api/v1/notifications/{first['id']}/read", headers=headers)
        assert res.status_code == 200
        assert res.get_json()["read"] is True
        assert client.get("/api/v1/notifications/unread-count",
                          headers=headers).get_json() == {"unread_count": 1}

        unread = client.get("/api/v1/notifications", headers=headers,
                            query_string={"unread_only": "true"}).get_json()
        assert unread["total"] == 1

        assert client.put("/api/v1/notifications/read-all",
                          headers=headers).get_json() == {"marked_read": 1}
        assert client.delete("/api/v1/notifications",
                             headers=headers).get_json() == {"deleted": 2}

    def test_foreign_notification_is_403(self, client, project, qa, dev, auth_header, ready_bug):
        testing_service.create_bug(qa, project.id, ready_bug)
        item = client.get("/api/v1/notifications",
                          headers=auth_header(dev)).get_json()["items"][0]
        res = client.put(f"/api/v1/notifications/{item['id']}/read", headers=auth_header(qa))
        assert res.status_code == 403

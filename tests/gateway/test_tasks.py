"""任务接口测试：创建 / 列表 / 详情 / 就绪 / 执行人 / 预期收入"""


class TestCreateTask:
    async def test_admin_creates_task(self, api):
        task = await api.create_task(
            description="Unit 3 leaking",
            assignee_ids=["worker-1", " ", "worker-1", "worker-2"],
        )

        assert task["status"] == "PREPARING"
        assert task["assignee_ids"] == ["worker-1", "worker-2"]
        assert task["expected_revenue"] == "100000"
        assert task["started_at"] is None

        activities = await api.activities(task["task_id"])
        assert [a["action"] for a in activities] == ["TASK_CREATED"]
        assert activities[0]["payload"]["has_location"] is True
        assert activities[0]["user_id"] == "admin-1"

    async def test_worker_cannot_create(self, api):
        resp = await api.client.post(
            "/v1/task", json={"title": "Sneaky"}, headers=api.WORKER
        )
        assert resp.status_code == 403

    async def test_empty_title_rejected(self, api):
        resp = await api.client.post("/v1/task", json={"title": ""}, headers=api.ADMIN)
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_negative_expected_revenue_rejected(self, api):
        resp = await api.client.post(
            "/v1/task",
            json={"title": "Negative", "expected_revenue": "-1"},
            headers=api.ADMIN,
        )
        assert resp.status_code == 422


class TestListAndDetail:
    async def test_worker_sees_only_assigned(self, api):
        mine = await api.create_task(title="Mine", assignee_ids=["worker-1"])
        await api.create_task(title="Theirs", assignee_ids=["worker-2"])

        resp = await api.client.get("/v1/task", headers=api.WORKER)
        assert resp.status_code == 200
        assert [t["task_id"] for t in resp.json()["tasks"]] == [mine["task_id"]]

        resp = await api.client.get("/v1/task", headers=api.ADMIN)
        assert len(resp.json()["tasks"]) == 2

    async def test_status_filter(self, api):
        await api.create_task(title="Draft")
        ready = await api.create_ready_task(title="Ready")

        resp = await api.client.get("/v1/task", params={"status": "READY"}, headers=api.ADMIN)
        assert [t["task_id"] for t in resp.json()["tasks"]] == [ready["task_id"]]

    async def test_bad_status_filter(self, api):
        resp = await api.client.get("/v1/task", params={"status": "DONE"}, headers=api.ADMIN)
        assert resp.status_code == 422

    async def test_detail_lists_allowed_transitions(self, api):
        task = await api.create_ready_task()

        resp = await api.client.get(f"/v1/task/{task['task_id']}", headers=api.WORKER)
        assert resp.status_code == 200
        body = resp.json()
        assert body["task"]["status"] == "READY"
        assert body["attachments"] == []
        assert body["allowed_transitions"] == [{"target": "IN_PROGRESS", "label": "check-in"}]

    async def test_detail_forbidden_for_outsider(self, api):
        task = await api.create_task()
        resp = await api.client.get(f"/v1/task/{task['task_id']}", headers=api.OUTSIDER)
        assert resp.status_code == 403

    async def test_detail_not_found(self, api):
        resp = await api.client.get("/v1/task/999", headers=api.ADMIN)
        assert resp.status_code == 404


class TestMarkReady:
    async def test_admin_marks_ready(self, api):
        task = await api.create_ready_task()
        assert task["status"] == "READY"

        activities = await api.activities(task["task_id"])
        assert activities[-1]["payload"] == {"old_status": "PREPARING", "new_status": "READY"}

    async def test_worker_cannot_mark_ready(self, api):
        task = await api.create_task()
        resp = await api.client.post(f"/v1/task/{task['task_id']}/ready", headers=api.WORKER)
        assert resp.status_code == 403
        assert await api.actions(task["task_id"]) == ["TASK_CREATED"]

    async def test_ready_twice_is_rejected(self, api):
        task = await api.create_ready_task()
        resp = await api.client.post(f"/v1/task/{task['task_id']}/ready", headers=api.ADMIN)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "INVALID_TRANSITION"


class TestAssignees:
    async def test_replace_assignees(self, api):
        task = await api.create_task()
        resp = await api.client.put(
            f"/v1/task/{task['task_id']}/assignees",
            json={"assignee_ids": ["worker-9"]},
            headers=api.ADMIN,
        )

        assert resp.status_code == 200
        assert resp.json()["task"]["assignee_ids"] == ["worker-9"]
        activities = await api.activities(task["task_id"])
        assert activities[-1]["action"] == "TASK_ASSIGNEES_UPDATED"
        assert activities[-1]["payload"] == {
            "old_assignee_ids": ["worker-1", "worker-2"],
            "new_assignee_ids": ["worker-9"],
        }

        # 原执行人失去可见性
        resp = await api.client.get(f"/v1/task/{task['task_id']}", headers=api.WORKER)
        assert resp.status_code == 403

    async def test_unchanged_assignees_not_logged(self, api):
        task = await api.create_task()
        resp = await api.client.put(
            f"/v1/task/{task['task_id']}/assignees",
            json={"assignee_ids": ["worker-1", "worker-2"]},
            headers=api.ADMIN,
        )
        assert resp.status_code == 200
        assert await api.actions(task["task_id"]) == ["TASK_CREATED"]

    async def test_completed_task_assignees_frozen(self, api):
        task = await api.in_progress_task()
        assert (await api.check_out(task["task_id"])).status_code == 200

        resp = await api.client.put(
            f"/v1/task/{task['task_id']}/assignees",
            json={"assignee_ids": ["worker-9"]},
            headers=api.ADMIN,
        )
        assert resp.status_code == 409

    async def test_worker_cannot_change_assignees(self, api):
        task = await api.create_task()
        resp = await api.client.put(
            f"/v1/task/{task['task_id']}/assignees",
            json={"assignee_ids": ["worker-1"]},
            headers=api.WORKER,
        )
        assert resp.status_code == 403


class TestExpectedRevenue:
    async def test_set_and_clear(self, api):
        task = await api.create_task()
        url = f"/v1/task/{task['task_id']}/expected-revenue"

        resp = await api.client.put(url, json={"expected_revenue": "250000"}, headers=api.ADMIN)
        assert resp.status_code == 200
        assert resp.json()["task"]["expected_revenue"] == "250000"

        resp = await api.client.put(url, json={"expected_revenue": None}, headers=api.ADMIN)
        assert resp.json()["task"]["expected_revenue"] is None

        payloads = [
            a["payload"]
            for a in await api.activities(task["task_id"])
            if a["action"] == "TASK_EXPECTED_REVENUE_UPDATED"
        ]
        assert payloads == [
            {"old_expected_revenue": "100000", "new_expected_revenue": "250000"},
            {"old_expected_revenue": "250000"},
        ]

    async def test_worker_forbidden(self, api):
        task = await api.create_task()
        resp = await api.client.put(
            f"/v1/task/{task['task_id']}/expected-revenue",
            json={"expected_revenue": "1"},
            headers=api.WORKER,
        )
        assert resp.status_code == 403

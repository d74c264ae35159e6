"""附件接口测试：上传 / 下载 / 软删除 / 动态流中的已删除占位"""

import hashlib

FILES = [
    ("files", ("before.jpg", b"before-bytes", "image/jpeg")),
    ("files", ("after.jpg", b"after-bytes", "image/jpeg")),
]


class TestUpload:
    async def test_upload_and_download(self, api):
        task = await api.create_task()
        resp = await api.client.post(
            f"/v1/task/{task['task_id']}/attachments", files=FILES, headers=api.WORKER
        )

        assert resp.status_code == 201, resp.text
        attachments = resp.json()["attachments"]
        assert [a["original_filename"] for a in attachments] == ["before.jpg", "after.jpg"]
        assert attachments[0]["size"] == len(b"before-bytes")

        download = await api.client.get(attachments[0]["url"], headers=api.ADMIN)
        assert download.status_code == 200
        assert download.content == b"before-bytes"
        assert download.headers["content-type"].startswith("image/jpeg")
        assert download.headers["x-content-sha256"] == hashlib.sha256(b"before-bytes").hexdigest()

        activities = await api.activities(task["task_id"])
        assert activities[-1]["action"] == "TASK_ATTACHMENTS_UPLOADED"
        assert [ref["id"] for ref in activities[-1]["payload"]["attachments"]] == [
            a["attachment_id"] for a in attachments
        ]

        detail = await api.client.get(f"/v1/task/{task['task_id']}", headers=api.ADMIN)
        assert {a["attachment_id"] for a in detail.json()["attachments"]} == {
            a["attachment_id"] for a in attachments
        }

    async def test_outsider_cannot_upload(self, api):
        task = await api.create_task()
        resp = await api.client.post(
            f"/v1/task/{task['task_id']}/attachments", files=FILES, headers=api.OUTSIDER
        )
        assert resp.status_code == 403
        assert await api.actions(task["task_id"]) == ["TASK_CREATED"]

    async def test_outsider_cannot_download(self, api):
        task = await api.create_task()
        resp = await api.client.post(
            f"/v1/task/{task['task_id']}/attachments", files=FILES, headers=api.WORKER
        )
        url = resp.json()["attachments"][0]["url"]
        assert (await api.client.get(url, headers=api.OUTSIDER)).status_code == 403

    async def test_unknown_attachment(self, api):
        resp = await api.client.get("/v1/attachment/missing", headers=api.ADMIN)
        assert resp.status_code == 404


class TestDelete:
    async def test_delete_marks_feed_placeholder(self, api):
        task = await api.in_progress_task()
        await api.client.post(
            f"/v1/task/{task['task_id']}/attachments", files=FILES, headers=api.WORKER
        )
        activities = await api.activities(task["task_id"])
        uploaded = activities[-1]["payload"]["attachments"]

        resp = await api.client.delete(
            f"/v1/attachment/{uploaded[0]['id']}", headers=api.WORKER
        )
        assert resp.status_code == 200
        assert resp.json()["deleted_at"]

        activities = await api.activities(task["task_id"])
        upload_entry = next(a for a in activities if a["action"] == "TASK_ATTACHMENTS_UPLOADED")
        assert upload_entry["attachments_missing"] == 1
        assert activities[-1]["action"] == "ATTACHMENT_DELETED"
        assert activities[-1]["payload"]["original_filename"] == "before.jpg"

        # 删除后不可下载，不再出现在详情中
        download = await api.client.get(
            f"/v1/attachment/{uploaded[0]['id']}", headers=api.ADMIN
        )
        assert download.status_code == 404
        detail = await api.client.get(f"/v1/task/{task['task_id']}", headers=api.ADMIN)
        assert [a["attachment_id"] for a in detail.json()["attachments"]] == [uploaded[1]["id"]]

    async def test_only_uploader_or_admin_can_delete(self, api):
        task = await api.create_task()
        resp = await api.client.post(
            f"/v1/task/{task['task_id']}/attachments", files=FILES, headers=api.WORKER
        )
        attachment_id = resp.json()["attachments"][0]["attachment_id"]

        resp = await api.client.delete(f"/v1/attachment/{attachment_id}", headers=api.WORKER_2)
        assert resp.status_code == 403

        resp = await api.client.delete(f"/v1/attachment/{attachment_id}", headers=api.ADMIN)
        assert resp.status_code == 200

        resp = await api.client.delete(f"/v1/attachment/{attachment_id}", headers=api.ADMIN)
        assert resp.status_code == 404

    async def test_hide_unimportant_skips_attachment_actions(self, api):
        task = await api.create_task()
        await api.client.post(
            f"/v1/task/{task['task_id']}/attachments", files=FILES, headers=api.WORKER
        )

        activities = await api.activities(task["task_id"], hide_unimportant="true")
        assert [a["action"] for a in activities] == ["TASK_CREATED"]

"""Gateway 测试配置 -- FastAPI app + httpx AsyncClient + 身份 token 辅助"""

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient, Response
from jose import jwt

TASK_LOCATION = {"lat": 10.7769, "lng": 106.7009, "address": "1 Le Loi", "name": "Customer A"}


def bearer(user_id: str, *roles: str) -> dict[str, str]:
    """构造 Authorization 头（签名由上游身份服务负责，这里使用任意密钥）"""
    token = jwt.encode({"sub": user_id, "roles": list(roles)}, "test-secret", algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


def location_form(lat: float = 10.7769, lng: float = 106.7009, **extra) -> dict[str, str]:
    data = {"latitude": str(lat), "longitude": str(lng)}
    data.update({key: str(value) for key, value in extra.items()})
    return data


class Api:
    """测试用 API 辅助：预置身份头 + 常用操作"""

    ADMIN = bearer("admin-1", "admin")
    WORKER = bearer("worker-1", "worker")
    WORKER_2 = bearer("worker-2", "worker")
    OUTSIDER = bearer("worker-9", "worker")

    def __init__(self, client: AsyncClient) -> None:
        self.client = client

    async def create_task(self, **overrides) -> dict:
        """admin 创建任务并返回任务 JSON"""
        body = {
            "title": "Repair air conditioner",
            "geo_location": TASK_LOCATION,
            "expected_revenue": "100000",
            "assignee_ids": ["worker-1", "worker-2"],
        }
        body.update(overrides)
        resp = await self.client.post("/v1/task", json=body, headers=self.ADMIN)
        assert resp.status_code == 201, resp.text
        return resp.json()["task"]

    async def create_ready_task(self, **overrides) -> dict:
        task = await self.create_task(**overrides)
        resp = await self.client.post(f"/v1/task/{task['task_id']}/ready", headers=self.ADMIN)
        assert resp.status_code == 200, resp.text
        return resp.json()["task"]

    async def check_in(
        self,
        task_id: int,
        headers: dict | None = None,
        files: list | None = None,
        idempotency_key: str | None = None,
        **form,
    ) -> Response:
        headers = dict(headers or self.WORKER)
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return await self.client.post(
            f"/v1/task/{task_id}/check-in",
            data=location_form(**form),
            files=files,
            headers=headers,
        )

    async def check_out(
        self,
        task_id: int,
        headers: dict | None = None,
        files: list | None = None,
        **form,
    ) -> Response:
        return await self.client.post(
            f"/v1/task/{task_id}/check-out",
            data=location_form(**form),
            files=files,
            headers=headers or self.WORKER,
        )

    async def in_progress_task(self, **overrides) -> dict:
        task = await self.create_ready_task(**overrides)
        resp = await self.check_in(task["task_id"])
        assert resp.status_code == 200, resp.text
        return resp.json()["task"]

    async def activities(self, task_id: int, **params) -> list[dict]:
        resp = await self.client.get(
            "/v1/activity",
            params={"topic": f"TASK_{task_id}", **params},
            headers=self.ADMIN,
        )
        assert resp.status_code == 200, resp.text
        return resp.json()["activities"]

    async def actions(self, task_id: int) -> list[str]:
        return [a["action"] for a in await self.activities(task_id)]


@pytest_asyncio.fixture
async def test_app(tmp_path: Path):
    os.environ["FIELDOPS_DB_PATH"] = str(tmp_path / "test.db")
    os.environ["FIELDOPS_ATTACHMENTS_DIR"] = str(tmp_path / "attachments")
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from fieldops.core.config import FieldEventPolicy
    from fieldops.core.store import create_store_group
    from fieldops.gateway.main import create_app

    app = create_app()

    # 手动初始化（绕过 lifespan）
    store_group = await create_store_group(
        str(tmp_path / "test.db"),
        tmp_path / "attachments",
    )
    app.state.store_group = store_group
    app.state.policy = FieldEventPolicy()

    yield app

    await store_group.conn.close()
    for key in ("FIELDOPS_DB_PATH", "FIELDOPS_ATTACHMENTS_DIR", "LOGFIRE_SEND_TO_LOGFIRE"):
        os.environ.pop(key, None)


@pytest_asyncio.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def api(client: AsyncClient) -> Api:
    return Api(client)


@pytest.fixture
def store_group(test_app):
    return test_app.state.store_group

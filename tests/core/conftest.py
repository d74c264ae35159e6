"""核心层测试配置 -- 任务 / 操作者 fixture"""

from datetime import UTC, datetime

import pytest
import pytest_asyncio
from fieldops.core.models import Actor, GeoLocation, Task, TaskStatus, UserRole


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id="admin-1", roles=[UserRole.ADMIN])


@pytest.fixture
def worker() -> Actor:
    return Actor(user_id="worker-1", roles=[UserRole.WORKER])


@pytest.fixture
def outsider() -> Actor:
    return Actor(user_id="worker-2", roles=[UserRole.WORKER])


@pytest_asyncio.fixture
async def make_task(store_group):
    """在数据库中插入任务并返回带 task_id 的 Task"""

    async def _make(**overrides) -> Task:
        now = datetime.now(UTC)
        data = {
            "task_id": 0,
            "created_at": now,
            "updated_at": now,
            "status": TaskStatus.PREPARING,
            "title": "Repair air conditioner",
            "geo_location": GeoLocation(lat=10.7769, lng=106.7009, address="1 Le Loi"),
            "assignee_ids": ["worker-1"],
        }
        data.update(overrides)
        task = Task(**data)
        async with store_group.transaction():
            task_id = await store_group.task_store.create_task(task)
        return task.model_copy(update={"task_id": task_id})

    return _make

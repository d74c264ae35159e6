"""SQLite Store 测试

测试内容：
1. TaskStore：自增 ID、列表筛选、CAS 条件更新、生命周期时间
2. PaymentStore：创建 / 查询 / 更正
3. LocalAttachmentStorage：存储 / 解析 / 认领 / 软删除 / 孤儿回收
4. unit_of_work：异常时回滚
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path

import pytest
from fieldops.core.models import AttachmentUpload, Payment, TaskStatus
from fieldops.core.store.attachment_store import compute_hash_and_size

NOW = datetime(2026, 3, 1, 8, 0, tzinfo=UTC)


class TestTaskStore:
    async def test_autoincrement_ids(self, make_task):
        first = await make_task()
        second = await make_task(title="Second")
        assert first.task_id >= 1
        assert second.task_id == first.task_id + 1

    async def test_roundtrip_preserves_fields(self, store_group, make_task):
        task = await make_task(expected_revenue=Decimal("250000.00"), customer_phone="0909")
        stored = await store_group.task_store.get_task(task.task_id)
        assert stored.expected_revenue == Decimal("250000.00")
        assert stored.geo_location.lat == pytest.approx(10.7769)
        assert stored.assignee_ids == ["worker-1"]
        assert stored.customer_phone == "0909"

    async def test_get_missing(self, store_group):
        assert await store_group.task_store.get_task(999) is None

    async def test_list_filters(self, store_group, make_task):
        await make_task(assignee_ids=["worker-1"])
        await make_task(assignee_ids=["worker-2"], status=TaskStatus.READY)
        await make_task(assignee_ids=["worker-1", "worker-2"], status=TaskStatus.READY)

        assert len(await store_group.task_store.list_tasks()) == 3
        assert len(await store_group.task_store.list_tasks(status="READY")) == 2
        assert len(await store_group.task_store.list_tasks(assignee_id="worker-1")) == 2
        both = await store_group.task_store.list_tasks(status="READY", assignee_id="worker-1")
        assert len(both) == 1

    async def test_compare_and_set(self, store_group, make_task):
        task = await make_task()
        async with store_group.transaction():
            assert await store_group.task_store.compare_and_set_status(
                task.task_id, TaskStatus.PREPARING, TaskStatus.READY, NOW
            )
        async with store_group.transaction():
            assert not await store_group.task_store.compare_and_set_status(
                task.task_id, TaskStatus.PREPARING, TaskStatus.READY, NOW
            )
        assert (await store_group.task_store.get_task(task.task_id)).status == TaskStatus.READY

    async def test_lifecycle_timestamp(self, store_group, make_task):
        task = await make_task()
        async with store_group.transaction():
            await store_group.task_store.set_lifecycle_timestamp(task.task_id, "started_at", NOW)
        assert (await store_group.task_store.get_task(task.task_id)).started_at == NOW

        with pytest.raises(ValueError):
            await store_group.task_store.set_lifecycle_timestamp(task.task_id, "title", NOW)


class TestTransaction:
    async def test_rollback_on_error(self, store_group, make_task):
        task = await make_task()
        with pytest.raises(RuntimeError):
            async with store_group.transaction():
                await store_group.task_store.compare_and_set_status(
                    task.task_id, TaskStatus.PREPARING, TaskStatus.READY, NOW
                )
                raise RuntimeError("boom")
        assert (await store_group.task_store.get_task(task.task_id)).status == TaskStatus.PREPARING


class TestPaymentStore:
    async def test_create_list_update(self, store_group, make_task):
        task = await make_task()
        payment = Payment(
            payment_id="PAY001",
            task_id=task.task_id,
            amount=Decimal("100000"),
            collected_by="worker-1",
            collected_at=NOW,
            notes="cash",
        )
        async with store_group.transaction():
            await store_group.payment_store.create_payment(payment)

        payments = await store_group.payment_store.list_for_task(task.task_id)
        assert [p.payment_id for p in payments] == ["PAY001"]
        assert payments[0].amount == Decimal("100000")
        assert payments[0].currency == "VND"

        async with store_group.transaction():
            await store_group.payment_store.update_payment(
                "PAY001", amount=Decimal("120000"), notes=None, invoice_attachment_id=None
            )
        updated = await store_group.payment_store.get_payment("PAY001")
        assert updated.amount == Decimal("120000")
        assert updated.notes is None


class TestLocalAttachmentStorage:
    async def _store(self, store_group, task_id: int, content: bytes = b"jpeg-bytes", when=NOW):
        async with store_group.transaction():
            return await store_group.attachment_storage.store(
                AttachmentUpload(filename="meter.jpg", mime_type="image/jpeg", content=content),
                task_id=task_id,
                uploaded_by="worker-1",
                now=when,
            )

    async def test_store_writes_file_and_metadata(self, store_group, make_task):
        task = await make_task()
        stored = await self._store(store_group, task.task_id)

        assert stored.url == f"/v1/attachment/{stored.attachment_id}"
        assert Path(stored.attachment.storage_ref).read_bytes() == b"jpeg-bytes"
        sha256, size = compute_hash_and_size(b"jpeg-bytes")
        assert stored.attachment.sha256 == sha256
        assert stored.attachment.size == size
        assert stored.attachment.claimed is False

    async def test_unclaimed_not_listed(self, store_group, make_task):
        task = await make_task()
        stored = await self._store(store_group, task.task_id)
        assert await store_group.attachment_storage.list_for_task(task.task_id) == []

        async with store_group.transaction():
            assert await store_group.attachment_storage.claim([stored.attachment_id]) == 1
        listed = await store_group.attachment_storage.list_for_task(task.task_id)
        assert [a.attachment_id for a in listed] == [stored.attachment_id]

    async def test_resolve_omits_deleted_and_keeps_order(self, store_group, make_task):
        task = await make_task()
        a = await self._store(store_group, task.task_id, b"a")
        b = await self._store(store_group, task.task_id, b"b")
        c = await self._store(store_group, task.task_id, b"c")

        async with store_group.transaction():
            assert await store_group.attachment_storage.soft_delete(b.attachment_id, NOW)
            assert not await store_group.attachment_storage.soft_delete(b.attachment_id, NOW)

        resolved = await store_group.attachment_storage.resolve(
            [c.attachment_id, b.attachment_id, "missing", a.attachment_id]
        )
        assert [r.attachment_id for r in resolved] == [c.attachment_id, a.attachment_id]
        assert await store_group.attachment_storage.get_content(b.attachment_id) is None

    async def test_delete_unclaimed_orphans(self, store_group, make_task):
        task = await make_task()
        old_orphan = await self._store(store_group, task.task_id, when=NOW - timedelta(days=2))
        claimed = await self._store(store_group, task.task_id, when=NOW - timedelta(days=2))
        fresh = await self._store(store_group, task.task_id, when=NOW)
        async with store_group.transaction():
            await store_group.attachment_storage.claim([claimed.attachment_id])

        async with store_group.transaction():
            deleted = await store_group.attachment_storage.delete_unclaimed(
                NOW - timedelta(days=1)
            )

        assert deleted == 1
        assert not Path(old_orphan.attachment.storage_ref).exists()
        assert await store_group.attachment_storage.get_attachment(old_orphan.attachment_id) is None
        assert await store_group.attachment_storage.get_attachment(claimed.attachment_id)
        assert await store_group.attachment_storage.get_attachment(fresh.attachment_id)

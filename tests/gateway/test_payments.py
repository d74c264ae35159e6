"""收款接口测试：查询汇总 / admin 更正 / 审计记录"""

import pytest


@pytest.fixture
async def paid_task(api):
    """已 check-out 并收款 115000 的任务"""
    task = await api.in_progress_task()
    resp = await api.check_out(
        task["task_id"],
        paymentCollected="true",
        paymentAmount="115000",
        paymentNotes="cash",
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


class TestListPayments:
    async def test_summary(self, api, paid_task):
        task_id = paid_task["task"]["task_id"]
        resp = await api.client.get(f"/v1/task/{task_id}/payments", headers=api.WORKER)

        assert resp.status_code == 200
        body = resp.json()
        assert [p["payment_id"] for p in body["payments"]] == [
            paid_task["payment"]["payment_id"]
        ]
        assert body["summary"] == {
            "expected_revenue": "100000",
            "total_collected": "115000",
            "has_payment": True,
        }

    async def test_no_payments(self, api):
        task = await api.create_task(expected_revenue=None)
        resp = await api.client.get(f"/v1/task/{task['task_id']}/payments", headers=api.ADMIN)
        assert resp.json()["summary"] == {
            "expected_revenue": None,
            "total_collected": "0",
            "has_payment": False,
        }

    async def test_outsider_forbidden(self, api, paid_task):
        task_id = paid_task["task"]["task_id"]
        resp = await api.client.get(f"/v1/task/{task_id}/payments", headers=api.OUTSIDER)
        assert resp.status_code == 403


class TestUpdatePayment:
    async def test_admin_corrects_amount(self, api, paid_task):
        payment_id = paid_task["payment"]["payment_id"]
        task_id = paid_task["task"]["task_id"]

        resp = await api.client.put(
            f"/v1/payment/{payment_id}",
            data={"editReason": "customer paid the quoted price", "amount": "100000"},
            headers=api.ADMIN,
        )

        assert resp.status_code == 200, resp.text
        assert resp.json()["payment"]["amount"] == "100000"
        assert resp.json()["payment"]["notes"] == "cash"

        activities = await api.activities(task_id)
        assert activities[-1]["action"] == "PAYMENT_UPDATED"
        assert activities[-1]["payload"] == {
            "payment_id": payment_id,
            "edit_reason": "customer paid the quoted price",
            "changes": {
                "amount": {"old": "115000", "new": "100000"},
                "invoice_replaced": False,
            },
        }

        resp = await api.client.get(f"/v1/task/{task_id}/payments", headers=api.ADMIN)
        assert resp.json()["summary"]["total_collected"] == "100000"

    async def test_replace_invoice(self, api, paid_task):
        payment_id = paid_task["payment"]["payment_id"]
        resp = await api.client.put(
            f"/v1/payment/{payment_id}",
            data={"editReason": "clearer invoice photo"},
            files=[("invoiceFile", ("invoice.png", b"png-bytes", "image/png"))],
            headers=api.ADMIN,
        )

        assert resp.status_code == 200, resp.text
        new_invoice = resp.json()["payment"]["invoice_attachment_id"]
        assert new_invoice

        download = await api.client.get(f"/v1/attachment/{new_invoice}", headers=api.ADMIN)
        assert download.status_code == 200
        assert download.content == b"png-bytes"

    async def test_short_reason_rejected(self, api, paid_task):
        payment_id = paid_task["payment"]["payment_id"]
        resp = await api.client.put(
            f"/v1/payment/{payment_id}",
            data={"editReason": "  typo     ", "amount": "1"},
            headers=api.ADMIN,
        )
        assert resp.status_code == 422

    async def test_no_changes_rejected(self, api, paid_task):
        payment_id = paid_task["payment"]["payment_id"]
        resp = await api.client.put(
            f"/v1/payment/{payment_id}",
            data={"editReason": "nothing really changed", "amount": "115000"},
            headers=api.ADMIN,
        )
        assert resp.status_code == 422
        assert "No changes" in resp.json()["error"]["message"]

    async def test_worker_cannot_edit(self, api, paid_task):
        payment_id = paid_task["payment"]["payment_id"]
        resp = await api.client.put(
            f"/v1/payment/{payment_id}",
            data={"editReason": "I counted wrong earlier", "amount": "1"},
            headers=api.WORKER,
        )
        assert resp.status_code == 403

    async def test_unknown_payment(self, api):
        resp = await api.client.put(
            "/v1/payment/01HZZZZZZZZZZZZZZZZZZZZZZZ",
            data={"editReason": "long enough reason", "amount": "1"},
            headers=api.ADMIN,
        )
        assert resp.status_code == 404

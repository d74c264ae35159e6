"""任务路由

POST /v1/task: admin 创建任务
GET /v1/task: 任务列表（admin 全部，其他角色仅被分配的），支持 status 筛选
GET /v1/task/{task_id}: 任务详情（含可见附件与当前可执行流转）
POST /v1/task/{task_id}/ready: admin 标记就绪
PUT /v1/task/{task_id}/assignees: admin 替换执行人
PUT /v1/task/{task_id}/expected-revenue: admin 设置/清除预期收入
"""

from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from fieldops.core.models import Actor, TaskCreate, TaskStatus
from fieldops.core.state_machine import allowed_transitions

from ..deps import get_actor, get_store_group
from ..services.task_service import TaskService

router = APIRouter()


class AssigneesUpdate(BaseModel):
    """执行人替换请求"""

    assignee_ids: list[str]


class ExpectedRevenueUpdate(BaseModel):
    """预期收入设置请求，null 表示清除"""

    expected_revenue: Decimal | None = Field(default=None, ge=0)


@router.post("/v1/task", status_code=201)
async def create_task(
    body: TaskCreate,
    actor: Actor = Depends(get_actor),
    store_group=Depends(get_store_group),
):
    """创建任务（初始状态 PREPARING）"""
    task = await TaskService(store_group).create_task(actor, body)
    return {"task": task.model_dump(mode="json")}


@router.get("/v1/task")
async def list_tasks(
    status: TaskStatus | None = Query(default=None, description="按状态筛选"),
    actor: Actor = Depends(get_actor),
    store_group=Depends(get_store_group),
):
    """查询任务列表，按 created_at 倒序"""
    tasks = await TaskService(store_group).list_tasks(actor, status)
    return {"tasks": [t.model_dump(mode="json") for t in tasks]}


@router.get("/v1/task/{task_id}")
async def get_task_detail(
    task_id: int,
    actor: Actor = Depends(get_actor),
    store_group=Depends(get_store_group),
):
    """查询任务详情"""
    task = await TaskService(store_group).get_task(task_id, actor)
    attachments = await store_group.attachment_storage.list_for_task(task_id)

    return {
        "task": task.model_dump(mode="json"),
        "attachments": [
            {
                "attachment_id": a.attachment_id,
                "url": f"/v1/attachment/{a.attachment_id}",
                "mime_type": a.mime_type,
                "original_filename": a.original_filename,
                "size": a.size,
                "uploaded_by": a.uploaded_by,
                "created_at": a.created_at.isoformat(),
            }
            for a in attachments
        ],
        "allowed_transitions": [
            {"target": t.target.value, "label": t.label}
            for t in allowed_transitions(actor, task.status)
        ],
    }


@router.post("/v1/task/{task_id}/ready")
async def mark_ready(
    task_id: int,
    actor: Actor = Depends(get_actor),
    store_group=Depends(get_store_group),
):
    """PREPARING -> READY"""
    task = await TaskService(store_group).mark_ready(task_id, actor)
    return JSONResponse(status_code=200, content={"task": task.model_dump(mode="json")})


@router.put("/v1/task/{task_id}/assignees")
async def update_assignees(
    task_id: int,
    body: AssigneesUpdate,
    actor: Actor = Depends(get_actor),
    store_group=Depends(get_store_group),
):
    task = await TaskService(store_group).update_assignees(task_id, actor, body.assignee_ids)
    return {"task": task.model_dump(mode="json")}


@router.put("/v1/task/{task_id}/expected-revenue")
async def set_expected_revenue(
    task_id: int,
    body: ExpectedRevenueUpdate,
    actor: Actor = Depends(get_actor),
    store_group=Depends(get_store_group),
):
    task = await TaskService(store_group).set_expected_revenue(
        task_id, actor, body.expected_revenue
    )
    return {"task": task.model_dump(mode="json")}

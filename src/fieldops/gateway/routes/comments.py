"""评论路由

POST /v1/task/{task_id}/comment: multipart，comment 文本 + 可选照片
- 403: 未被分配
- 404: 任务不存在
- 422: 评论为空或超过长度上限、照片过多
"""

from fastapi import APIRouter, Depends, File, Form, UploadFile

from fieldops.core.models import Actor

from ..deps import get_actor, get_store_group
from ..services.comment_service import CommentService
from .field_events import read_upload

router = APIRouter()


@router.post("/v1/task/{task_id}/comment", status_code=201)
async def add_comment(
    task_id: int,
    comment: str = Form(...),
    files: list[UploadFile] | None = File(default=None),
    actor: Actor = Depends(get_actor),
    store_group=Depends(get_store_group),
):
    """发表评论并记录 TASK_COMMENTED"""
    uploads = [await read_upload(f) for f in files or []]
    activity = await CommentService(store_group).add_comment(task_id, actor, comment, uploads)
    return {"activity": activity.model_dump(mode="json")}

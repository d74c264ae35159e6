"""附件路由

POST /v1/task/{task_id}/attachments: 上传任务附件
GET /v1/attachment/{attachment_id}: 下载附件内容
DELETE /v1/attachment/{attachment_id}: 软删除附件
"""

from fastapi import APIRouter, Depends, File, UploadFile
from starlette.responses import Response

from fieldops.core.models import Actor

from ..deps import get_actor, get_store_group
from ..services.attachment_service import AttachmentService
from .field_events import read_upload

router = APIRouter()


@router.post("/v1/task/{task_id}/attachments", status_code=201)
async def upload_attachments(
    task_id: int,
    files: list[UploadFile] = File(...),
    actor: Actor = Depends(get_actor),
    store_group=Depends(get_store_group),
):
    """上传附件并记录 TASK_ATTACHMENTS_UPLOADED"""
    uploads = [await read_upload(f) for f in files]
    stored = await AttachmentService(store_group).upload(task_id, actor, uploads)
    return {
        "attachments": [
            {
                "attachment_id": s.attachment_id,
                "url": s.url,
                "mime_type": s.attachment.mime_type,
                "original_filename": s.attachment.original_filename,
                "size": s.attachment.size,
            }
            for s in stored
        ]
    }


@router.get("/v1/attachment/{attachment_id}")
async def download_attachment(
    attachment_id: str,
    actor: Actor = Depends(get_actor),
    store_group=Depends(get_store_group),
):
    attachment, content = await AttachmentService(store_group).get(attachment_id, actor)
    return Response(
        content=content,
        media_type=attachment.mime_type,
        headers={"X-Content-SHA256": attachment.sha256},
    )


@router.delete("/v1/attachment/{attachment_id}")
async def delete_attachment(
    attachment_id: str,
    actor: Actor = Depends(get_actor),
    store_group=Depends(get_store_group),
):
    """软删除附件并记录 ATTACHMENT_DELETED"""
    attachment = await AttachmentService(store_group).delete(attachment_id, actor)
    return {
        "attachment_id": attachment.attachment_id,
        "deleted_at": attachment.deleted_at.isoformat(),
    }

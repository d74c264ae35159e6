"""Attachment Domain Model

字节内容由存储协作方持有，核心只保存引用。
claimed 表示已被某条提交成功的 Activity 引用；未认领的附件由 purge-orphans 回收。
sha256 和 size 用于完整性校验。
"""

from datetime import datetime

from pydantic import BaseModel, Field


class Attachment(BaseModel):
    """附件元数据"""

    attachment_id: str = Field(description="唯一标识，ULID 格式")
    task_id: int = Field(description="关联的 Task ID")
    mime_type: str = Field(default="application/octet-stream", description="MIME 类型")
    size: int = Field(default=0, description="内容大小（字节）")
    original_filename: str = Field(default="", description="原始文件名")
    uploaded_by: str = Field(description="上传者 user_id")
    created_at: datetime = Field(description="创建时间")
    storage_ref: str | None = Field(default=None, description="存储引用路径")
    sha256: str = Field(default="", description="SHA-256 哈希")
    claimed: bool = Field(default=False, description="是否已被 Activity 引用")
    deleted_at: datetime | None = Field(default=None, description="软删除时间")


class AttachmentUpload(BaseModel):
    """待存储的附件（请求中的文件）"""

    filename: str = ""
    mime_type: str = "application/octet-stream"
    content: bytes = b""


class StoredAttachment(BaseModel):
    """存储结果"""

    attachment_id: str
    url: str
    attachment: Attachment

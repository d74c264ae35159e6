"""领域异常体系

所有领域错误携带人类可读 message、机器可读 code 和对应的 HTTP 状态码。
校验 / 授权 / 状态冲突类错误都在任何副作用之前抛出。
"""


class FieldOpsError(Exception):
    """领域基础异常"""

    code: str = "FIELDOPS_ERROR"
    status_code: int = 400

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class ValidationError(FieldOpsError):
    """输入非法（坐标缺失/越界、字段组合错误等）"""

    code = "VALIDATION_ERROR"
    status_code = 422


class AuthenticationError(FieldOpsError):
    """缺少或无法解析身份 token"""

    code = "UNAUTHENTICATED"
    status_code = 401


class ForbiddenError(FieldOpsError):
    """角色不符或未被分配到该任务"""

    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(FieldOpsError):
    """资源不存在"""

    code = "NOT_FOUND"
    status_code = 404


class InvalidStateError(FieldOpsError):
    """任务当前状态不满足操作前置条件

    客户端可在重新获取最新状态后重试。
    """

    code = "INVALID_STATE"
    status_code = 409


class TaskStatusConflictError(InvalidStateError):
    """状态 CAS 失败：并发流转中落败的一方"""

    code = "TASK_STATUS_CONFLICT"

    def __init__(self, task_id: int, expected_status: str) -> None:
        super().__init__(
            f"Task {task_id} is no longer {expected_status}; it was changed concurrently"
        )
        self.task_id = task_id
        self.expected_status = expected_status


class InvalidTransitionError(FieldOpsError):
    """请求的状态流转不在合法流转表中（跳跃、回退、终态后流转）"""

    code = "INVALID_TRANSITION"
    status_code = 409


class AttachmentStorageError(FieldOpsError):
    """存储协作方写入失败，整个现场事件中止"""

    code = "ATTACHMENT_STORAGE_FAILED"
    status_code = 502

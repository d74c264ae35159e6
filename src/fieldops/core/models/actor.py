"""Actor -- 身份协作方提供的操作者信息

核心信任上游身份服务，不重新校验 token 签名。
"""

from pydantic import BaseModel, Field

from .enums import UserRole


class Actor(BaseModel):
    """请求操作者"""

    user_id: str = Field(description="用户 ID")
    roles: list[UserRole] = Field(default_factory=list, description="角色列表")

    @property
    def is_admin(self) -> bool:
        return UserRole.ADMIN in self.roles

    def has_role(self, role: UserRole) -> bool:
        return role in self.roles

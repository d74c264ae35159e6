"""依赖注入模块 -- 通过 FastAPI Depends 注入 Store / 策略 / 操作者

Store 实例通过 app.state 管理，在 lifespan 中初始化/清理。
身份由上游身份服务签发并校验，这里只读取 token 中的 sub 与 roles 声明。
"""

from fastapi import Header, Request
from jose import JWTError, jwt

from fieldops.core.config import FieldEventPolicy
from fieldops.core.exceptions import AuthenticationError
from fieldops.core.models import Actor, UserRole
from fieldops.core.store import StoreGroup

_KNOWN_ROLES = {role.value for role in UserRole}


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_policy(request: Request) -> FieldEventPolicy:
    """从 app.state 获取现场事件校验策略，未初始化时使用默认值"""
    policy = getattr(request.app.state, "policy", None)
    return policy if policy is not None else FieldEventPolicy()


def actor_from_token(token: str) -> Actor:
    """解析 bearer token 中的身份声明

    Raises:
        AuthenticationError: token 无法解析或缺少 sub
    """
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError as e:
        raise AuthenticationError("Malformed bearer token") from e

    user_id = claims.get("sub")
    if not isinstance(user_id, str) or not user_id:
        raise AuthenticationError("Bearer token has no subject")

    raw_roles = claims.get("roles") or []
    if isinstance(raw_roles, str):
        raw_roles = [raw_roles]
    # 未知角色忽略，不授予任何权限
    roles = [UserRole(role) for role in raw_roles if role in _KNOWN_ROLES]
    return Actor(user_id=user_id, roles=roles)


def get_actor(authorization: str | None = Header(default=None)) -> Actor:
    """从 Authorization 头解析当前操作者"""
    if not authorization:
        raise AuthenticationError("Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Authorization header must be a bearer token")
    return actor_from_token(token.strip())

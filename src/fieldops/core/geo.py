"""GPS 距离校验模块

使用 haversine 公式计算两点之间的大圆距离，并生成建议性告警。
告警从不阻塞 check-in/check-out，只原样写入 Activity payload 供审核。
"""

import math

from pydantic import BaseModel, Field

# 地球半径（米）
EARTH_RADIUS_M: float = 6_371_000.0

DEFAULT_DISTANCE_WARNING_M: float = 100.0
DEFAULT_ACCURACY_WARNING_M: float = 50.0

LOW_ACCURACY_WARNING = "low GPS accuracy"


class Coordinates(BaseModel):
    """经纬度坐标（十进制度）"""

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class GeoVerification(BaseModel):
    """位置校验结果

    任务未设置参考位置时 distance_meters 为 None。
    """

    distance_meters: float | None = None
    warnings: list[str] = Field(default_factory=list)


def haversine_distance(a: Coordinates, b: Coordinates) -> float:
    """计算两点之间的大圆距离（米）

    a = sin²(Δφ/2) + cos(φ1)·cos(φ2)·sin²(Δλ/2)
    c = 2·atan2(√a, √(1−a))
    distance = R·c
    """
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    delta_phi = math.radians(b.lat - a.lat)
    delta_lambda = math.radians(b.lng - a.lng)

    h = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    # 浮点误差可能让 h 略超出 [0, 1]
    h = min(1.0, max(0.0, h))
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_M * c


def distance_warning(distance_meters: float) -> str:
    """距离告警文案，距离先四舍五入到整数米（.5 向上）"""
    return f"worker is {math.floor(distance_meters + 0.5)}m from task location"


def verify_location(
    current: Coordinates,
    reference: Coordinates | None,
    accuracy_meters: float | None = None,
    *,
    distance_threshold_m: float = DEFAULT_DISTANCE_WARNING_M,
    accuracy_threshold_m: float = DEFAULT_ACCURACY_WARNING_M,
) -> GeoVerification:
    """校验操作者当前位置

    Args:
        current: 操作者当前 GPS 坐标
        reference: 任务参考坐标，None 表示任务未设置位置（跳过距离校验）
        accuracy_meters: GPS 精度（米），None 表示客户端未上报
        distance_threshold_m: 距离告警阈值，严格大于才告警
        accuracy_threshold_m: 精度告警阈值，严格大于才告警

    Returns:
        GeoVerification
    """
    result = GeoVerification()

    if reference is not None:
        distance = haversine_distance(current, reference)
        result.distance_meters = distance
        if distance > distance_threshold_m:
            result.warnings.append(distance_warning(distance))

    if accuracy_meters is not None and accuracy_meters > accuracy_threshold_m:
        result.warnings.append(LOW_ACCURACY_WARNING)

    return result

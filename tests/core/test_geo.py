"""GPS 距离校验测试

测试内容：
1. haversine 已知距离 / 对称性 / 同点为 0
2. 距离阈值严格大于才告警
3. 精度阈值严格大于才告警
4. 任务无位置时跳过距离校验
"""

import math

import pytest
from fieldops.core import geo
from fieldops.core.geo import (
    EARTH_RADIUS_M,
    LOW_ACCURACY_WARNING,
    Coordinates,
    distance_warning,
    haversine_distance,
    verify_location,
)

HCMC = Coordinates(lat=10.7769, lng=106.7009)
HANOI = Coordinates(lat=21.0285, lng=105.8542)


def _north_of(origin: Coordinates, meters: float) -> Coordinates:
    """沿经线向北偏移指定米数"""
    return Coordinates(lat=origin.lat + math.degrees(meters / EARTH_RADIUS_M), lng=origin.lng)


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_distance(HCMC, HCMC) == 0.0

    def test_symmetric(self):
        assert haversine_distance(HCMC, HANOI) == pytest.approx(haversine_distance(HANOI, HCMC))

    def test_one_degree_of_latitude(self):
        """赤道上 1 度纬度约 111.195 km"""
        a = Coordinates(lat=0, lng=0)
        b = Coordinates(lat=1, lng=0)
        assert haversine_distance(a, b) == pytest.approx(111_195, abs=1)

    def test_hcmc_to_hanoi(self):
        """胡志明市到河内大圆距离约 1,140 km"""
        assert haversine_distance(HCMC, HANOI) == pytest.approx(1_140_000, rel=0.01)

    def test_antipodal_points_do_not_fail(self):
        a = Coordinates(lat=0, lng=0)
        b = Coordinates(lat=0, lng=180)
        assert haversine_distance(a, b) == pytest.approx(math.pi * EARTH_RADIUS_M)

    def test_meridian_offset_matches_requested_distance(self):
        assert haversine_distance(HCMC, _north_of(HCMC, 250)) == pytest.approx(250, abs=0.01)


class TestDistanceWarning:
    def test_within_threshold_no_warning(self):
        result = verify_location(_north_of(HCMC, 50), HCMC)
        assert result.distance_meters == pytest.approx(50, abs=0.01)
        assert result.warnings == []

    def test_exactly_at_threshold_no_warning(self):
        """距离恰好等于阈值不告警（严格大于）"""
        current = _north_of(HCMC, 100)
        distance = haversine_distance(current, HCMC)
        result = verify_location(current, HCMC, distance_threshold_m=distance)
        assert result.warnings == []

    def test_just_over_threshold_warns(self):
        current = _north_of(HCMC, 100)
        distance = haversine_distance(current, HCMC)
        result = verify_location(current, HCMC, distance_threshold_m=distance - 0.001)
        assert result.warnings == [distance_warning(distance)]

    def test_default_threshold_boundary_at_100m(self, monkeypatch):
        """默认阈值 100m：100m 不告警，100.01m 告警"""
        monkeypatch.setattr(geo, "haversine_distance", lambda a, b: 100.0)
        assert verify_location(HANOI, HCMC).warnings == []

        monkeypatch.setattr(geo, "haversine_distance", lambda a, b: 100.01)
        assert verify_location(HANOI, HCMC).warnings == ["worker is 100m from task location"]

    def test_default_threshold_real_offset(self):
        result = verify_location(_north_of(HCMC, 100.6), HCMC)
        assert result.warnings == ["worker is 101m from task location"]
        assert verify_location(_north_of(HCMC, 99.5), HCMC).warnings == []

    def test_far_away_warning_text(self):
        result = verify_location(_north_of(HCMC, 350.2), HCMC)
        assert result.warnings == ["worker is 350m from task location"]

    @pytest.mark.parametrize(
        "distance,expected",
        [
            (100.4, "worker is 100m from task location"),
            (149.5, "worker is 150m from task location"),
            (1234.49, "worker is 1234m from task location"),
        ],
    )
    def test_warning_rounds_to_whole_meters(self, distance: float, expected: str):
        assert distance_warning(distance) == expected

    def test_no_reference_skips_distance(self):
        result = verify_location(HANOI, None)
        assert result.distance_meters is None
        assert result.warnings == []


class TestAccuracyWarning:
    def test_accuracy_at_threshold_no_warning(self):
        result = verify_location(HCMC, HCMC, accuracy_meters=50)
        assert result.warnings == []

    def test_accuracy_over_threshold_warns(self):
        result = verify_location(HCMC, HCMC, accuracy_meters=50.01)
        assert result.warnings == [LOW_ACCURACY_WARNING]

    def test_accuracy_checked_without_reference(self):
        result = verify_location(HCMC, None, accuracy_meters=80)
        assert result.distance_meters is None
        assert result.warnings == [LOW_ACCURACY_WARNING]

    def test_both_warnings_distance_first(self):
        result = verify_location(_north_of(HCMC, 500), HCMC, accuracy_meters=120)
        assert len(result.warnings) == 2
        assert result.warnings[0].startswith("worker is ")
        assert result.warnings[1] == LOW_ACCURACY_WARNING

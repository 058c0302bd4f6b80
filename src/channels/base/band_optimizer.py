"""
通道宽度优化器
在标准差倍数网格上搜索拟合直线周围的通道带宽。
单通道、分段和手动拟合流程共用此搜索，只在 SearchPolicy 上不同
"""
import math
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, List, Optional

import numpy as np
from loguru import logger

from src.data.models.base_models import (
    BandSearchResult, RegressionResult, TieBreak, ToleranceMode
)
from src.channels.base.linear_regression import residual_tolerance


@dataclass(frozen=True)
class SearchPolicy:
    """
    一次倍数网格搜索的参数

    Attributes:
        min_multiplier / max_multiplier / step: 升序的倍数网格
        max_outside_percent: 允许严格落在通道外的最大比例
        touch_tolerance: 触及距离，为通道范围或边界值的比例
        tolerance_mode: touch_tolerance 的基准
        tie_break: 取第一个满足条件的倍数，或触及次数最多的倍数
        require_touch: 要求上轨或下轨至少有一次触及
        count_touches_per_boundary: 同时靠近两条边界的点计两次
        turning_point_priority: 优先选择触及点包含拐点的倍数
        default_multiplier: 网格中没有可接受倍数时返回的值
    """
    min_multiplier: float = 1.0
    max_multiplier: float = 4.0
    step: float = 0.1
    max_outside_percent: float = 0.05
    touch_tolerance: float = 0.05
    tolerance_mode: ToleranceMode = ToleranceMode.BAND_WIDTH
    tie_break: TieBreak = TieBreak.SMALLEST_VALID
    require_touch: bool = False
    count_touches_per_boundary: bool = False
    turning_point_priority: bool = False
    default_multiplier: float = 2.5

    def multipliers(self) -> List[float]:
        """网格取值，四舍五入保证 2.0 精确为 2.0，且不超过 max_multiplier"""
        steps = int(math.floor((self.max_multiplier - self.min_multiplier) / self.step + 1e-9))
        return [round(self.min_multiplier + k * self.step, 10) for k in range(steps + 1)]

    def with_overrides(self, overrides: Optional[Dict[str, Any]]) -> 'SearchPolicy':
        """
        用配置中的值覆盖后的策略副本

        Raises:
            ValueError: 覆盖项不是策略字段
        """
        if not overrides:
            return self

        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown search policy keys: {sorted(unknown)}")

        values = dict(overrides)
        if 'tolerance_mode' in values and not isinstance(values['tolerance_mode'], ToleranceMode):
            values['tolerance_mode'] = ToleranceMode(values['tolerance_mode'])
        if 'tie_break' in values and not isinstance(values['tie_break'], TieBreak):
            values['tie_break'] = TieBreak(values['tie_break'])
        return replace(self, **values)


# 最窄通道，通道外的点不超过5%
TIGHTEST_POLICY = SearchPolicy()

# 分段：至少80%在通道内且有触及，触及次数最多者胜出
SEGMENT_POLICY = SearchPolicy(
    step=0.25,
    max_outside_percent=0.2,
    tolerance_mode=ToleranceMode.BOUNDARY_VALUE,
    tie_break=TieBreak.MOST_TOUCHES,
    require_touch=True,
    count_touches_per_boundary=True
)

# 手动拟合：有触及的最窄通道，优先触及拐点
MANUAL_POLICY = SearchPolicy(
    max_outside_percent=1.0,
    require_touch=True,
    count_touches_per_boundary=True,
    turning_point_priority=True
)


def _invalid_result(policy: SearchPolicy) -> BandSearchResult:
    return BandSearchResult(multiplier=policy.default_multiplier, touch_count=0, valid=False)


def _prefer(incumbent: Optional[BandSearchResult], candidate: BandSearchResult,
            tie_break: TieBreak) -> BandSearchResult:
    if incumbent is None:
        return candidate
    if tie_break is TieBreak.MOST_TOUCHES and candidate.touch_count > incumbent.touch_count:
        return candidate
    return incumbent


def search_band(x: np.ndarray, y: np.ndarray, fit: RegressionResult,
                policy: SearchPolicy = TIGHTEST_POLICY,
                turning_point_mask: Optional[np.ndarray] = None) -> BandSearchResult:
    """
    为拟合直线寻找通道倍数

    Args:
        x: 点的局部索引
        y: 收盘价
        fit: 同一组点上的回归结果
        policy: 网格、接受条件和并列规则
        turning_point_mask: 标记拐点位置的布尔数组

    Returns:
        BandSearchResult；调用方必须检查 valid
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    n = len(y)
    if n == 0 or not fit.valid:
        return _invalid_result(policy)

    predicted = fit.predict(x)
    residuals = y - predicted
    float_tolerance = residual_tolerance(y)

    best: Optional[BandSearchResult] = None
    fallback: Optional[BandSearchResult] = None

    for multiplier in policy.multipliers():
        width = fit.residual_std_dev * multiplier
        upper = predicted + width
        lower = predicted - width

        outside_fraction = float(np.sum(np.abs(residuals) > width + float_tolerance)) / n
        if outside_fraction > policy.max_outside_percent:
            continue

        if policy.tolerance_mode is ToleranceMode.BAND_WIDTH:
            upper_limit = lower_limit = policy.touch_tolerance * 2 * width + float_tolerance
        else:
            upper_limit = np.abs(upper * policy.touch_tolerance) + float_tolerance
            lower_limit = np.abs(lower * policy.touch_tolerance) + float_tolerance

        near_upper = np.abs(y - upper) <= upper_limit
        near_lower = np.abs(y - lower) <= lower_limit
        upper_touch = bool(np.any(near_upper))
        lower_touch = bool(np.any(near_lower))

        if policy.require_touch and not (upper_touch or lower_touch):
            continue

        if policy.count_touches_per_boundary:
            touch_count = int(np.sum(near_upper)) + int(np.sum(near_lower))
        else:
            touch_count = int(np.sum(near_upper | near_lower))

        turning_point_touch = False
        if turning_point_mask is not None:
            turning_point_touch = bool(np.any((near_upper | near_lower) & turning_point_mask))

        candidate = BandSearchResult(
            multiplier=multiplier,
            touch_count=touch_count,
            valid=True,
            upper_touch=upper_touch,
            lower_touch=lower_touch,
            turning_point_touch=turning_point_touch,
            outside_fraction=outside_fraction
        )

        if policy.turning_point_priority and not turning_point_touch:
            fallback = _prefer(fallback, candidate, policy.tie_break)
            continue

        if policy.tie_break is TieBreak.SMALLEST_VALID:
            return candidate
        best = _prefer(best, candidate, policy.tie_break)

    if best is not None:
        return best
    if fallback is not None:
        logger.debug(f"No turning-point touch in grid, falling back to {fallback.multiplier}")
        return fallback
    return _invalid_result(policy)

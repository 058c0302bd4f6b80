"""
窗口扩展 / 趋势破坏检测
每次将回看窗口扩大一根K线并重新拟合通道，直到新加入的K线大多落在
上一个通道外（BROKEN）、无法找到可接受的通道（BROKEN）或数据用尽（EXHAUSTED_DATA）
"""
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np
from loguru import logger

from src.data.models.base_models import BandSearchResult, ExtensionState, RegressionResult
from src.channels.base.band_optimizer import SearchPolicy, TIGHTEST_POLICY, search_band
from src.channels.base.linear_regression import fit_line, residual_tolerance


class GrowthAnchor(Enum):
    """窗口扩展时固定的一端"""
    NEWEST = "newest"  # 固定在最新K线，向较旧数据扩展
    OLDEST = "oldest"  # 固定在最旧K线，向较新数据扩展


@dataclass
class ExtensionResult:
    """一次扩展的最终窗口"""
    count: int
    fit: RegressionResult
    search: BandSearchResult
    state: ExtensionState
    steps: int = 0

    @property
    def channel_width(self) -> float:
        return self.fit.residual_std_dev * self.search.multiplier


class WindowExtender:
    """带趋势破坏检测的回看窗口扩展器"""

    def __init__(self,
                 policy: SearchPolicy = TIGHTEST_POLICY,
                 new_fraction: float = 0.1,
                 break_threshold: float = 0.5,
                 min_points: int = 10):
        """
        Args:
            policy: 每次重新拟合后使用的通道搜索策略
            new_fraction: 扩展一侧用于与上一个通道比较的窗口比例
            break_threshold: 新增部分落在通道外的比例超过此值即认为趋势被破坏
            min_points: 拟合前窗口中至少需要的有效K线数
        """
        self.policy = policy
        self.new_fraction = new_fraction
        self.retained_fraction = round(1.0 - new_fraction, 10)
        self.break_threshold = break_threshold
        self.min_points = min_points

    @staticmethod
    def _window(values: np.ndarray, include: np.ndarray, count: int,
                anchor: GrowthAnchor) -> Tuple[np.ndarray, np.ndarray]:
        """有效K线的局部索引（0为窗口最旧K线）和收盘价"""
        if anchor is GrowthAnchor.NEWEST:
            window = values[len(values) - count:]
            mask = include[len(values) - count:]
        else:
            window = values[:count]
            mask = include[:count]
        x = np.arange(count, dtype=float)
        return x[mask], window[mask]

    def _fit(self, x: np.ndarray, y: np.ndarray) -> Tuple[RegressionResult, BandSearchResult]:
        fit = fit_line(x, y)
        return fit, search_band(x, y, fit, self.policy)

    def _trend_broken(self, x: np.ndarray, y: np.ndarray, count: int, anchor: GrowthAnchor,
                      shift: int, fit: RegressionResult, width: float) -> bool:
        """用上一个通道检查窗口新增部分"""
        keep = int(math.floor((count - 1) * self.retained_fraction))
        if anchor is GrowthAnchor.NEWEST:
            in_new_share = x < count - keep
        else:
            in_new_share = x >= keep

        new_x = x[in_new_share]
        new_y = y[in_new_share]
        if len(new_y) == 0:
            return False

        predicted = fit.predict(new_x - shift)
        outside = np.abs(new_y - predicted) > width + residual_tolerance(new_y)
        outside_fraction = float(np.sum(outside)) / len(new_y)
        return outside_fraction > self.break_threshold

    def extend(self, values: np.ndarray, start_count: int,
               anchor: GrowthAnchor = GrowthAnchor.NEWEST,
               include: Optional[np.ndarray] = None) -> ExtensionResult:
        """
        扩展窗口直到趋势被破坏或数据用尽

        Args:
            values: 整个区域的收盘价，最旧在前
            start_count: 初始窗口大小（不超过 len(values)）
            anchor: 窗口固定的一端
            include: 参与拟合的K线（成交量过滤），默认全部

        Returns:
            描述最后一个被接受窗口的 ExtensionResult
        """
        values = np.asarray(values, dtype=float)
        total = len(values)
        include = np.ones(total, dtype=bool) if include is None else np.asarray(include, dtype=bool)
        count = min(start_count, total)

        x, y = self._window(values, include, count, anchor)
        if len(y) < self.min_points:
            logger.debug(f"Initial window of {count} bars has only {len(y)} usable points")
            return ExtensionResult(count=count, fit=fit_line(x, y),
                                   search=BandSearchResult(self.policy.default_multiplier, 0, False),
                                   state=ExtensionState.BROKEN)

        fit, search = self._fit(x, y)
        if not search.valid:
            logger.debug(f"No acceptable band for the initial window of {count} bars")
            return ExtensionResult(count=count, fit=fit, search=search, state=ExtensionState.BROKEN)

        state = ExtensionState.GROWING
        steps = 0
        for candidate in range(count + 1, total + 1):
            x, y = self._window(values, include, candidate, anchor)
            if len(y) < self.min_points:
                continue

            shift = candidate - count if anchor is GrowthAnchor.NEWEST else 0
            width = fit.residual_std_dev * search.multiplier
            if self._trend_broken(x, y, candidate, anchor, shift, fit, width):
                logger.debug(f"Trend broken extending {count} -> {candidate} bars")
                state = ExtensionState.BROKEN
                break

            extended_fit, extended_search = self._fit(x, y)
            if not extended_search.valid:
                logger.debug(f"No acceptable band at {candidate} bars, keeping {count}")
                state = ExtensionState.BROKEN
                break

            count, fit, search = candidate, extended_fit, extended_search
            steps += 1

        if state is ExtensionState.GROWING:
            state = ExtensionState.EXHAUSTED_DATA

        return ExtensionResult(count=count, fit=fit, search=search, state=state, steps=steps)

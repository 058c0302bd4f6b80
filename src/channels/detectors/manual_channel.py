"""
交互式通道拟合
在用户选择的区间上拟合通道，优先选择触及拐点的带宽；
并在价格仍处于通道内时向两侧扩展已有通道
"""
from typing import List, Optional

import numpy as np
from loguru import logger

from src.data.models.base_models import Channel, TurningPoint, TurningPointType
from src.data.connectors.price_series import PriceInput, closes_of, to_price_points
from src.channels.base.band_optimizer import MANUAL_POLICY, search_band
from src.channels.base.linear_regression import (
    channel_distribution, count_band_touches, fit_window, r_squared, residual_tolerance
)
from src.channels.base.turning_points import find_turning_points, turning_point_mask


class ManualChannelFitter:
    """手动通道的拟合与扩展"""

    def __init__(self, config: dict = None):
        """
        初始化手动通道拟合器

        Args:
            config: 配置中的 manual_channel 部分
        """
        self.config = {**self.get_default_config(), **(config or {})}
        self.min_points = int(self.config['min_points'])
        self.turning_point_window = int(self.config['turning_point_window'])
        self.max_multiplier = float(self.config['max_multiplier'])
        self.touch_tolerance = float(self.config['touch_tolerance'])
        self.edge_fraction = float(self.config['extend_edge_fraction'])
        self.break_threshold = float(self.config['extend_break_threshold'])
        self.turning_point_tolerance = float(self.config['extend_turning_point_tolerance'])

        self.policy = MANUAL_POLICY.with_overrides(self.config.get('search'))

    @staticmethod
    def get_default_config() -> dict:
        return {
            'min_points': 5,
            'turning_point_window': 3,
            'max_multiplier': 4.0,
            'touch_tolerance': 0.05,
            'extend_edge_fraction': 0.1,
            'extend_break_threshold': 0.1,
            'extend_turning_point_tolerance': 0.02,
            'search': {}
        }

    def fit(self, series: PriceInput, start_index: int, end_index: int) -> Optional[Channel]:
        """
        在两个序列索引之间的闭区间上拟合通道

        Args:
            series: 价格序列，最新在前
            start_index: 选区的一端（顺序不限）
            end_index: 选区的另一端（包含）

        Returns:
            覆盖 [min, max + 1) 的通道；选区少于 min_points 根K线时返回 None

        Raises:
            ValueError: 索引超出序列范围
        """
        closes = closes_of(to_price_points(series))
        low, high = min(start_index, end_index), max(start_index, end_index)
        if low < 0 or high >= len(closes):
            raise ValueError(f"Selection [{low}, {high}] outside series of {len(closes)} bars")

        count = high - low + 1
        if count < self.min_points:
            logger.debug(f"Manual selection of {count} bars is too short to fit")
            return None

        end = high + 1
        window = closes[low:end][::-1]
        x = np.arange(count, dtype=float)
        fit = fit_window(window)

        turning_points = find_turning_points(window, self.turning_point_window)
        mask = turning_point_mask(count, turning_points)
        search = search_band(x, window, fit, self.policy, mask)
        multiplier = search.multiplier

        if not search.turning_point_touch and turning_points and fit.residual_std_dev > 0:
            multiplier = self._widen_to_turning_point(window, fit.slope, fit.intercept,
                                                      fit.residual_std_dev, turning_points,
                                                      multiplier)

        width = fit.residual_std_dev * multiplier
        logger.debug(f"Manual channel [{low}, {end}): mult={multiplier:.3f}, "
                     f"{len(turning_points)} turning points")
        return self._channel(low, end, window, fit.slope, fit.intercept,
                             fit.residual_std_dev, multiplier, width)

    def _widen_to_turning_point(self, window: np.ndarray, slope: float, intercept: float,
                                std_dev: float, turning_points: List[TurningPoint],
                                base_multiplier: float) -> float:
        """使某个拐点落在边界上且不小于base的最小倍数，受上限约束"""
        required = [abs(tp.value - (slope * tp.index + intercept)) / std_dev for tp in turning_points]
        reachable = [value for value in required if value >= base_multiplier]
        if not reachable:
            return base_multiplier
        return min(min(reachable), self.max_multiplier)

    def extend(self, channel: Channel, series: PriceInput) -> Channel:
        """
        保持趋势线和宽度不变，向较旧和较新K线两侧扩展通道

        Args:
            channel: 待扩展的通道，通常来自 fit
            series: 拟合该通道所用的价格序列，最新在前

        Returns:
            扩展后的通道；两端都未移动时返回原通道
        """
        closes = closes_of(to_price_points(series))
        slope = channel.slope
        width = channel.channel_width
        start, end = channel.start_index, channel.end_index
        intercept = channel.intercept

        # 向较旧K线扩展：局部原点每步后移一根K线
        older_extended = False
        while end < len(closes):
            candidate = end + 1
            candidate_intercept = intercept - slope
            length = candidate - start
            edge = max(1, int(np.floor(length * self.edge_fraction)))
            indices = np.arange(candidate - edge, candidate)
            predicted = slope * (candidate - 1 - indices) + candidate_intercept
            if self._edge_broken(closes[indices], predicted, width):
                break
            end = candidate
            intercept = candidate_intercept
            older_extended = True

        # 向较新K线扩展：最旧K线仍为局部索引0
        newer_extended = False
        while start > 0:
            candidate = start - 1
            length = end - candidate
            edge = max(1, int(np.floor(length * self.edge_fraction)))
            indices = np.arange(candidate, candidate + edge)
            if self._edge_broken(closes[indices], slope * (end - 1 - indices) + intercept, width):
                break
            start = candidate
            newer_extended = True

        if not (newer_extended or older_extended):
            logger.debug("Manual channel could not be extended in either direction")
            return channel

        window = closes[start:end][::-1]
        multiplier = self._covering_multiplier(window, slope, intercept, channel.std_dev,
                                               channel.optimal_stdev_mult)
        logger.info(f"Extended manual channel [{channel.start_index}, {channel.end_index}) "
                    f"-> [{start}, {end}), mult={multiplier:.3f}")
        return self._channel(start, end, window, slope, intercept, channel.std_dev,
                             multiplier, channel.std_dev * multiplier)

    def _edge_broken(self, values: np.ndarray, predicted: np.ndarray, width: float) -> bool:
        outside = np.abs(values - predicted) > width + residual_tolerance(values)
        return float(np.sum(outside)) / len(values) > self.break_threshold

    def _covering_multiplier(self, window: np.ndarray, slope: float, intercept: float,
                             std_dev: float, multiplier: float) -> float:
        """
        扩展后窗口的倍数

        覆盖所有残差并重新尝试触及拐点；与首次拟合不同，结果不设上限
        """
        if std_dev <= 0:
            return multiplier

        x = np.arange(len(window), dtype=float)
        residuals = window - (slope * x + intercept)
        cover_all = float(np.max(np.abs(residuals))) / std_dev

        turning_points = find_turning_points(window, self.turning_point_window)
        if turning_points and not self._turning_point_touches(turning_points, slope, intercept,
                                                              std_dev * multiplier):
            required = [abs(tp.value - (slope * tp.index + intercept)) / std_dev
                        for tp in turning_points]
            closest = min(required, key=lambda value: abs(value - multiplier))
            multiplier = max(closest, multiplier, cover_all)

        return max(multiplier, cover_all)

    def _turning_point_touches(self, turning_points: List[TurningPoint], slope: float,
                               intercept: float, width: float) -> bool:
        band_range = 2 * width
        for tp in turning_points:
            predicted = slope * tp.index + intercept
            if tp.type is TurningPointType.MAX:
                distance = abs(tp.value - (predicted + width))
            else:
                distance = abs(tp.value - (predicted - width))
            if distance <= band_range * self.turning_point_tolerance:
                return True
        return False

    def _channel(self, start: int, end: int, window: np.ndarray, slope: float, intercept: float,
                 std_dev: float, multiplier: float, width: float) -> Channel:
        x = np.arange(len(window), dtype=float)
        distribution = channel_distribution(x, window, slope, intercept, width)
        return Channel(
            start_index=start,
            end_index=end,
            slope=slope,
            intercept=intercept,
            channel_width=width,
            std_dev=std_dev,
            optimal_stdev_mult=multiplier,
            lookback_count=end - start,
            r_squared=r_squared(x, window, slope, intercept),
            touch_count=count_band_touches(x, window, slope, intercept, width,
                                           self.touch_tolerance, per_boundary=True),
            percent_above=distribution['percent_above'],
            percent_below=distribution['percent_below'],
            percent_outside=distribution['percent_outside']
        )


def fit_manual_channel(series: PriceInput, start_index: int, end_index: int,
                       config: dict = None) -> Optional[Channel]:
    """ManualChannelFitter.fit 的函数式入口"""
    return ManualChannelFitter(config).fit(series, start_index, end_index)


def extend_manual_channel(channel: Channel, series: PriceInput, config: dict = None) -> Channel:
    """ManualChannelFitter.extend 的函数式入口"""
    return ManualChannelFitter(config).extend(channel, series)

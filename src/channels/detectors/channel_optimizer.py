"""
单通道优化器
在最新在前的价格序列上寻找最近的最佳趋势通道，
或根据保存的参数重建通道，使图表重绘时通道保持稳定
"""
from typing import Optional

import numpy as np
from loguru import logger

from src.data.models.base_models import (
    Channel, ChannelOptimization, OptimizedParameters, ReuseMode
)
from src.data.connectors.price_series import PriceInput, closes_of, to_price_points, volumes_of
from src.channels.base.band_optimizer import TIGHTEST_POLICY
from src.channels.base.linear_regression import (
    channel_distribution, count_band_touches, fit_window, r_squared
)
from src.channels.base.volume_filter import volume_mask
from src.channels.base.window_extender import GrowthAnchor, WindowExtender


class ChannelOptimizer:
    """最近回看窗口的最佳通道"""

    def __init__(self, config: dict = None):
        """
        初始化单通道优化器

        Args:
            config: 配置中的 channel_optimizer 部分
        """
        self.config = {**self.get_default_config(), **(config or {})}
        self.min_points = int(self.config['min_points'])
        self.default_lookback = int(self.config['default_lookback'])
        self.volume_percentile = float(self.config['volume_percentile'])
        self.touch_tolerance = float(self.config['touch_tolerance'])

        self.policy = TIGHTEST_POLICY.with_overrides(self.config.get('search'))
        self.extender = WindowExtender(
            policy=self.policy,
            new_fraction=float(self.config['new_data_fraction']),
            break_threshold=float(self.config['trend_break_threshold']),
            min_points=self.min_points
        )

    @staticmethod
    def get_default_config() -> dict:
        return {
            'min_points': 10,
            'default_lookback': 100,
            'new_data_fraction': 0.1,
            'trend_break_threshold': 0.5,
            'volume_percentile': 0.2,
            'touch_tolerance': 0.05,
            'search': {}
        }

    def optimize(self, series: PriceInput,
                 volume_filter: bool = False,
                 prior: Optional[OptimizedParameters] = None,
                 reuse_mode: ReuseMode = ReuseMode.REUSE_EXACT) -> Optional[ChannelOptimization]:
        """
        计算最新在前价格序列的通道

        Args:
            series: 价格序列，最新在前
            volume_filter: 搜索通道时忽略低成交量K线
            prior: 调用方上次保存的参数
            reuse_mode: REUSE_EXACT 在参数完整时直接重建；
                RECOMPUTE 总是重新搜索（有 prior.lookback_count 时从该长度开始）

        Returns:
            包含通道和待保存参数的 ChannelOptimization，数据不足时返回 None
        """
        points = to_price_points(series)
        if len(points) < self.min_points:
            logger.debug(f"Insufficient data for channel optimization: {len(points)} bars")
            return None

        closes = closes_of(points)
        include = None
        if volume_filter:
            mask = volume_mask(volumes_of(points), self.volume_percentile)
            if int(mask.sum()) < self.min_points:
                logger.warning(f"Only {int(mask.sum())} bars left after volume filtering")
                return None
            include = mask[::-1]

        prior = prior or OptimizedParameters()
        touch_count = None

        if reuse_mode is ReuseMode.REUSE_EXACT and prior.is_complete:
            lookback = min(max(int(prior.lookback_count), self.min_points), len(closes))
            multiplier = float(prior.stdev_multiplier)
            parameters = prior
            logger.debug(f"Reusing stored channel parameters: lookback={lookback}, mult={multiplier}")
        else:
            start = prior.lookback_count if prior.lookback_count else self.default_lookback
            start = max(int(start), self.min_points)
            result = self.extender.extend(closes[::-1], start, GrowthAnchor.NEWEST, include)
            if not result.search.valid:
                logger.warning(f"No acceptable band for the initial {result.count}-bar window, "
                               f"using default multiplier {result.search.multiplier}")
            lookback = result.count
            multiplier = result.search.multiplier
            touch_count = result.search.touch_count
            parameters = OptimizedParameters(lookback_count=lookback, stdev_multiplier=multiplier)
            logger.debug(f"Optimized channel: lookback={lookback}, mult={multiplier}, "
                         f"state={result.state.value}, steps={result.steps}")

        channel = self._build_channel(closes, lookback, multiplier, touch_count)
        return ChannelOptimization(channel=channel, parameters=parameters)

    def _build_channel(self, closes: np.ndarray, lookback: int, multiplier: float,
                       touch_count: Optional[int]) -> Channel:
        """在完整回看窗口上重新回归并计算统计量"""
        window = closes[:lookback][::-1]
        x = np.arange(lookback, dtype=float)
        fit = fit_window(window)
        width = fit.residual_std_dev * multiplier

        distribution = channel_distribution(x, window, fit.slope, fit.intercept, width)
        if touch_count is None:
            touch_count = count_band_touches(x, window, fit.slope, fit.intercept, width,
                                             self.touch_tolerance)

        return Channel(
            start_index=0,
            end_index=lookback,
            slope=fit.slope,
            intercept=fit.intercept,
            channel_width=width,
            std_dev=fit.residual_std_dev,
            optimal_stdev_mult=multiplier,
            lookback_count=lookback,
            r_squared=r_squared(x, window, fit.slope, fit.intercept),
            touch_count=touch_count,
            percent_above=distribution['percent_above'],
            percent_below=distribution['percent_below'],
            percent_outside=distribution['percent_outside']
        )


def optimize_channel(series: PriceInput,
                     volume_filter: bool = False,
                     prior: Optional[OptimizedParameters] = None,
                     reuse_mode: ReuseMode = ReuseMode.REUSE_EXACT,
                     config: dict = None) -> Optional[ChannelOptimization]:
    """ChannelOptimizer.optimize 的函数式入口"""
    return ChannelOptimizer(config).optimize(series, volume_filter, prior, reuse_mode)

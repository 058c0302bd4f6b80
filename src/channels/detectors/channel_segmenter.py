"""
全历史通道分段
反复扩展通道直到趋势被破坏，并从破坏点开始下一个通道，
将最新在前的价格历史划分为连续的通道
"""
from typing import List

import numpy as np
from loguru import logger

from src.data.models.base_models import Channel, ExtensionState, SegmentDirection
from src.data.connectors.price_series import PriceInput, closes_of, to_price_points
from src.channels.base.band_optimizer import SEGMENT_POLICY
from src.channels.base.linear_regression import (
    channel_distribution, count_band_touches, r_squared
)
from src.channels.base.window_extender import ExtensionResult, GrowthAnchor, WindowExtender


class ChannelSegmenter:
    """完整价格历史的正向与反向通道分段"""

    def __init__(self, config: dict = None):
        """
        初始化通道分段器

        Args:
            config: 配置中的 segmenter 部分
        """
        self.config = {**self.get_default_config(), **(config or {})}
        self.min_lookback = int(self.config['min_lookback'])
        self.touch_tolerance = float(self.config['touch_tolerance'])

        self.policy = SEGMENT_POLICY.with_overrides(self.config.get('search'))
        self.extender = WindowExtender(
            policy=self.policy,
            new_fraction=float(self.config['new_data_fraction']),
            break_threshold=float(self.config['trend_break_threshold']),
            min_points=2
        )

    @staticmethod
    def get_default_config() -> dict:
        return {
            'min_lookback': 20,
            'new_data_fraction': 0.2,
            'trend_break_threshold': 0.5,
            'touch_tolerance': 0.05,
            'search': {}
        }

    def find_all_channels(self, series: PriceInput) -> List[Channel]:
        """
        从最新K线（索引0）开始分段，向较旧数据扩展

        Args:
            series: 价格序列，最新在前

        Returns:
            从新到旧排列的通道，每个通道从上一个通道的破坏点开始
        """
        closes = closes_of(to_price_points(series))
        total = len(closes)
        if total < self.min_lookback:
            logger.debug(f"Insufficient data for segmentation: {total} bars")
            return []

        channels = []
        start = 0
        while total - start >= self.min_lookback:
            region = closes[start:][::-1]
            result = self.extender.extend(region, self.min_lookback, GrowthAnchor.NEWEST)
            end = start + result.count
            channels.append(self._build_channel(closes, start, end, result, SegmentDirection.FORWARD))

            if result.state is not ExtensionState.BROKEN:
                break
            start = end

        logger.info(f"Forward segmentation found {len(channels)} channels over {total} bars")
        return channels

    def find_all_channels_reversed(self, series: PriceInput) -> List[Channel]:
        """
        从序列最后一根K线开始分段，向索引0扩展

        Args:
            series: 价格序列，最新在前

        Returns:
            从序列末端开始排列的通道，每个通道在上一个通道起点处结束
        """
        closes = closes_of(to_price_points(series))
        total = len(closes)
        if total < self.min_lookback:
            logger.debug(f"Insufficient data for reverse segmentation: {total} bars")
            return []

        channels = []
        end = total
        while end >= self.min_lookback:
            region = closes[:end][::-1]
            result = self.extender.extend(region, self.min_lookback, GrowthAnchor.OLDEST)
            start = end - result.count
            channels.append(self._build_channel(closes, start, end, result, SegmentDirection.REVERSE))

            if result.state is not ExtensionState.BROKEN:
                break
            end = start

        logger.info(f"Reverse segmentation found {len(channels)} channels over {total} bars")
        return channels

    def _build_channel(self, closes: np.ndarray, start: int, end: int,
                       result: ExtensionResult, direction: SegmentDirection) -> Channel:
        window = closes[start:end][::-1]
        x = np.arange(len(window), dtype=float)
        fit = result.fit
        multiplier = result.search.multiplier
        width = fit.residual_std_dev * multiplier
        distribution = channel_distribution(x, window, fit.slope, fit.intercept, width)

        return Channel(
            start_index=start,
            end_index=end,
            slope=fit.slope,
            intercept=fit.intercept,
            channel_width=width,
            std_dev=fit.residual_std_dev,
            optimal_stdev_mult=multiplier,
            lookback_count=end - start,
            r_squared=r_squared(x, window, fit.slope, fit.intercept),
            touch_count=count_band_touches(x, window, fit.slope, fit.intercept, width,
                                           self.touch_tolerance),
            percent_above=distribution['percent_above'],
            percent_below=distribution['percent_below'],
            percent_outside=distribution['percent_outside'],
            direction=direction
        )


def find_all_channels(series: PriceInput, config: dict = None) -> List[Channel]:
    """正向分段的函数式入口"""
    return ChannelSegmenter(config).find_all_channels(series)


def find_all_channels_reversed(series: PriceInput, config: dict = None) -> List[Channel]:
    """反向分段的函数式入口"""
    return ChannelSegmenter(config).find_all_channels_reversed(series)

"""
通道成交量区域分析
将通道高度划分为若干水平区域，统计收盘于每个区域内的成交量占比
"""
from typing import Dict, List

import numpy as np
from loguru import logger

from src.data.models.base_models import Channel, ZoneWeight
from src.data.connectors.price_series import PriceInput, closes_of, to_price_points, volumes_of


def zone_count_for_period(days: int) -> int:
    """图表周期对应的区域数量：不足一年3个，否则5个"""
    return 3 if days < 365 else 5


def initial_lookback_for_period(days: int) -> int:
    """图表周期对应的初始回看长度"""
    if days >= 1825:
        return 100
    if days >= 1095:
        return 80
    if days >= 365:
        return 40
    return 20


class ZoneWeightCalculator:
    """通道区域成交量分布计算器"""

    def __init__(self, config: dict = None):
        self.config = {**self.get_default_config(), **(config or {})}
        self.default_num_zones = int(self.config['num_zones'])
        self.default_volume = float(self.config['default_volume'])

    @staticmethod
    def get_default_config() -> dict:
        return {
            'num_zones': 5,
            'default_volume': 1.0
        }

    def zone_weights(self, series: PriceInput, channel: Channel,
                     num_zones: int = None) -> List[ZoneWeight]:
        """
        计算各区域的成交量占比，从下轨到上轨排列

        区域k覆盖通道高度的 [k/N, (k+1)/N)，最上方区域包含上轨。
        收盘价在通道外的K线不参与统计。

        Args:
            series: 价格序列，最新在前
            channel: 通道，其索引范围对应series
            num_zones: 区域数量，默认使用配置值

        Returns:
            每个区域一个ZoneWeight；通道宽度为0时返回空列表

        Raises:
            ValueError: num_zones小于1
        """
        num_zones = self.default_num_zones if num_zones is None else int(num_zones)
        if num_zones < 1:
            raise ValueError(f"num_zones must be at least 1, got {num_zones}")
        if channel.channel_width <= 0:
            logger.debug("Zero-width channel has no zones")
            return []

        points = to_price_points(series)
        closes = closes_of(points)
        volumes = volumes_of(points)
        volumes = np.where(np.isnan(volumes), self.default_volume, volumes)

        start = max(channel.start_index, 0)
        end = min(channel.end_index, len(closes))
        indices = np.arange(start, end)

        zone_volume = np.zeros(num_zones)
        total_volume = 0.0
        if len(indices):
            lower = np.array([channel.lower_at(i) for i in indices])
            upper = np.array([channel.upper_at(i) for i in indices])
            band_range = 2 * channel.channel_width
            bar_closes = closes[indices]
            bar_volumes = volumes[indices]

            inside = (bar_closes >= lower) & (bar_closes <= upper)
            # 内部分界线 lower + range*k/N，落在分界线上的收盘价归入上方区域
            edges = lower[:, None] + band_range * np.arange(1, num_zones) / num_zones
            zones = np.sum(bar_closes[:, None] >= edges, axis=1)
            zones = np.minimum(zones[inside], num_zones - 1)
            np.add.at(zone_volume, zones, bar_volumes[inside])
            total_volume = float(np.sum(bar_volumes[inside]))

        weights = []
        for k in range(num_zones):
            weight = float(zone_volume[k] / total_volume) if total_volume > 0 else 0.0
            weights.append(ZoneWeight(
                zone_index=k,
                zone_start=k / num_zones,
                zone_end=(k + 1) / num_zones,
                volume_weight=weight
            ))
        return weights

    def all_channel_zones(self, series: PriceInput, channels: List[Channel],
                          num_zones: int = None) -> Dict[int, List[ZoneWeight]]:
        """所有通道的区域占比，按通道在列表中的位置索引"""
        return {i: self.zone_weights(series, channel, num_zones) for i, channel in enumerate(channels)}


def zone_weights(series: PriceInput, channel: Channel, num_zones: int = 5) -> List[ZoneWeight]:
    """ZoneWeightCalculator.zone_weights 的函数式入口"""
    return ZoneWeightCalculator().zone_weights(series, channel, num_zones)

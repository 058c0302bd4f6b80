"""
最佳通道查找器
模拟通道起点、长度和宽度的各种组合，保留边界被最多拐点触及的通道
"""
from typing import List, Optional

import numpy as np
from loguru import logger

from src.data.models.base_models import BestChannelCandidate, TurningPoint, TurningPointType
from src.data.connectors.price_series import PriceInput, closes_of, to_price_points, volumes_of
from src.channels.base.linear_regression import fit_line, residual_tolerance
from src.channels.base.turning_points import find_turning_points
from src.channels.base.volume_filter import volume_mask


class BestChannelFinder:
    """暴力搜索拐点触及次数最多的通道"""

    def __init__(self, config: dict = None):
        """
        初始化最佳通道查找器

        Args:
            config: 配置中的 best_channel_finder 部分
        """
        self.config = {**self.get_default_config(), **(config or {})}
        self.min_length = int(self.config['min_length'])
        self.max_length = self.config['max_length']
        self.start_step = int(self.config['start_step'])
        self.length_step = int(self.config['length_step'])
        self.stdev_multipliers = [float(m) for m in self.config['stdev_multipliers']]
        self.touch_tolerance = float(self.config['touch_tolerance'])
        self.max_outside_fraction = float(self.config['max_outside_fraction'])
        self.similarity_threshold = float(self.config['similarity_threshold'])
        self.volume_percentile = float(self.config['volume_percentile'])
        self.overlap_threshold = float(self.config['overlap_threshold'])
        self.turning_point_window = int(self.config['turning_point_window'])

        if self.start_step < 1 or self.length_step < 1:
            raise ValueError("start_step and length_step must be positive")

    @staticmethod
    def get_default_config() -> dict:
        return {
            'min_length': 20,
            'max_length': None,
            'start_step': 5,
            'length_step': 5,
            'stdev_multipliers': [1.0, 1.5, 2.0, 2.5, 3.0, 3.5, 4.0],
            'touch_tolerance': 0.05,
            'max_outside_fraction': 0.1,
            'similarity_threshold': 0.9,
            'volume_percentile': 0.1,
            'overlap_threshold': 0.5,
            'turning_point_window': 3
        }

    def find_best_channels(self, series: PriceInput, volume_filter: bool = False,
                           min_start_index: int = 0,
                           max_start_index: Optional[int] = None) -> List[BestChannelCandidate]:
        """
        模拟通道并返回触及次数接近最大值的候选

        每个候选覆盖 series[start, start + length)，以最新K线为锚点向较旧数据延伸。

        Args:
            series: 价格序列，最新在前
            volume_filter: 是否忽略成交量最低10%的K线
            min_start_index: 尝试的第一个起点索引
            max_start_index: 尝试的最后一个起点索引，默认 len - min_length

        Returns:
            按触及次数、长度依次降序排列的候选列表
        """
        points = to_price_points(series)
        closes = closes_of(points)
        total = len(closes)
        if total < self.min_length:
            logger.debug(f"Insufficient data for best channel search: {total} bars")
            return []

        include = np.ones(total, dtype=bool)
        if volume_filter:
            mask = volume_mask(volumes_of(points), self.volume_percentile)
            if int(mask.sum()) >= self.min_length:
                include = mask
            else:
                logger.debug("Volume filter would leave too few bars, searching all bars")

        turning_points = [tp for tp in find_turning_points(closes, self.turning_point_window)
                          if include[tp.index]]

        if max_start_index is None:
            max_start_index = max(0, total - self.min_length)

        candidates = []
        for start in range(min_start_index, max_start_index + 1, self.start_step):
            remaining = total - start
            if remaining < self.min_length:
                continue
            longest = min(self.max_length, remaining) if self.max_length else remaining

            for length in range(self.min_length, longest + 1, self.length_step):
                candidates.extend(self._simulate(closes, include, turning_points, start, length))

        if not candidates:
            logger.info("Best channel search found no candidates")
            return []

        max_touches = max(c.touch_count for c in candidates)
        threshold = int(np.floor(max_touches * self.similarity_threshold))
        best = [c for c in candidates if c.touch_count >= threshold]
        best.sort(key=lambda c: (-c.touch_count, -c.length))

        logger.info(f"Best channel search kept {len(best)} of {len(candidates)} candidates "
                    f"(max touches {max_touches})")
        return best

    def _simulate(self, closes: np.ndarray, include: np.ndarray,
                  turning_points: List[TurningPoint], start: int,
                  length: int) -> List[BestChannelCandidate]:
        """在一组起点/长度组合上尝试所有倍数"""
        end = start + length
        window = closes[start:end][::-1]
        considered = include[start:end][::-1]
        x = np.arange(length, dtype=float)[considered]
        y = window[considered]

        fit = fit_line(x, y)
        if not fit.valid:
            return []

        segment_points = [tp for tp in turning_points if start <= tp.index < end]
        if not segment_points:
            return []

        tp_x = np.array([end - 1 - tp.index for tp in segment_points], dtype=float)
        tp_y = np.array([tp.value for tp in segment_points], dtype=float)
        tp_max = np.array([tp.type is TurningPointType.MAX for tp in segment_points])
        tp_predicted = fit.predict(tp_x)

        residuals = y - fit.predict(x)
        float_tolerance = residual_tolerance(y)

        results = []
        for multiplier in self.stdev_multipliers:
            width = fit.residual_std_dev * multiplier
            tolerance = width * 2 * self.touch_tolerance + float_tolerance

            outside = np.abs(residuals) - width > tolerance
            outside_fraction = float(np.sum(outside)) / len(y)
            if outside_fraction > self.max_outside_fraction:
                continue

            touches_upper = (np.abs(tp_y - (tp_predicted + width)) <= tolerance) & tp_max & (tp_y >= tp_predicted)
            touches_lower = (np.abs(tp_y - (tp_predicted - width)) <= tolerance) & ~tp_max & (tp_y <= tp_predicted)
            touch_count = int(np.sum(touches_upper | touches_lower))
            if touch_count == 0:
                continue

            results.append(BestChannelCandidate(
                start_index=start,
                end_index=end,
                slope=fit.slope,
                intercept=fit.intercept,
                channel_width=width,
                std_dev=fit.residual_std_dev,
                stdev_multiplier=multiplier,
                touch_count=touch_count,
                turning_points_count=len(segment_points),
                percent_within_bounds=1.0 - outside_fraction
            ))
        return results

    def filter_overlapping_channels(self, channels: List[BestChannelCandidate],
                                    overlap_threshold: Optional[float] = None) -> List[BestChannelCandidate]:
        """
        保留第一个通道以及与已保留通道重叠不多的后续通道

        重叠程度按后一个通道长度的比例计算。
        """
        if overlap_threshold is None:
            overlap_threshold = self.overlap_threshold
        if len(channels) <= 1:
            return list(channels)

        kept = [channels[0]]
        for candidate in channels[1:]:
            overlaps = False
            for existing in kept:
                shared = max(0, min(candidate.end_index, existing.end_index)
                             - max(candidate.start_index, existing.start_index))
                if shared / candidate.length > overlap_threshold:
                    overlaps = True
                    break
            if not overlaps:
                kept.append(candidate)
        return kept


def find_best_channels(series: PriceInput, volume_filter: bool = False,
                       config: dict = None) -> List[BestChannelCandidate]:
    """BestChannelFinder.find_best_channels 的函数式入口"""
    return BestChannelFinder(config).find_best_channels(series, volume_filter)


def filter_overlapping_channels(channels: List[BestChannelCandidate],
                                overlap_threshold: float = 0.5) -> List[BestChannelCandidate]:
    """BestChannelFinder.filter_overlapping_channels 的函数式入口"""
    return BestChannelFinder().filter_overlapping_channels(channels, overlap_threshold)

"""
趋势通道引擎
供图表层调用的函数式接口，所有序列均为最新在前
"""
from .detectors.channel_optimizer import optimize_channel
from .detectors.channel_segmenter import find_all_channels, find_all_channels_reversed
from .detectors.manual_channel import fit_manual_channel, extend_manual_channel
from .detectors.best_channel_finder import find_best_channels, filter_overlapping_channels
from src.analysis.zone_weighting import zone_weights

__all__ = [
    'optimize_channel',
    'find_all_channels',
    'find_all_channels_reversed',
    'zone_weights',
    'fit_manual_channel',
    'extend_manual_channel',
    'find_best_channels',
    'filter_overlapping_channels'
]

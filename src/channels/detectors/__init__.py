"""
通道检测器模块
"""
from .channel_optimizer import ChannelOptimizer
from .channel_segmenter import ChannelSegmenter
from .manual_channel import ManualChannelFitter
from .best_channel_finder import BestChannelFinder

__all__ = [
    'ChannelOptimizer',
    'ChannelSegmenter',
    'ManualChannelFitter',
    'BestChannelFinder'
]

"""
通道基础模块
各检测器共用的回归、通道搜索、拐点和窗口扩展
"""
from .linear_regression import fit_line, fit_window, r_squared, count_band_touches
from .band_optimizer import SearchPolicy, TIGHTEST_POLICY, SEGMENT_POLICY, MANUAL_POLICY, search_band
from .turning_points import find_turning_points
from .window_extender import GrowthAnchor, WindowExtender, ExtensionResult

__all__ = [
    'fit_line',
    'fit_window',
    'r_squared',
    'count_band_touches',
    'SearchPolicy',
    'TIGHTEST_POLICY',
    'SEGMENT_POLICY',
    'MANUAL_POLICY',
    'search_band',
    'find_turning_points',
    'GrowthAnchor',
    'WindowExtender',
    'ExtensionResult'
]

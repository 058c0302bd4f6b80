"""
线性回归基础函数
基于累加和的收盘价对局部索引最小二乘拟合，以及通道搜索所需的残差统计
"""
from typing import Dict

import numpy as np

from src.data.models.base_models import RegressionResult


# 判断残差与通道边界关系时的浮点相对容差
FLOAT_TOLERANCE = 1e-9


def price_scale(y: np.ndarray) -> float:
    """将 FLOAT_TOLERANCE 换算为绝对容差的量级"""
    if len(y) == 0:
        return 1.0
    return max(1.0, float(np.max(np.abs(y))))


def residual_tolerance(y: np.ndarray) -> float:
    return FLOAT_TOLERANCE * price_scale(y)


def fit_line(x: np.ndarray, y: np.ndarray) -> RegressionResult:
    """
    用最小二乘闭式解拟合 y = slope * x + intercept

    Args:
        x: 局部索引
        y: 对应的收盘价

    Returns:
        RegressionResult；少于两个点或x全部相同时 valid=False
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    n = len(x)

    if n < 2:
        intercept = float(y[0]) if n == 1 else 0.0
        return RegressionResult(slope=0.0, intercept=intercept, residual_std_dev=0.0,
                                n=n, valid=False)

    sum_x = float(np.sum(x))
    sum_y = float(np.sum(y))
    sum_xy = float(np.sum(x * y))
    sum_x2 = float(np.sum(x * x))

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return RegressionResult(slope=0.0, intercept=sum_y / n, residual_std_dev=0.0,
                                n=n, valid=False)

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n

    # 残差的总体统计量（除以n）
    residuals = y - (slope * x + intercept)
    residual_mean = float(np.mean(residuals))
    residual_std_dev = float(np.sqrt(np.mean((residuals - residual_mean) ** 2)))

    return RegressionResult(
        slope=float(slope),
        intercept=float(intercept),
        residual_std_dev=residual_std_dev,
        residual_mean=residual_mean,
        n=n,
        valid=True
    )


def fit_window(y: np.ndarray) -> RegressionResult:
    """拟合索引为 0..n-1 的连续窗口"""
    return fit_line(np.arange(len(y), dtype=float), y)


def r_squared(x: np.ndarray, y: np.ndarray, slope: float, intercept: float) -> float:
    """
    直线在 (x, y) 上的决定系数

    价格没有波动的窗口返回1.0
    """
    y = np.asarray(y, dtype=float)
    if len(y) == 0:
        return 1.0

    predicted = slope * np.asarray(x, dtype=float) + intercept
    ss_total = float(np.sum((y - np.mean(y)) ** 2))
    ss_residual = float(np.sum((y - predicted) ** 2))

    if ss_total <= len(y) * residual_tolerance(y) ** 2:
        return 1.0
    return 1.0 - ss_residual / ss_total


def channel_distribution(x: np.ndarray, y: np.ndarray, slope: float,
                         intercept: float, channel_width: float) -> Dict[str, float]:
    """
    中线上方、下方以及通道外的点所占百分比

    Returns:
        包含 percent_above、percent_below、percent_outside 的字典（0-100，保留一位小数）
    """
    y = np.asarray(y, dtype=float)
    n = len(y)
    if n == 0:
        return {'percent_above': 0.0, 'percent_below': 0.0, 'percent_outside': 0.0}

    residuals = y - (slope * np.asarray(x, dtype=float) + intercept)
    tolerance = residual_tolerance(y)

    above = int(np.sum(residuals > tolerance))
    below = int(np.sum(residuals < -tolerance))
    outside = int(np.sum(np.abs(residuals) > channel_width + tolerance))

    return {
        'percent_above': round(above / n * 100, 1),
        'percent_below': round(below / n * 100, 1),
        'percent_outside': round(outside / n * 100, 1)
    }


def count_band_touches(x: np.ndarray, y: np.ndarray, slope: float, intercept: float,
                       channel_width: float, tolerance: float = 0.05,
                       per_boundary: bool = False) -> int:
    """
    距离边界在 tolerance * (2 * width) 以内的点数

    同时靠近两条边界的点（通道很窄时）只计一次；per_boundary 为真时每条边界各计一次
    """
    y = np.asarray(y, dtype=float)
    if len(y) == 0:
        return 0

    predicted = slope * np.asarray(x, dtype=float) + intercept
    limit = channel_width * 2 * tolerance + residual_tolerance(y)
    near_upper = np.abs(y - (predicted + channel_width)) <= limit
    near_lower = np.abs(y - (predicted - channel_width)) <= limit
    if per_boundary:
        return int(np.sum(near_upper)) + int(np.sum(near_lower))
    return int(np.sum(near_upper | near_lower))

"""
拐点检测
拐点是在前后 window 根K线范围内严格高于（或低于）其它所有收盘价的点
"""
from typing import List

import numpy as np
from scipy.signal import argrelextrema

from src.data.models.base_models import TurningPoint, TurningPointType


def find_turning_points(closes: np.ndarray, window: int = 3) -> List[TurningPoint]:
    """
    查找严格局部极大值和极小值

    只有前后各有完整 window 根K线的点才算拐点。

    Args:
        closes: 收盘价序列
        window: 邻域半宽

    Returns:
        按索引排序的拐点列表
    """
    closes = np.asarray(closes, dtype=float)
    if len(closes) < 2 * window + 1:
        return []

    maxima = argrelextrema(closes, np.greater, order=window)[0]
    minima = argrelextrema(closes, np.less, order=window)[0]
    last_valid = len(closes) - 1 - window

    points = []
    for index in maxima:
        if window <= index <= last_valid:
            points.append(TurningPoint(index=int(index), type=TurningPointType.MAX,
                                       value=float(closes[index])))
    for index in minima:
        if window <= index <= last_valid:
            points.append(TurningPoint(index=int(index), type=TurningPointType.MIN,
                                       value=float(closes[index])))

    points.sort(key=lambda tp: tp.index)
    return points


def turning_point_mask(length: int, turning_points: List[TurningPoint]) -> np.ndarray:
    """标记拐点位置的布尔数组"""
    mask = np.zeros(length, dtype=bool)
    for tp in turning_points:
        if 0 <= tp.index < length:
            mask[tp.index] = True
    return mask

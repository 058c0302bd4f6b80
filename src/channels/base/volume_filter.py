"""
成交量过滤
拟合时剔除低成交量K线
"""
import math

import numpy as np
from loguru import logger


def volume_threshold(volumes: np.ndarray, percentile: float = 0.2) -> float:
    """
    正成交量在给定分位处的值

    取排序后第 floor(count * percentile) 个值；没有正成交量时返回0.0
    """
    volumes = np.asarray(volumes, dtype=float)
    positive = np.sort(volumes[np.isfinite(volumes) & (volumes > 0)])
    if len(positive) == 0:
        return 0.0
    return float(positive[int(math.floor(len(positive) * percentile))])


def volume_mask(volumes: np.ndarray, percentile: float = 0.2) -> np.ndarray:
    """
    成交量严格高于分位阈值的K线为True

    没有成交量的K线按0处理
    """
    volumes = np.nan_to_num(np.asarray(volumes, dtype=float), nan=0.0)
    threshold = volume_threshold(volumes, percentile)
    mask = volumes > threshold
    logger.debug(f"Volume filter: threshold={threshold:.2f}, kept {int(mask.sum())}/{len(mask)} bars")
    return mask

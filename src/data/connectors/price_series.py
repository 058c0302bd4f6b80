"""
价格序列标准化
将 DataFrame、字典记录或 PricePoint 列表转换为通道引擎使用的
PricePoint 记录和 numpy 数组
"""
import math
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from src.data.models.base_models import PricePoint


PriceInput = Union[pd.DataFrame, Sequence[PricePoint], Sequence[Mapping[str, Any]]]


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def _record_to_point(record: Mapping[str, Any], position: int) -> PricePoint:
    if 'close' not in record:
        raise ValueError(f"Price record {position} has no 'close' field")
    try:
        close = float(record['close'])
    except (TypeError, ValueError) as e:
        raise ValueError(f"Price record {position} has a non-numeric close: {e}")
    if not math.isfinite(close):
        raise ValueError(f"Price record {position} has a non-finite close: {close}")

    date = record.get('date', record.get('timestamp', ''))
    return PricePoint(
        date=str(date) if date is not None else '',
        close=close,
        volume=_optional_float(record.get('volume')),
        high=_optional_float(record.get('high')),
        low=_optional_float(record.get('low')),
        open=_optional_float(record.get('open'))
    )


def to_price_points(data: Optional[PriceInput]) -> List[PricePoint]:
    """
    将价格序列标准化为 PricePoint 记录，保持原有顺序

    Args:
        data: 含 close 列的 DataFrame、字典列表或 PricePoint 列表

    Returns:
        PricePoint 列表；输入为 None 或为空时返回空列表

    Raises:
        ValueError: 某条记录没有可用的收盘价
    """
    if data is None:
        return []

    if isinstance(data, pd.DataFrame):
        if data.empty:
            return []
        frame = data.copy()
        frame.columns = [str(col).lower() for col in frame.columns]
        records: Iterable[Mapping[str, Any]] = frame.to_dict('records')
    else:
        records = data

    points = []
    for position, record in enumerate(records):
        if isinstance(record, PricePoint):
            if not math.isfinite(record.close):
                raise ValueError(f"Price record {position} has a non-finite close: {record.close}")
            points.append(record)
        elif isinstance(record, Mapping):
            points.append(_record_to_point(record, position))
        else:
            raise ValueError(f"Unsupported price record type at {position}: {type(record).__name__}")

    return points


def closes_of(points: Sequence[PricePoint]) -> np.ndarray:
    """收盘价浮点数组，顺序与输入一致"""
    return np.array([p.close for p in points], dtype=float)


def volumes_of(points: Sequence[PricePoint]) -> np.ndarray:
    """成交量浮点数组，缺失成交量处为 NaN"""
    return np.array([np.nan if p.volume is None else p.volume for p in points], dtype=float)

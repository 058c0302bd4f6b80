"""
趋势通道引擎的核心数据模型
每个记录都提供 to_dict()，输出图表层读取的驼峰命名字段
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ReuseMode(Enum):
    """已保存的通道参数是复用还是重新计算"""
    RECOMPUTE = "recompute"
    REUSE_EXACT = "reuse_exact"


class ExtensionState(Enum):
    """窗口增长状态机的状态"""
    GROWING = "growing"
    BROKEN = "broken"
    EXHAUSTED_DATA = "exhausted_data"


class SegmentDirection(Enum):
    """全历史分段器的遍历方向"""
    FORWARD = "forward"
    REVERSE = "reverse"


class TurningPointType(Enum):
    """局部极值类型"""
    MAX = "max"
    MIN = "min"


class TieBreak(Enum):
    """带宽搜索在可接受倍数中的选择方式"""
    SMALLEST_VALID = "smallest_valid"  # 第一个（最窄的）可接受倍数
    MOST_TOUCHES = "most_touches"      # 触及次数最多的可接受倍数


class ToleranceMode(Enum):
    """触及容差的计算基准"""
    BAND_WIDTH = "band_width"          # 完整带宽范围（2 * width）的比例
    BOUNDARY_VALUE = "boundary_value"  # 边界价格绝对值的比例


@dataclass(frozen=True)
class PricePoint:
    """单根价格K线，由数据层持有"""
    date: str
    close: float
    volume: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    open: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date,
            'open': self.open,
            'high': self.high,
            'low': self.low,
            'close': self.close,
            'volume': self.volume
        }


@dataclass
class RegressionResult:
    """收盘价对局部索引的最小二乘拟合"""
    slope: float
    intercept: float
    residual_std_dev: float
    residual_mean: float = 0.0
    n: int = 0
    valid: bool = True

    def predict(self, x):
        """局部索引 x 处的中线值（标量或 numpy 数组）"""
        return self.slope * x + self.intercept

    def to_dict(self) -> Dict[str, Any]:
        return {
            'slope': self.slope,
            'intercept': self.intercept,
            'residualStdDev': self.residual_std_dev,
            'residualMean': self.residual_mean,
            'n': self.n,
            'valid': self.valid
        }


@dataclass
class BandSearchResult:
    """倍数网格搜索的结果"""
    multiplier: float
    touch_count: int
    valid: bool
    upper_touch: bool = False
    lower_touch: bool = False
    turning_point_touch: bool = False
    outside_fraction: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'stdevMult': self.multiplier,
            'touchCount': self.touch_count,
            'valid': self.valid,
            'upperTouch': self.upper_touch,
            'lowerTouch': self.lower_touch,
            'turningPointTouch': self.turning_point_touch,
            'outsideFraction': self.outside_fraction
        }


@dataclass(frozen=True)
class TurningPoint:
    """收盘价序列的局部极大值或极小值"""
    index: int
    type: TurningPointType
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return {'index': self.index, 'type': self.type.value, 'value': self.value}


@dataclass(frozen=True)
class Channel:
    """
    连续索引区间上的线性趋势线及对称通道带

    start_index/end_index 指向调用方最新在前的序列，end_index 不包含在内。
    回归坐标轴是通道内部的局部索引：局部索引0为通道最旧的点，
    因此上涨行情的斜率为正。
    """
    start_index: int
    end_index: int
    slope: float
    intercept: float
    channel_width: float
    std_dev: float
    optimal_stdev_mult: float
    lookback_count: int
    r_squared: float
    touch_count: int
    percent_above: Optional[float] = None
    percent_below: Optional[float] = None
    percent_outside: Optional[float] = None
    direction: Optional[SegmentDirection] = None

    def local_index(self, series_index: int) -> int:
        """将最新在前的序列索引映射到通道的回归坐标轴"""
        return self.end_index - 1 - series_index

    def midline_at(self, series_index: int) -> float:
        return self.slope * self.local_index(series_index) + self.intercept

    def upper_at(self, series_index: int) -> float:
        return self.midline_at(series_index) + self.channel_width

    def lower_at(self, series_index: int) -> float:
        return self.midline_at(series_index) - self.channel_width

    def to_dict(self) -> Dict[str, Any]:
        return {
            'startIndex': self.start_index,
            'endIndex': self.end_index,
            'slope': self.slope,
            'intercept': self.intercept,
            'channelWidth': self.channel_width,
            'stdDev': self.std_dev,
            'optimalStdevMult': self.optimal_stdev_mult,
            'lookbackCount': self.lookback_count,
            'rSquared': self.r_squared,
            'touchCount': self.touch_count,
            'percentAbove': self.percent_above,
            'percentBelow': self.percent_below,
            'percentOutside': self.percent_outside,
            'direction': self.direction.value if self.direction else None
        }


@dataclass(frozen=True)
class OptimizedParameters:
    """调用方在多次调用之间保存的通道参数"""
    lookback_count: Optional[int] = None
    stdev_multiplier: Optional[float] = None

    @property
    def is_complete(self) -> bool:
        return self.lookback_count is not None and self.stdev_multiplier is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'lookbackCount': self.lookback_count,
            'stdevMultiplier': self.stdev_multiplier
        }


@dataclass(frozen=True)
class ChannelOptimization:
    """单通道结果及需要保存的参数"""
    channel: Channel
    parameters: OptimizedParameters

    def to_dict(self) -> Dict[str, Any]:
        return {
            'channel': self.channel.to_dict(),
            'parameters': self.parameters.to_dict()
        }


@dataclass(frozen=True)
class ZoneWeight:
    """某一水平区域内成交量占通道总成交量的比例"""
    zone_index: int
    zone_start: float
    zone_end: float
    volume_weight: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'zoneIndex': self.zone_index,
            'zoneStart': self.zone_start,
            'zoneEnd': self.zone_end,
            'volumeWeight': self.volume_weight
        }


@dataclass
class BestChannelCandidate:
    """起点/长度模拟产生的候选通道"""
    start_index: int
    end_index: int
    slope: float
    intercept: float
    channel_width: float
    std_dev: float
    stdev_multiplier: float
    touch_count: int
    turning_points_count: int
    percent_within_bounds: float

    @property
    def length(self) -> int:
        return self.end_index - self.start_index

    def to_dict(self) -> Dict[str, Any]:
        return {
            'startIndex': self.start_index,
            'endIndex': self.end_index,
            'slope': self.slope,
            'intercept': self.intercept,
            'channelWidth': self.channel_width,
            'stdDev': self.std_dev,
            'stdevMultiplier': self.stdev_multiplier,
            'touchCount': self.touch_count,
            'turningPointsCount': self.turning_points_count,
            'percentWithinBounds': self.percent_within_bounds,
            'length': self.length
        }

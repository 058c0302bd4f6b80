import sys
import json
import argparse
from pathlib import Path
from datetime import datetime
from typing import List, Optional

# 添加项目根目录到Python路径
sys.path.append(str(Path(__file__).parent))

from src.utils.config_manager import ConfigManager
from src.data.connectors.base_connector import DataConnectorFactory
from src.data.models.base_models import OptimizedParameters, PricePoint, ReuseMode
from src.channels.detectors.channel_optimizer import ChannelOptimizer
from src.channels.detectors.channel_segmenter import ChannelSegmenter
from src.channels.detectors.manual_channel import ManualChannelFitter
from src.channels.detectors.best_channel_finder import BestChannelFinder
from src.analysis.zone_weighting import (
    ZoneWeightCalculator, initial_lookback_for_period, zone_count_for_period
)

from loguru import logger


ANALYSES = ['channel', 'segments', 'reverse-segments', 'zones', 'manual', 'best']


class ChannelScout:
    """ChannelScout主程序类：加载品种数据并执行一项通道分析"""

    def __init__(self, config_file: str = "config.yaml"):
        """
        初始化ChannelScout

        Args:
            config_file: 配置文件路径
        """
        self.config_manager = ConfigManager(config_file)
        self._setup_logging()

        if not self.config_manager.validate_config():
            logger.error("Configuration validation failed")
            sys.exit(1)

        self.data_connector = None
        self.zone_calculator = ZoneWeightCalculator(self.config_manager.get_engine_config('zones'))

        logger.info("ChannelScout initialized successfully")

    def _setup_logging(self):
        """设置日志配置"""
        log_config = self.config_manager.get('logging', {})
        log_level = log_config.get('level', 'INFO')
        log_file = log_config.get('file', 'logs/channel_scout.log')

        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

        logger.remove()

        # 控制台日志输出到stderr，stdout只输出JSON结果
        logger.add(
            sys.stderr,
            level=log_level,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
        )

        logger.add(
            log_file,
            level=log_level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            rotation=log_config.get('max_size', '10MB'),
            retention=log_config.get('backup_count', 5)
        )

    def _setup_data_connector(self) -> bool:
        source_config = self.config_manager.get('data_sources.csv', {})
        if not source_config.get('enabled', False):
            logger.error("CSV data source is not enabled")
            return False

        self.data_connector = DataConnectorFactory.create_connector(
            'csv', data_directory=source_config.get('directory', 'data/csv/')
        )
        if self.data_connector.connect():
            return True

        logger.error("Failed to connect to csv data source")
        return False

    def load_series(self, symbol: str, start_date: datetime = None,
                    end_date: datetime = None) -> List[PricePoint]:
        """获取品种的价格序列，最新在前"""
        if not self.data_connector and not self._setup_data_connector():
            raise ConnectionError("Data connector not initialized")
        return self.data_connector.get_price_series(symbol, start_date, end_date)

    def _num_zones(self, args) -> int:
        if args.num_zones:
            return args.num_zones
        if args.period_days:
            return zone_count_for_period(args.period_days)
        return self.zone_calculator.default_num_zones

    def _optimizer(self, args) -> ChannelOptimizer:
        config = self.config_manager.get_engine_config('channel_optimizer')
        if args.period_days:
            config['default_lookback'] = initial_lookback_for_period(args.period_days)
        return ChannelOptimizer(config)

    def analyze(self, series: List[PricePoint], args) -> dict:
        """
        执行指定的分析

        Returns:
            可JSON序列化的结果字典
        """
        analysis = args.analysis
        result = {'analysis': analysis, 'bars': len(series)}
        if series:
            result['latestDate'] = series[0].date

        if analysis in ('channel', 'zones'):
            prior = OptimizedParameters(lookback_count=args.lookback, stdev_multiplier=args.stdev_mult)
            reuse_mode = ReuseMode.RECOMPUTE if args.recompute else ReuseMode.REUSE_EXACT
            optimization = self._optimizer(args).optimize(series, args.volume_filter, prior, reuse_mode)
            if optimization is None:
                result['channel'] = None
                return result
            result.update(optimization.to_dict())
            if analysis == 'zones':
                zones = self.zone_calculator.zone_weights(series, optimization.channel, self._num_zones(args))
                result['zones'] = [zone.to_dict() for zone in zones]

        elif analysis in ('segments', 'reverse-segments'):
            segmenter = ChannelSegmenter(self.config_manager.get_engine_config('segmenter'))
            if analysis == 'segments':
                channels = segmenter.find_all_channels(series)
            else:
                channels = segmenter.find_all_channels_reversed(series)
            zones = self.zone_calculator.all_channel_zones(series, channels, self._num_zones(args))
            result['channels'] = [
                {**channel.to_dict(), 'zones': [zone.to_dict() for zone in zones[i]]}
                for i, channel in enumerate(channels)
            ]

        elif analysis == 'manual':
            if not args.range:
                raise ValueError("--range START END is required for the manual analysis")
            fitter = ManualChannelFitter(self.config_manager.get_engine_config('manual_channel'))
            channel = fitter.fit(series, args.range[0], args.range[1])
            if channel is not None and args.extend:
                channel = fitter.extend(channel, series)
            result['channel'] = channel.to_dict() if channel else None

        elif analysis == 'best':
            finder = BestChannelFinder(self.config_manager.get_engine_config('best_channel_finder'))
            candidates = finder.filter_overlapping_channels(
                finder.find_best_channels(series, args.volume_filter)
            )
            if args.top:
                candidates = candidates[:args.top]
            result['channels'] = [candidate.to_dict() for candidate in candidates]

        return result

    def run(self, args) -> dict:
        start_date = _parse_date(args.start_date)
        end_date = _parse_date(args.end_date)

        try:
            series = self.load_series(args.symbol, start_date, end_date)
            logger.info(f"Running {args.analysis} analysis on {args.symbol} ({len(series)} bars)")
            return self.analyze(series, args)
        except (ConnectionError, FileNotFoundError, ValueError) as e:
            logger.error(f"ChannelScout execution failed: {e}")
            return {'error': str(e)}
        finally:
            if self.data_connector:
                self.data_connector.close()
                self.data_connector = None


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value, '%Y-%m-%d')
    except ValueError:
        logger.error(f"Invalid date format: {value}")
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='ChannelScout - trend channel detection for price series')

    parser.add_argument('analysis', choices=ANALYSES, help='Analysis to run')
    parser.add_argument('symbol', help='Symbol (CSV file name) to analyze')
    parser.add_argument('--config', default='config.yaml', help='Configuration file path')
    parser.add_argument('--start-date', help='Start date (YYYY-MM-DD)')
    parser.add_argument('--end-date', help='End date (YYYY-MM-DD)')
    parser.add_argument('--period-days', type=int, help='Chart period in days (picks lookback and zone count)')
    parser.add_argument('--volume-filter', action='store_true', help='Ignore low-volume bars while fitting')
    parser.add_argument('--lookback', type=int, help='Stored lookback count to reuse')
    parser.add_argument('--stdev-mult', type=float, help='Stored standard deviation multiplier to reuse')
    parser.add_argument('--recompute', action='store_true', help='Search again even with stored parameters')
    parser.add_argument('--num-zones', type=int, help='Number of volume zones per channel')
    parser.add_argument('--range', type=int, nargs=2, metavar=('START', 'END'),
                        help='Series indices (0 = newest bar) of a manual channel')
    parser.add_argument('--extend', action='store_true', help='Extend the manual channel after fitting')
    parser.add_argument('--top', type=int, help='Keep only the first N best channels')
    parser.add_argument('--output', help='Write the JSON result to this file instead of stdout')
    return parser


def main():
    args = build_parser().parse_args()

    scout = ChannelScout(args.config)
    result = scout.run(args)

    text = json.dumps(result, indent=2, default=str)
    if args.output:
        Path(args.output).parent.mkdir(parents=True, exist_ok=True)
        Path(args.output).write_text(text, encoding='utf-8')
        logger.info(f"Result written to {args.output}")
    else:
        print(text)

    if 'error' in result:
        sys.exit(1)


if __name__ == "__main__":
    main()

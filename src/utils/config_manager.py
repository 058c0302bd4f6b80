"""
配置管理器
加载 config.yaml，叠加环境变量，并为每个引擎组件提供各自的配置段
"""
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
from loguru import logger


ENGINE_SECTIONS = [
    'channel_optimizer',
    'segmenter',
    'manual_channel',
    'best_channel_finder',
    'zones'
]


class ConfigManager:
    """支持点号路径访问的YAML配置管理器"""

    def __init__(self, config_file: str = "config.yaml"):
        """
        初始化配置管理器

        Args:
            config_file: 配置文件路径
        """
        self.config_file = Path(config_file)
        self.config = {}
        self._load_config()
        self._load_env_variables()

    def _load_config(self):
        """加载配置文件，文件缺失或无法读取时使用默认配置"""
        try:
            if self.config_file.exists():
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    self.config = yaml.safe_load(f) or {}
                logger.info(f"Configuration loaded from {self.config_file}")
            else:
                logger.warning(f"Configuration file not found: {self.config_file}")
                self.config = self._get_default_config()
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load configuration: {e}")
            self.config = self._get_default_config()

    def _load_env_variables(self):
        """加载环境变量"""
        if 'CHANNEL_SCOUT_LOG_LEVEL' in os.environ:
            self.config.setdefault('logging', {})['level'] = os.environ['CHANNEL_SCOUT_LOG_LEVEL']
        if 'CHANNEL_SCOUT_DATA_DIR' in os.environ:
            self.config.setdefault('data_sources', {}).setdefault('csv', {})['directory'] = os.environ['CHANNEL_SCOUT_DATA_DIR']

    def get_engine_config(self, section: str) -> Dict[str, Any]:
        """
        获取单个引擎组件的配置段

        Args:
            section: ENGINE_SECTIONS 中的一项

        Returns:
            配置段字典（缺失时为空，组件使用自身默认值）

        Raises:
            ValueError: 未知的配置段名称
        """
        if section not in ENGINE_SECTIONS:
            raise ValueError(f"Unknown engine section: {section}")
        return dict(self.config.get(section) or {})

    def _get_default_config(self) -> Dict[str, Any]:
        return {
            'data_sources': {
                'csv': {
                    'enabled': True,
                    'directory': 'data/csv/'
                }
            },
            'channel_optimizer': {
                'min_points': 10,
                'default_lookback': 100,
                'new_data_fraction': 0.1,
                'trend_break_threshold': 0.5,
                'volume_percentile': 0.2,
                'touch_tolerance': 0.05
            },
            'segmenter': {
                'min_lookback': 20,
                'new_data_fraction': 0.2,
                'trend_break_threshold': 0.5,
                'touch_tolerance': 0.05
            },
            'manual_channel': {
                'min_points': 5,
                'turning_point_window': 3,
                'max_multiplier': 4.0,
                'touch_tolerance': 0.05,
                'extend_edge_fraction': 0.1,
                'extend_break_threshold': 0.1,
                'extend_turning_point_tolerance': 0.02
            },
            'best_channel_finder': {
                'min_length': 20,
                'start_step': 5,
                'length_step': 5,
                'stdev_multipliers': [1.0, 1.5, 2.0, 2.5, 3.0, 3.5, 4.0],
                'touch_tolerance': 0.05,
                'max_outside_fraction': 0.1,
                'similarity_threshold': 0.9,
                'volume_percentile': 0.1,
                'overlap_threshold': 0.5
            },
            'zones': {
                'num_zones': 5,
                'default_volume': 1.0
            },
            'logging': {
                'level': 'INFO',
                'file': 'logs/channel_scout.log',
                'max_size': '10MB',
                'backup_count': 5
            }
        }

    def get(self, key: str, default: Any = None) -> Any:
        """
        获取配置值

        Args:
            key: 配置键，支持点号分隔的嵌套键，如 'segmenter.min_lookback'
            default: 路径任一部分缺失时返回的默认值

        Returns:
            配置值
        """
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any):
        """按点号路径设置配置值，自动创建中间层级"""
        keys = key.split('.')
        config_dict = self.config

        for k in keys[:-1]:
            if k not in config_dict:
                config_dict[k] = {}
            config_dict = config_dict[k]

        config_dict[keys[-1]] = value

    def save_config(self, file_path: Optional[str] = None):
        """
        保存配置到文件

        Args:
            file_path: 保存路径，默认为加载时的配置文件
        """
        save_path = Path(file_path) if file_path else self.config_file

        try:
            save_path.parent.mkdir(parents=True, exist_ok=True)
            with open(save_path, 'w', encoding='utf-8') as f:
                yaml.dump(self.config, f, default_flow_style=False, allow_unicode=True, indent=2)
            logger.info(f"Configuration saved to {save_path}")
        except OSError as e:
            logger.error(f"Failed to save configuration: {e}")

    def validate_config(self) -> bool:
        """验证配置：检查必需配置段和取值范围，并创建日志目录"""
        for key in ['data_sources', 'logging']:
            if key not in self.config:
                logger.error(f"Missing required configuration section: {key}")
                return False

        if not self.get('data_sources.csv.enabled', False):
            logger.error("No data source is enabled")
            return False

        for section in ENGINE_SECTIONS:
            value = self.config.get(section)
            if value is not None and not isinstance(value, dict):
                logger.error(f"Configuration section {section} must be a mapping")
                return False

        fractions = [
            'channel_optimizer.new_data_fraction',
            'channel_optimizer.trend_break_threshold',
            'channel_optimizer.volume_percentile',
            'segmenter.new_data_fraction',
            'segmenter.trend_break_threshold',
            'manual_channel.extend_edge_fraction',
            'manual_channel.extend_break_threshold',
            'best_channel_finder.max_outside_fraction',
            'best_channel_finder.volume_percentile'
        ]
        for key in fractions:
            value = self.get(key)
            if value is not None and not 0 <= float(value) <= 1:
                logger.error(f"{key} must be between 0 and 1, got {value}")
                return False

        num_zones = self.get('zones.num_zones')
        if num_zones is not None and int(num_zones) < 1:
            logger.error(f"zones.num_zones must be at least 1, got {num_zones}")
            return False

        log_file = self.get('logging.file', 'logs/channel_scout.log')
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

        logger.info("Configuration validation passed")
        return True


from abc import ABC, abstractmethod
from typing import List
import pandas as pd
from datetime import datetime
from src.data.models.base_models import PricePoint
from src.data.connectors.price_series import to_price_points


class BaseDataConnector(ABC):
    """数据连接器抽象基类"""

    @abstractmethod
    def connect(self) -> bool:
        """建立连接"""
        pass

    @abstractmethod
    def get_data(self, symbol: str, start_date: datetime, end_date: datetime) -> pd.DataFrame:
        """获取价格数据，最旧在前"""
        pass

    @abstractmethod
    def get_symbols(self) -> List[str]:
        """获取可用品种列表"""
        pass

    @abstractmethod
    def validate_data(self, data: pd.DataFrame) -> bool:
        """验证数据有效性"""
        pass

    @abstractmethod
    def close(self) -> None:
        """关闭连接"""
        pass

    def standardize_data(self, data: pd.DataFrame) -> List[PricePoint]:
        """
        标准化数据格式，转换为通道引擎使用的最新在前 PricePoint 序列

        Args:
            data: 最旧在前排序的K线，需包含 timestamp 和 close 列

        Returns:
            PricePoint 列表，最新K线在前
        """
        if not self.validate_data(data):
            raise ValueError("Invalid data format")

        # 检查必需列
        for col in ['timestamp', 'close']:
            if col not in data.columns:
                raise ValueError(f"Missing required column: {col}")

        frame = data.sort_values('timestamp', ascending=False).copy()
        frame['date'] = frame['timestamp'].dt.strftime('%Y-%m-%d')
        columns = [col for col in ['date', 'open', 'high', 'low', 'close', 'volume'] if col in frame.columns]
        return to_price_points(frame[columns])


class DataConnectorFactory:
    """数据连接器工厂"""

    @staticmethod
    def create_connector(connector_type: str, **kwargs) -> BaseDataConnector:
        """创建数据连接器实例"""
        if connector_type.lower() == 'csv':
            from .csv_connector import CSVDataConnector
            return CSVDataConnector(**kwargs)
        else:
            raise ValueError(f"Unsupported connector type: {connector_type}")

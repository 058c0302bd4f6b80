import pandas as pd
import os
from typing import List
from datetime import datetime
from pathlib import Path
from .base_connector import BaseDataConnector
from src.data.models.base_models import PricePoint
from loguru import logger


class CSVDataConnector(BaseDataConnector):
    """CSV文件数据连接器，每个品种一个CSV文件"""

    def __init__(self, data_directory: str = "data/csv/"):
        """
        初始化CSV连接器

        Args:
            data_directory: CSV文件所在目录
        """
        self.data_directory = Path(data_directory)
        self.connected = False

    def connect(self) -> bool:
        """建立连接（检查目录是否存在，不存在时创建）"""
        try:
            if not self.data_directory.exists():
                logger.warning(f"Data directory does not exist: {self.data_directory}")
                self.data_directory.mkdir(parents=True, exist_ok=True)
                logger.info(f"Created data directory: {self.data_directory}")

            self.connected = True
            logger.info(f"Connected to CSV data source: {self.data_directory}")
            return True

        except OSError as e:
            logger.error(f"Failed to connect to CSV data source: {e}")
            return False

    def _find_file(self, symbol: str) -> Path:
        csv_files = list(self.data_directory.glob(f"*{symbol}*.csv"))
        if not csv_files:
            csv_file = self.data_directory / f"{symbol}.csv"
            if not csv_file.exists():
                raise FileNotFoundError(f"No CSV file found for symbol: {symbol}")
            csv_files = [csv_file]

        # 如果有多个匹配文件，选择最新的
        return max(csv_files, key=os.path.getmtime)

    def get_data(self, symbol: str, start_date: datetime = None, end_date: datetime = None) -> pd.DataFrame:
        """
        获取品种的价格数据

        Args:
            symbol: 品种代码或文件名
            start_date: 开始日期（默认为文件中第一根K线）
            end_date: 结束日期（默认为文件中最后一根K线）

        Returns:
            按时间升序排列的 DataFrame，包含 timestamp、symbol、close
            以及文件中提供的 open/high/low/volume 列
        """
        if not self.connected:
            raise ConnectionError("Not connected to data source")

        csv_file = self._find_file(symbol)
        logger.info(f"Loading data from: {csv_file}")

        try:
            df = pd.read_csv(csv_file)

            # 标准化列名（处理可能的不同命名方式）
            column_mapping = {
                'date': 'timestamp',
                'datetime': 'timestamp',
                'time': 'timestamp',
                'code': 'symbol',
                'adj close': 'adj_close',
                'vol': 'volume'
            }
            df.columns = df.columns.str.lower()
            df = df.rename(columns=column_mapping)

            if 'symbol' not in df.columns:
                df['symbol'] = symbol

            if 'timestamp' in df.columns:
                df['timestamp'] = pd.to_datetime(df['timestamp'])
            else:
                raise ValueError("No timestamp column found")

            # 数据去重处理（基于timestamp列去重，保留最后一条记录）
            original_count = len(df)
            df = df.drop_duplicates(subset=['timestamp'], keep='last')
            if original_count > len(df):
                logger.info(f"Data deduplication: removed {original_count - len(df)} duplicate records")

            df = df.sort_values('timestamp').reset_index(drop=True)

            actual_start = df['timestamp'].min()
            actual_end = df['timestamp'].max()
            start_date = actual_start if start_date is None else pd.Timestamp(start_date)
            end_date = actual_end if end_date is None else pd.Timestamp(end_date)

            if start_date > actual_end or end_date < actual_start:
                logger.warning(f"Requested date range ({start_date} to {end_date}) does not overlap "
                               f"with data range ({actual_start} to {actual_end}), using full range")
                start_date = actual_start
                end_date = actual_end

            # 按时间范围过滤
            mask = (df['timestamp'] >= start_date) & (df['timestamp'] <= end_date)
            df = df.loc[mask].copy()

            if len(df) == 0:
                raise ValueError(f"No data found for {symbol} in date range {start_date} to {end_date}")

            logger.info(f"Loaded {len(df)} records for {symbol} from "
                        f"{df['timestamp'].min()} to {df['timestamp'].max()}")
            return df

        except (OSError, ValueError, pd.errors.ParserError) as e:
            logger.error(f"Failed to load data from {csv_file}: {e}")
            raise

    def get_price_series(self, symbol: str, start_date: datetime = None,
                         end_date: datetime = None) -> List[PricePoint]:
        """加载品种数据并转换为最新在前的 PricePoint 序列"""
        return self.standardize_data(self.get_data(symbol, start_date, end_date))

    def get_symbols(self) -> List[str]:
        """获取可用品种列表（CSV文件名）"""
        if not self.connected:
            raise ConnectionError("Not connected to data source")

        symbols = sorted(csv_file.stem for csv_file in self.data_directory.glob("*.csv"))
        logger.info(f"Found {len(symbols)} symbols in CSV directory")
        return symbols

    def validate_data(self, data: pd.DataFrame) -> bool:
        """验证数据有效性：每根K线都需要时间戳和数值型收盘价"""
        missing_columns = [col for col in ['timestamp', 'close'] if col not in data.columns]
        if missing_columns:
            logger.error(f"Missing required columns: {missing_columns}")
            return False

        try:
            data['timestamp'] = pd.to_datetime(data['timestamp'])
            numeric_columns = [col for col in ['open', 'high', 'low', 'close', 'volume'] if col in data.columns]
            for col in numeric_columns:
                data[col] = pd.to_numeric(data[col], errors='coerce')
        except (ValueError, TypeError) as e:
            logger.error(f"Data validation error: {e}")
            return False

        if data['close'].isnull().any():
            logger.warning("Found invalid close prices")
            return False

        if {'open', 'high', 'low'}.issubset(data.columns):
            invalid_ohlc = (
                (data['high'] < data[['open', 'close']].max(axis=1)) |
                (data['low'] > data[['open', 'close']].min(axis=1))
            ).any()
            if invalid_ohlc:
                logger.warning("Found invalid OHLC data")
                return False

        logger.debug("Data validation passed")
        return True

    def close(self) -> None:
        """关闭连接"""
        self.connected = False
        logger.info("Disconnected from CSV data source")

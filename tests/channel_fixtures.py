"""通道测试共用的合成价格序列"""
import pandas as pd


def make_series(closes_oldest_first, volumes=None):
    """由时间顺序的收盘价生成最新在前的价格记录列表"""
    dates = pd.date_range('2023-01-02', periods=len(closes_oldest_first), freq='B')
    records = []
    for i, close in enumerate(closes_oldest_first):
        record = {'date': dates[i].strftime('%Y-%m-%d'), 'close': float(close)}
        if volumes is not None:
            record['volume'] = volumes[i]
        records.append(record)
    return records[::-1]

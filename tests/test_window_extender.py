import unittest
import numpy as np

from src.channels.base.band_optimizer import search_band
from src.channels.base.linear_regression import fit_line
from src.channels.base.window_extender import GrowthAnchor, WindowExtender
from src.data.models.base_models import ExtensionState


def _v_shape(noise=0.5, seed=1):
    """最旧在前的收盘价：先100根K线急跌，再100根K线缓涨"""
    np.random.seed(seed)
    falling = 300 - 2.0 * np.arange(100)
    rising = 102 + 1.0 * np.arange(1, 101) + np.random.normal(0, noise, 100)
    return np.concatenate([falling, rising])


class TestWindowExtender(unittest.TestCase):
    """回看窗口增长与趋势破坏检测"""

    def test_exhausts_straight_line(self):
        values = 10 + 0.5 * np.arange(150)
        result = WindowExtender().extend(values, 100, GrowthAnchor.NEWEST)

        self.assertEqual(result.state, ExtensionState.EXHAUSTED_DATA)
        self.assertEqual(result.count, 150)
        self.assertEqual(result.steps, 50)
        self.assertAlmostEqual(result.fit.slope, 0.5)
        self.assertAlmostEqual(result.channel_width, 0.0, places=6)

    def test_start_count_capped(self):
        values = 10 + 0.5 * np.arange(30)
        result = WindowExtender().extend(values, 100, GrowthAnchor.NEWEST)
        self.assertEqual(result.count, 30)
        self.assertEqual(result.steps, 0)
        self.assertEqual(result.state, ExtensionState.EXHAUSTED_DATA)

    def test_breaks_at_older_trend_change(self):
        values = _v_shape()
        result = WindowExtender().extend(values, 50, GrowthAnchor.NEWEST)

        self.assertEqual(result.state, ExtensionState.BROKEN)
        self.assertGreaterEqual(result.count, 100)
        self.assertLessEqual(result.count, 120)
        self.assertGreater(result.fit.slope, 0)

    def test_breaks_at_newer_trend_change(self):
        values = _v_shape()[::-1].copy()
        result = WindowExtender().extend(values, 50, GrowthAnchor.OLDEST)

        self.assertEqual(result.state, ExtensionState.BROKEN)
        self.assertGreaterEqual(result.count, 100)
        self.assertLessEqual(result.count, 120)
        self.assertLess(result.fit.slope, 0)

    def test_initial_window_too_sparse(self):
        values = 10 + 0.5 * np.arange(50)
        include = np.zeros(50, dtype=bool)
        include[-5:] = True

        result = WindowExtender(min_points=10).extend(values, 20, GrowthAnchor.NEWEST, include)
        self.assertEqual(result.state, ExtensionState.BROKEN)
        self.assertEqual(result.count, 20)
        self.assertFalse(result.search.valid)
        self.assertEqual(result.search.multiplier, 2.5)

    def test_stops_when_band_search_fails(self):
        # 残差两档分布：大部分为0，少量为 +-a；尖峰占比超过5%后任何倍数都无法满足
        values = 50 + 0.5 * np.arange(300)
        signs = [1, -1, -1, 1]
        recent = [12, 37, 62, 87]
        older = list(range(105, 300, 10))
        for k, offset in enumerate(recent + older):
            values[299 - offset] += 10.0 * signs[k % 4]

        result = WindowExtender().extend(values, 100, GrowthAnchor.NEWEST)

        self.assertEqual(result.state, ExtensionState.BROKEN)
        self.assertEqual(result.count, 115)
        self.assertEqual(result.steps, 15)
        self.assertTrue(result.search.valid)
        self.assertEqual(result.search.multiplier, 1.0)

        x = np.arange(116, dtype=float)
        window = values[300 - 116:]
        self.assertFalse(search_band(x, window, fit_line(x, window)).valid)

    def test_excluded_bars_ignored(self):
        values = 10 + 0.5 * np.arange(60)
        include = np.ones(60, dtype=bool)
        values[::3] += 25.0
        include[::3] = False

        result = WindowExtender().extend(values, 20, GrowthAnchor.NEWEST, include)
        self.assertEqual(result.state, ExtensionState.EXHAUSTED_DATA)
        self.assertEqual(result.count, 60)
        self.assertAlmostEqual(result.fit.slope, 0.5)


if __name__ == '__main__':
    unittest.main()

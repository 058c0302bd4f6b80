import unittest
from dataclasses import replace

import numpy as np

from src.channels.base.band_optimizer import (
    SearchPolicy, TIGHTEST_POLICY, SEGMENT_POLICY, MANUAL_POLICY, search_band
)
from src.channels.base.linear_regression import fit_line
from src.data.models.base_models import TieBreak, ToleranceMode


def _flat_alternating(n=20, level=10.0):
    """残差按 +1, -1, -1, +1 循环：斜率为0，标准差为1"""
    residuals = np.array([1.0, -1.0, -1.0, 1.0] * (n // 4))
    return np.arange(n, dtype=float), level + residuals


class TestSearchPolicy(unittest.TestCase):
    """倍数网格与配置覆盖"""

    def test_grid(self):
        grid = TIGHTEST_POLICY.multipliers()
        self.assertEqual(len(grid), 31)
        self.assertEqual(grid[0], 1.0)
        self.assertEqual(grid[-1], 4.0)
        self.assertIn(2.0, grid)
        self.assertIn(2.3, grid)

        self.assertEqual(SEGMENT_POLICY.multipliers(), [1.0 + 0.25 * k for k in range(13)])

    def test_grid_stays_within_max_multiplier(self):
        grid = TIGHTEST_POLICY.with_overrides({'step': 0.4}).multipliers()
        self.assertEqual(grid[-1], 3.8)
        self.assertLessEqual(max(grid), 4.0)

        grid = SearchPolicy(min_multiplier=1.0, max_multiplier=2.0, step=0.3).multipliers()
        self.assertEqual(grid, [1.0, 1.3, 1.6, 1.9])

    def test_overrides(self):
        policy = SEGMENT_POLICY.with_overrides({'step': 0.5, 'tolerance_mode': 'band_width'})
        self.assertEqual(policy.step, 0.5)
        self.assertIs(policy.tolerance_mode, ToleranceMode.BAND_WIDTH)
        self.assertIs(policy.tie_break, TieBreak.MOST_TOUCHES)

        self.assertIs(TIGHTEST_POLICY.with_overrides(None), TIGHTEST_POLICY)
        self.assertIs(TIGHTEST_POLICY.with_overrides({}), TIGHTEST_POLICY)

    def test_unknown_override(self):
        with self.assertRaises(ValueError):
            TIGHTEST_POLICY.with_overrides({'stepsize': 0.2})


class TestSearchBand(unittest.TestCase):
    """在倍数网格上搜索带宽"""

    def setUp(self):
        np.random.seed(42)
        self.x = np.arange(100, dtype=float)
        self.y = 50 + 0.2 * self.x + np.random.normal(0, 1.5, 100)
        self.fit = fit_line(self.x, self.y)

    def _outside_fraction(self, multiplier):
        residuals = self.y - self.fit.predict(self.x)
        width = self.fit.residual_std_dev * multiplier
        return float(np.mean(np.abs(residuals) > width + 1e-9 * np.max(np.abs(self.y))))

    def test_tightest_band(self):
        result = search_band(self.x, self.y, self.fit)

        self.assertTrue(result.valid)
        self.assertLessEqual(self._outside_fraction(result.multiplier), 0.05)
        if result.multiplier > 1.0:
            self.assertGreater(self._outside_fraction(round(result.multiplier - 0.1, 10)), 0.05)

    def test_exact_line_accepts_narrowest(self):
        y = 3.0 * self.x + 1.0
        result = search_band(self.x, y, fit_line(self.x, y))
        self.assertTrue(result.valid)
        self.assertEqual(result.multiplier, 1.0)
        self.assertEqual(result.outside_fraction, 0.0)

    def test_no_valid_band(self):
        policy = SearchPolicy(min_multiplier=1.0, max_multiplier=1.0)
        result = search_band(self.x, self.y, self.fit, policy)

        self.assertFalse(result.valid)
        self.assertEqual(result.multiplier, 2.5)
        self.assertEqual(result.touch_count, 0)

    def test_invalid_fit(self):
        x = np.array([2.0, 2.0])
        y = np.array([1.0, 3.0])
        self.assertFalse(search_band(x, y, fit_line(x, y)).valid)

    def test_most_touches_never_worse_than_first(self):
        first = search_band(self.x, self.y, self.fit, replace(SEGMENT_POLICY, tie_break=TieBreak.SMALLEST_VALID))
        best = search_band(self.x, self.y, self.fit, SEGMENT_POLICY)

        self.assertTrue(best.valid)
        self.assertGreaterEqual(best.touch_count, first.touch_count)
        self.assertLessEqual(best.outside_fraction, 0.2)

    def test_require_touch(self):
        x, y = _flat_alternating()
        fit = fit_line(x, y)
        self.assertAlmostEqual(fit.residual_std_dev, 1.0)

        # 倍数从1.2起，没有点落在边界的5%带宽范围内
        loose = SearchPolicy(min_multiplier=1.2, max_multiplier=1.5, max_outside_percent=1.0)
        result = search_band(x, y, fit, loose)
        self.assertTrue(result.valid)
        self.assertEqual(result.multiplier, 1.2)
        self.assertEqual(result.touch_count, 0)

        strict = replace(loose, require_touch=True)
        self.assertFalse(search_band(x, y, fit, strict).valid)

    def test_touches_per_boundary(self):
        x, y = _flat_alternating()
        fit = fit_line(x, y)

        once = search_band(x, y, fit, SearchPolicy())
        self.assertEqual(once.touch_count, 20)
        self.assertTrue(once.upper_touch and once.lower_touch)

        # 每个点只触及自身一侧的边界，因此计数不变
        per_boundary = search_band(x, y, fit, replace(SearchPolicy(), count_touches_per_boundary=True))
        self.assertEqual(per_boundary.touch_count, 20)

    def test_turning_point_priority(self):
        x, y = _flat_alternating()
        fit = fit_line(x, y)

        mask = np.zeros(len(y), dtype=bool)
        mask[5] = True
        with_turning_point = search_band(x, y, fit, MANUAL_POLICY, mask)
        self.assertTrue(with_turning_point.valid)
        self.assertTrue(with_turning_point.turning_point_touch)
        self.assertEqual(with_turning_point.multiplier, 1.0)

        # 没有拐点可以触及：回退到有触及的最小倍数
        fallback = search_band(x, y, fit, MANUAL_POLICY, np.zeros(len(y), dtype=bool))
        self.assertTrue(fallback.valid)
        self.assertFalse(fallback.turning_point_touch)
        self.assertEqual(fallback.multiplier, 1.0)

    def test_boundary_value_tolerance(self):
        x, y = _flat_alternating(level=100.0)
        fit = fit_line(x, y)

        # 约100的边界值的5%远大于带宽本身：所有点都算触及
        policy = replace(SEGMENT_POLICY, tie_break=TieBreak.SMALLEST_VALID)
        result = search_band(x, y, fit, policy)
        self.assertTrue(result.valid)
        self.assertEqual(result.multiplier, 1.0)
        self.assertEqual(result.touch_count, 40)


if __name__ == '__main__':
    unittest.main()

import unittest
import numpy as np

from src.channels.base.turning_points import find_turning_points, turning_point_mask
from src.data.models.base_models import TurningPoint, TurningPointType


class TestTurningPoints(unittest.TestCase):
    """局部极值检测与拐点掩码"""

    def test_strict_extrema(self):
        closes = np.array([1, 2, 3, 4, 3, 2, 1, 2, 3, 4, 5], dtype=float)
        points = find_turning_points(closes, window=2)

        self.assertEqual([tp.index for tp in points], [3, 6])
        self.assertIs(points[0].type, TurningPointType.MAX)
        self.assertEqual(points[0].value, 4.0)
        self.assertIs(points[1].type, TurningPointType.MIN)
        self.assertEqual(points[1].value, 1.0)

    def test_plateau_is_not_turning_point(self):
        closes = np.array([0, 1, 2, 2, 1, 0], dtype=float)
        self.assertEqual(find_turning_points(closes, window=1), [])

    def test_edges_need_full_window(self):
        # 索引1处的极大值左侧不足3根K线
        closes = np.array([0, 5, 0, 0, 0, 0, 0, 0], dtype=float)
        self.assertEqual(find_turning_points(closes, window=3), [])
        self.assertEqual(find_turning_points(np.array([1.0, 2.0]), window=3), [])

    def test_mask(self):
        points = [
            TurningPoint(index=1, type=TurningPointType.MAX, value=2.0),
            TurningPoint(index=3, type=TurningPointType.MIN, value=0.0),
            TurningPoint(index=9, type=TurningPointType.MAX, value=4.0)
        ]
        mask = turning_point_mask(5, points)
        self.assertEqual(mask.tolist(), [False, True, False, True, False])


if __name__ == '__main__':
    unittest.main()

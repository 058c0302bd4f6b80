import json
import os
import shutil
import tempfile
import unittest

import numpy as np
import pandas as pd
import yaml
from loguru import logger

from main import ChannelScout, build_parser


class TestChannelScout(unittest.TestCase):
    """命令行程序在CSV文件上的端到端运行"""

    def setUp(self):
        np.random.seed(17)
        self.temp_dir = tempfile.mkdtemp()
        data_dir = os.path.join(self.temp_dir, 'csv')
        os.makedirs(data_dir)

        x = np.arange(150)
        frame = pd.DataFrame({
            'Date': pd.date_range('2023-01-02', periods=150, freq='B'),
            'Close': 80 + 0.2 * x + 2 * np.sin(x / 6) + np.random.normal(0, 0.5, 150),
            'Volume': np.random.randint(10000, 90000, 150)
        })
        frame.to_csv(os.path.join(data_dir, 'DEMO.csv'), index=False)

        self.config_file = os.path.join(self.temp_dir, 'config.yaml')
        with open(self.config_file, 'w', encoding='utf-8') as f:
            yaml.dump({
                'data_sources': {'csv': {'enabled': True, 'directory': data_dir}},
                'logging': {'level': 'WARNING', 'file': os.path.join(self.temp_dir, 'logs', 'cli.log')}
            }, f)
        self.scout = ChannelScout(self.config_file)

    def tearDown(self):
        logger.remove()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _run(self, *argv):
        args = build_parser().parse_args(list(argv) + ['--config', self.config_file])
        result = self.scout.run(args)
        json.dumps(result)
        return result

    def test_channel(self):
        result = self._run('channel', 'DEMO')
        self.assertEqual(result['bars'], 150)
        self.assertEqual(result['latestDate'], '2023-07-28')
        self.assertGreater(result['channel']['slope'], 0)
        self.assertEqual(result['parameters']['lookbackCount'], result['channel']['lookbackCount'])

    def test_channel_with_stored_parameters(self):
        result = self._run('channel', 'DEMO', '--lookback', '60', '--stdev-mult', '2.0')
        self.assertEqual(result['channel']['lookbackCount'], 60)
        self.assertEqual(result['channel']['optimalStdevMult'], 2.0)

    def test_zones(self):
        result = self._run('zones', 'DEMO')
        self.assertEqual(len(result['zones']), 5)
        self.assertAlmostEqual(sum(z['volumeWeight'] for z in result['zones']), 1.0)

        result = self._run('zones', 'DEMO', '--period-days', '180')
        self.assertEqual(len(result['zones']), 3)

    def test_segments(self):
        for analysis in ('segments', 'reverse-segments'):
            result = self._run(analysis, 'DEMO', '--num-zones', '4')
            self.assertGreater(len(result['channels']), 0)
            for channel in result['channels']:
                self.assertEqual(len(channel['zones']), 4)

    def test_manual(self):
        result = self._run('manual', 'DEMO', '--range', '10', '49')
        self.assertEqual(result['channel']['startIndex'], 10)
        self.assertEqual(result['channel']['endIndex'], 50)

        extended = self._run('manual', 'DEMO', '--range', '10', '49', '--extend')
        self.assertLessEqual(extended['channel']['startIndex'], 10)
        self.assertGreaterEqual(extended['channel']['endIndex'], 50)

    def test_manual_requires_range(self):
        self.assertIn('error', self._run('manual', 'DEMO'))

    def test_best(self):
        result = self._run('best', 'DEMO', '--top', '2')
        self.assertLessEqual(len(result['channels']), 2)
        self.assertGreater(len(result['channels']), 0)

    def test_unknown_symbol(self):
        self.assertIn('error', self._run('channel', 'MISSING'))


if __name__ == '__main__':
    unittest.main()

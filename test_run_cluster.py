# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from doubles.fake_hosts import FakeHostAccess
from run_cluster import parse_args
from run_cluster import run

# language=Bash
_CONFIG = '''
CLUSTER_HOSTS="node1,node2"
SSH_USER="ozone"
OM_HOSTS="node1"
RECON_HOSTS="node3"
'''


class TestRunCluster(unittest.TestCase):

    def setUp(self):
        self._tempdir = TemporaryDirectory()
        self._root = Path(self._tempdir.name)
        self._config_path = self._root / 'multi-host.conf'
        self._config_path.write_text(_CONFIG)
        self._access = FakeHostAccess()

    def tearDown(self):
        self._tempdir.cleanup()

    def _run(self, *args):
        return run(
            parse_args(['--config', str(self._config_path), *args]),
            lambda _config: self._access)

    def test_missing_config(self):
        self._config_path.unlink()
        with self.assertLogs('run_cluster', logging.ERROR):
            self.assertEqual(self._run('status'), 1)

    def test_configure_reaches_every_planned_host(self):
        output_dir = self._root / 'out'
        self.assertEqual(self._run('configure', '--output-dir', str(output_dir)), 0)
        self.assertTrue((output_dir / 'ozone-site.xml').is_file())
        for host in ('node1', 'node2', 'node3'):
            self.assertIn('/etc/hadoop/conf/core-site.xml', self._access.shell(host).files)

    def test_status_probes_every_planned_host(self):
        self.assertEqual(self._run('status'), 0)
        self.assertCountEqual(self._access.attempted_hosts, ['node1', 'node2', 'node3'])

    def test_stop_rejects_unknown_host(self):
        with self.assertLogs('run_cluster', logging.ERROR):
            self.assertEqual(self._run('stop', 'om', 'node9'), 1)

    def test_stop_all_requires_host(self):
        self.assertEqual(self._run('stop', 'all'), 1)

    def test_start_requires_installation(self):
        self._access.shell('node2').respond(r'"\$OZONE_CMD" version', returncode=127)
        with self.assertLogs('run_cluster', logging.ERROR) as logs:
            self.assertEqual(self._run('start'), 1)
        self.assertIn('node2', logs.output[-1])

    def test_install_stops_on_invalid_host(self):
        self._access.unreachable.add('node1')
        self.assertEqual(self._run('install', '--jdk-version', '17'), 1)

    def test_parse_args(self):
        args = parse_args(['--verbose', 'stop', 'all', 'node1'])
        self.assertEqual((args.command, args.service, args.host, args.verbose), ('stop', 'all', 'node1', True))
        args = parse_args(['start', '--first-time'])
        self.assertTrue(args.first_time)
        self.assertEqual(parse_args(['install']).jdk_version, None)


if __name__ == '__main__':
    logging.basicConfig(level=logging.DEBUG)
    unittest.main()

# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import threading
import unittest

from cluster_config import ClusterConfig
from doubles.fake_hosts import FakeHostAccess
from ozone_services import ALL_SERVICES
from ozone_services import FormatResult
from ozone_services import OzoneNotInstalled
from ozone_services import OzoneScript
from ozone_services import SafeModeWaiter
from ozone_services import ServiceOrchestrator

_CLASS_BY_DAEMON = {s.daemon_name: s.class_token for s in ALL_SERVICES}


class _SimulatedCluster:
    """Hosts where format and daemon start behave like Ozone would."""

    def __init__(self, config: ClusterConfig, access: FakeHostAccess):
        self.events = []
        self._lock = threading.Lock()
        for host in {*config.cluster_hosts, *_configured_hosts(config)}:
            shell = access.shell(host)
            shell.respond_with(r'"\$OZONE_CMD" --daemon start (\S+)', self._start)
            shell.respond_with(r'"\$OZONE_CMD" (scm|om) (--init|--bootstrap)', self._format)
            shell.respond(r'admin safemode status', stdout='SCM is out of safe mode.\n')

    def _start(self, shell, match):
        daemon = match[1]
        shell.start_process(f'/usr/lib/jvm/java/bin/java -Dproc_{daemon} {_CLASS_BY_DAEMON[daemon]}')
        with self._lock:
            self.events.append(('start', daemon, shell.host))
        return 0, f'Starting {daemon}\n'

    def _format(self, shell, match):
        with self._lock:
            self.events.append((match[2], match[1], shell.host))
        return 0, ''

    def index(self, event):
        return self.events.index(event)


def _configured_hosts(config):
    hosts = []
    for service in ALL_SERVICES:
        hosts.extend(config.service_hosts(service.name) or ())
    return hosts


def _lose_connection(_shell, _match):
    raise EOFError("Connection closed by remote host")


class TestStart(unittest.TestCase):

    def _make(self, config, waiter=None):
        self._access = FakeHostAccess()
        self._cluster = _SimulatedCluster(config, self._access)
        self._sleeps = []
        return ServiceOrchestrator(
            config, self._access, waiter=waiter, sleep=self._sleeps.append)

    def test_phase_order(self):
        orchestrator = self._make(ClusterConfig(['h1', 'h2', 'h3'], 'ozone'))
        report = orchestrator.start(format_first=True)
        events = self._cluster.events
        self.assertEqual(events[:4], [
            ('--init', 'scm', 'h1'),
            ('start', 'scm', 'h1'),
            ('--init', 'om', 'h1'),
            ('start', 'om', 'h1'),
            ])
        self.assertCountEqual(events[4:7], [
            ('start', 'datanode', 'h1'),
            ('start', 'datanode', 'h2'),
            ('start', 'datanode', 'h3'),
            ])
        self.assertEqual(events[7:], [
            ('start', 'recon', 'h1'),
            ('start', 's3g', 'h1'),
            ('start', 'httpfs', 'h1'),
            ])
        self.assertEqual(self._sleeps, [15, 15, 30])
        self.assertTrue(report.ready)
        self.assertEqual(report.failed_hosts(), [])
        self.assertEqual(report.format_results[('scm', 'h1')], FormatResult.FORMATTED)
        self.assertEqual(list(report.status), ['h1', 'h2', 'h3'])
        self.assertTrue(all(report.status['h1'].values()))
        self.assertEqual(report.status['h2']['om'], ())
        self.assertEqual(len(report.status['h2']['datanode']), 1)

    def test_scm_ha_primary_before_followers(self):
        config = ClusterConfig(
            ['s1', 's2', 's3'], 'ozone',
            service_hosts={'scm': ['s1', 's2', 's3'], 'om': ['s1', 's2', 's3']})
        orchestrator = self._make(config)
        orchestrator.start(format_first=True)
        events = self._cluster.events
        self.assertEqual(events[:2], [('--init', 'scm', 's1'), ('start', 'scm', 's1')])
        self.assertCountEqual(
            [e for e in events[2:6]],
            [
                ('--bootstrap', 'scm', 's2'), ('start', 'scm', 's2'),
                ('--bootstrap', 'scm', 's3'), ('start', 'scm', 's3'),
                ])
        self.assertCountEqual(
            [e for e in events if e[1] == 'om' and e[0] != 'start'],
            [('--init', 'om', 's1'), ('--init', 'om', 's2'), ('--init', 'om', 's3')])
        last_scm = max(i for i, e in enumerate(events) if e[1] == 'scm')
        first_om = min(i for i, e in enumerate(events) if e[1] == 'om')
        self.assertLess(last_scm, first_om)

    def test_second_start_skips_running_services(self):
        orchestrator = self._make(ClusterConfig(['h1', 'h2'], 'ozone'))
        orchestrator.start()
        started = len(self._cluster.events)
        with self.assertLogs('ozone_services._orchestrator', logging.INFO) as logs:
            report = orchestrator.start()
        self.assertEqual(len(self._cluster.events), started)
        self.assertTrue(any('already running' in line for line in logs.output))
        self.assertEqual(report.failed_hosts(), [])

    def test_start_without_format(self):
        orchestrator = self._make(ClusterConfig(['h1'], 'ozone'))
        report = orchestrator.start(format_first=False)
        self.assertEqual([e for e in self._cluster.events if e[0] != 'start'], [])
        self.assertEqual(report.format_results, {})

    def test_failed_start_does_not_stop_later_phases(self):
        orchestrator = self._make(ClusterConfig(['h1', 'h2'], 'ozone'))
        self._access.shell('h2').respond(r'--daemon start datanode', returncode=1)
        report = orchestrator.start()
        [(phase, outcome)] = report.failed_hosts()
        self.assertEqual((phase, outcome.host), ('datanode', 'h2'))
        self.assertIn(('start', 'httpfs', 'h1'), self._cluster.events)

    def test_format_failure_is_not_fatal(self):
        orchestrator = self._make(ClusterConfig(['h1'], 'ozone'))
        shell = self._access.shell('h1')
        shell.respond(r'om --init', returncode=1)
        shell.respond(r'current/VERSION', stdout='/var/lib/hadoop-ozone/om/data/om/current/VERSION\n')
        report = orchestrator.start(format_first=True)
        self.assertEqual(report.format_results[('om', 'h1')], FormatResult.ALREADY_INITIALIZED)
        self.assertIn(('start', 'om', 'h1'), self._cluster.events)

    def test_readiness_timeout_is_reported(self):
        config = ClusterConfig(['h1'], 'ozone', service_hosts={'om': ['h1']})
        sleeps = []
        access = FakeHostAccess()
        waiter = SafeModeWaiter(access, OzoneScript(), max_attempts=2, sleep=sleeps.append)
        _SimulatedCluster(config, access)
        access.shell('h1').respond(r'admin safemode status', stdout='SCM is in safe mode.\n')
        orchestrator = ServiceOrchestrator(config, access, waiter=waiter, sleep=sleeps.append)
        report = orchestrator.start()
        self.assertFalse(report.ready)
        self.assertEqual(sleeps, [15, 15, 30, 10])

    def test_readiness_waits_on_first_om_host(self):
        config = ClusterConfig(['h1', 'h2'], 'ozone', service_hosts={'om': ['h2', 'h1']})
        orchestrator = self._make(config)
        orchestrator.start()
        self.assertEqual(self._access.shell('h1').scripts_matching('admin safemode status'), [])
        self.assertEqual(len(self._access.shell('h2').scripts_matching('admin safemode status')), 1)

    def test_dropped_session_fails_only_that_host(self):
        orchestrator = self._make(ClusterConfig(['h1', 'h2'], 'ozone'))
        self._access.dropped_sessions.add('h2')
        report = orchestrator.start()
        [(phase, outcome)] = report.failed_hosts()
        self.assertEqual((phase, outcome.host), ('datanode', 'h2'))
        self.assertIn('SSH session not active', outcome.error_detail)
        self.assertIn(('start', 'httpfs', 'h1'), self._cluster.events)
        self.assertEqual(set(report.status['h2'].values()), {None})
        self.assertTrue(all(report.status['h1'].values()))

    def test_start_prepares_only_missing_directories(self):
        config = ClusterConfig(['h1'], 'ozone', directories={'HDDS_DATANODE_DIR': '/data/dn'})
        orchestrator = self._make(config)
        orchestrator.start()
        [launch] = self._access.shell('h1').scripts_matching(r'--daemon start datanode')
        self.assertIn(
            'for dir in /var/lib/hadoop-ozone/datanode/id /var/lib/hadoop-ozone/datanode/ratis /data/dn; do',
            launch)
        self.assertIn('if [ ! -d "$dir" ]; then', launch)
        self.assertNotIn('chown -R', launch)
        self.assertNotIn('chmod -R', launch)


class TestStopAndStatus(unittest.TestCase):

    def setUp(self):
        config = ClusterConfig(
            ['h1', 'h2', 'h3'], 'ozone',
            service_hosts={'om': ['h1', 'h2'], 'recon': ['h3']})
        self._access = FakeHostAccess()
        _SimulatedCluster(config, self._access)
        self._orchestrator = ServiceOrchestrator(config, self._access, sleep=lambda _: None)
        self._orchestrator.start()

    def _running(self, host):
        return sorted(args.split()[1] for args in self._access.shell(host).processes.values())

    def test_stop_everything_in_reverse_order(self):
        result = self._orchestrator.stop()
        self.assertEqual(list(result), ['httpfs', 's3gateway', 'recon', 'datanode', 'om', 'scm'])
        for host in ('h1', 'h2', 'h3'):
            self.assertEqual(self._running(host), [])

    def test_stop_service_on_its_hosts(self):
        result = self._orchestrator.stop('om')
        self.assertEqual([o.host for o in result['om']], ['h1', 'h2'])
        self.assertNotIn('-Dproc_om', self._running('h1'))
        self.assertNotIn('-Dproc_om', self._running('h2'))
        self.assertIn('-Dproc_scm', self._running('h1'))

    def test_stop_all_on_one_host(self):
        self._orchestrator.stop('ALL', 'h1')
        self.assertEqual(self._running('h1'), [])
        self.assertEqual(self._running('h2'), ['-Dproc_datanode', '-Dproc_om'])

    def test_stop_service_on_one_host(self):
        self._orchestrator.stop('DataNode', 'h3')
        self.assertEqual(self._running('h3'), ['-Dproc_recon'])
        self.assertIn('-Dproc_datanode', self._running('h2'))

    def test_stop_twice_succeeds(self):
        self._orchestrator.stop('recon')
        [outcome] = self._orchestrator.stop('recon')['recon']
        self.assertTrue(outcome.succeeded)

    def test_invalid_arguments(self):
        with self.assertRaises(ValueError):
            self._orchestrator.stop('all')
        with self.assertRaises(ValueError):
            self._orchestrator.stop('om', 'elsewhere')
        with self.assertRaises(ValueError):
            self._orchestrator.stop(None, 'h1')
        with self.assertRaises(KeyError):
            self._orchestrator.stop('namenode')

    def test_status_with_unreachable_host(self):
        self._access.unreachable.add('h2')
        status = self._orchestrator.status()
        self.assertEqual(list(status), ['h1', 'h2', 'h3'])
        self.assertEqual(set(status['h2'].values()), {None})
        self.assertEqual(len(status['h3']['recon']), 1)
        self.assertEqual(status['h3']['om'], ())

    def test_status_when_connection_drops(self):
        self._access.dropped_sessions.add('h2')
        self._access.shell('h3').respond_with(r'ps -eo', _lose_connection)
        with self.assertLogs('ozone_services._orchestrator', logging.WARNING):
            status = self._orchestrator.status()
        self.assertEqual(list(status), ['h1', 'h2', 'h3'])
        self.assertEqual(set(status['h2'].values()), {None})
        self.assertEqual(set(status['h3'].values()), {None})
        self.assertEqual(len(status['h1']['scm']), 1)

    def test_service_urls(self):
        urls = self._orchestrator.service_urls()
        self.assertEqual(urls['om'], ['http://h1:9874', 'http://h2:9874'])
        self.assertEqual(urls['httpfs'], ['http://h1:14000'])
        self.assertEqual(urls['datanode'][2], 'http://h3:9882')


class TestCheckInstallation(unittest.TestCase):

    def test_missing_binary(self):
        access = FakeHostAccess()
        access.shell('h2').respond(r'"\$OZONE_CMD" version', returncode=127)
        orchestrator = ServiceOrchestrator(ClusterConfig(['h1', 'h2'], 'ozone'), access)
        with self.assertRaises(OzoneNotInstalled) as cm:
            orchestrator.check_installation()
        self.assertEqual(cm.exception.hosts, ['h2'])

    def test_installed(self):
        orchestrator = ServiceOrchestrator(ClusterConfig(['h1', 'h2'], 'ozone'), FakeHostAccess())
        orchestrator.check_installation()


if __name__ == '__main__':
    logging.basicConfig(level=logging.DEBUG)
    unittest.main()

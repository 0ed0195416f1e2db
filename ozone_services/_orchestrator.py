# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import threading
import time
from typing import Callable
from typing import Dict
from typing import List
from typing import Mapping
from typing import NamedTuple
from typing import Optional
from typing import Sequence
from typing import Tuple

from cluster_config import ClusterConfig
from cluster_config import ServiceHostPlan
from os_access import HostAccess
from ozone_services._format import FormatResult
from ozone_services._format import ServiceFormatter
from ozone_services._process_probe import ProcessProbe
from ozone_services._readiness import SafeModeWaiter
from ozone_services._scripts import OzoneScript
from ozone_services._services import ALL_SERVICES
from ozone_services._services import DATANODE
from ozone_services._services import HTTPFS
from ozone_services._services import OM
from ozone_services._services import OzoneService
from ozone_services._services import RECON
from ozone_services._services import S3GATEWAY
from ozone_services._services import SCM
from ozone_services._services import get_service
from provisioning import Fleet
from provisioning import HostOutcome

# Host -> service name -> PIDs; None when the host could not be probed.
ClusterStatus = Mapping[str, Mapping[str, Optional[Tuple[int, ...]]]]


class OzoneNotInstalled(Exception):

    def __init__(self, hosts: Sequence[str]):
        super().__init__(f"Ozone is not installed on: {', '.join(hosts)}")
        self.hosts = hosts


class StartReport(NamedTuple):
    phases: Mapping[str, Sequence[HostOutcome]]
    format_results: Mapping[Tuple[str, str], FormatResult]
    status: ClusterStatus
    ready: bool

    def failed_hosts(self) -> List[Tuple[str, HostOutcome]]:
        return [
            (phase, outcome)
            for phase, outcomes in self.phases.items()
            for outcome in outcomes
            if not outcome.succeeded
            ]


class ServiceOrchestrator:
    """Start, stop and inspect Ozone services across the cluster.

    Every phase is a fan-out over the hosts of one service and finishes
    on all hosts before the next phase begins.
    """

    def __init__(
            self,
            config: ClusterConfig,
            access: HostAccess,
            probe: Optional[ProcessProbe] = None,
            waiter: Optional[SafeModeWaiter] = None,
            sleep: Callable[[float], None] = time.sleep,
            settle_sec: float = 15,
            final_settle_sec: float = 30,
            ):
        self._config = config
        self._access = access
        self._plan = ServiceHostPlan(config)
        self._script = OzoneScript(config.install_dir, config.conf_dir)
        self._probe = probe if probe is not None else ProcessProbe(access)
        self._waiter = waiter if waiter is not None else SafeModeWaiter(
            access, self._script, sleep=sleep)
        self._formatter = ServiceFormatter(config, access, self._script)
        self._sleep = sleep
        self._settle_sec = settle_sec
        self._final_settle_sec = final_settle_sec
        self._concurrency = config.max_concurrent_transfers

    def __repr__(self):
        return f'<ServiceOrchestrator {self._plan.describe_line()}>'

    @property
    def plan(self) -> ServiceHostPlan:
        return self._plan

    def check_installation(self):
        hosts = self._config.cluster_hosts
        _logger.info("Checking Ozone installation on %s", ', '.join(hosts))

        def check(host):
            result = self._access.shell(host).run_script(self._script.build(
                'echo "Ozone command found: $OZONE_CMD"\n"$OZONE_CMD" version'))
            if result.returncode != 0:
                raise RuntimeError(
                    f"ozone is not usable (exit {result.returncode}): "
                    f"{(result.stdout + result.stderr).decode(errors='backslashreplace').strip()[-500:]}")

        outcomes = Fleet(hosts, self._concurrency).run_action(check, "Check installation")
        failed = Fleet.failed(outcomes)
        if failed:
            raise OzoneNotInstalled([o.host for o in failed])

    def start(self, format_first: bool = False) -> StartReport:
        self._plan.describe()
        phases: Dict[str, Sequence[HostOutcome]] = {}
        format_results: Dict[Tuple[str, str], FormatResult] = {}
        phases[SCM.name] = self._start_scm(format_first, format_results)
        self._settle(self._settle_sec, SCM)
        phases[OM.name] = self._start_service(OM, self._plan.hosts(OM.name), format_first, format_results)
        self._settle(self._settle_sec, OM)
        for service in (DATANODE, RECON, S3GATEWAY, HTTPFS):
            phases[service.name] = self._start_service(
                service, self._plan.hosts(service.name), False, format_results)
        _logger.info("Waiting %s seconds for services to start up", self._final_settle_sec)
        self._sleep(self._final_settle_sec)
        status = self.status(self._config.cluster_hosts)
        ready = self._waiter.wait(self._plan.hosts(OM.name)[0])
        self.log_service_urls()
        report = StartReport(phases, format_results, status, ready)
        for phase, outcome in report.failed_hosts():
            _logger.warning("%s on %s did not start: %s", phase, outcome.host, outcome.error_detail)
        return report

    def _start_scm(self, format_first, format_results) -> List[HostOutcome]:
        hosts = self._plan.hosts(SCM.name)
        if len(hosts) == 1:
            return self._start_service(SCM, hosts, format_first, format_results)
        # The primary creates the SCM cluster before the others bootstrap into it.
        [primary, *followers] = hosts
        _logger.info("SCM HA: %s initializes, %s bootstrap", primary, ', '.join(followers))
        outcomes = self._start_service(SCM, [primary], format_first, format_results, hosts)
        outcomes += self._start_service(SCM, followers, format_first, format_results, hosts)
        return outcomes

    def _settle(self, seconds, service: OzoneService):
        _logger.info("Waiting %s seconds for %s to start", seconds, service.display_name)
        self._sleep(seconds)

    def _start_service(
            self,
            service: OzoneService,
            hosts: Sequence[str],
            format_first: bool,
            format_results: Dict[Tuple[str, str], FormatResult],
            role_hosts: Optional[Sequence[str]] = None,
            ) -> List[HostOutcome]:
        role_hosts = role_hosts if role_hosts is not None else hosts
        lock = threading.Lock()
        _logger.info("Starting %s on %s", service.display_name, ', '.join(hosts))

        def start_on_host(host):
            if self._probe.is_running(host, service.class_token):
                _logger.info("%s: %s: already running", host, service.display_name)
                return
            if format_first and service.supports_format:
                result = self._formatter.format(host, service, role_hosts)
                with lock:
                    format_results[(service.name, host)] = result
            self._launch(host, service)

        return Fleet(hosts, self._concurrency).run_action(
            start_on_host, f"Start {service.display_name}")

    def _launch(self, host: str, service: OzoneService):
        directories = self._config.service_directories(service.name)
        # language=Bash
        result = self._access.shell(host).run_script(self._script.build(f'''
            echo "Starting {service.display_name} with OZONE_CONF_DIR=$OZONE_CONF_DIR"
            if ! "$OZONE_CMD" --daemon start {service.daemon_name} > {service.start_log()} 2>&1; then
                tail -n 20 {service.start_log()} >&2
                exit 1
            fi
            ''', directories=directories))
        if result.returncode != 0:
            raise RuntimeError(
                f"{service.display_name} start exited with {result.returncode}: "
                f"{result.stderr.decode(errors='backslashreplace').strip()[-1000:]}")
        _logger.info("%s: %s: startup initiated", host, service.display_name)

    def status(self, hosts: Optional[Sequence[str]] = None) -> ClusterStatus:
        hosts = hosts if hosts is not None else self._plan.all_hosts()
        tokens = [s.class_token for s in ALL_SERVICES]
        unknown = {s.name: None for s in ALL_SERVICES}
        found = {}

        def probe_host(host):
            pids = self._probe.find_many(host, tokens)
            found[host] = {s.name: pids[s.class_token] for s in ALL_SERVICES}

        Fleet(hosts, self._concurrency).run_action(probe_host, "Probe processes")
        # Hosts whose probe raised anything are absent from found.
        result = {host: found.get(host, unknown) for host in hosts}
        self._log_status(result)
        return result

    @staticmethod
    def _log_status(status: ClusterStatus):
        for host, services in status.items():
            _logger.info("%s: Ozone processes:", host)
            for service in ALL_SERVICES:
                pids = services[service.name]
                if pids is None:
                    _logger.warning("  %s: status unknown, probe failed", service.display_name)
                elif pids:
                    _logger.info(
                        "  %s is running (PID: %s)",
                        service.display_name, ' '.join(str(p) for p in pids))
                else:
                    _logger.info("  %s is not running", service.display_name)

    def service_urls(self) -> Mapping[str, Sequence[str]]:
        return {
            service.name: [f'http://{host}:{service.web_port}' for host in self._plan.hosts(service.name)]
            for service in ALL_SERVICES
            }

    def log_service_urls(self):
        _logger.info("Service URLs:")
        for service in ALL_SERVICES:
            for url in self.service_urls()[service.name]:
                _logger.info("  %s: %s", service.display_name, url)

    def stop(self, service: Optional[str] = None, host: Optional[str] = None) -> Dict[str, List[HostOutcome]]:
        """Stop services; later services first.

        Without arguments every service stops on its hosts. A service
        name alone stops it on its hosts. With a host, only that host
        is touched; service "all" then means every service on it.
        """
        if host is not None and host not in self._plan.all_hosts():
            raise ValueError(f"Host {host} is not configured in the cluster")
        if service is None:
            if host is not None:
                raise ValueError("Host given without a service; use service 'all' for every service")
            targets = [(s, self._plan.hosts(s.name)) for s in reversed(ALL_SERVICES)]
        elif service.lower() == 'all':
            if host is None:
                raise ValueError("Service 'all' requires a host; give no arguments to stop everything")
            targets = [(s, [host]) for s in reversed(ALL_SERVICES)]
        else:
            ozone_service = get_service(service.lower())
            hosts = [host] if host is not None else self._plan.hosts(ozone_service.name)
            targets = [(ozone_service, hosts)]
        result = {}
        for ozone_service, hosts in targets:
            result[ozone_service.name] = self._stop_service(ozone_service, hosts)
        return result

    def _stop_service(self, service: OzoneService, hosts: Sequence[str]) -> List[HostOutcome]:
        _logger.info("Stopping %s on %s", service.display_name, ', '.join(hosts))

        def stop_on_host(host):
            if not self._probe.stop(host, service.class_token, service.display_name):
                raise RuntimeError(f"{service.display_name} is still running")

        return Fleet(hosts, self._concurrency).run_action(
            stop_on_host, f"Stop {service.display_name}")


_logger = logging.getLogger(__name__)

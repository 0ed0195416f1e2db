# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
from typing import Callable
from typing import Collection
from typing import List
from typing import NamedTuple
from typing import Optional
from typing import Sequence

from cluster_config import ClusterConfig
from distrib import AcquisitionError
from distrib import ArtifactDistributor
from distrib import DistributedArtifact
from distrib import acquire_locally
from os_access import HostAccess
from os_access import SshNotConnected
from os_access import quote_arg
from provisioning import Command
from provisioning import ConfigureCpuGovernor
from provisioning import ConfigureSwappiness
from provisioning import DisableSelinux
from provisioning import DisableTransparentHugePages
from provisioning import Fleet
from provisioning import HostOutcome
from provisioning import InstallGrafana
from provisioning import InstallJdk
from provisioning import InstallPrometheus
from provisioning import InstallTimeSync
from provisioning import PrepareDirectories
from provisioning import Script

_SUPPORTED_ARCHITECTURES = ('x86_64', 'aarch64', 'arm64')

# language=Bash
_HOST_FACTS = '''
if [ -f /etc/os-release ]; then
    . /etc/os-release
fi
echo "$(hostname)|$(uname -s)|$(uname -m)|${ID:-unknown}|${VERSION_ID:-unknown}"
'''

# language=Bash
_USE_STAGED = '''
            echo "Using tarball from $staging_dir"
            '''

# language=Bash
_DOWNLOAD_ON_HOST = '''
            rm -f ozone.tar.gz
            if command -v wget >/dev/null 2>&1; then
                wget -q {url} -O ozone.tar.gz
            elif command -v curl >/dev/null 2>&1; then
                curl -fsSL {url} -o ozone.tar.gz
            else
                echo "Neither wget nor curl found" >&2
                exit 1
            fi
            '''


class HostValidationError(Exception):

    def __init__(self, failed: Sequence[HostOutcome]):
        super().__init__(
            "Host validation failed: " + '; '.join(f"{o.host}: {o.error_detail}" for o in failed))
        self.failed = failed


class HostFacts(NamedTuple):
    hostname: str
    os_type: str
    arch: str
    distribution: str
    version: str

    @classmethod
    def parse(cls, line: str) -> 'HostFacts':
        """Parse the pipe-separated line the facts script prints.

        >>> HostFacts.parse('node1|Linux|x86_64|rocky|9.3\\n')
        HostFacts(hostname='node1', os_type='Linux', arch='x86_64', distribution='rocky', version='9.3')
        """
        fields = line.strip().split('|')
        if len(fields) != 5:
            raise ValueError(f"Unexpected host facts: {line!r}")
        return cls(*fields)

    def problem(self) -> Optional[str]:
        if self.os_type != 'Linux':
            return f"unsupported OS {self.os_type}"
        if self.arch not in _SUPPORTED_ARCHITECTURES:
            return f"unsupported architecture {self.arch}"
        return None


class InstallOzone(Command):
    """Unpack Ozone into the install directory, unless it is already there.

    Hosts that got a verified copy of the tarball extract it from the
    staging directory. Others download it themselves.
    """

    def __init__(
            self,
            access: HostAccess,
            config: ClusterConfig,
            staging_dir: str,
            staged_hosts: Collection[str] = (),
            ):
        self._access = access
        self._config = config
        self._staging_dir = staging_dir
        self._staged_hosts = staged_hosts

    def __repr__(self):
        return f'<InstallOzone {self._config.ozone_version} to {self._config.install_dir}>'

    def run(self, host):
        staged = host in self._staged_hosts
        if not staged:
            _logger.info("%s: no verified tarball, the host downloads Ozone itself", host)
        Script(self._access, f"Install Ozone {self._config.ozone_version}", self._script(staged)).run(host)

    def _script(self, staged: bool) -> str:
        install_dir = quote_arg(self._config.install_dir)
        staging_dir = quote_arg(self._staging_dir)
        url = quote_arg(self._config.download_url())
        # language=Bash
        return f'''
            install_dir={install_dir}
            staging_dir={staging_dir}
            if [ -x "$install_dir/bin/ozone" ]; then
                echo "Ozone already installed at $install_dir"
                "$install_dir/bin/ozone" version || echo "WARNING: ozone version check failed"
                exit 0
            fi
            mkdir -p "$staging_dir"
            cd "$staging_dir"
            ''' + (_USE_STAGED if staged else _DOWNLOAD_ON_HOST.format(url=url)) + '''
            tar -xzf ozone.tar.gz
            ozone_dir=$(find . -maxdepth 1 -type d -name 'ozone-*' | head -1)
            if [ -z "$ozone_dir" ]; then
                echo "No ozone-* directory in the tarball" >&2
                exit 1
            fi
            sudo mkdir -p "$install_dir"
            sudo cp -a "$ozone_dir"/. "$install_dir"/
            sudo chown -R "$(id -un):$(id -gn)" "$install_dir"
            sudo chmod -R 755 "$install_dir"
            if [ ! -e /usr/local/bin/ozone ]; then
                sudo ln -sf "$install_dir/bin/ozone" /usr/local/bin/ozone
            fi
            cd /
            rm -rf "$staging_dir"
            "$install_dir/bin/ozone" version
            echo "Ozone installed at $install_dir"
            '''


Acquire = Callable[..., DistributedArtifact]


class ClusterInstaller:

    def __init__(
            self,
            config: ClusterConfig,
            access: HostAccess,
            max_concurrency: Optional[int] = None,
            acquire: Acquire = acquire_locally,
            ):
        self._config = config
        self._access = access
        self._max_concurrency = max_concurrency or config.max_concurrent_transfers
        self._acquire = acquire
        self._distributor = ArtifactDistributor(access)

    def __repr__(self):
        return f'<ClusterInstaller {self._config!r}>'

    def validate_hosts(self):
        """Check every host can be managed; raise if any cannot.

        Checks SSH connectivity, that the host runs Linux on a supported
        architecture and that sudo works without a password.
        """
        _logger.info("Validating %d hosts", len(self._config.cluster_hosts))
        fleet = Fleet(self._config.cluster_hosts, self._max_concurrency)
        outcomes = fleet.run_action(self._validate_host, "Validate host")
        failed = Fleet.failed(outcomes)
        if failed:
            raise HostValidationError(failed)

    def _validate_host(self, host):
        shell = self._access.shell(host)
        if not shell.is_working():
            raise SshNotConnected(shell, f"SSH connection to {self._config.ssh_user}@{host} failed")
        result = shell.run_script(_HOST_FACTS)
        if result.returncode != 0:
            raise RuntimeError(f"Cannot gather host facts, exit status {result.returncode}")
        facts = HostFacts.parse(result.stdout.decode(errors='backslashreplace'))
        problem = facts.problem()
        if problem is not None:
            raise RuntimeError(problem)
        _logger.info(
            "%s: %s, %s %s on %s",
            host, facts.hostname, facts.distribution, facts.version, facts.arch)
        result = shell.run(['sudo', '-n', 'true'])
        if result.returncode != 0:
            raise RuntimeError(f"User {self._config.ssh_user} has no passwordless sudo")

    def install(self, jdk_version: Optional[str] = None) -> List[HostOutcome]:
        self.validate_hosts()
        hosts = self._config.cluster_hosts
        staged_hosts = self._stage_tarball(hosts)
        version = self._config.ozone_version
        commands = [
            ConfigureCpuGovernor(self._access),
            DisableTransparentHugePages(self._access),
            DisableSelinux(self._access),
            ConfigureSwappiness(self._access),
            PrepareDirectories(self._access, self._config.all_directories()),
            InstallJdk(self._access, jdk_version or self._config.jdk_version),
            InstallTimeSync(self._access),
            InstallOzone(
                self._access, self._config,
                self._distributor.staging_dir(version), staged_hosts),
            ]
        commands.extend(self._monitoring_commands())
        outcomes = Fleet(hosts, self._max_concurrency).run(commands, "Install")
        if Fleet.failed(outcomes):
            _logger.error("Installation failed on some hosts; rerun install to retry them")
        else:
            _logger.info("Installation finished on all %d hosts", len(outcomes))
        return outcomes

    def _monitoring_commands(self) -> List[Command]:
        config = self._config
        commands = []
        if config.install_prometheus:
            commands.append(InstallPrometheus(
                self._access, config.prometheus_version,
                config.prometheus_install_dir, config.prometheus_data_dir))
        else:
            _logger.info("Skipping Prometheus installation (INSTALL_PROMETHEUS is off)")
        if config.install_grafana:
            commands.append(InstallGrafana(
                self._access, config.grafana_data_dir, config.grafana_logs_dir))
        else:
            _logger.info("Skipping Grafana installation (INSTALL_GRAFANA is off)")
        return commands

    def _stage_tarball(self, hosts: Sequence[str]) -> Collection[str]:
        try:
            artifact = self._acquire(
                self._config.ozone_version,
                self._config.download_url_template,
                override_path=self._config.local_tarball_path,
                )
        except AcquisitionError as e:
            _logger.warning("Cannot obtain the Ozone tarball locally: %s", e)
            _logger.warning("Every host downloads Ozone directly")
            return frozenset()
        outcomes = self._distributor.distribute(artifact, hosts, self._max_concurrency)
        staged = frozenset(host for host, outcome in outcomes.items() if outcome.succeeded)
        if len(staged) < len(hosts):
            _logger.warning(
                "Transfer failed to %d hosts; they download Ozone directly",
                len(hosts) - len(staged))
        return staged


_logger = logging.getLogger(__name__)

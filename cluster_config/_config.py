# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import getpass
import logging
import os
from configparser import ConfigParser
from configparser import Error as ConfigParserError
from pathlib import Path
from string import Template
from typing import Mapping
from typing import Optional
from typing import Sequence
from typing import Tuple

_logger = logging.getLogger(__name__)

_SECTION = 'cluster'

_SERVICE_HOST_KEYS = {
    'scm': 'SCM_HOSTS',
    'om': 'OM_HOSTS',
    'datanode': 'DATANODE_HOSTS',
    'recon': 'RECON_HOSTS',
    's3gateway': 'S3GATEWAY_HOSTS',
    'httpfs': 'HTTPFS_HOSTS',
    }

_DEFAULT_DIRECTORIES = {
    'OZONE_METADATA_DIRS': '/var/lib/hadoop-ozone/metadata',
    'OZONE_OM_DB_DIR': '/var/lib/hadoop-ozone/om/data',
    'OZONE_OM_RATIS_STORAGE_DIR': '/var/lib/hadoop-ozone/om/ratis',
    'OZONE_SCM_DB_DIRS': '/var/lib/hadoop-ozone/scm/data',
    'OZONE_SCM_HA_RATIS_STORAGE_DIR': '/var/lib/hadoop-ozone/scm/ratis',
    'OZONE_SCM_METADATA_DIRS': '/var/lib/hadoop-ozone/scm/metadata',
    'OZONE_RECON_DB_DIR': '/var/lib/hadoop-ozone/recon/data',
    'OZONE_RECON_SCM_DB_DIRS': '/var/lib/hadoop-ozone/recon/scm/data',
    'OZONE_RECON_OM_DB_DIR': '/var/lib/hadoop-ozone/recon/om/data',
    'OZONE_RECON_METADATA_DIRS': '/var/lib/hadoop-ozone/recon/metadata',
    'OZONE_SCM_DATANODE_ID_DIR': '/var/lib/hadoop-ozone/datanode/id',
    'DFS_CONTAINER_RATIS_DATANODE_STORAGE_DIR': '/var/lib/hadoop-ozone/datanode/ratis',
    'HDDS_DATANODE_DIR': '/var/lib/hadoop-ozone/datanode/data',
    'OZONE_DATANODE_METADATA_DIRS': '/var/lib/hadoop-ozone/datanode/metadata',
    }

# Order matters: it is the order directories are created and reported in.
_SERVICE_DIRECTORY_KEYS = {
    'om': ('OZONE_OM_DB_DIR', 'OZONE_METADATA_DIRS', 'OZONE_OM_RATIS_STORAGE_DIR'),
    'scm': ('OZONE_SCM_DB_DIRS', 'OZONE_SCM_HA_RATIS_STORAGE_DIR', 'OZONE_SCM_METADATA_DIRS'),
    'recon': (
        'OZONE_RECON_DB_DIR',
        'OZONE_RECON_SCM_DB_DIRS',
        'OZONE_RECON_OM_DB_DIR',
        'OZONE_RECON_METADATA_DIRS',
        ),
    'datanode': (
        'OZONE_SCM_DATANODE_ID_DIR',
        'DFS_CONTAINER_RATIS_DATANODE_STORAGE_DIR',
        'HDDS_DATANODE_DIR',
        'OZONE_DATANODE_METADATA_DIRS',
        ),
    's3gateway': (),
    'httpfs': (),
    }

_DEFAULT_DOWNLOAD_URL = (
    'https://archive.apache.org/dist/ozone/${OZONE_VERSION}/ozone-${OZONE_VERSION}.tar.gz')


class ConfigError(ValueError):
    pass


def parse_hosts(value: Optional[str]) -> Tuple[str, ...]:
    """Split a comma-separated host list.

    >>> parse_hosts(' a, b ,,c ')
    ('a', 'b', 'c')
    >>> parse_hosts('a,b,a')
    ('a', 'b')
    >>> parse_hosts('')
    ()
    >>> parse_hosts(None)
    ()
    """
    if not value:
        return ()
    hosts = []
    for part in value.split(','):
        host = part.strip()
        if host and host not in hosts:
            hosts.append(host)
    return tuple(hosts)


class ClusterConfig:
    """Everything the tool knows about the cluster. Never changes after load."""

    def __init__(
            self,
            cluster_hosts: Sequence[str],
            ssh_user: str,
            ssh_private_key_file: Optional[Path] = None,
            ssh_port: int = 22,
            ssh_connect_timeout_sec: float = 10,
            service_hosts: Optional[Mapping[str, Sequence[str]]] = None,
            max_concurrent_transfers: int = 10,
            ozone_version: str = '2.0.0',
            download_url_template: str = _DEFAULT_DOWNLOAD_URL,
            install_dir: str = '/opt/ozone',
            conf_dir: str = '/etc/hadoop/conf',
            local_tarball_path: Optional[Path] = None,
            jdk_version: str = '11',
            om_service_id: str = 'ozone1',
            scm_service_id: str = 'cluster1',
            directories: Optional[Mapping[str, str]] = None,
            install_prometheus: bool = False,
            prometheus_version: str = '2.54.1',
            prometheus_install_dir: str = '/opt/prometheus',
            prometheus_data_dir: str = '/var/lib/prometheus',
            install_grafana: bool = False,
            grafana_data_dir: str = '/var/lib/grafana',
            grafana_logs_dir: str = '/var/log/grafana',
            ):
        if not cluster_hosts:
            raise ConfigError("CLUSTER_HOSTS is empty")
        if max_concurrent_transfers < 1:
            raise ConfigError(
                f"MAX_CONCURRENT_TRANSFERS must be positive, got {max_concurrent_transfers}")
        service_hosts = service_hosts or {}
        unknown = set(service_hosts) - set(_SERVICE_HOST_KEYS)
        if unknown:
            raise ConfigError(f"Unknown services: {sorted(unknown)}")
        self.cluster_hosts = tuple(cluster_hosts)
        self.ssh_user = ssh_user
        self.ssh_private_key_file = ssh_private_key_file
        self.ssh_port = ssh_port
        self.ssh_connect_timeout_sec = ssh_connect_timeout_sec
        self._service_hosts = {
            name: tuple(hosts) if hosts else None
            for name, hosts in service_hosts.items()
            }
        self.max_concurrent_transfers = max_concurrent_transfers
        self.ozone_version = ozone_version
        self.download_url_template = download_url_template
        self.install_dir = install_dir
        self.conf_dir = conf_dir
        self.local_tarball_path = local_tarball_path
        self.jdk_version = jdk_version
        self.om_service_id = om_service_id
        self.scm_service_id = scm_service_id
        self._directories = {**_DEFAULT_DIRECTORIES, **(directories or {})}
        self.install_prometheus = install_prometheus
        self.prometheus_version = prometheus_version
        self.prometheus_install_dir = prometheus_install_dir
        self.prometheus_data_dir = prometheus_data_dir
        self.install_grafana = install_grafana
        self.grafana_data_dir = grafana_data_dir
        self.grafana_logs_dir = grafana_logs_dir

    def __repr__(self):
        return f'<ClusterConfig {",".join(self.cluster_hosts)} as {self.ssh_user}>'

    def service_hosts(self, service: str) -> Optional[Tuple[str, ...]]:
        """Hosts configured explicitly for the service; None if not set."""
        if service not in _SERVICE_HOST_KEYS:
            raise KeyError(service)
        return self._service_hosts.get(service)

    def download_url(self) -> str:
        """Substitute the version into the URL template.

        >>> c = ClusterConfig(['h'], 'u', ozone_version='1.4.1')
        >>> c.download_url()
        'https://archive.apache.org/dist/ozone/1.4.1/ozone-1.4.1.tar.gz'
        """
        template = Template(self.download_url_template)
        return template.safe_substitute(OZONE_VERSION=self.ozone_version)

    def directory(self, key: str) -> str:
        return self._directories[key]

    def service_directories(self, service: str) -> Tuple[str, ...]:
        return tuple(self._directories[key] for key in _SERVICE_DIRECTORY_KEYS[service])

    def all_directories(self) -> Tuple[str, ...]:
        result = []
        for service in ('om', 'scm', 'recon', 'datanode'):
            for directory in self.service_directories(service):
                if directory not in result:
                    result.append(directory)
        return tuple(result)

    @classmethod
    def from_mapping(cls, values: Mapping[str, str]) -> 'ClusterConfig':
        cluster_hosts = parse_hosts(values.get('CLUSTER_HOSTS'))
        if not cluster_hosts:
            raise ConfigError("CLUSTER_HOSTS is empty in configuration")
        key_file = values.get('SSH_PRIVATE_KEY_FILE')
        tarball = values.get('LOCAL_TARBALL_PATH')
        return cls(
            cluster_hosts=cluster_hosts,
            ssh_user=values.get('SSH_USER') or getpass.getuser(),
            ssh_private_key_file=Path(key_file).expanduser() if key_file else None,
            ssh_port=_int(values, 'SSH_PORT', 22),
            ssh_connect_timeout_sec=_int(values, 'SSH_CONNECT_TIMEOUT', 10),
            service_hosts={
                service: parse_hosts(values.get(key))
                for service, key in _SERVICE_HOST_KEYS.items()
                },
            max_concurrent_transfers=_int(values, 'MAX_CONCURRENT_TRANSFERS', 10),
            ozone_version=values.get('OZONE_VERSION') or '2.0.0',
            download_url_template=values.get('OZONE_DOWNLOAD_URL') or _DEFAULT_DOWNLOAD_URL,
            install_dir=values.get('OZONE_INSTALL_DIR') or '/opt/ozone',
            conf_dir=values.get('OZONE_CONF_DIR') or '/etc/hadoop/conf',
            local_tarball_path=Path(tarball).expanduser() if tarball else None,
            jdk_version=values.get('JDK_VERSION') or '11',
            om_service_id=values.get('OZONE_OM_SERVICE_ID') or 'ozone1',
            scm_service_id=values.get('OZONE_SCM_SERVICE_ID') or 'cluster1',
            directories={
                key: values[key] for key in _DEFAULT_DIRECTORIES if values.get(key)},
            install_prometheus=_bool(values, 'INSTALL_PROMETHEUS', False),
            prometheus_version=values.get('PROMETHEUS_VERSION') or '2.54.1',
            prometheus_install_dir=values.get('PROMETHEUS_INSTALL_DIR') or '/opt/prometheus',
            prometheus_data_dir=values.get('PROMETHEUS_DATA_DIR') or '/var/lib/prometheus',
            install_grafana=_bool(values, 'INSTALL_GRAFANA', False),
            grafana_data_dir=values.get('GRAFANA_DATA_DIR') or '/var/lib/grafana',
            grafana_logs_dir=values.get('GRAFANA_LOGS_DIR') or '/var/log/grafana',
            )


def _int(values: Mapping[str, str], key: str, default: int) -> int:
    raw = values.get(key)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}")


def _bool(values: Mapping[str, str], key: str, default: bool) -> bool:
    """Parse a true/false switch.

    >>> _bool({'X': 'True'}, 'X', False)
    True
    >>> _bool({'X': 'no'}, 'X', True)
    False
    >>> _bool({}, 'X', False)
    False
    """
    raw = values.get(key)
    if not raw:
        return default
    if raw.lower() in ('true', 'yes', '1'):
        return True
    if raw.lower() in ('false', 'no', '0'):
        return False
    raise ConfigError(f"{key} must be true or false, got {raw!r}")


def _strip_quotes(value: str) -> str:
    """Remove shell-style quotes the config format allows.

    >>> _strip_quotes('"a,b"')
    'a,b'
    >>> _strip_quotes("'x'")
    'x'
    >>> _strip_quotes('plain')
    'plain'
    """
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in '"\'':
        return value[1:-1]
    return value


def read_config_values(path: Path) -> Mapping[str, str]:
    """Read KEY=value lines; the file has no sections, so one is implied."""
    try:
        text = path.read_text()
    except FileNotFoundError:
        raise ConfigError(f"Configuration file not found: {path}")
    config_parser = ConfigParser(
        interpolation=None, delimiters=('=',), inline_comment_prefixes=('#',), strict=False)
    config_parser.optionxform = str  # Keys are case-sensitive like shell variables.
    try:
        config_parser.read_string(f'[{_SECTION}]\n' + text, source=str(path))
    except ConfigParserError as e:
        raise ConfigError(f"Cannot parse {path}: {e}")
    values = {}
    for key, value in config_parser.items(_SECTION):
        if key.startswith('export '):
            key = key[len('export '):].strip()
        values[key] = _strip_quotes(value)
    _logger.debug("Config %s: %d keys", path, len(values))
    return values


def read_cluster_config(path: os.PathLike) -> ClusterConfig:
    path = Path(path)
    _logger.info("Loading configuration from %s", path)
    return ClusterConfig.from_mapping(read_config_values(path))

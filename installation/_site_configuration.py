# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import posixpath
from pathlib import Path
from textwrap import dedent
from typing import List
from typing import Mapping
from typing import Optional
from typing import Sequence
from typing import Tuple
from xml.etree import ElementTree

from cluster_config import ClusterConfig
from cluster_config import ServiceHostPlan
from os_access import HostAccess
from os_access import quote_arg
from provisioning import Fleet
from provisioning import HostOutcome
from provisioning import Script

_XML_HEADER = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<?xml-stylesheet type="text/xsl" href="configuration.xsl"?>\n'
    )

_Property = Tuple[str, str]


def properties_to_xml(properties: Sequence[_Property]) -> str:
    """Render Hadoop-style configuration XML.

    >>> print(properties_to_xml([('a.b', '1')]), end='')
    <?xml version="1.0" encoding="UTF-8"?>
    <?xml-stylesheet type="text/xsl" href="configuration.xsl"?>
    <configuration>
      <property>
        <name>a.b</name>
        <value>1</value>
      </property>
    </configuration>
    """
    root = ElementTree.Element('configuration')
    for name, value in properties:
        element = ElementTree.SubElement(root, 'property')
        ElementTree.SubElement(element, 'name').text = name
        ElementTree.SubElement(element, 'value').text = value
    ElementTree.indent(root)
    return _XML_HEADER + ElementTree.tostring(root, encoding='unicode') + '\n'


class SiteConfiguration:
    """Configuration files shared by every host of the cluster.

    With more than one OM or SCM host the file describes an HA service
    with node ids om1, om2... and scm1, scm2...; the first SCM host is
    the primordial node. A single OM or SCM is addressed directly.
    """

    def __init__(self, config: ClusterConfig, plan: Optional[ServiceHostPlan] = None):
        self._config = config
        self._plan = plan if plan is not None else ServiceHostPlan(config)

    def __repr__(self):
        return f'<SiteConfiguration {self._plan.describe_line()}>'

    def core_site_properties(self) -> List[_Property]:
        if self._plan.is_ha('om'):
            default_fs = f'ofs://{self._config.om_service_id}/'
        else:
            default_fs = f'ofs://{self._plan.hosts("om")[0]}/'
        return [
            ('fs.defaultFS', default_fs),
            ('fs.ofs.impl', 'org.apache.hadoop.fs.ozone.OzoneFileSystem'),
            ('fs.AbstractFileSystem.ofs.impl', 'org.apache.hadoop.fs.ozone.OzFs'),
            ]

    def ozone_site_properties(self) -> List[_Property]:
        directory = self._config.directory
        return [
            *self._scm_addresses(),
            ('ozone.scm.db.dirs', directory('OZONE_SCM_DB_DIRS')),
            ('ozone.scm.ha.ratis.storage.dir', directory('OZONE_SCM_HA_RATIS_STORAGE_DIR')),
            ('ozone.metadata.dirs', directory('OZONE_METADATA_DIRS')),
            *self._om_addresses(),
            ('ozone.om.db.dirs', directory('OZONE_OM_DB_DIR')),
            ('ozone.om.ratis.storage.dir', directory('OZONE_OM_RATIS_STORAGE_DIR')),
            ('ozone.recon.address', self._plan.hosts('recon')[0]),
            ('ozone.recon.db.dir', directory('OZONE_RECON_DB_DIR')),
            ('ozone.recon.scm.db.dirs', directory('OZONE_RECON_SCM_DB_DIRS')),
            ('ozone.recon.om.db.dir', directory('OZONE_RECON_OM_DB_DIR')),
            ('ozone.scm.datanode.id.dir', directory('OZONE_SCM_DATANODE_ID_DIR')),
            (
                'dfs.container.ratis.datanode.storage.dir',
                directory('DFS_CONTAINER_RATIS_DATANODE_STORAGE_DIR'),
                ),
            ('hdds.datanode.dir', directory('HDDS_DATANODE_DIR')),
            ('ozone.enabled', 'true'),
            ('ozone.security.enabled', 'false'),
            ]

    def _om_addresses(self) -> List[_Property]:
        hosts = self._plan.hosts('om')
        if not self._plan.is_ha('om'):
            return [('ozone.om.address', hosts[0])]
        service_id = self._config.om_service_id
        node_ids = [f'om{i}' for i in range(1, len(hosts) + 1)]
        return [
            ('ozone.om.service.ids', service_id),
            (f'ozone.om.nodes.{service_id}', ','.join(node_ids)),
            *[
                (f'ozone.om.address.{service_id}.{node_id}', host)
                for node_id, host in zip(node_ids, hosts)
                ],
            ('ozone.om.ratis.enable', 'true'),
            ]

    def _scm_addresses(self) -> List[_Property]:
        hosts = self._plan.hosts('scm')
        if not self._plan.is_ha('scm'):
            return [('ozone.scm.names', hosts[0])]
        service_id = self._config.scm_service_id
        node_ids = [f'scm{i}' for i in range(1, len(hosts) + 1)]
        return [
            ('ozone.scm.service.ids', service_id),
            (f'ozone.scm.nodes.{service_id}', ','.join(node_ids)),
            *[
                (f'ozone.scm.address.{service_id}.{node_id}', host)
                for node_id, host in zip(node_ids, hosts)
                ],
            ('ozone.scm.primordial.node.id', hosts[0]),
            ('ozone.scm.ratis.enable', 'true'),
            ]

    def core_site(self) -> str:
        return properties_to_xml(self.core_site_properties())

    def ozone_site(self) -> str:
        return properties_to_xml(self.ozone_site_properties())

    def log4j_properties(self) -> str:
        # language=Properties
        return dedent('''
            hadoop.root.logger=INFO,console
            hadoop.log.dir=.
            hadoop.log.file=hadoop.log
            log4j.rootLogger=${hadoop.root.logger}
            log4j.threshold=ALL

            hadoop.log.maxfilesize=256MB
            hadoop.log.maxbackupindex=20
            log4j.appender.RFA=org.apache.log4j.RollingFileAppender
            log4j.appender.RFA.File=${hadoop.log.dir}/${hadoop.log.file}
            log4j.appender.RFA.MaxFileSize=${hadoop.log.maxfilesize}
            log4j.appender.RFA.MaxBackupIndex=${hadoop.log.maxbackupindex}
            log4j.appender.RFA.layout=org.apache.log4j.PatternLayout
            log4j.appender.RFA.layout.ConversionPattern=%d{ISO8601} %p %c: %m%n

            log4j.appender.console=org.apache.log4j.ConsoleAppender
            log4j.appender.console.target=System.err
            log4j.appender.console.layout=org.apache.log4j.PatternLayout
            log4j.appender.console.layout.ConversionPattern=%d{yy/MM/dd HH:mm:ss} %p %c{2}: %m%n
            ''').lstrip()

    def files(self) -> Mapping[str, str]:
        return {
            'core-site.xml': self.core_site(),
            'ozone-site.xml': self.ozone_site(),
            'log4j.properties': self.log4j_properties(),
            }

    def write(self, output_dir: Path) -> Mapping[str, Path]:
        output_dir.mkdir(parents=True, exist_ok=True)
        written = {}
        for name, content in self.files().items():
            path = output_dir / name
            path.write_text(content)
            _logger.info("Written %s", path)
            written[name] = path
        return written


class ConfigurationDistributor:
    """Place generated configuration files on every host."""

    def __init__(self, access: HostAccess, conf_dir: str, max_concurrency: int = 10):
        self._access = access
        self._conf_dir = conf_dir
        self._max_concurrency = max_concurrency

    def distribute(self, files: Mapping[str, Path], hosts: Sequence[str]) -> List[HostOutcome]:
        prepare = Script(self._access, f"Create {self._conf_dir}", f'''
            sudo mkdir -p {quote_arg(self._conf_dir)}
            sudo chown -R "$(id -un):$(id -gn)" {quote_arg(self._conf_dir)}
            ''')

        def copy_files(host):
            prepare.run(host)
            shell = self._access.shell(host)
            for name, local_path in files.items():
                shell.upload(local_path, posixpath.join(self._conf_dir, name))
            _logger.info("%s: %d configuration files copied", host, len(files))

        return Fleet(hosts, self._max_concurrency).run_action(
            copy_files, f"Copy configuration to {self._conf_dir}")


_logger = logging.getLogger(__name__)

# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from xml.etree import ElementTree

from cluster_config import ClusterConfig
from doubles.fake_hosts import FakeHostAccess
from installation import ConfigurationDistributor
from installation import SiteConfiguration


def _parse(xml_text):
    root = ElementTree.fromstring(xml_text.split('\n', 2)[2])
    return {p.findtext('name'): p.findtext('value') for p in root.iter('property')}


class TestSiteConfiguration(unittest.TestCase):

    def test_multi_host_ha(self):
        config = ClusterConfig(
            ['n1', 'n2', 'n3'], 'ozone',
            service_hosts={'om': ['om-a', 'om-b', 'om-c'], 'scm': ['scm-a', 'scm-b', 'scm-c']})
        site = SiteConfiguration(config)
        properties = _parse(site.ozone_site())
        self.assertEqual(properties['ozone.om.service.ids'], 'ozone1')
        self.assertEqual(properties['ozone.om.nodes.ozone1'], 'om1,om2,om3')
        self.assertEqual(properties['ozone.om.address.ozone1.om2'], 'om-b')
        self.assertEqual(properties['ozone.scm.service.ids'], 'cluster1')
        self.assertEqual(properties['ozone.scm.nodes.cluster1'], 'scm1,scm2,scm3')
        self.assertEqual(properties['ozone.scm.address.cluster1.scm3'], 'scm-c')
        self.assertEqual(properties['ozone.scm.primordial.node.id'], 'scm-a')
        self.assertNotIn('ozone.om.address', properties)
        self.assertNotIn('ozone.scm.names', properties)
        self.assertEqual(_parse(site.core_site())['fs.defaultFS'], 'ofs://ozone1/')

    def test_single_host(self):
        config = ClusterConfig(['n1', 'n2'], 'ozone')
        site = SiteConfiguration(config)
        properties = _parse(site.ozone_site())
        self.assertEqual(properties['ozone.om.address'], 'n1')
        self.assertEqual(properties['ozone.scm.names'], 'n1')
        self.assertEqual(properties['ozone.recon.address'], 'n1')
        self.assertNotIn('ozone.om.service.ids', properties)
        self.assertNotIn('ozone.scm.service.ids', properties)
        self.assertEqual(properties['hdds.datanode.dir'], '/var/lib/hadoop-ozone/datanode/data')
        self.assertEqual(_parse(site.core_site())['fs.defaultFS'], 'ofs://n1/')

    def test_custom_service_ids_and_directories(self):
        config = ClusterConfig(
            ['n1', 'n2'], 'ozone',
            service_hosts={'om': ['n1', 'n2']},
            om_service_id='prod',
            directories={'OZONE_OM_DB_DIR': '/data/om'})
        properties = _parse(SiteConfiguration(config).ozone_site())
        self.assertEqual(properties['ozone.om.nodes.prod'], 'om1,om2')
        self.assertEqual(properties['ozone.om.db.dirs'], '/data/om')
        self.assertEqual(properties['ozone.scm.names'], 'n1')

    def test_write(self):
        with TemporaryDirectory() as tempdir:
            output_dir = Path(tempdir) / 'ozone-config'
            written = SiteConfiguration(ClusterConfig(['n1'], 'ozone')).write(output_dir)
            self.assertEqual(
                sorted(written), ['core-site.xml', 'log4j.properties', 'ozone-site.xml'])
            self.assertTrue((output_dir / 'log4j.properties').read_text().startswith(
                'hadoop.root.logger=INFO,console\n'))


class TestConfigurationDistributor(unittest.TestCase):

    def setUp(self):
        self._tempdir = TemporaryDirectory()
        output_dir = Path(self._tempdir.name)
        self._files = SiteConfiguration(ClusterConfig(['n1'], 'ozone')).write(output_dir)

    def tearDown(self):
        self._tempdir.cleanup()

    def test_copies_files_to_every_host(self):
        access = FakeHostAccess()
        distributor = ConfigurationDistributor(access, '/etc/hadoop/conf')
        outcomes = distributor.distribute(self._files, ['n1', 'n2'])
        self.assertTrue(all(o.succeeded for o in outcomes))
        for host in ('n1', 'n2'):
            shell = access.shell(host)
            self.assertEqual(
                sorted(shell.files),
                [
                    '/etc/hadoop/conf/core-site.xml',
                    '/etc/hadoop/conf/log4j.properties',
                    '/etc/hadoop/conf/ozone-site.xml',
                    ])
            [prepare] = shell.scripts_matching(r'sudo mkdir -p /etc/hadoop/conf')
            self.assertIn('sudo chown -R', prepare)

    def test_unreachable_host(self):
        access = FakeHostAccess(unreachable=['n2'])
        outcomes = ConfigurationDistributor(access, '/etc/hadoop/conf').distribute(
            self._files, ['n1', 'n2'])
        self.assertEqual([o.succeeded for o in outcomes], [True, False])


if __name__ == '__main__':
    logging.basicConfig(level=logging.DEBUG)
    unittest.main()

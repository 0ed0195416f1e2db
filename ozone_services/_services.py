# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from typing import NamedTuple
from typing import Tuple


class OzoneService(NamedTuple):
    name: str
    display_name: str
    # Main class of the service JVM. Found verbatim among the process arguments.
    class_token: str
    daemon_name: str
    web_port: int
    supports_format: bool = False

    def start_log(self) -> str:
        return f'/tmp/{self.name}.log'


SCM = OzoneService(
    'scm', 'SCM', 'org.apache.hadoop.hdds.scm.server.StorageContainerManager',
    'scm', 9876, supports_format=True)
OM = OzoneService(
    'om', 'OM', 'org.apache.hadoop.ozone.om.OzoneManager',
    'om', 9874, supports_format=True)
DATANODE = OzoneService(
    'datanode', 'DataNode', 'org.apache.hadoop.ozone.HddsDatanodeService',
    'datanode', 9882)
RECON = OzoneService(
    'recon', 'Recon', 'org.apache.hadoop.ozone.recon.ReconServer',
    'recon', 9888)
S3GATEWAY = OzoneService(
    's3gateway', 'S3 Gateway', 'org.apache.hadoop.ozone.s3.Gateway',
    's3g', 9878)
HTTPFS = OzoneService(
    'httpfs', 'HttpFS', 'org.apache.hadoop.fs.http.server.HttpFSServerWebApp',
    'httpfs', 14000)

# Start order. Stop goes in reverse.
ALL_SERVICES: Tuple[OzoneService, ...] = (SCM, OM, DATANODE, RECON, S3GATEWAY, HTTPFS)


def get_service(name: str) -> OzoneService:
    """Find a service by its name.

    >>> get_service('s3gateway').daemon_name
    's3g'
    >>> get_service('namenode')
    Traceback (most recent call last):
    ...
    KeyError: 'namenode'
    """
    for service in ALL_SERVICES:
        if service.name == name:
            return service
    raise KeyError(name)

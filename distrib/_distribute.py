# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import posixpath
from typing import Dict
from typing import Sequence

from distrib._artifact import DistributedArtifact
from os_access import HostAccess
from os_access import command_to_script
from provisioning import Fleet
from provisioning import HostOutcome


class TransferVerificationError(Exception):

    def __init__(self, host, remote_path, expected_size, actual_size):
        super().__init__(
            f"{host}:{remote_path} has {actual_size} bytes, expected {expected_size}")
        self.host = host
        self.expected_size = expected_size
        self.actual_size = actual_size


class ArtifactDistributor:
    """Push one local artifact to many hosts.

    A host succeeds only if the remote size read back after the
    transfer equals the local size and is not zero. A failed host does
    not affect other hosts; callers fall back per host.
    """

    def __init__(
            self,
            access: HostAccess,
            staging_dir_template: str = '/tmp/ozone_install_{version}_parallel',
            ):
        self._access = access
        self._staging_dir_template = staging_dir_template

    def staging_dir(self, version_tag: str) -> str:
        return self._staging_dir_template.format(version=version_tag)

    def staging_path(self, version_tag: str) -> str:
        """Where the artifact lands on every host.

        >>> ArtifactDistributor(None).staging_path('2.0.0')
        '/tmp/ozone_install_2.0.0_parallel/ozone.tar.gz'
        """
        return posixpath.join(self.staging_dir(version_tag), 'ozone.tar.gz')

    def distribute(
            self,
            artifact: DistributedArtifact,
            hosts: Sequence[str],
            max_concurrency: int,
            ) -> Dict[str, HostOutcome]:
        _logger.info(
            "Distributing %s (%d bytes) to %d hosts, %d at a time",
            artifact.source_path, artifact.size_bytes, len(hosts), max_concurrency)
        outcomes = Fleet(hosts, max_concurrency).run_action(
            lambda host: self._transfer(artifact, host),
            f"Transfer {artifact.source_path.name}")
        return {outcome.host: outcome for outcome in outcomes}

    def _transfer(self, artifact: DistributedArtifact, host: str):
        shell = self._access.shell(host)
        remote_path = self.staging_path(artifact.version_tag)
        result = shell.run(['mkdir', '-p', self.staging_dir(artifact.version_tag)])
        if result.returncode != 0:
            raise RuntimeError(
                f"Cannot create staging directory on {host}: "
                f"{result.stderr.decode(errors='backslashreplace').strip()}")
        shell.upload(artifact.source_path, remote_path)
        result = shell.run(command_to_script(['stat', '-c%s', remote_path]))
        if result.returncode != 0:
            raise TransferVerificationError(host, remote_path, artifact.size_bytes, None)
        remote_size = int(result.stdout.decode().strip() or 0)
        if remote_size == 0 or remote_size != artifact.size_bytes:
            raise TransferVerificationError(host, remote_path, artifact.size_bytes, remote_size)
        _logger.info("%s: transfer verified, %d bytes", host, remote_size)


_logger = logging.getLogger(__name__)

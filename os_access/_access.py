# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import threading
from abc import ABCMeta
from abc import abstractmethod
from typing import Dict

from cluster_config import ClusterConfig
from os_access._command import HostShell
from os_access._ssh_shell import Ssh

_logger = logging.getLogger(__name__)


class HostAccess(metaclass=ABCMeta):

    @abstractmethod
    def shell(self, host: str) -> HostShell:
        pass

    @abstractmethod
    def close(self):
        pass


class SshAccess(HostAccess):
    """One SSH connection per host, opened lazily and shared by threads."""

    def __init__(self, config: ClusterConfig):
        self._config = config
        self._shells: Dict[str, Ssh] = {}
        self._lock = threading.Lock()

    def __repr__(self):
        return f'<SshAccess {self._config.ssh_user}@{len(self._shells)} hosts>'

    def shell(self, host):
        with self._lock:
            try:
                return self._shells[host]
            except KeyError:
                pass
            shell = Ssh(
                host,
                self._config.ssh_user,
                port=self._config.ssh_port,
                key_path=self._config.ssh_private_key_file,
                connect_timeout_sec=self._config.ssh_connect_timeout_sec,
                )
            self._shells[host] = shell
            return shell

    def close(self):
        with self._lock:
            shells = list(self._shells.values())
            self._shells.clear()
        for shell in shells:
            _logger.debug("Close %s", shell)
            shell.close()

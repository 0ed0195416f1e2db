# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
from abc import ABCMeta
from abc import abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import as_completed
from typing import Callable
from typing import Collection
from typing import List
from typing import NamedTuple
from typing import Optional
from typing import Sequence

from os_access import HostAccess
from os_access import augment_script

_logger = logging.getLogger(__name__)


class HostOutcome(NamedTuple):
    host: str
    succeeded: bool
    error_detail: Optional[str] = None

    def __str__(self):
        return 'OK' if self.succeeded else f'FAILED: {self.error_detail}'


class ScriptFailed(Exception):

    def __init__(self, host, description, returncode, output):
        last_lines = '\n'.join(output.strip().splitlines()[-5:])
        super().__init__(f"{description} on {host} exited with {returncode}: {last_lines}")
        self.host = host
        self.returncode = returncode
        self.output = output


class Command(metaclass=ABCMeta):

    @abstractmethod
    def run(self, host: str):
        pass


class Script(Command):
    """Bash script body run with strict mode; non-zero exit raises."""

    def __init__(self, access: HostAccess, description: str, script: str):
        self._access = access
        self._description = description
        self._script = script

    def __repr__(self):
        return f'{self.__class__.__name__}({self._description!r})'

    def run(self, host):
        _logger.info("%s: %s", host, self._description)
        result = self._access.shell(host).run_script(augment_script(self._script))
        output = (result.stdout + result.stderr).decode(errors='backslashreplace')
        if result.returncode != 0:
            raise ScriptFailed(host, self._description, result.returncode, output)
        for line in output.splitlines():
            if line.startswith('WARNING:'):
                _logger.warning("%s: %s", host, line[len('WARNING:'):].strip())


class CompositeCommand(Command):

    def __init__(self, commands: Sequence[Command]):
        self._commands: Sequence[Command] = commands

    def __repr__(self):
        return f'<{self.__class__.__name__} with {len(self._commands)} commands>'

    def run(self, host):
        for command in self._commands:
            command.run(host)


class Fleet:
    """Runs the same work on many hosts with bounded concurrency.

    Every host is attempted. A host failure is captured as its outcome
    and never stops other hosts. Outcomes follow the order of hosts.
    """

    def __init__(self, hosts: Sequence[str], max_concurrency: int = 10):
        if max_concurrency < 1:
            raise ValueError(f"Concurrency must be positive, got {max_concurrency}")
        self._hosts = list(dict.fromkeys(hosts))
        self._max_concurrency = max_concurrency

    def __repr__(self):
        return f'<Fleet {",".join(self._hosts)} by {self._max_concurrency}>'

    def run(self, commands: Sequence[Command], description: str = 'Run') -> List[HostOutcome]:
        def run_commands(host):
            for command in commands:
                command.run(host)
        return self.run_action(run_commands, description)

    def run_action(self, action: Callable[[str], None], description: str = 'Run') -> List[HostOutcome]:
        if not self._hosts:
            return []
        outcomes = {}
        workers = min(self._max_concurrency, len(self._hosts))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='fleet') as executor:
            futures = {executor.submit(action, host): host for host in self._hosts}
            for future in as_completed(futures):
                host = futures[future]
                try:
                    future.result()
                except Exception as e:
                    _logger.error("%s: %s failed: %s", host, description, e)
                    outcomes[host] = HostOutcome(host, False, str(e) or type(e).__name__)
                else:
                    outcomes[host] = HostOutcome(host, True)
        result = [outcomes[host] for host in self._hosts]
        self._log_summary(description, result)
        return result

    @staticmethod
    def _log_summary(description, outcomes: Sequence[HostOutcome]):
        failed = Fleet.failed(outcomes)
        _logger.info(
            "%s: %d of %d hosts succeeded",
            description, len(outcomes) - len(failed), len(outcomes))
        for outcome in outcomes:
            if outcome.succeeded:
                _logger.info("  %s: %s", outcome.host, outcome)
            else:
                _logger.warning("  %s: %s", outcome.host, outcome)

    @staticmethod
    def failed(outcomes: Collection[HostOutcome]) -> List[HostOutcome]:
        return [o for o in outcomes if not o.succeeded]

# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import re
import threading
import time
from pathlib import Path
from subprocess import CompletedProcess
from typing import Callable
from typing import Collection
from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple

import paramiko

from os_access import HostAccess
from os_access import HostShell
from os_access import SshNotConnected
from os_access import command_to_script

_logger = logging.getLogger(__name__)

_Handler = Callable[['FakeShell', 're.Match'], Tuple[int, str]]

_kill_re = re.compile(r'\bkill -(?P<signal>TERM|KILL) (?P<pid>\d+)\b')
_stat_size_re = re.compile(r'\bstat -c%s (?P<path>\S+)')
_process_listing_marker = 'ps -eo pid=,args='


class FakeShell(HostShell):
    """Host with a process table and a file size table.

    Scripts are matched against registered responders, latest first.
    Unmatched scripts succeed with empty output, except for process
    listing, kill and stat -c%s, which the shell handles itself. The
    listing reports listing_method as the way it was obtained.
    """

    def __init__(self, host: str, access: 'FakeHostAccess'):
        self.host = host
        self._access = access
        self._lock = threading.Lock()
        self._responders: List[Tuple[re.Pattern, _Handler]] = []
        self._next_pid = 1000
        self.scripts: List[str] = []
        self.files: Dict[str, int] = {}
        self.processes: Dict[int, str] = {}
        self.term_resistant_pids = set()
        self.truncate_uploads_to: Optional[int] = None
        self.listing_method = 'ps'
        self.closed = False

    def __repr__(self):
        return f'<FakeShell {self.host}>'

    def respond(self, pattern: str, returncode: int = 0, stdout: str = ''):
        self.respond_with(pattern, lambda _shell, _match: (returncode, stdout))

    def respond_with(self, pattern: str, handler: _Handler):
        self._responders.append((re.compile(pattern), handler))

    def start_process(self, args: str) -> int:
        with self._lock:
            self._next_pid += 1
            self.processes[self._next_pid] = args
            return self._next_pid

    def scripts_matching(self, pattern: str) -> List[str]:
        return [s for s in self.scripts if re.search(pattern, s)]

    def run(self, command, input=None, timeout_sec=None):
        self._access.check_reachable(self)
        if input is not None:
            text = bytes(input).decode()
        elif isinstance(command, str):
            text = command
        else:
            text = command_to_script(command)
        with self._lock:
            self.scripts.append(text)
        returncode, stdout = self._respond(text)
        return CompletedProcess(command, returncode, stdout.encode(), b'')

    def _respond(self, text) -> Tuple[int, str]:
        for pattern, handler in reversed(self._responders):
            match = pattern.search(text)
            if match is not None:
                return handler(self, match)
        if _process_listing_marker in text:
            with self._lock:
                lines = [f'{pid} {args}' for pid, args in sorted(self.processes.items())]
            return 0, f'method={self.listing_method}\n' + ''.join(line + '\n' for line in lines)
        match = _kill_re.search(text)
        if match is not None:
            return self._kill(int(match['pid']), match['signal'])
        match = _stat_size_re.search(text)
        if match is not None:
            path = match['path'].strip('\'"')
            if path not in self.files:
                return 1, f"stat: cannot stat '{path}': No such file or directory\n"
            return 0, f'{self.files[path]}\n'
        return 0, ''

    def _kill(self, pid, signal):
        with self._lock:
            if pid not in self.processes:
                return 1, f"kill: ({pid}) - No such process\n"
            if signal == 'TERM' and pid in self.term_resistant_pids:
                return 1, f"kill: ({pid}) - Operation not permitted\n"
            del self.processes[pid]
            return 0, ''

    def upload(self, local_path, remote_path):
        self._access.check_reachable(self)
        size = Path(local_path).stat().st_size
        if self.truncate_uploads_to is not None:
            size = min(size, self.truncate_uploads_to)
        with self._access.transfer_slot():
            with self._lock:
                self.files[remote_path] = size

    def is_working(self):
        return self.host not in self._access.unreachable

    def close(self):
        self.closed = True


class FakeHostAccess(HostAccess):

    def __init__(
            self,
            unreachable: Collection[str] = (),
            upload_delay_sec: float = 0,
            ):
        self.unreachable = set(unreachable)
        self._upload_delay_sec = upload_delay_sec
        self._shells: Dict[str, FakeShell] = {}
        self._lock = threading.Lock()
        self._in_flight = 0
        self.max_in_flight_transfers = 0
        self.attempted_hosts: List[str] = []
        self.dropped_sessions = set()

    def shell(self, host) -> FakeShell:
        with self._lock:
            if host not in self._shells:
                self._shells[host] = FakeShell(host, self)
            return self._shells[host]

    def check_reachable(self, shell: FakeShell):
        with self._lock:
            if shell.host not in self.attempted_hosts:
                self.attempted_hosts.append(shell.host)
        if shell.host in self.unreachable:
            raise SshNotConnected(shell, f"Cannot connect to {shell.host}: simulated")
        if shell.host in self.dropped_sessions:
            raise paramiko.SSHException("SSH session not active")

    def transfer_slot(self):
        return _TransferSlot(self)

    def _enter_transfer(self):
        with self._lock:
            self._in_flight += 1
            self.max_in_flight_transfers = max(self.max_in_flight_transfers, self._in_flight)
        if self._upload_delay_sec:
            time.sleep(self._upload_delay_sec)

    def _exit_transfer(self):
        with self._lock:
            self._in_flight -= 1

    def close(self):
        for shell in self._shells.values():
            shell.close()


class _TransferSlot:

    def __init__(self, access: FakeHostAccess):
        self._access = access

    def __enter__(self):
        self._access._enter_transfer()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._access._exit_transfer()

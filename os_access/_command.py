# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import time
from abc import ABCMeta
from abc import abstractmethod
from pathlib import Path
from subprocess import CompletedProcess
from subprocess import TimeoutExpired
from typing import Optional
from typing import Sequence
from typing import Union

_logger = logging.getLogger(__name__)

_Bytes = Union[bytes, bytearray, memoryview]
Command = Union[str, Sequence[str]]


class _Buffer:

    def __init__(self, name):
        self._name = name
        self._chunks = []
        self.closed = False

    def write(self, chunk: Optional[_Bytes]):
        if chunk is None:
            if not self.closed:
                self.closed = True
                _logger.debug("%s: closed", self._name)
        elif chunk:
            self._chunks.append(chunk)
            _logger.debug("%s: data: %s", self._name, chunk.decode(errors='backslashreplace'))

    def read(self):
        data = b''.join(self._chunks)
        self._chunks = []
        return data


class Run(metaclass=ABCMeta):
    """Remote process started by a shell, fed and drained by communicate()."""

    def __init__(self, args):
        self.args = args

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @abstractmethod
    def send(self, bytes_buffer: _Bytes, is_last=False) -> int:
        return 0

    @abstractmethod
    def receive(self, timeout_sec: float):
        """Receive stdout chunk and stderr chunk; None if closed."""
        return b'', b''

    @property
    @abstractmethod
    def returncode(self) -> Optional[int]:
        return None

    def communicate(
            self,
            input: Optional[_Bytes] = None,  # noqa PyShadowingBuiltins
            timeout_sec: Optional[float] = None,
            ) -> (bytes, bytes):
        left_to_send = None if input is None else memoryview(input)
        stdout = _Buffer('stdout')
        stderr = _Buffer('stderr')
        started_at = time.monotonic()
        poll_sec = 1. if timeout_sec is None else min(1., timeout_sec / 2.)
        while True:
            # Paramiko sets the exit status in its own thread. Cache it before
            # receiving so that data arrived before the exit is not lost.
            returncode = self.returncode
            chunks = self.receive(timeout_sec=poll_sec)
            for buffer, chunk in zip((stdout, stderr), chunks):
                buffer.write(chunk)
            if returncode is not None and stdout.closed and stderr.closed:
                break
            if timeout_sec is not None and time.monotonic() - started_at > timeout_sec:
                if returncode is not None:
                    _logger.debug("Exit with streams not closed.")
                    break
                raise TimeoutExpired(self.args, timeout_sec, stdout.read(), stderr.read())
            if left_to_send is None:
                continue
            if returncode is not None:
                _logger.error("Exit with data yet to send.")
                left_to_send = None
                continue
            sent_bytes = self.send(left_to_send, is_last=True)
            left_to_send = left_to_send[sent_bytes:]
            if not left_to_send:
                left_to_send = None
        return stdout.read(), stderr.read()

    @abstractmethod
    def close(self):
        pass


class HostShell(metaclass=ABCMeta):
    """Command execution on one host.

    Non-zero exit status is data, not an exception: callers look at
    returncode themselves. Only transport failures raise.
    """

    @abstractmethod
    def run(
            self,
            command: Command,
            input: Optional[_Bytes] = None,  # noqa PyShadowingBuiltins
            timeout_sec: Optional[float] = None,
            ) -> CompletedProcess:
        pass

    def run_script(self, script: str, timeout_sec: Optional[float] = None) -> CompletedProcess:
        """Feed the script to bash via stdin.

        The script text never appears in the remote process list,
        so process probes do not find themselves.
        """
        return self.run(['bash', '-s'], input=script.encode(), timeout_sec=timeout_sec)

    @abstractmethod
    def upload(self, local_path: Path, remote_path: str):
        pass

    @abstractmethod
    def is_working(self) -> bool:
        pass

    @abstractmethod
    def close(self):
        pass

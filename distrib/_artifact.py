# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import os
import shutil
import subprocess
import time
from pathlib import Path
from string import Template
from typing import Callable
from typing import NamedTuple
from typing import Optional
from typing import Sequence


class AcquisitionError(Exception):
    pass


class DistributedArtifact(NamedTuple):
    source_path: Path
    size_bytes: int
    version_tag: str

    @classmethod
    def from_file(cls, path: Path, version_tag: str) -> 'DistributedArtifact':
        return cls(path, path.stat().st_size, version_tag)


Fetcher = Callable[[str, Path], None]


def cached_artifact_path(version_tag: str, cache_dir: Path = Path('/tmp')) -> Path:
    return cache_dir / f'ozone-{version_tag}.tar.gz'


def acquire_locally(
        version_tag: str,
        url_template: str,
        override_path: Optional[Path] = None,
        cache_dir: Path = Path('/tmp'),
        fetcher: Optional[Fetcher] = None,
        ) -> DistributedArtifact:
    """Find the tarball locally or download it once.

    An explicit override wins. Otherwise a non-empty cached copy of the
    same version is reused. Only then one download happens; it goes to a
    temporary name and is renamed, so an interrupted download is never
    taken for a cached copy.
    """
    if override_path is not None:
        if override_path.is_file():
            _logger.info("Using local tarball %s", override_path)
            return DistributedArtifact.from_file(override_path, version_tag)
        _logger.warning("Local tarball %s not found, falling back to download", override_path)
    cached = cached_artifact_path(version_tag, cache_dir)
    if cached.is_file() and cached.stat().st_size > 0:
        _logger.info("Reusing previously downloaded %s", cached)
        return DistributedArtifact.from_file(cached, version_tag)
    url = Template(url_template).safe_substitute(OZONE_VERSION=version_tag)
    partial = cached.with_name(cached.name + '.download')
    if partial.exists():
        partial.unlink()
    fetch = fetcher if fetcher is not None else download
    _logger.info("Download: start: %s -> %s", url, cached)
    fetch(url, partial)
    if not partial.is_file() or partial.stat().st_size == 0:
        raise AcquisitionError(f"Download of {url} produced no file")
    partial.replace(cached)
    _logger.info("Download: done: %s (%d bytes)", cached, cached.stat().st_size)
    return DistributedArtifact.from_file(cached, version_tag)


def download(url: str, destination: Path):
    if shutil.which('curl') is not None:
        process = _DownloadProcess([
            'curl',
            '--output', str(destination),
            '--fail',
            '--location',
            '--connect-timeout', '10',
            url,
            ])
    elif shutil.which('wget') is not None:
        process = _DownloadProcess([
            'wget',
            '--output-document', str(destination),
            '--timeout', '10',
            '--progress', 'dot:giga',
            url,
            ])
    else:
        raise AcquisitionError("Neither curl nor wget is available for download")
    process.wait()


class _DownloadProcess:

    def __init__(self, args: Sequence[str]):
        self._process = subprocess.Popen(args, stderr=subprocess.PIPE)
        self._started_at = time.monotonic()
        self._buffer = bytearray()

    def wait(self):
        _logger.info("Running command %r pid=%d", self._process.args, self._process.pid)
        interval = 0.1
        last_line = None
        while True:
            try:
                exit_code = self._process.wait(interval)
            except subprocess.TimeoutExpired:
                exit_code = None
            lines = self._list_lines()
            last_line = lines[-1] if lines else last_line
            for line in lines:
                _logger.debug(line)
            if exit_code is not None:
                if exit_code == 0:
                    break
                raise AcquisitionError(
                    f"{self._process.args[0]} finished with {exit_code=}: {last_line!r}")
            if time.monotonic() - self._started_at > _download_timeout_sec:
                self._process.kill()
                raise AcquisitionError(f"Timed out downloading: {self._process.args}")
            interval = min(interval * 1.5, 10)
        _logger.info("Finished command %r pid=%d", self._process.args, self._process.pid)

    def _list_lines(self):
        self._buffer.extend(self._process.stderr.read1())
        return _read_console_lines(self._buffer)


def _read_console_lines(buffer: bytearray):
    r"""Take complete lines off the buffer; of \r-separated updates keep the last.

    >>> buffer = bytearray(b'first\n 10%\r 20%\r 30%\nsecond\npart')
    >>> _read_console_lines(buffer)
    ['first', ' 30%', 'second']
    >>> buffer
    bytearray(b'part')
    """
    [*whole_lines, rest] = buffer.split(os.linesep.encode())
    buffer[:] = rest
    return [line.rsplit(b'\r', 1)[-1].decode('utf8', errors='replace') for line in whole_lines]


_logger = logging.getLogger(__name__)
_download_timeout_sec = 120 * 60

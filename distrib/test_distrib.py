# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from distrib import AcquisitionError
from distrib import ArtifactDistributor
from distrib import DistributedArtifact
from distrib import acquire_locally
from doubles.fake_hosts import FakeHostAccess

_URL_TEMPLATE = 'https://archive.example.com/ozone/${OZONE_VERSION}/ozone-${OZONE_VERSION}.tar.gz'


class _RecordingFetcher:

    def __init__(self, content=b'tarball' * 100):
        self.calls = []
        self._content = content

    def __call__(self, url, destination: Path):
        self.calls.append(url)
        if self._content is not None:
            destination.write_bytes(self._content)


class TestAcquireLocally(unittest.TestCase):

    def setUp(self):
        self._tempdir = TemporaryDirectory()
        self._cache_dir = Path(self._tempdir.name)

    def tearDown(self):
        self._tempdir.cleanup()

    def test_second_call_reuses_download(self):
        fetcher = _RecordingFetcher()
        first = acquire_locally('2.0.0', _URL_TEMPLATE, cache_dir=self._cache_dir, fetcher=fetcher)
        second = acquire_locally('2.0.0', _URL_TEMPLATE, cache_dir=self._cache_dir, fetcher=fetcher)
        self.assertEqual(fetcher.calls, [
            'https://archive.example.com/ozone/2.0.0/ozone-2.0.0.tar.gz'])
        self.assertEqual(first.source_path, second.source_path)
        self.assertEqual(first.source_path, self._cache_dir / 'ozone-2.0.0.tar.gz')
        self.assertEqual(first.size_bytes, 700)
        self.assertFalse((self._cache_dir / 'ozone-2.0.0.tar.gz.download').exists())

    def test_override_path(self):
        custom = self._cache_dir / 'custom.tgz'
        custom.write_bytes(b'custom')
        fetcher = _RecordingFetcher()
        artifact = acquire_locally(
            '2.0.0', _URL_TEMPLATE, override_path=custom,
            cache_dir=self._cache_dir, fetcher=fetcher)
        self.assertEqual(fetcher.calls, [])
        self.assertEqual(artifact.source_path, custom)
        self.assertEqual(artifact.size_bytes, 6)

    def test_missing_override_downloads(self):
        fetcher = _RecordingFetcher()
        artifact = acquire_locally(
            '1.4.1', _URL_TEMPLATE, override_path=self._cache_dir / 'absent.tgz',
            cache_dir=self._cache_dir, fetcher=fetcher)
        self.assertEqual(len(fetcher.calls), 1)
        self.assertEqual(artifact.source_path.name, 'ozone-1.4.1.tar.gz')

    def test_empty_cache_is_not_reused(self):
        (self._cache_dir / 'ozone-2.0.0.tar.gz').write_bytes(b'')
        fetcher = _RecordingFetcher()
        acquire_locally('2.0.0', _URL_TEMPLATE, cache_dir=self._cache_dir, fetcher=fetcher)
        self.assertEqual(len(fetcher.calls), 1)

    def test_fetch_produces_nothing(self):
        fetcher = _RecordingFetcher(content=None)
        with self.assertRaises(AcquisitionError):
            acquire_locally('2.0.0', _URL_TEMPLATE, cache_dir=self._cache_dir, fetcher=fetcher)

    def test_fetch_failure_propagates(self):
        def failing_fetcher(url, destination):
            raise AcquisitionError(f"curl failed for {url}")

        with self.assertRaises(AcquisitionError):
            acquire_locally(
                '2.0.0', _URL_TEMPLATE, cache_dir=self._cache_dir, fetcher=failing_fetcher)


class TestDistribute(unittest.TestCase):

    def setUp(self):
        self._tempdir = TemporaryDirectory()
        path = Path(self._tempdir.name) / 'ozone.tar.gz'
        path.write_bytes(b'x' * 4096)
        self._artifact = DistributedArtifact.from_file(path, '2.0.0')

    def tearDown(self):
        self._tempdir.cleanup()

    def test_all_hosts_verified(self):
        access = FakeHostAccess()
        outcomes = ArtifactDistributor(access).distribute(self._artifact, ['a', 'b', 'c'], 2)
        self.assertEqual(list(outcomes), ['a', 'b', 'c'])
        self.assertTrue(all(o.succeeded for o in outcomes.values()))
        remote = '/tmp/ozone_install_2.0.0_parallel/ozone.tar.gz'
        for host in 'abc':
            shell = access.shell(host)
            self.assertEqual(shell.files[remote], 4096)
            self.assertEqual(len(shell.scripts_matching(r'^mkdir -p /tmp/ozone_install_2.0.0_parallel$')), 1)

    def test_truncated_copy_fails_only_that_host(self):
        access = FakeHostAccess()
        access.shell('b').truncate_uploads_to = 1000
        outcomes = ArtifactDistributor(access).distribute(self._artifact, ['a', 'b', 'c'], 3)
        self.assertTrue(outcomes['a'].succeeded)
        self.assertFalse(outcomes['b'].succeeded)
        self.assertIn('1000 bytes, expected 4096', outcomes['b'].error_detail)
        self.assertTrue(outcomes['c'].succeeded)

    def test_zero_size_is_failure(self):
        access = FakeHostAccess()
        access.shell('a').truncate_uploads_to = 0
        outcomes = ArtifactDistributor(access).distribute(self._artifact, ['a'], 1)
        self.assertFalse(outcomes['a'].succeeded)

    def test_size_not_readable(self):
        access = FakeHostAccess()
        access.shell('a').respond(r'^stat -c%s', returncode=1)
        outcomes = ArtifactDistributor(access).distribute(self._artifact, ['a'], 1)
        self.assertFalse(outcomes['a'].succeeded)

    def test_unreachable_host(self):
        access = FakeHostAccess(unreachable=['b'])
        outcomes = ArtifactDistributor(access).distribute(self._artifact, ['a', 'b'], 2)
        self.assertTrue(outcomes['a'].succeeded)
        self.assertFalse(outcomes['b'].succeeded)

    def test_transfers_bounded_by_concurrency(self):
        access = FakeHostAccess(upload_delay_sec=0.05)
        hosts = [f'h{i}' for i in range(8)]
        outcomes = ArtifactDistributor(access).distribute(self._artifact, hosts, 2)
        self.assertEqual(len(outcomes), 8)
        self.assertLessEqual(access.max_in_flight_transfers, 2)
        self.assertEqual(access.max_in_flight_transfers, 2)


if __name__ == '__main__':
    logging.basicConfig(level=logging.DEBUG)
    unittest.main()

# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
"""Obtain the Ozone tarball once and push it to cluster hosts."""
from distrib._artifact import AcquisitionError
from distrib._artifact import DistributedArtifact
from distrib._artifact import acquire_locally
from distrib._artifact import cached_artifact_path
from distrib._artifact import download
from distrib._distribute import ArtifactDistributor
from distrib._distribute import TransferVerificationError

__all__ = [
    'AcquisitionError',
    'ArtifactDistributor',
    'DistributedArtifact',
    'TransferVerificationError',
    'acquire_locally',
    'cached_artifact_path',
    'download',
    ]

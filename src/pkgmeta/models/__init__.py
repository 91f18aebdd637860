from __future__ import annotations

from pkgmeta.models.cache import NegativeCacheEntry
from pkgmeta.models.package import (
    DateRange,
    FileHitRecord,
    PackageMetadata,
    PackageQuery,
    PackageType,
)
from pkgmeta.models.results import NotFound, Ok, Result, UpstreamError

__all__ = [
    # package
    "PackageMetadata",
    "PackageQuery",
    "PackageType",
    "DateRange",
    "FileHitRecord",
    # cache
    "NegativeCacheEntry",
    # results
    "Ok",
    "NotFound",
    "UpstreamError",
    "Result",
]

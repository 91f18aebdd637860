"""Version specifier resolution.

Pure business logic. Receives PackageMetadata and a specifier, returns a
concrete version string or ``None``. No knowledge of AppState, HTTP or I/O.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import semantic_version

if TYPE_CHECKING:
    from collections.abc import Iterable

    from pkgmeta.models.package import PackageMetadata

LATEST = "latest"


def parse_version(raw: str) -> semantic_version.Version | None:
    """Parse a strict semver string, tolerating a leading ``v`` or ``=``.

    Returns ``None`` for anything that is not a valid semantic version.
    """
    candidate = raw.strip()
    if candidate[:1] in ("v", "="):
        candidate = candidate[1:]
    try:
        return semantic_version.Version(candidate)
    except ValueError:
        return None


def sort_versions_desc(versions: Iterable[str]) -> list[str]:
    """Sort by descending semver precedence.

    The sort is stable, so versions of equal precedence (differing only in
    build metadata) keep their relative order. Strings that are not valid
    semver go last, in their original order.
    """
    parsed: list[tuple[str, semantic_version.Version]] = []
    invalid: list[str] = []
    for raw in versions:
        version = parse_version(raw)
        if version is None:
            invalid.append(raw)
        else:
            parsed.append((raw, version))

    parsed.sort(key=lambda pair: pair[1].precedence_key, reverse=True)
    return [raw for raw, _ in parsed] + invalid


def release_candidates(versions: Iterable[str]) -> list[tuple[str, semantic_version.Version]]:
    """Valid, non-prerelease versions sorted by descending precedence."""
    releases = []
    for raw in versions:
        version = parse_version(raw)
        if version is not None and not version.prerelease:
            releases.append((raw, version))
    releases.sort(key=lambda pair: pair[1].precedence_key, reverse=True)
    return releases


def resolve_version(metadata: PackageMetadata, specifier: str | None) -> str | None:
    """Resolve a user specifier against package metadata.

    Rules, first match wins:
      1. Exact member of ``versions``
      2. Key of ``tags``
      3. Empty or ``"latest"``: highest release version
      4. npm-style semver range: highest release version satisfying it

    Returns ``None`` when nothing matches. Never raises.
    """
    specifier = (specifier or "").strip()

    if specifier and specifier in metadata.versions:
        return specifier

    if specifier and specifier in metadata.tags:
        return metadata.tags[specifier]

    releases = release_candidates(metadata.versions)

    if not specifier or specifier == LATEST:
        return releases[0][0] if releases else None

    try:
        spec = semantic_version.NpmSpec(specifier)
    except ValueError:
        return None

    for raw, version in releases:
        if spec.match(version):
            return raw
    return None

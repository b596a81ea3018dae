"""Semantic version value type and image-tag conversion.

Precedence follows semver 2.0: ``major.minor.patch`` numerically, then a
release sorts above any of its pre-releases, then pre-release identifiers
left to right (numeric below alphanumeric). Build metadata is kept for
display and image rewriting but ignored for ordering and equality.

Image tags cannot carry ``+``, so component images encode build metadata
with ``_``: ``hyperkube:v1.3.0_coreos.0`` is version ``1.3.0+coreos.0``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..errors import InvalidVersionError

_NUMERIC = r'0|[1-9]\d*'
_IDENT = r'[0-9A-Za-z-]+'

_VERSION_RE = re.compile(
    rf'^v?(?P<major>{_NUMERIC})\.(?P<minor>{_NUMERIC})\.(?P<patch>{_NUMERIC})'
    rf'(?:-(?P<prerelease>{_IDENT}(?:\.{_IDENT})*))?'
    rf'(?:\+(?P<build>{_IDENT}(?:\.{_IDENT})*))?$'
)


@dataclass(frozen=True, slots=True, eq=False)
class Version:
    """Parsed semantic version. Construct with :meth:`parse`."""

    major: int
    minor: int
    patch: int
    prerelease: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: str) -> Version:
        if not isinstance(text, str):
            raise InvalidVersionError(repr(text), 'expected a string')
        match = _VERSION_RE.match(text.strip())
        if match is None:
            raise InvalidVersionError(text)

        prerelease = tuple(match.group('prerelease').split('.')) if match.group('prerelease') else ()
        for ident in prerelease:
            if ident.isdigit() and len(ident) > 1 and ident.startswith('0'):
                raise InvalidVersionError(text, 'numeric pre-release identifier has a leading zero')
        build = tuple(match.group('build').split('.')) if match.group('build') else ()

        return cls(
            major=int(match.group('major')),
            minor=int(match.group('minor')),
            patch=int(match.group('patch')),
            prerelease=prerelease,
            build=build,
        )

    def _precedence(self) -> tuple:
        if not self.prerelease:
            pre: tuple = (1,)
        else:
            pre = (0, tuple(
                (0, int(ident), '') if ident.isdigit() else (1, 0, ident)
                for ident in self.prerelease
            ))
        return (self.major, self.minor, self.patch, pre)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._precedence() == other._precedence()

    def __hash__(self) -> int:
        return hash(self._precedence())

    def __lt__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._precedence() < other._precedence()

    def __le__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._precedence() <= other._precedence()

    def __gt__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._precedence() > other._precedence()

    def __ge__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._precedence() >= other._precedence()

    def __str__(self) -> str:
        text = f'{self.major}.{self.minor}.{self.patch}'
        if self.prerelease:
            text += '-' + '.'.join(self.prerelease)
        if self.build:
            text += '+' + '.'.join(self.build)
        return text

    def to_image_tag(self) -> str:
        """Render as an image tag, e.g. ``v1.3.0_coreos.0``."""
        return 'v' + str(self).replace('+', '_')


def _split_image(image: str) -> tuple[str, str | None]:
    """Split ``registry/repo:tag`` into repository and tag.

    The tag separator is the last ``:`` after the last ``/`` so registry
    ports (``host:5000/repo``) are not mistaken for tags.
    """
    if '@' in image:
        raise InvalidVersionError(image, 'image is pinned by digest')
    slash = image.rfind('/')
    colon = image.rfind(':')
    if colon > slash:
        return image[:colon], image[colon + 1:]
    return image, None


def version_from_image(image: str) -> Version:
    """Read the version carried by a container image tag."""
    _, tag = _split_image(image)
    if not tag:
        raise InvalidVersionError(image, 'image has no tag')
    try:
        return Version.parse(tag.replace('_', '+', 1))
    except InvalidVersionError as exc:
        raise InvalidVersionError(image, exc.reason) from exc


def image_for_version(image: str, version: Version) -> str:
    """Return ``image`` with its tag replaced by ``version``."""
    repository, _ = _split_image(image)
    return f'{repository}:{version.to_image_tag()}'

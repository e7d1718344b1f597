"""Schema trees: the declared resource types along a destination subtree.

Trees arrive in the store's own notation: each level is an object whose
``_type`` names the content type of the resource at that level, whose
optional ``_rev`` asks for links to it to be versioned, and whose other keys
are child segments (``*`` matches any segment)::

    {
      "bookmarks": {
        "_type": "application/vnd.oada.bookmarks.1+json",
        "trellisfw": {
          "_type": "application/vnd.trellis.1+json",
          "cois": {
            "_type": "application/vnd.trellis.cois.1+json",
            "*": {"_type": "application/vnd.trellis.coi.1+json"},
          },
        },
      },
    }

``SchemaNode.from_dict`` turns that into an immutable value; ``lookup``
walks it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from .errors import ConfigurationError
from .pointer import parse

WILDCARD = '*'

_TRAILING_BOOKMARKS = re.compile(r'/bookmarks$')


@dataclass(frozen=True, slots=True)
class SchemaNode:
    """One level of a schema tree."""

    type: str | None = None
    versioned: bool = False
    children: Mapping[str, SchemaNode] = field(
        default_factory=lambda: MappingProxyType({}),
    )

    def child(self, segment: str) -> SchemaNode | None:
        """Exact segment first, then the ``*`` wildcard."""
        node = self.children.get(segment)
        if node is None:
            node = self.children.get(WILDCARD)
        return node

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> SchemaNode:
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise ConfigurationError(
                f'schema tree levels must be objects, got {type(raw).__name__}'
            )
        children = {
            key: cls.from_dict(value)
            for key, value in raw.items()
            if not key.startswith('_')
        }
        rtype = raw.get('_type')
        return cls(
            type=str(rtype) if rtype else None,
            versioned='_rev' in raw,
            children=MappingProxyType(children),
        )


def lookup(tree: SchemaNode, path: str) -> SchemaNode | None:
    """Return the node describing ``path`` (a JSON pointer), or None."""
    node: SchemaNode | None = tree
    for segment in parse(path):
        if node is None:
            return None
        node = node.child(segment)
    return node


def strip_chroot(path: str, chroot: str) -> str:
    """Express an absolute store path relative to ``chroot``."""
    if chroot and path.startswith(chroot):
        return path[len(chroot):]
    return path


def require_type(tree: SchemaNode, path: str, chroot: str) -> SchemaNode:
    """Schema node for an ancestor that must be auto-created.

    Raises ConfigurationError when the tree has no entry for the path or the
    entry has no ``_type``: a resource type is never guessed.
    """
    relative = strip_chroot(path, chroot)
    node = lookup(tree, relative)
    if node is None:
        raise ConfigurationError(
            f'The path {relative!r} does not exist in the schema tree '
            f'(after removing chroot {chroot!r})'
        )
    if not node.type:
        raise ConfigurationError(
            f'Schema tree entry for {relative!r} has no _type; '
            f'non-resource levels cannot be auto-created'
        )
    return node


def normalize_chroot(chroot: str | None) -> str:
    """Normalize a chroot before it is prefixed to a destination path.

    Drops one trailing slash and then a trailing ``/bookmarks`` segment. The
    schema tree is always rooted at ``bookmarks`` and describes only the
    destination path, so ``chroot + dest`` must not repeat that segment.
    """
    if not chroot:
        return ''
    if chroot.endswith('/'):
        chroot = chroot[:-1]
    return _TRAILING_BOOKMARKS.sub('', chroot)


def destination_path(dest: str, chroot: str | None) -> tuple[str, str]:
    """Return ``(absolute destination path, normalized chroot)``."""
    root = normalize_chroot(chroot)
    return f'{root}{dest}', root


# Tree used for the store's service queues (email jobs, job indexes).
SERVICE_TREE = SchemaNode.from_dict({
    'bookmarks': {
        '_type': 'application/vnd.oada.bookmarks.1+json',
        'trellisfw': {
            '_type': 'application/vnd.trellis.1+json',
        },
        'services': {
            '_type': 'application/vnd.oada.services.1+json',
            '*': {
                '_type': 'application/vnd.oada.service.1+json',
                'jobs': {
                    '_type': 'application/vnd.oada.service.jobs.1+json',
                    '*': {
                        '_type': 'application/vnd.oada.service.job.1+json',
                    },
                },
                'jobs-success': {
                    '_type': 'application/vnd.oada.service.jobs.1+json',
                    'day-index': {
                        '_type': 'application/vnd.oada.service.jobs.1+json',
                        '*': {
                            '_type': 'application/vnd.oada.service.jobs.1+json',
                        },
                    },
                },
                'jobs-error': {
                    '_type': 'application/vnd.oada.service.jobs.1+json',
                    'day-index': {
                        '_type': 'application/vnd.oada.service.jobs.1+json',
                        '*': {
                            '_type': 'application/vnd.oada.service.jobs.1+json',
                        },
                    },
                },
            },
        },
    },
})

"""Tree-guided link placement.

``ensure_linked`` places a link at an arbitrary depth under a namespace that
may not exist yet. The last path segment is always written by PUTting
``{key: link}`` to the parent: a PUT straight to an existing link path would
write into the linked resource instead of replacing the link.

Missing ancestors are created bottom-up from the schema tree. Each recursion
level strips one segment and stops at the first ancestor that already exists
(the tree root always does). Nothing is rolled back on failure; a re-run finds
the ancestors it already created and creates none of them again.
"""

from __future__ import annotations

import logging
from typing import Any

from trellis_shares.protocols import ResourceStore
from trellis_shares.store.client import resource_id_from_location
from trellis_shares.store.errors import StoreError, StoreNotFoundError

from .errors import UpstreamError, upstream
from .pointer import compile_pointer, parse
from .tree import SchemaNode, require_type

logger = logging.getLogger(__name__)


def split_parent(path: str) -> tuple[str, str]:
    """``/a/b/c`` -> (``/a/b``, ``c``)."""
    parts = parse(path)
    if not parts:
        raise ValueError('cannot link at the store root')
    return compile_pointer(parts[:-1]), parts[-1]


async def exists(store: ResourceStore, path: str) -> bool:
    """Probe ``path``. 404 means absent; any other error status is fatal."""
    try:
        await store.get(path)
    except StoreNotFoundError:
        return False
    except StoreError as exc:
        raise UpstreamError('existence probe', path, exc) from exc
    return True


async def ensure_linked(
    store: ResourceStore,
    *,
    path: str,
    link: dict[str, Any],
    chroot: str,
    tree: SchemaNode,
) -> str | None:
    """Put ``link`` at ``path``, creating any missing ancestor resources.

    Args:
        store: Document store.
        path: Absolute destination path, chroot already applied.
        link: Link value, ``{"_id": ...}`` plus an optional ``_rev``.
        chroot: Normalized chroot prefix; stripped before schema lookups.
        tree: Schema tree describing the destination subtree.

    Returns:
        The content-location of the final PUT.

    Raises:
        ConfigurationError: a missing ancestor has no typed schema entry.
        UpstreamError: any store failure other than a 404 probe.
    """
    parent, key = split_parent(path)
    logger.debug('ensure_linked: link key %s under %s', key, parent)

    if not await exists(store, parent):
        node = require_type(tree, parent, chroot)
        logger.debug('ensure_linked: %s missing, creating %s resource', parent, node.type)
        with upstream('create ancestor resource', parent):
            resp = await store.post('/resources', {}, content_type=node.type)
        new_id = resource_id_from_location(resp.location)
        if not new_id:
            raise ValueError(f'store returned no location for new resource at {parent}')

        parent_link: dict[str, Any] = {'_id': new_id}
        if node.versioned:
            parent_link['_rev'] = 0
        await ensure_linked(
            store, path=parent, link=parent_link, chroot=chroot, tree=tree,
        )

    with upstream('link into parent', parent):
        resp = await store.put(parent, {key: link})
    logger.debug('ensure_linked: linked %s at %s', link.get('_id'), path)
    return resp.location

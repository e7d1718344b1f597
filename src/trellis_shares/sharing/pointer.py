"""JSON-pointer and field-set helpers for copying and masking documents.

Projection semantics: a projection spec is a nested object whose *leaf paths*
name the only fields to keep. ``{"a": {"b": true}, "c": 1}`` keeps ``a.b`` and
``c``; the leaf values themselves are ignored.
"""

from __future__ import annotations

import copy
from typing import Any, Iterable, Sequence

INTERNAL_PREFIX = '_'
MASK_KEY = 'trellis-mask'


def parse(pointer: str) -> list[str]:
    """Split a JSON pointer (``/a/b~1c``) into unescaped segments."""
    if not pointer:
        return []
    if not pointer.startswith('/'):
        raise ValueError(f'invalid JSON pointer {pointer!r}: must start with "/"')
    return [
        seg.replace('~1', '/').replace('~0', '~')
        for seg in pointer[1:].split('/')
    ]


def compile_pointer(segments: Iterable[Any]) -> str:
    """Inverse of ``parse``."""
    return ''.join(
        '/' + str(seg).replace('~', '~0').replace('/', '~1') for seg in segments
    )


def get(document: Any, pointer: str | Sequence[str]) -> Any:
    """Resolve ``pointer`` in ``document``; raises ``KeyError`` if absent."""
    segments = parse(pointer) if isinstance(pointer, str) else pointer
    node = document
    for seg in segments:
        if isinstance(node, dict):
            node = node[seg]
        elif isinstance(node, list):
            try:
                node = node[int(seg)]
            except (ValueError, IndexError) as exc:
                raise KeyError(seg) from exc
        else:
            raise KeyError(seg)
    return node


def set_value(document: Any, pointer: str, value: Any) -> None:
    """Replace the value at an existing ``pointer`` in place."""
    segments = parse(pointer)
    if not segments:
        raise ValueError('cannot replace the document root')
    parent = get(document, segments[:-1])
    last = segments[-1]
    if isinstance(parent, list):
        parent[int(last)] = value
    elif isinstance(parent, dict):
        parent[last] = value
    else:
        raise KeyError(last)


def is_internal(key: str) -> bool:
    return key.startswith(INTERNAL_PREFIX)


def strip_internal(document: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``document`` without its top-level store-internal keys."""
    return {
        k: copy.deepcopy(v) for k, v in document.items() if not is_internal(k)
    }


def leaf_paths(spec: Any, prefix: tuple[str, ...] = ()) -> list[tuple[str, ...]]:
    """Every path from the root of ``spec`` to a leaf.

    Non-dict values and empty dicts are leaves.
    """
    if not isinstance(spec, dict) or not spec:
        return [prefix] if prefix else []
    paths: list[tuple[str, ...]] = []
    for key, value in spec.items():
        paths.extend(leaf_paths(value, (*prefix, str(key))))
    return paths


def pick(document: dict[str, Any], paths: Iterable[tuple[str, ...]]) -> dict[str, Any]:
    """Keep only the given paths of ``document`` (missing paths are skipped).

    Containers are rebuilt with the source's shape: a path through a list
    index yields a list, padded with ``None`` up to that index.
    """
    result: dict[str, Any] = {}
    for path in paths:
        try:
            value = get(document, path)
        except KeyError:
            continue
        node: Any = result
        source: Any = document
        for seg in path[:-1]:
            source = get(source, (seg,))
            node = _child(node, seg, [] if isinstance(source, list) else {})
        _assign(node, path[-1], copy.deepcopy(value))
    return result


def _assign(node: Any, seg: str, value: Any) -> None:
    if isinstance(node, list):
        index = int(seg)
        node.extend([None] * (index + 1 - len(node)))
        node[index] = value
    else:
        node[seg] = value


def _child(node: Any, seg: str, empty: Any) -> Any:
    if isinstance(node, list):
        index = int(seg)
        if index < len(node) and node[index] is not None:
            return node[index]
        _assign(node, seg, empty)
        return empty
    return node.setdefault(seg, empty)


def project(document: dict[str, Any], spec: Any) -> dict[str, Any]:
    """Apply a projection spec; an absent or empty spec keeps everything."""
    if not isinstance(spec, dict) or not spec:
        return copy.deepcopy(document)
    return pick(document, leaf_paths(spec))


def find_paths_to_mask(
    document: Any,
    keys_to_mask: Sequence[str],
    prefix: tuple[str, ...] = (),
) -> list[str]:
    """JSON pointers to every key named in ``keys_to_mask``, at any depth.

    A matched key is not descended into.
    """
    if isinstance(document, dict):
        items: Iterable[tuple[str, Any]] = document.items()
    elif isinstance(document, list):
        items = ((str(i), v) for i, v in enumerate(document))
    else:
        return []

    found: list[str] = []
    for key, value in items:
        path = (*prefix, key)
        if key in keys_to_mask:
            found.append(compile_pointer(path))
        elif isinstance(value, (dict, list)):
            found.extend(find_paths_to_mask(value, keys_to_mask, path))
    return found

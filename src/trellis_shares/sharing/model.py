"""Share job config: wire model and the link/copy/masked-copy plan.

The job config arrives as loosely-typed JSON. ``ShareJobConfig.parse``
validates it once at the pipeline entry, before any store mutation, and
``plan`` turns the optional ``copy`` block into exactly one of three plans:

  - ``LinkPlan``: link the source resource as-is.
  - ``CopyPlan``: create a projected plain copy and link that.
  - ``MaskedCopyPlan``: create a masked, signed copy (optionally with a PDF).

Wire shape::

    {
      "src": "/bookmarks/trellisfw/cois/abc" | {"_id": "resources/abc"},
      "dest": "/bookmarks/trellisfw/cois/abc",
      "chroot": "/bookmarks/trellisfw/trading-partners/T1/user/bookmarks",
      "doctype": "cois",
      "versioned": false,
      "tree": {...},
      "user": {"id": "users/123"},
      "skipCreatingEmailJobs": false,
      "copy": {"original": {...}, "meta": {...},
               "mask": {"keys_to_mask": ["location"], "generate_pdf": true}}
    }
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigurationError, JobConfigError
from .tree import SchemaNode

# ── Doctypes ──────────────────────────────────────────────────────────

COIS = 'cois'
LETTERS_OF_GUARANTEE = 'letters-of-guarantee'
FSQA_CERTIFICATES = 'fsqa-certificates'
FSQA_AUDITS = 'fsqa-audits'


class ShareMode(str, Enum):
    LINK = 'link'
    COPY = 'copy'
    MASKED_COPY = 'masked-copy'


# ── Plans (tagged union over the three modes) ────────────────────────


@dataclass(frozen=True, slots=True)
class LinkPlan:
    mode: ShareMode = ShareMode.LINK


@dataclass(frozen=True, slots=True)
class CopyPlan:
    original: Mapping[str, Any] | None = None
    meta: Mapping[str, Any] | None = None
    mode: ShareMode = ShareMode.COPY


@dataclass(frozen=True, slots=True)
class MaskedCopyPlan:
    keys_to_mask: tuple[str, ...]
    generate_pdf: bool = False
    meta: Mapping[str, Any] | None = None
    mode: ShareMode = ShareMode.MASKED_COPY


SharePlan = Union[LinkPlan, CopyPlan, MaskedCopyPlan]


# ── Wire models ───────────────────────────────────────────────────────


class MaskSpec(BaseModel):
    keys_to_mask: list[str]
    generate_pdf: bool = False


class CopySpec(BaseModel):
    original: dict[str, Any] | None = None
    meta: dict[str, Any] | None = None
    mask: MaskSpec | None = None


class ShareUser(BaseModel):
    model_config = ConfigDict(extra='allow')

    id: str = Field(min_length=1)


class ShareJobConfig(BaseModel):
    """Validated ``share-user-link`` job config."""

    model_config = ConfigDict(populate_by_name=True, extra='allow')

    src: str
    dest: str
    chroot: str | None = None
    doctype: str = Field(min_length=1)
    versioned: bool = False
    tree: dict[str, Any] = Field(default_factory=dict)
    user: ShareUser | None = None
    copy_spec: CopySpec | None = Field(default=None, alias='copy')
    skip_notify: bool = Field(default=False, alias='skipCreatingEmailJobs')

    @field_validator('src', mode='before')
    @classmethod
    def _src_from_link(cls, value: Any) -> Any:
        # {"_id": "resources/abc"} is accepted as shorthand for "/resources/abc".
        if isinstance(value, Mapping):
            rid = value.get('_id')
            if not rid:
                raise ValueError('src link must carry an _id')
            return '/' + str(rid).lstrip('/')
        return value

    @field_validator('src', 'dest')
    @classmethod
    def _absolute(cls, value: str) -> str:
        if not value.startswith('/') or value == '/':
            raise ValueError(f'must be an absolute path below the root, got {value!r}')
        return value.rstrip('/')

    @field_validator('tree')
    @classmethod
    def _tree_parses(cls, value: dict[str, Any]) -> dict[str, Any]:
        try:
            SchemaNode.from_dict(value)
        except ConfigurationError as exc:
            raise ValueError(str(exc)) from exc
        return value

    @model_validator(mode='after')
    def _user_needed_for_notify(self) -> ShareJobConfig:
        if not self.skip_notify and self.user is None:
            raise ValueError('user is required unless skipCreatingEmailJobs is set')
        return self

    @classmethod
    def parse(cls, raw: Any) -> ShareJobConfig:
        """Validate a raw job config; raises JobConfigError."""
        if not isinstance(raw, Mapping):
            raise JobConfigError('Job has no config')
        try:
            return cls.model_validate(dict(raw))
        except ValidationError as exc:
            messages = [
                f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
                for err in exc.errors()
            ]
            raise JobConfigError('Invalid share job config', messages) from exc

    @property
    def schema_tree(self) -> SchemaNode:
        return SchemaNode.from_dict(self.tree)

    @property
    def plan(self) -> SharePlan:
        spec = self.copy_spec
        if spec is None:
            return LinkPlan()
        if spec.mask is not None:
            return MaskedCopyPlan(
                keys_to_mask=tuple(spec.mask.keys_to_mask),
                generate_pdf=spec.mask.generate_pdf,
                meta=spec.meta,
            )
        return CopyPlan(original=spec.original, meta=spec.meta)

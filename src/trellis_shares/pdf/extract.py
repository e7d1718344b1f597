"""Doctype-specific summaries of masked documents.

``pull_data`` turns a masked document into a title and a list of rows for
the PDF summary table. Masked fields always come last, one row per mask,
labelled from their path (``/location/street`` -> ``Location Street``).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from trellis_shares.masking import MASK_KEY, find_all_mask_paths
from trellis_shares.sharing.pointer import get, parse


@dataclass(frozen=True, slots=True)
class Row:
    key: str
    value: str | None = None
    mask: dict[str, Any] | None = None

    @property
    def is_masked(self) -> bool:
        return self.mask is not None


@dataclass(frozen=True, slots=True)
class Summary:
    title: str
    rows: list[Row]


@dataclass(frozen=True, slots=True)
class Period:
    start: datetime
    end: datetime
    # Computed but not rendered yet.
    expired: bool


def _period(start: datetime | None, end: datetime | None, now: datetime) -> Period | None:
    if start is None or end is None:
        return None
    return Period(start=start, end=end, expired=start > now or end < now)


def _us_date(raw: Any) -> datetime | None:
    """Parse ``M/D/YYYY``."""
    try:
        return datetime.strptime(str(raw), '%m/%d/%Y')
    except ValueError:
        return None


def _iso_date(raw: Any) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(str(raw).replace('Z', '+00:00'))
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


def format_date(value: datetime) -> str:
    return f'{value:%b} {value.day}, {value.year}'


def _label(pointer: str) -> str:
    return ' '.join(seg[:1].upper() + seg[1:] for seg in parse(pointer))


def mask_rows(document: Any) -> list[Row]:
    rows: list[Row] = []
    for pointer in find_all_mask_paths(document):
        mask = get(document, pointer)
        rows.append(Row(key=_label(pointer), mask=mask[MASK_KEY]))
    return rows


def _dig(document: Any, *keys: str) -> Any:
    node = document
    for key in keys:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def pull_audit_data(audit: dict[str, Any], *, now: datetime | None = None) -> Summary:
    now = now or datetime.now()
    validity = _period(
        _us_date(_dig(audit, 'certificate_validity_period', 'start')),
        _us_date(_dig(audit, 'certificate_validity_period', 'end')),
        now,
    )
    org = _dig(audit, 'organization', 'name')
    score = _dig(audit, 'score', 'final', 'value')
    products = _dig(audit, 'scope', 'products_observed')
    scope = ''
    if isinstance(products, list):
        scope = ', '.join(str(p.get('name', '')) for p in products if isinstance(p, dict))

    rows: list[Row] = []
    if org:
        rows.append(Row('Organization:', str(org)))
    if score:
        rows.append(Row('Score:', str(score)))
    if scope:
        rows.append(Row('Scope:', scope))
    if validity:
        rows.append(Row(
            'Validity:', f'{format_date(validity.start)} to {format_date(validity.end)}',
        ))
    rows.extend(mask_rows(audit))
    return Summary(title=f"FSQA Audit: {org or ''}", rows=rows)


def pull_coi_data(coi: dict[str, Any], *, now: datetime | None = None) -> Summary:
    now = now or datetime.now()
    producer = _dig(coi, 'producer', 'name')
    holder = _dig(coi, 'holder', 'name')

    rows: list[Row] = []
    if producer:
        rows.append(Row('Producer', str(producer)))
    if holder:
        rows.append(Row('Holder', str(holder)))

    policies = coi.get('policies')
    if isinstance(policies, dict):
        policies = list(policies.values())
    for policy in policies if isinstance(policies, list) else []:
        if not isinstance(policy, dict):
            continue
        period = _period(
            _iso_date(policy.get('effective_date')),
            _iso_date(policy.get('expire_date')),
            now,
        )
        # Policies with unparseable dates are left out.
        if period is None:
            continue
        rows.append(Row(
            f"Policy {policy.get('number', '')}:",
            f'{format_date(period.start)} to {format_date(period.end)}',
        ))
    rows.extend(mask_rows(coi))
    return Summary(title=f"Certificate of Insurance: {producer or ''}", rows=rows)


def pull_data(masked: dict[str, Any], doctype: str) -> Summary:
    if doctype == 'cois':
        return pull_coi_data(masked)
    if doctype == 'fsqa-audits':
        return pull_audit_data(masked)
    return Summary(
        title='Unknown Document Type',
        rows=[Row('Unknown', 'Unrecognized Document')],
    )

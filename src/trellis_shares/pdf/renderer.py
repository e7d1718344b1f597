"""Human-readable PDF rendering of masked documents (fpdf2).

Layout:
  - header with the Mask & Link banner
  - doctype summary table; masked rows show a placeholder plus a
    verification link carrying the mask payload
  - page break, then the full cleaned JSON in Courier, hard-wrapped at 80
    columns, with a verification link for the whole masked resource

The rendered PDF is posted as a new binary resource, and its ``_meta``
points back at the masked JSON so either artifact can be found from the
other.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any
from urllib.parse import quote

from fpdf import FPDF
from fpdf.enums import XPos, YPos
from fpdf.errors import FPDFException

from trellis_shares.observability.metrics import PDF_RENDERS_TOTAL
from trellis_shares.protocols import ResourceStore
from trellis_shares.sharing.pointer import strip_internal
from trellis_shares.store.client import resource_id_from_location
from trellis_shares.store.errors import StoreError

from .extract import Row, Summary, pull_data

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = 'application/pdf'
PRODUCER = (
    'Trellis-Shares via Mask and Link, from The Trellis Framework '
    '(https://github.com/trellisfw) hosted by the OATS Center '
    '(https://oatscenter.org) at Purdue University'
)
MASKLINK_URL = 'https://github.com/trellisfw/trellisfw-masklink'
WRAP_COLUMNS = 80

_LINK_RGB = (0x56, 0x9C, 0xD6)
_KEY_COL_MM = 40
_ROW_H_MM = 7


def default_filename() -> str:
    return f'TrellisMaskAndLink-{uuid.uuid4().hex}.pdf'


def _latin1(text: str) -> str:
    # Core fonts only cover latin-1.
    return text.encode('latin-1', 'replace').decode('latin-1')


def hard_wrap(text: str, width: int = WRAP_COLUMNS) -> str:
    """Split every line at ``width`` columns, keeping leading whitespace."""
    out: list[str] = []
    for line in text.splitlines():
        if not line:
            out.append('')
            continue
        out.extend(line[i:i + width] for i in range(0, len(line), width))
    return '\n'.join(out)


def mask_verify_url(verify_base_url: str, mask: dict[str, Any]) -> str:
    payload = json.dumps(mask, separators=(',', ':'))
    return f'{verify_base_url}?trellis-mask={quote(payload, safe="")}'


def resource_verify_url(verify_base_url: str, resource_url: str) -> str:
    return f'{verify_base_url}?masked-resource-url={quote(resource_url, safe="")}'


class _MaskedReport:
    """Vertical-flow A4 report for one masked document."""

    def __init__(self, *, verify_base_url: str) -> None:
        self._verify = verify_base_url
        self._pdf = FPDF(orientation='P', unit='mm', format='A4')
        self._pdf.set_auto_page_break(auto=True, margin=15)
        self._pdf.set_creator(PRODUCER)
        self._pdf.add_page()

    def _link(self, text: str, url: str, *, indent: float = 0) -> None:
        pdf = self._pdf
        if indent:
            pdf.set_x(pdf.l_margin + indent)
        pdf.set_text_color(*_LINK_RGB)
        pdf.set_font('Helvetica', 'U', 10)
        pdf.cell(0, 6, _latin1(text), link=url, new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.set_text_color(0, 0, 0)
        pdf.set_font('Helvetica', '', 10)

    def header(self) -> None:
        pdf = self._pdf
        pdf.set_font('Helvetica', 'B', 14)
        pdf.cell(0, 8, 'Trellis - Mask & Link', align='R', new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.set_font('Helvetica', '', 10)
        pdf.cell(
            0, 6, 'A masked document shielding confidential information',
            align='R', new_x=XPos.LMARGIN, new_y=YPos.NEXT,
        )
        pdf.set_text_color(*_LINK_RGB)
        pdf.set_font('Helvetica', 'U', 10)
        pdf.cell(0, 6, MASKLINK_URL, align='R', link=MASKLINK_URL, new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.set_text_color(0, 0, 0)
        pdf.ln(10)

    def summary(self, data: Summary) -> None:
        pdf = self._pdf
        pdf.set_title(_latin1(data.title))
        pdf.set_font('Helvetica', 'B', 16)
        pdf.multi_cell(0, 9, _latin1(data.title), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        pdf.ln(5)
        pdf.set_font('Helvetica', '', 10)
        for row in data.rows:
            self._row(row)

    def _row(self, row: Row) -> None:
        pdf = self._pdf
        pdf.cell(_KEY_COL_MM, _ROW_H_MM, _latin1(row.key), border='T')
        if row.is_masked:
            pdf.cell(0, _ROW_H_MM, '< MASKED >', border='T', new_x=XPos.LMARGIN, new_y=YPos.NEXT)
            self._link(
                'If you have permission, click here to verify',
                mask_verify_url(self._verify, row.mask or {}),
                indent=_KEY_COL_MM,
            )
        else:
            pdf.multi_cell(
                0, _ROW_H_MM, _latin1(row.value or ''), border='T',
                new_x=XPos.LMARGIN, new_y=YPos.NEXT,
            )

    def full_document(self, title: str, clean: dict[str, Any], resource_url: str) -> None:
        pdf = self._pdf
        pdf.add_page()
        pdf.set_font('Helvetica', 'B', 12)
        pdf.multi_cell(
            0, 7, _latin1(f'{title} - Full Signature and Data'),
            new_x=XPos.LMARGIN, new_y=YPos.NEXT,
        )
        self._link(
            'Click here to verify full resource if you have permission to it',
            resource_verify_url(self._verify, resource_url),
        )
        pdf.ln(5)
        pdf.set_font('Courier', '', 8)
        body = hard_wrap(json.dumps(clean, indent=2, ensure_ascii=False))
        pdf.multi_cell(0, 4, _latin1(body), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    def output(self) -> bytes:
        return bytes(self._pdf.output())


def build_masked_pdf(
    masked: dict[str, Any],
    doctype: str,
    *,
    resource_url: str,
    verify_base_url: str,
) -> bytes:
    """Render ``masked`` to PDF bytes."""
    data = pull_data(masked, doctype)
    report = _MaskedReport(verify_base_url=verify_base_url)
    report.header()
    report.summary(data)
    report.full_document(data.title, strip_internal(masked), resource_url)
    return report.output()


class MaskedPdfRenderer:
    """Renders masked documents and uploads them as PDF resources."""

    def __init__(
        self,
        store: ResourceStore,
        *,
        base_url: str,
        verify_base_url: str = 'https://trellisfw.github.io/reagan',
    ) -> None:
        self._store = store
        self._base_url = base_url.rstrip('/')
        self._verify_base_url = verify_base_url

    async def render_masked_document(
        self,
        *,
        masked: dict[str, Any],
        resource_id: str,
        doctype: str,
        filename: str | None = None,
    ) -> str | None:
        """Render and upload; return the PDF resource id, or None if skipped.

        Store failures and rendering errors are logged and reported as a
        skipped rendering. Anything else propagates.
        """
        filename = filename or default_filename()
        try:
            pdf_bytes = build_masked_pdf(
                masked,
                doctype,
                resource_url=f'{self._base_url}/{resource_id}',
                verify_base_url=self._verify_base_url,
            )
            resp = await self._store.post('/resources', pdf_bytes, content_type=PDF_CONTENT_TYPE)
            pdf_id = resource_id_from_location(resp.location)
            if not pdf_id:
                logger.error('PDF upload for %s returned no location', resource_id)
                PDF_RENDERS_TOTAL.labels(outcome='skipped').inc()
                return None
            await self._store.put(
                f'/{pdf_id}/_meta',
                {'filename': filename, 'vdoc': {'json': {'_id': resource_id}}},
            )
        except (StoreError, FPDFException):
            logger.exception('Failed to create PDF for %s (doctype %s)', resource_id, doctype)
            PDF_RENDERS_TOTAL.labels(outcome='skipped').inc()
            return None

        logger.info('Posted PDF %s (%s) for masked resource %s', pdf_id, filename, resource_id)
        PDF_RENDERS_TOTAL.labels(outcome='rendered').inc()
        return pdf_id

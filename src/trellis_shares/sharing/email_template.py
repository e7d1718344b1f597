"""Notification email template: ``index.html`` plus inline images."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigurationError

INDEX_FILE = 'index.html'
IMAGES_DIR = 'images'


@dataclass(frozen=True, slots=True)
class EmailTemplate:
    html: str
    attachments: list[dict[str, Any]] = field(default_factory=list)


def load_template(template_dir: str | Path) -> EmailTemplate:
    """Read the template and inline every file under ``images/``.

    ``images/<name>`` references in the HTML become ``cid:<name>`` and each
    image is attached with ``content_id=<name>``.
    """
    root = Path(template_dir)
    try:
        html = (root / INDEX_FILE).read_text(encoding='utf-8')
    except FileNotFoundError as exc:
        raise ConfigurationError(f'Email template {root / INDEX_FILE} not found') from exc

    attachments: list[dict[str, Any]] = []
    images = root / IMAGES_DIR
    if images.is_dir():
        for image in sorted(p for p in images.iterdir() if p.is_file()):
            html = html.replace(f'{IMAGES_DIR}/{image.name}', f'cid:{image.name}')
            attachments.append({
                'content': base64.b64encode(image.read_bytes()).decode('ascii'),
                'content_id': image.name,
                'filename': image.name,
                'disposition': 'inline',
            })
    return EmailTemplate(html=html, attachments=attachments)

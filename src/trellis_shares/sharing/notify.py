"""Notification of a trading partner after a share.

The destination chroot names the trading partner
(``.../trading-partners/<tpid>/...``). The doctype picks one of that
partner's recipient lists, a scoped access token is minted for the sharing
user, and an email job carrying a tracking link is enqueued for the email
service.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from dataclasses import dataclass
from email.utils import getaddresses
from typing import Any
from urllib.parse import urlencode

from trellis_shares.observability.metrics import EMAIL_JOBS_TOTAL
from trellis_shares.protocols import ResourceStore
from trellis_shares.settings import ShareSettings
from trellis_shares.store.errors import StoreError, StoreNotFoundError

from .email_template import EmailTemplate
from .errors import ConfigurationError, RecipientListNotFound, UpstreamError, upstream
from .model import COIS, FSQA_AUDITS, FSQA_CERTIFICATES, LETTERS_OF_GUARANTEE, ShareJobConfig
from .resolver import ensure_linked
from .tree import SERVICE_TREE

logger = logging.getLogger(__name__)

CLIENT_ID = 'SERVICE-CLIENT-TRELLIS-SHARES'
AUTHORIZATION_TYPE = 'application/vnd.oada.authorization.1+json'
EMAIL_SERVICE = 'abalonemail'
EMAIL_QUEUE = f'/bookmarks/services/{EMAIL_SERVICE}/jobs'
SUBJECT_PREFIX = 'Trellis notification: '

_TRADING_PARTNER = re.compile(r'^.*trading-partners/([^/]+)(/.*)$')
_MS_PER_DAY = 24 * 3600 * 1000


@dataclass(frozen=True, slots=True)
class Audience:
    recipient_list: str
    subject: str


AUDIENCES: dict[str, Audience] = {
    COIS: Audience('coi-emails', 'New certificate of insurance available'),
    LETTERS_OF_GUARANTEE: Audience('coi-emails', 'New letter of guarantee available'),
    FSQA_CERTIFICATES: Audience('fsqa-emails', 'New FSQA certificate available'),
    FSQA_AUDITS: Audience('fsqa-emails', 'New FSQA Audit available'),
}


def audience_for(doctype: str) -> Audience:
    try:
        return AUDIENCES[doctype]
    except KeyError:
        raise ConfigurationError(
            f'doctype {doctype!r} is not recognized, no email job created'
        ) from None


def trading_partner_id(chroot: str | None) -> str:
    match = _TRADING_PARTNER.match(chroot or '')
    if not match:
        raise RecipientListNotFound(
            f'chroot {chroot!r} does not name a trading partner; no recipients to notify'
        )
    return match.group(1)


def parse_recipients(raw: str) -> list[dict[str, str]]:
    """``"A <a@x.com>, b@y.com"`` -> ``[{name: A, email: a@x.com}, {email: b@y.com}]``."""
    recipients: list[dict[str, str]] = []
    for name, address in getaddresses([raw]):
        if not address:
            continue
        entry = {'email': address}
        if name:
            entry = {'name': name, **entry}
        recipients.append(entry)
    return recipients


class NotificationDispatcher:
    """Enqueues the notification email job for a completed share."""

    def __init__(
        self,
        store: ResourceStore,
        *,
        settings: ShareSettings,
        template: EmailTemplate,
    ) -> None:
        self._store = store
        self._settings = settings
        self._template = template

    async def _mint_token(self, user_id: str) -> str:
        token = uuid.uuid4().hex
        body = {
            'clientId': CLIENT_ID,
            'user': {'_id': user_id},
            'token': token,
            'scope': ['all:all'],
            'createTime': int(time.time() * 1000),
            'expiresIn': self._settings.authorization_ttl_days * _MS_PER_DAY,
        }
        with upstream('mint authorization', '/authorizations'):
            await self._store.post('/authorizations', body, content_type=AUTHORIZATION_TYPE)
        return token

    async def _recipients(self, tpid: str, audience: Audience) -> tuple[str, list[dict[str, str]]]:
        path = f'/bookmarks/trellisfw/trading-partners/{tpid}/{audience.recipient_list}'
        try:
            resp = await self._store.get(path)
        except StoreNotFoundError as exc:
            raise RecipientListNotFound(
                f'trading partner {tpid} has no {audience.recipient_list} list',
                trading_partner=tpid,
            ) from exc
        except StoreError as exc:
            raise UpstreamError('read recipient list', path, exc) from exc

        raw = resp.data if isinstance(resp.data, str) else ''
        recipients = parse_recipients(raw)
        if not recipients:
            raise RecipientListNotFound(
                f'{audience.recipient_list} list of trading partner {tpid} is empty',
                trading_partner=tpid,
            )
        return raw, recipients

    def tracking_link(self, token: str) -> str:
        query = urlencode({
            'd': self._settings.domain,
            't': token,
            's': self._settings.email_skin,
        })
        return f'{self._settings.conductor_url}?{query}'

    def email_job(self, subject: str, raw: str, recipients: list[dict[str, str]], token: str) -> dict[str, Any]:
        return {
            'service': EMAIL_SERVICE,
            'type': 'email',
            'config': {
                'multiple': False,
                'to': recipients,
                'from': self._settings.email_from,
                'subject': f'{SUBJECT_PREFIX}{subject}',
                'templateData': {
                    'recipients': raw,
                    'link': self.tracking_link(token),
                },
                'html': self._template.html,
                'attachments': self._template.attachments,
            },
        }

    async def notify(self, config: ShareJobConfig) -> str:
        """Enqueue the email job; returns its resource id.

        Raises:
            ConfigurationError: unknown doctype or no sharing user.
            RecipientListNotFound: no trading partner or no recipient list.
            UpstreamError: any other store failure.
        """
        audience = audience_for(config.doctype)
        if config.user is None:
            raise ConfigurationError('cannot notify without a sharing user')
        tpid = trading_partner_id(config.chroot)

        token = await self._mint_token(config.user.id)
        raw, recipients = await self._recipients(tpid, audience)

        job = self.email_job(audience.subject, raw, recipients, token)
        with upstream('create email job', '/resources'):
            resp = await self._store.post('/resources', job)
        job_id = resp.resource_id
        if not job_id:
            raise ValueError('store returned no location for the email job')
        key = job_id.rsplit('/', 1)[-1]

        await ensure_linked(
            self._store,
            path=f'{EMAIL_QUEUE}/{key}',
            link={'_id': f'resources/{key}'},
            chroot='',
            tree=SERVICE_TREE,
        )
        EMAIL_JOBS_TOTAL.labels(doctype=config.doctype).inc()
        logger.info(
            'Enqueued %s email job %s for trading partner %s (%d recipient(s))',
            config.doctype, job_id, tpid, len(recipients),
        )
        return job_id

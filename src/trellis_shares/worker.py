"""Wire the share pipeline's collaborators from settings."""

from __future__ import annotations

from typing import Any

from trellis_shares.jobs import JobService, SlackReporter
from trellis_shares.masking import SigningRedactor, load_private_jwk
from trellis_shares.pdf import MaskedPdfRenderer
from trellis_shares.protocols import ResourceStore
from trellis_shares.settings import ShareSettings
from trellis_shares.sharing import (
    JOB_TYPE,
    CopyEngine,
    NotificationDispatcher,
    ShareJobHandler,
)
from trellis_shares.sharing.email_template import load_template
from trellis_shares.store import OadaClient


def build_store(settings: ShareSettings) -> OadaClient:
    return OadaClient(
        domain=settings.base_url,
        token=settings.token,
        verify_tls=settings.verify_tls,
    )


def build_handler(
    settings: ShareSettings,
    store: ResourceStore,
    *,
    private_jwk: dict[str, Any],
) -> ShareJobHandler:
    redactor = SigningRedactor(
        store,
        private_jwk=private_jwk,
        base_url=settings.base_url,
        signature_type=settings.signature_type,
        signer_name=settings.signer_name,
        signer_url=settings.signer_url,
    )
    renderer = MaskedPdfRenderer(
        store,
        base_url=settings.base_url,
        verify_base_url=settings.verify_base_url,
    )
    notifier = NotificationDispatcher(
        store,
        settings=settings,
        template=load_template(settings.email_template_dir),
    )
    return ShareJobHandler(
        store,
        copy_engine=CopyEngine(store, redactor=redactor, pdf_renderer=renderer),
        notifier=notifier,
    )


def build_service(
    settings: ShareSettings,
    store: ResourceStore | None = None,
    *,
    private_jwk: dict[str, Any] | None = None,
) -> JobService:
    """Job service with the share handler registered.

    ``store`` and ``private_jwk`` default to the HTTP client and the key at
    ``settings.private_jwk_path``.
    """
    if store is None:
        store = build_store(settings)
    if private_jwk is None:
        private_jwk = load_private_jwk(settings.private_jwk_path)

    reporters = []
    if settings.slack_webhook_url:
        reporters.append(SlackReporter(settings.slack_webhook_url))

    service = JobService(store=store, reporters=reporters)
    service.on(
        JOB_TYPE,
        build_handler(settings, store, private_jwk=private_jwk),
        timeout_seconds=settings.job_timeout_seconds,
    )
    return service

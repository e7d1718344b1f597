"""Worker configuration settings.

ShareSettings is the single configuration object built at startup and handed
to every collaborator. It is a plain dataclass, not env-coupled; tests
construct it directly and production uses ``from_env``.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path

DEFAULT_TEMPLATE_DIR = str(Path(__file__).parent / "templates")

_SCHEME = re.compile(r"^https?://")
_LOCAL_DOMAINS = frozenset({"localhost", "proxy"})


def _int(env: dict[str, str], key: str, default: int) -> int:
    raw = env.get(key, "")
    if not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True, slots=True)
class ShareSettings:
    """Configuration for the trellis-shares worker.

    All fields have defaults for a local development store. Anything pointed
    at a real deployment must supply a real domain and token.
    """

    # ── Store ──────────────────────────────────────────────────────
    domain: str = "localhost"
    """Store host name, without scheme."""

    token: str = "god"
    """Bearer token for store calls. Never log this."""

    # ── Job framework ──────────────────────────────────────────────
    job_timeout_seconds: int = 300
    """Wall-clock limit per share job."""

    concurrency: int = 1
    """Jobs in flight per worker. Fixed: the share-count update assumes serial runs."""

    poll_interval_seconds: int = 5
    """Delay between queue polls in ``run`` mode."""

    slack_webhook_url: str = ""
    """Incoming webhook notified when a job fails. Empty disables reporting."""

    # ── Notification ───────────────────────────────────────────────
    email_skin: str = "default"
    email_from: str = "info@dev.trellis.one"
    email_template_dir: str = DEFAULT_TEMPLATE_DIR
    conductor_url: str = "https://trellisfw.github.io/conductor"
    authorization_ttl_days: int = 90

    # ── Signing / masking ──────────────────────────────────────────
    signature_type: str = "transcription"
    private_jwk_path: str = "./keys/private_key.jwk"
    """Private RSA JWK used to sign masked copies. Never log its contents."""

    signer_name: str = "Dev signer"
    signer_url: str = "https://oatscenter.org"
    verify_base_url: str = "https://trellisfw.github.io/reagan"

    @property
    def base_url(self) -> str:
        return f"https://{self.domain}"

    @property
    def verify_tls(self) -> bool:
        # Local stores run with self-signed certificates.
        return self.domain not in _LOCAL_DOMAINS

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if not self.domain:
            errors.append("domain is required")
        if not self.token:
            errors.append("token is required")
        if self.job_timeout_seconds <= 0:
            errors.append("job_timeout_seconds must be positive")
        if self.poll_interval_seconds <= 0:
            errors.append("poll_interval_seconds must be positive")
        if self.authorization_ttl_days <= 0:
            errors.append("authorization_ttl_days must be positive")
        if self.concurrency != 1:
            errors.append("concurrency must be 1")
        if self.slack_webhook_url and not _SCHEME.match(self.slack_webhook_url):
            errors.append("slack_webhook_url must be an http(s) URL")
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> ShareSettings:
        """Build settings from environment variables.

        This is a convenience factory for production use. Tests should
        construct ShareSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        domain = _SCHEME.sub("", env.get("DOMAIN", "localhost").strip()).rstrip("/")

        return cls(
            domain=domain,
            token=env.get("TOKEN", "god"),
            job_timeout_seconds=_int(env, "JOB_TIMEOUT_SECONDS", 300),
            poll_interval_seconds=_int(env, "POLL_INTERVAL_SECONDS", 5),
            slack_webhook_url=env.get("SLACK_WEBHOOK", ""),
            email_skin=env.get("EMAIL_SKIN", "default"),
            email_from=env.get("EMAIL_FROM", "info@dev.trellis.one"),
            email_template_dir=env.get("EMAIL_TEMPLATE_DIR") or DEFAULT_TEMPLATE_DIR,
            conductor_url=env.get("CONDUCTOR_URL", "https://trellisfw.github.io/conductor"),
            authorization_ttl_days=_int(env, "AUTHORIZATION_TTL_DAYS", 90),
            signature_type=env.get("SIGNATURE_TYPE", "transcription"),
            private_jwk_path=env.get("SIGNATURE_JWK", "./keys/private_key.jwk"),
            signer_name=env.get("SIGNER_NAME", "Dev signer"),
            signer_url=env.get("SIGNER_URL", "https://oatscenter.org"),
            verify_base_url=env.get("VERIFY_URL", "https://trellisfw.github.io/reagan"),
        )

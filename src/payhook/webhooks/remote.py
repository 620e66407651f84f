"""Remote attestation webhook verification.

Some providers (PayPal) sign notifications with a certificate rather than a
shared secret and expect the receiver to ask them whether a transmission is
genuine. The local part of the check (header completeness and certificate
origin) always runs first; only then is the transmission metadata posted to
the provider's verification endpoint.

A rejected transmission raises RemoteVerificationFailedError and must not be
retried. Transport failures raise RemoteUnavailableError so the caller can
retry later without ever treating the notification as trusted.

Usage:
    session = create_paypal_session(client_id, client_secret, sandbox=True)
    verifier = RemoteAttestationVerifier(
        session=session,
        webhook_id="WH-...",
        base_url=PAYPAL_SANDBOX_URL,
    )
    await verifier.verify(request_body, dict(request.headers))
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any
from urllib.parse import urlparse

import httpx
import structlog
from authlib.integrations.base_client import OAuthError
from authlib.integrations.httpx_client import AsyncOAuth2Client

from payhook.webhooks.errors import (
    DeserializationError,
    MissingHeaderError,
    RemoteUnavailableError,
    RemoteVerificationFailedError,
    UntrustedCertificateSourceError,
)

logger = structlog.get_logger()

PAYPAL_LIVE_URL = "https://api-m.paypal.com"
PAYPAL_SANDBOX_URL = "https://api-m.sandbox.paypal.com"
PAYPAL_CERT_DOMAIN = "paypal.com"
PAYPAL_HEADER_PREFIX = "paypal-"
VERIFY_PATH = "/v1/notifications/verify-webhook-signature"
TOKEN_PATH = "/v1/oauth2/token"
SUCCESS_STATUS = "SUCCESS"

# Checked in this order; the first absent one is reported.
REQUIRED_FIELDS = (
    "auth-algo",
    "cert-url",
    "transmission-id",
    "transmission-sig",
    "transmission-time",
)


@dataclass(frozen=True)
class RemoteAttestationRequest:
    """Body posted to the provider's verification endpoint."""

    auth_algo: str
    cert_url: str
    transmission_id: str
    transmission_sig: str
    transmission_time: str
    webhook_id: str
    webhook_event: dict[str, Any]

    def to_json(self) -> dict[str, Any]:
        return asdict(self)


def extract_transmission_headers(
    headers: Mapping[str, str],
    prefix: str = PAYPAL_HEADER_PREFIX,
) -> dict[str, str]:
    """Collect the required transmission headers, case-insensitively.

    Returns:
        Mapping of field name (without prefix) to header value.

    Raises:
        MissingHeaderError: For the first required header that is absent, empty
            or blank.
    """
    lowered = {key.lower(): value for key, value in headers.items()}
    found: dict[str, str] = {}
    for field_name in REQUIRED_FIELDS:
        header_name = f"{prefix}{field_name}"
        value = lowered.get(header_name)
        if not value or not value.strip():
            raise MissingHeaderError(field_name, header_name)
        found[field_name] = value
    return found


def validate_cert_url(cert_url: str, trusted_domain: str = PAYPAL_CERT_DOMAIN) -> None:
    """Ensure the certificate is served over https from the provider domain.

    Raises:
        UntrustedCertificateSourceError: If the scheme is not https or the
            host is neither ``trusted_domain`` nor one of its subdomains.
    """
    try:
        parsed = urlparse(cert_url)
        host = (parsed.hostname or "").lower().rstrip(".")
    except ValueError as e:
        raise UntrustedCertificateSourceError("Certificate URL is not a valid URL") from e

    if parsed.scheme != "https":
        raise UntrustedCertificateSourceError("Certificate URL must use https")
    if host != trusted_domain and not host.endswith(f".{trusted_domain}"):
        raise UntrustedCertificateSourceError(
            f"Certificate host {host or '<empty>'} is not under {trusted_domain}"
        )


def create_paypal_session(
    client_id: str,
    client_secret: str,
    sandbox: bool = False,
    timeout: float = 30.0,
) -> AsyncOAuth2Client:
    """Create an OAuth2 client-credentials session for the PayPal API.

    The token is fetched on first use and renewed by authlib when it expires.
    """
    base_url = PAYPAL_SANDBOX_URL if sandbox else PAYPAL_LIVE_URL
    return AsyncOAuth2Client(
        client_id=client_id,
        client_secret=client_secret,
        token_endpoint=f"{base_url}{TOKEN_PATH}",
        grant_type="client_credentials",
        timeout=httpx.Timeout(timeout),
    )


class RemoteAttestationVerifier:
    """Verify transmissions by calling the provider back.

    The session is reused across calls and may be shared by concurrent
    verifications. Any httpx.AsyncClient works; an AsyncOAuth2Client without
    a token fetches one before the first verification request.
    """

    def __init__(
        self,
        session: httpx.AsyncClient,
        webhook_id: str,
        base_url: str = PAYPAL_LIVE_URL,
        trusted_domain: str = PAYPAL_CERT_DOMAIN,
        header_prefix: str = PAYPAL_HEADER_PREFIX,
        timeout: float | None = None,
    ) -> None:
        """Initialize the verifier.

        Args:
            session: Authenticated HTTP session for the provider API.
            webhook_id: Webhook id registered with the provider.
            base_url: Provider API base URL.
            trusted_domain: Domain the certificate URL must belong to.
            header_prefix: Prefix of the transmission headers.
            timeout: Per-request timeout override in seconds.
        """
        self._session = session
        self.webhook_id = webhook_id
        self.base_url = base_url.rstrip("/")
        self.trusted_domain = trusted_domain
        self.header_prefix = header_prefix
        self.timeout = timeout

    def build_request(
        self,
        body: str | bytes,
        headers: Mapping[str, str],
    ) -> RemoteAttestationRequest:
        """Run the local checks and build the attestation request.

        Raises:
            MissingHeaderError: If a transmission header is absent.
            UntrustedCertificateSourceError: If the certificate URL is foreign.
            DeserializationError: If the body is not a JSON object.
        """
        fields = extract_transmission_headers(headers, self.header_prefix)
        validate_cert_url(fields["cert-url"], self.trusted_domain)

        try:
            event = json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DeserializationError("Webhook body is not valid JSON") from e
        if not isinstance(event, dict):
            raise DeserializationError("Webhook body is not a JSON object")

        return RemoteAttestationRequest(
            auth_algo=fields["auth-algo"],
            cert_url=fields["cert-url"],
            transmission_id=fields["transmission-id"],
            transmission_sig=fields["transmission-sig"],
            transmission_time=fields["transmission-time"],
            webhook_id=self.webhook_id,
            webhook_event=event,
        )

    async def verify(self, body: str | bytes, headers: Mapping[str, str]) -> None:
        """Verify a transmission with the provider.

        Raises:
            MissingHeaderError, UntrustedCertificateSourceError,
            DeserializationError: Local checks failed; no request was made.
            RemoteVerificationFailedError: The provider rejected the
                transmission.
            RemoteUnavailableError: The provider could not be asked.
        """
        attestation = self.build_request(body, headers)
        status = await self._submit(attestation)

        if status != SUCCESS_STATUS:
            logger.warning(
                "Remote verification rejected transmission",
                transmission_id=attestation.transmission_id,
                verification_status=status,
            )
            raise RemoteVerificationFailedError(
                f"Provider returned verification status {status!r}"
            )

    async def _submit(self, attestation: RemoteAttestationRequest) -> Any:
        url = f"{self.base_url}{VERIFY_PATH}"
        kwargs: dict[str, Any] = {"json": attestation.to_json()}
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout

        try:
            await self._ensure_token()
            response = await self._session.post(url, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("Remote verification timed out", error=str(e))
            raise RemoteUnavailableError("Verification endpoint timed out") from e
        except (httpx.HTTPError, OAuthError, ValueError) as e:
            logger.warning("Remote verification request failed", error=type(e).__name__)
            raise RemoteUnavailableError(
                f"Verification endpoint unreachable: {type(e).__name__}"
            ) from e

        if not response.is_success:
            logger.warning(
                "Remote verification endpoint error",
                status=response.status_code,
            )
            raise RemoteUnavailableError(
                f"Verification endpoint returned HTTP {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RemoteUnavailableError("Verification endpoint returned invalid JSON") from e

        if not isinstance(data, dict):
            raise RemoteUnavailableError("Verification endpoint returned unexpected JSON")
        return data.get("verification_status")

    async def _ensure_token(self) -> None:
        if isinstance(self._session, AsyncOAuth2Client) and not self._session.token:
            await self._session.fetch_token()

    async def close(self) -> None:
        """Close the underlying session."""
        await self._session.aclose()

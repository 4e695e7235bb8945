"""Inbound webhook triggers.

A webhook binds a public trigger URL to a workflow or pipeline. Payloads
may be signed with HMAC-SHA256 over their compact JSON serialization, sent
either as a bare hex digest or as ``sha256=<hex>``. A verified (or
unsigned, when allowed) payload becomes the run's input.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import secrets
from typing import Any

from flowchord.core.dispatch import ResourceDispatcher
from flowchord.core.models import ExecutionResult, ResourceType, Webhook, generate_id
from flowchord.errors.exceptions import (
    ResourceNotActiveError,
    ResourceNotFoundError,
    WebhookSignatureError,
)
from flowchord.store.base import Store

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def generate_secret() -> str:
    """32 random bytes, hex encoded."""
    return secrets.token_hex(32)


def serialize_payload(payload: Any) -> bytes:
    """Canonical bytes a signature is computed over."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def sign_payload(secret: str, payload: Any) -> str:
    """Hex HMAC-SHA256 of a payload, as a sender would compute it."""
    return hmac.new(secret.encode("utf-8"), serialize_payload(payload), hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str) -> bool:
    """Constant-time comparison of a provided signature with the expected one."""
    provided = signature[len(SIGNATURE_PREFIX):] if signature.startswith(SIGNATURE_PREFIX) else signature
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(provided.strip().encode("utf-8"), expected.encode("utf-8"))


class WebhookDispatcher:
    """Manages webhooks and turns verified deliveries into runs.

    Example:
        >>> webhooks = WebhookDispatcher(store, dispatcher, base_url="https://flows.example.com")
        >>> hook = await webhooks.create_webhook("workflow", "wf-1", user_id="u1")
        >>> result = await webhooks.trigger(hook.id, {"event": "push"},
        ...                                 sign_payload(hook.secret, {"event": "push"}))
    """

    def __init__(
        self,
        store: Store,
        dispatcher: ResourceDispatcher,
        *,
        base_url: str = "http://localhost:5000",
        require_signature: bool = False,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._base_url = base_url.rstrip("/")
        self._require_signature = require_signature

    async def create_webhook(
        self,
        resource_type: ResourceType,
        resource_id: str,
        *,
        user_id: str | None = None,
        organization_id: str | None = None,
        name: str = "",
    ) -> Webhook:
        """Create an enabled webhook with a fresh secret."""
        webhook_id = generate_id()
        webhook = Webhook(
            id=webhook_id,
            name=name,
            resource_type=resource_type,
            resource_id=resource_id,
            user_id=user_id,
            organization_id=organization_id,
            url=f"{self._base_url}/api/webhooks/trigger/{webhook_id}",
            secret=generate_secret(),
            enabled=True,
        )
        await self._store.webhooks.save(webhook)
        logger.info("Created webhook %s for %s %s", webhook_id, resource_type, resource_id)
        return webhook

    async def rotate_secret(self, webhook_id: str) -> Webhook:
        """Replace the secret. The old secret stops verifying immediately."""
        webhook = await self._store.webhooks.update(webhook_id, secret=generate_secret())
        if webhook is None:
            raise ResourceNotFoundError("Webhook", webhook_id)
        logger.info("Rotated secret for webhook %s", webhook_id)
        return webhook

    async def trigger(
        self,
        webhook_id: str,
        payload: Any,
        signature: str | None = None,
        *,
        raw_body: bytes | None = None,
    ) -> ExecutionResult:
        """Verify a delivery and run the bound resource.

        Args:
            webhook_id: Webhook to trigger.
            payload: Parsed request body; becomes the run input.
            signature: Signature header value, if any.
            raw_body: Exact request bytes. When given, the signature is
                checked against them instead of a re-serialized payload.

        Raises:
            ResourceNotFoundError: If the webhook does not exist.
            ResourceNotActiveError: If the webhook is disabled.
            WebhookSignatureError: If the signature is missing when required,
                cannot be checked for lack of a secret, or does not match.
        """
        webhook = await self._store.webhooks.get_by_id(webhook_id)
        if webhook is None:
            raise ResourceNotFoundError("Webhook", webhook_id)
        if not webhook.enabled:
            raise ResourceNotActiveError("Webhook", webhook_id)

        if signature and webhook.secret:
            body = raw_body if raw_body is not None else serialize_payload(payload)
            if not verify_signature(webhook.secret, body, signature):
                logger.warning("Rejected webhook %s: signature mismatch", webhook_id)
                raise WebhookSignatureError()
        elif self._require_signature:
            if signature:
                logger.warning("Rejected webhook %s: no secret to verify against", webhook_id)
                raise WebhookSignatureError("Webhook has no secret to verify the signature")
            logger.warning("Rejected webhook %s: missing signature", webhook_id)
            raise WebhookSignatureError("Missing webhook signature")

        logger.info(
            "Webhook %s triggered %s %s", webhook_id, webhook.resource_type, webhook.resource_id
        )
        return await self._dispatcher.dispatch(
            webhook.resource_type,
            webhook.resource_id,
            payload,
            webhook.user_id,
        )

"""Ticketing API gateway: new ticket vs. reply, response classification."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from email_piping.core.exceptions import ApiError
from email_piping.core.models import ApiCredentials, IngestionOutcome, ParsedMessage

logger = logging.getLogger(__name__)

TICKET_SOURCE = "email-pipe"
MAX_LOGGED_BODY = 1000


def build_create_payload(message: ParsedMessage, mailbox_id: int) -> dict[str, Any]:
    """Payload for ``POST {base}/tickets``; creates the customer by email if needed."""
    payload: dict[str, Any] = {
        "ticket": {
            "mailbox_id": mailbox_id,
            "title": message.subject,
            "content": message.body,
            "source": TICKET_SOURCE,
            "client_priority": "normal",
            "create_customer": "yes",
            "create_wp_user": "no",
        },
        "newCustomer": {
            "email": message.sender_email,
            "first_name": message.sender_name,
            "last_name": "",
        },
    }
    if message.attachments:
        payload["attachments"] = [a.to_payload() for a in message.attachments]
    return payload


def build_reply_payload(message: ParsedMessage) -> dict[str, Any]:
    """Payload for ``POST {base}/tickets/{ref}/responses``. Attachments are not sent."""
    return {
        "content": message.body,
        "conversation_type": "response",
        "close_ticket": "no",
    }


class TicketGateway:
    """Submits parsed messages to the ticketing API over Basic-auth JSON POSTs."""

    def __init__(self, client: httpx.Client, timeout: float = 15.0) -> None:
        self._client = client
        self._timeout = timeout

    def submit(self, message: ParsedMessage, credentials: ApiCredentials) -> IngestionOutcome:
        """Create a ticket or add a reply.

        Returns CREATED or UPDATED on a 2xx response, FAILED otherwise
        (including missing URL/password, which never touches the network).
        """
        if not credentials.base_url or not credentials.password:
            logger.error("API credentials or URL missing.")
            return IngestionOutcome.FAILED

        base = credentials.base_url.rstrip("/")
        if message.ticket_reference:
            url = f"{base}/tickets/{message.ticket_reference}/responses"
            payload = build_reply_payload(message)
            success = IngestionOutcome.UPDATED
        else:
            url = f"{base}/tickets"
            payload = build_create_payload(message, credentials.mailbox_id)
            success = IngestionOutcome.CREATED
            if message.attachments:
                logger.info(
                    "Attempting to send %d attachments with new ticket.",
                    len(message.attachments),
                )

        try:
            self._post(url, payload, credentials)
        except ApiError as e:
            logger.error("Ticket submission to %s failed: %s", url, e)
            return IngestionOutcome.FAILED

        return success

    def _post(self, url: str, payload: dict[str, Any], credentials: ApiCredentials) -> httpx.Response:
        """POST JSON and raise ApiError on transport errors or non-2xx status."""
        try:
            response = self._client.post(
                url,
                json=payload,
                auth=httpx.BasicAuth(credentials.username, credentials.password),
                headers={"Content-Type": "application/json; charset=UTF-8"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise ApiError(f"API request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            body = response.text[:MAX_LOGGED_BODY]
            raise ApiError(
                f"API response error ({response.status_code}): {body}",
                status_code=response.status_code,
            )

        logger.debug("API accepted POST %s with status %d", url, response.status_code)
        return response

"""
Transform Webhook Client
========================

Calls a collection's external transform service. The service receives the
raw document (plus its id) and answers with the replacement document.

Contract:
    POST <transformUrl>
    body:     {"documentId": "...", <document fields>}
    response: JSON object, the document to coerce instead
"""

import logging
from typing import Any, Dict

import requests

from docsync.errors import TransformWebhookError
from docsync.processing.utils import to_json_text

logger = logging.getLogger(__name__)


class TransformWebhookClient:
    """Blocking, single-attempt client for transform webhooks."""

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout

    def transform(self, url: str, document_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send a document to the webhook and return the replacement.

        Raises:
            TransformWebhookError: on transport failure, non-2xx status or a
                response that is not a JSON object
        """
        payload = {"documentId": document_id, **data}

        try:
            response = requests.post(
                url,
                data=to_json_text(payload),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout
            )
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as e:
            raise TransformWebhookError(url, document_id, str(e)) from e
        except ValueError as e:
            raise TransformWebhookError(url, document_id, f"invalid JSON response: {e}") from e

        if not isinstance(body, dict):
            raise TransformWebhookError(
                url, document_id, f"expected a JSON object, got {type(body).__name__}"
            )

        logger.debug(f"Transform webhook returned {len(body)} fields for {document_id}")
        return body

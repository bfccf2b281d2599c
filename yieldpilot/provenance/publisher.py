"""
Strategy Document Publisher

Uploads a strategy document to IPFS through Pinata's JSON pinning API and
returns the content identifier together with retrieval URLs built from the
configured gateways. Documents are pinned as CIDv1 under the name
"yield-strategy.json".
"""

import json
from typing import Any

import httpx
import structlog

from ..config import YieldPilotConfig, get_yieldpilot_config
from ..models import ProvenanceRecord

logger = structlog.get_logger(__name__)

DOCUMENT_NAME = "yield-strategy.json"
CID_VERSION = 1


class PublishError(Exception):
    """Raised when the document could not be pinned."""

    def __init__(
        self,
        message: str,
        payload: Any | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.payload = payload
        self.status_code = status_code


def canonical_json(document: Any) -> str:
    """Stable serialization: sorted keys, no insignificant whitespace."""
    return json.dumps(document, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class PinataPublisher:
    """
    Publishes JSON documents to IPFS via Pinata.

    Example:
        ```python
        publisher = PinataPublisher()
        record = await publisher.publish(strategy.to_document())
        print(record.id, record.retrieval_url)
        ```
    """

    def __init__(
        self,
        config: YieldPilotConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Args:
            config: Optional configuration (global config by default)
            http_client: Optional shared client; one is created per upload otherwise
        """
        self.config = config or get_yieldpilot_config()
        self._http_client = http_client

    def build_record(self, cid: str) -> ProvenanceRecord:
        return ProvenanceRecord(
            id=cid,
            retrieval_url=f"https://{self.config.gateway_host}/ipfs/{cid}",
            mirror_url=f"https://{self.config.pinata_gateway_host}/ipfs/{cid}",
        )

    async def publish(self, document: Any) -> ProvenanceRecord:
        """
        Pin a JSON document.

        Raises:
            PublishError: Missing credential, transport failure or non-2xx response
        """
        jwt = self.config.pinata_jwt
        if not jwt:
            raise PublishError("Pinata JWT is not configured")

        body = {
            "pinataContent": document,
            "pinataMetadata": {"name": DOCUMENT_NAME},
            "pinataOptions": {"cidVersion": CID_VERSION},
        }
        headers = {
            "Authorization": f"Bearer {jwt}",
            "Content-Type": "application/json",
        }

        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self.config.pinata_api_url,
                    content=canonical_json(body),
                    headers=headers,
                    timeout=self.config.upload_timeout_seconds,
                )
            else:
                async with httpx.AsyncClient(timeout=self.config.upload_timeout_seconds) as client:
                    response = await client.post(
                        self.config.pinata_api_url,
                        content=canonical_json(body),
                        headers=headers,
                    )
        except httpx.HTTPError as e:
            raise PublishError(f"Pinata upload failed: {e}") from e

        if not response.is_success:
            try:
                payload: Any = response.json()
            except ValueError:
                payload = response.text
            detail = payload if isinstance(payload, str) else json.dumps(payload)
            raise PublishError(
                f"Pinata upload failed: {detail}",
                payload=payload,
                status_code=response.status_code,
            )

        try:
            cid = response.json()["IpfsHash"]
        except (ValueError, KeyError, TypeError) as e:
            raise PublishError(
                "Pinata response did not contain an IpfsHash", payload=response.text
            ) from e

        record = self.build_record(cid)
        logger.info(
            "strategy_published",
            cid=cid,
            retrieval_url=record.retrieval_url,
            mirror_url=record.mirror_url,
        )
        return record

"""
Profile Tree IPFS Service
Content-addressed storage backends for tree nodes and leaf payloads.

Implements:
- IPFS node HTTP API storage (add / cat)
- Pinata pinning with gateway retrieval
- In-process storage for tests and offline use
"""

import hashlib
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional
import httpx

from profile_tree.errors import NotFoundError, StoreIOError

logger = logging.getLogger(__name__)


class ContentStore(ABC):
    """Key/value access to a content-addressed object store."""

    @abstractmethod
    async def put(self, data: bytes) -> str:
        """Store bytes and return their content address."""

    @abstractmethod
    async def get(self, address: str) -> bytes:
        """Fetch the bytes stored at a content address."""

    async def close(self) -> None:
        """Release any underlying connections."""


def _error_message(response: httpx.Response) -> str:
    message = response.text
    try:
        error_data = response.json()
    except ValueError:
        return message
    if isinstance(error_data, dict):
        error = error_data.get("error")
        if isinstance(error, dict):
            return error.get("message", message)
        return error_data.get("Message", error or message)
    return message


class IPFSContentStore(ContentStore):
    """
    IPFS node storage through its HTTP RPC API.

    Data is added (and pinned) with ``/api/v0/add`` and read back with
    ``/api/v0/cat``.
    """

    def __init__(
        self,
        api_url: str = "http://127.0.0.1:5001",
        timeout: float = 60.0,
        client: httpx.AsyncClient = None
    ):
        """
        Initialize the IPFS store.

        Args:
            api_url: IPFS node API endpoint (protocol://host:port)
            timeout: Per-request timeout in seconds
            client: Optional preconfigured HTTP client
        """
        self.api_url = api_url.rstrip("/")

        # HTTP client with connection pooling
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def put(self, data: bytes) -> str:
        try:
            response = await self.client.post(
                f"{self.api_url}/api/v0/add",
                params={"pin": "true", "cid-version": "0"},
                files={"file": ("data", data)}
            )
        except httpx.HTTPError as e:
            logger.warning(f"IPFS add failed: {e}")
            raise StoreIOError(f"IPFS add failed: {e}") from e

        if response.status_code != 200:
            raise StoreIOError(f"IPFS add error: {_error_message(response)}")

        try:
            return response.json()["Hash"]
        except (ValueError, KeyError) as e:
            raise StoreIOError(f"Unexpected IPFS add response: {response.text}") from e

    async def get(self, address: str) -> bytes:
        try:
            response = await self.client.post(
                f"{self.api_url}/api/v0/cat",
                params={"arg": f"/ipfs/{address}"}
            )
        except httpx.HTTPError as e:
            logger.warning(f"IPFS cat failed for {address}: {e}")
            raise StoreIOError(f"IPFS cat failed: {e}") from e

        if response.status_code == 200:
            return response.content

        message = _error_message(response)
        if "not found" in message.lower() or "invalid path" in message.lower():
            raise NotFoundError(f"CID not found: {address} ({message})")
        raise StoreIOError(f"IPFS cat error: {message}")

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()


class PinataContentStore(ContentStore):
    """
    IPFS storage using Pinata for pinning.

    Writes go through Pinata's pinning API, reads through an IPFS
    gateway (Pinata's dedicated gateway first, then the public one).
    """

    # Pinata API endpoints
    PINATA_PIN_FILE_URL = "https://api.pinata.cloud/pinning/pinFileToIPFS"

    # IPFS Gateway (Pinata dedicated gateway or public)
    IPFS_GATEWAY_URL = "https://gateway.pinata.cloud/ipfs"
    PUBLIC_GATEWAY_URL = "https://ipfs.io/ipfs"

    def __init__(
        self,
        pinata_api_key: str = None,
        pinata_secret_key: str = None,
        pinata_jwt: str = None,
        gateway_url: str = None,
        timeout: float = 60.0,
        client: httpx.AsyncClient = None
    ):
        """
        Initialize the Pinata store.

        Args:
            pinata_api_key: Pinata API key
            pinata_secret_key: Pinata secret key
            pinata_jwt: Pinata JWT (alternative to API key pair)
            gateway_url: Preferred gateway for reads
            timeout: Per-request timeout in seconds
            client: Optional preconfigured HTTP client
        """
        self.api_key = pinata_api_key
        self.secret_key = pinata_secret_key
        self.jwt = pinata_jwt
        self.gateways = [gateway_url or self.IPFS_GATEWAY_URL, self.PUBLIC_GATEWAY_URL]

        self.client = client or httpx.AsyncClient(timeout=timeout)

    def _build_headers(self) -> Dict[str, str]:
        """Build authentication headers for Pinata API."""
        if self.jwt:
            return {"Authorization": f"Bearer {self.jwt}"}
        elif self.api_key and self.secret_key:
            return {
                "pinata_api_key": self.api_key,
                "pinata_secret_api_key": self.secret_key
            }
        else:
            return {}

    def is_configured(self) -> bool:
        """Check if Pinata credentials are present."""
        return bool(self.jwt or (self.api_key and self.secret_key))

    async def put(self, data: bytes) -> str:
        if not self.is_configured():
            raise StoreIOError("Pinata store not configured")

        try:
            response = await self.client.post(
                self.PINATA_PIN_FILE_URL,
                headers=self._build_headers(),
                files={"file": ("data", data)},
                data={"pinataOptions": '{"cidVersion": 0}'}
            )
        except httpx.HTTPError as e:
            logger.warning(f"Pinata upload failed: {e}")
            raise StoreIOError(f"Upload failed: {e}") from e

        if response.status_code != 200:
            raise StoreIOError(f"Pinata error: {_error_message(response)}")

        try:
            return response.json()["IpfsHash"]
        except (ValueError, KeyError) as e:
            raise StoreIOError(f"Unexpected Pinata response: {response.text}") from e

    async def get(self, address: str) -> bytes:
        if not address:
            raise NotFoundError("CID is required")

        # Try the preferred gateway first, then the public one
        last_error: Optional[str] = None
        not_found = True
        for gateway in self.gateways:
            try:
                response = await self.client.get(f"{gateway}/{address}")
            except httpx.HTTPError as e:
                logger.warning(f"Gateway {gateway} failed for {address}: {e}")
                last_error = str(e)
                not_found = False
                continue

            if response.status_code == 200:
                return response.content
            if response.status_code != 404:
                not_found = False
            last_error = f"HTTP {response.status_code}"

        if not_found:
            raise NotFoundError(f"CID not found: {address}")
        raise StoreIOError(f"Failed to fetch CID {address}: {last_error}")

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()


class MemoryContentStore(ContentStore):
    """In-process store addressed by the SHA-256 of the stored bytes."""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}

    @staticmethod
    def compute_address(data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()

    async def put(self, data: bytes) -> str:
        address = self.compute_address(data)
        self.objects[address] = bytes(data)
        return address

    async def get(self, address: str) -> bytes:
        if address not in self.objects:
            raise NotFoundError(f"Address not found: {address}")
        return self.objects[address]

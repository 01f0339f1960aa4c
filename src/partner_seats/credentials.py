"""Read-through cache of the partner's stored payment credentials."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from .cache import CREDENTIALS_KEY, CacheBackend
from .exceptions import APIError, CredentialsUnavailable
from .models.credentials import StoredCredential

if TYPE_CHECKING:
    from .client import AsyncPartnerClient

logger = logging.getLogger(__name__)

_credential_list = TypeAdapter(List[StoredCredential])


class CredentialStore:
    """
    Stored credentials, shared by every screen that lists saved cards.

    Reads go through the shared cache; the cached list is invalidated after
    a successful tokenization, deletion or default change.
    """

    def __init__(
        self,
        client: "AsyncPartnerClient",
        cache: CacheBackend,
        ttl_seconds: int = 300,
    ):
        self._client = client
        self._cache = cache
        self._ttl = ttl_seconds

    async def list_credentials(self, refresh: bool = False) -> List[StoredCredential]:
        """List credentials on file, from cache when fresh.

        Raises:
            CredentialsUnavailable: The payment methods could not be loaded
        """
        if not refresh:
            cached = await self._cache.get(CREDENTIALS_KEY)
            if cached is not None:
                return _credential_list.validate_json(cached)

        credentials = await self._fetch()
        await self._cache.set(
            CREDENTIALS_KEY,
            _credential_list.dump_json(credentials, by_alias=True).decode(),
            ttl=self._ttl,
        )
        logger.debug(f"Loaded {len(credentials)} stored credentials")
        return credentials

    async def _fetch(self) -> List[StoredCredential]:
        try:
            return await self._client.payment_methods.list()
        except APIError as e:
            logger.warning(f"Loading payment methods failed: {e}")
            raise CredentialsUnavailable(
                e.message,
                retryable=e.is_server_error,
                details={"status_code": e.status_code},
            ) from e
        except httpx.TimeoutException as e:
            raise CredentialsUnavailable("Loading payment methods timed out. Please try again.") from e
        except httpx.TransportError as e:
            raise CredentialsUnavailable("Payment methods unreachable. Please try again.") from e
        except ValidationError as e:
            raise CredentialsUnavailable(
                f"Invalid payment methods response: {e}", retryable=False
            ) from e

    async def default_credential(self) -> Optional[StoredCredential]:
        """The partner's default credential, if one is flagged."""
        for credential in await self.list_credentials():
            if credential.is_default:
                return credential
        return None

    async def get(self, credential_id: str) -> Optional[StoredCredential]:
        for credential in await self.list_credentials():
            if credential.id == credential_id:
                return credential
        return None

    async def set_default(self, credential_id: str) -> None:
        await self._client.payment_methods.set_default(credential_id)
        await self.invalidate()

    async def delete(self, credential_id: str) -> None:
        await self._client.payment_methods.delete(credential_id)
        await self.invalidate()

    async def invalidate(self) -> None:
        await self._cache.delete(CREDENTIALS_KEY)

"""Base resource class for backend API resources."""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from ..client import AsyncPartnerClient


class AsyncBaseResource:
    """Base class for async API resources.

    Attributes:
        _client: The async client instance
    """

    def __init__(self, client: "AsyncPartnerClient") -> None:
        self._client = client

    async def _get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Make a GET request.

        Args:
            path: API endpoint path
            params: Query parameters
            timeout: Optional timeout override

        Returns:
            Response data as dictionary
        """
        return await self._client._request("GET", path, params=params, timeout=timeout)

    async def _post(
        self,
        path: str,
        data: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Make a POST request.

        Args:
            path: API endpoint path
            data: Request body
            timeout: Optional timeout override

        Returns:
            Response data as dictionary
        """
        return await self._client._request("POST", path, json=data, timeout=timeout)

    async def _delete(
        self,
        path: str,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Make a DELETE request."""
        return await self._client._request("DELETE", path, timeout=timeout)

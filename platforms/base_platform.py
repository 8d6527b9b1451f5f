import logging
from typing import Any, Dict, Optional

import aiohttp

from interfaces.platform_interface import IStreamPlatform
from services.exceptions import UpstreamFailure

logger = logging.getLogger(__name__)


class BasePlatform(IStreamPlatform):
    """Shared aiohttp plumbing for platform clients"""

    name = "platform"

    def __init__(self, credentials: Dict[str, Optional[str]]):
        self.client_id = credentials.get('client_id')
        self.client_secret = credentials.get('client_secret')
        self._session: Optional[aiohttp.ClientSession] = None

    async def initialize(self):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=15))

    async def cleanup(self):
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request_json(self, method: str, url: str, **kwargs) -> Any:
        """Perform a request and decode JSON, raising UpstreamFailure on any failure"""
        await self.initialize()
        try:
            async with self._session.request(method, url, **kwargs) as response:
                if response.status >= 400:
                    body = await response.text()
                    logger.warning(f"[{self.name}] {method} {url} failed: {response.status} - {body[:200]}")
                    raise UpstreamFailure(
                        f"{self.name} request failed with status {response.status}",
                        status=response.status,
                    )
                return await response.json(content_type=None)
        except aiohttp.ClientError as e:
            logger.warning(f"[{self.name}] {method} {url} error: {e}")
            raise UpstreamFailure(f"{self.name} request failed: {e}") from e

"""REST client for one-shot calls that need no correlation or buffering."""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from ..config.settings import RestConfig, RetryConfig
from ..utils.retry import retrying

logger = logging.getLogger(__name__)


class RestApi:
    """Bearer-token REST client with retry on transient failures."""

    def __init__(self, config: RestConfig, retry_config: Optional[RetryConfig] = None):
        self.config = config
        self.retry_config = retry_config or RetryConfig()
        self.session: Optional[aiohttp.ClientSession] = None

        self.endpoints = {
            'markets': '/markets',
        }

    async def __aenter__(self):
        """Async context manager entry."""
        headers = {'Accept': 'application/json'}
        if self.config.token:
            headers['Authorization'] = f"Bearer {self.config.token}"

        self.session = aiohttp.ClientSession(
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=self.config.request_timeout_seconds),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.session:
            await self.session.close()
            self.session = None

    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET ``endpoint`` and decode the JSON body, retrying with backoff."""
        if not self.session:
            raise RuntimeError("Client not initialized. Use async context manager.")

        return await self._fetch(f"{self.config.base_url}{endpoint}", params)

    @retrying(aiohttp.ClientError, asyncio.TimeoutError)
    async def _fetch(self, url: str, params: Optional[Dict[str, Any]]) -> Any:
        async with self.session.get(url, params=params) as response:
            if response.status == 429:
                retry_after = int(response.headers.get('Retry-After', 5))
                logger.warning(f"Rate limit exceeded, waiting {retry_after}s")
                await asyncio.sleep(retry_after)

            response.raise_for_status()
            return await response.json()

    async def get_markets_list(self) -> Any:
        """List of markets available to the token's account."""
        logger.debug("Fetching markets list")

        try:
            data = await self.get(self.endpoints['markets'])
            logger.info(f"Retrieved {len(data)} markets")
            return data
        except Exception as e:
            logger.error(f"Failed to fetch markets list: {e}")
            raise

"""
文件功能：
    网关 HTTP 连接池的延迟创建与复用。

公开接口：
    - GatewayHttpPool: 首次使用时创建 httpx.AsyncClient，并发首次调用只会创建一个实例
"""

from __future__ import annotations

import threading
from typing import Optional

import httpx
from loguru import logger


class GatewayHttpPool:
    """按网关地址持有一个可复用的 httpx.AsyncClient。"""

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._lock = threading.Lock()

    def get(self) -> httpx.AsyncClient:
        client = self._client
        if client is not None and not client.is_closed:
            return client
        with self._lock:
            if self._client is None or self._client.is_closed:
                logger.debug(f"创建网关 HTTP 连接池: {self.base_url}")
                self._client = httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=self.timeout,
                    transport=self._transport,
                )
            return self._client

    async def aclose(self) -> None:
        with self._lock:
            client, self._client = self._client, None
        if client is not None:
            await client.aclose()

"""
FastAPI 应用入口点。网关实例在 lifespan 中构建一次，挂在 app.state 上供路由注入。
"""

from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from src.server.alipay.factory import build_gateway
from src.server.config import Config, config
from src.server.orders.router import router as orders_router
from src.server.orders.store import InMemoryOrderStore


def create_app(
    cfg: Optional[Config] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    settings = cfg or config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # 配置错误在启动时直接抛出
        gateway = build_gateway(settings, transport=transport)
        app.state.gateway = gateway
        app.state.order_store = InMemoryOrderStore()
        app.state.notify_url = settings.notify_url
        logger.info(f"异步通知地址: {settings.notify_url}")
        try:
            yield
        finally:
            logger.info("应用关闭，正在释放网关连接...")
            await gateway.aclose()

    app = FastAPI(title="Alipay Subscription Checkout Service", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(orders_router, prefix="/v1")
    return app


app = create_app()

from __future__ import annotations

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from clb.discovery import RegistryResolver, Resolver, StaticResolver
from clb.errors import install_error_handlers
from clb.gateway import build_strategy
from clb.loadbalancer import LoadBalancedClient
from clb.logging_config import setup_logging
from clb.runtime import RuntimeState
from clb.settings import RibbonConfig, settings


def build_resolver(config: RibbonConfig) -> Resolver:
    if config.backends:
        return StaticResolver(config.backends)
    if config.registry_url:
        return RegistryResolver(config.registry_url, timeout_s=config.timeout_s)
    # No backends and no registry: every lookup comes back empty (503).
    return StaticResolver({})


def create_app(
    config: RibbonConfig | None = None,
    resolver: Resolver | None = None,
    transport: httpx.BaseTransport | None = None,
) -> FastAPI:
    config = config or RibbonConfig.from_env()
    setup_logging(settings.log_level)

    runtime = RuntimeState()
    resolver = resolver or build_resolver(config)
    lb = LoadBalancedClient(
        resolver=resolver,
        strategy=build_strategy(config.strategy, runtime),
        timeout_s=config.timeout_s,
        transport=transport,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        lb.close()
        if isinstance(resolver, RegistryResolver):
            resolver.close()

    app = FastAPI(title="Ribbon routing client", lifespan=lifespan)
    app.state.lb = lb
    install_error_handlers(app)

    @app.get("/hi", response_class=PlainTextResponse)
    def hi(name: str) -> str:
        return lb.get_text(f"http://{config.target_service}/hi", params={"name": name})

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "healthy", "target": config.target_service}

    return app


app = create_app()

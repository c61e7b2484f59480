from __future__ import annotations

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from clb.errors import install_error_handlers
from clb.logging_config import setup_logging
from clb.registry_client import RegistryClient
from clb.runtime import Instance
from clb.settings import InstanceConfig, settings


def greeting(name: str, label: str, port: int) -> str:
    return f"hi {name},i am from {label} instance, port:{port}"


def create_app(config: InstanceConfig | None = None, transport: httpx.BaseTransport | None = None) -> FastAPI:
    config = config or InstanceConfig.from_env()
    setup_logging(settings.log_level)

    me = Instance(
        service=config.service_name,
        host=config.host,
        port=config.port,
        label=config.label,
        weight=config.weight,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        registry: RegistryClient | None = None
        if config.registry_url:
            registry = RegistryClient(
                config.registry_url,
                me,
                renewal_interval_s=config.lease_renewal_interval_s,
                lease_duration_s=config.lease_duration_s,
                transport=transport,
            )
            registry.start()
        app.state.registry = registry
        yield
        if registry:
            # deregistration is a blocking HTTP call
            await run_in_threadpool(registry.stop)

    app = FastAPI(title=f"{config.service_name} ({config.label})", lifespan=lifespan)
    app.state.instance = me
    install_error_handlers(app)

    @app.get("/hi", response_class=PlainTextResponse)
    def hi(name: str) -> str:
        return greeting(name, config.label, config.port)

    @app.get("/health")
    def health() -> dict[str, str | int]:
        return {"status": "healthy", "label": config.label, "port": config.port}

    return app


app = create_app()

"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Own process-wide device resources (httpx client, probe, transport,
  reconciler) through the app lifespan
- Register routes
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import AppConfig
from device.http_client import build_device_client
from device.probe import ConnectivityProbe
from device.transport import CommandTransport
from observability import logger
from observability.logger import log_event
from reconciler.reconciler import ConnectionReconciler, DeviceSettings

from server.routes import register_routes


def create_app(
    config: AppConfig | None = None,
    *,
    device_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    device_transport replaces the network for the device client; tests
    pass an httpx.MockTransport.
    """
    config = config or AppConfig.load_from_env()
    logger.set_enabled(config.enable_json_logs)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        client = build_device_client(transport=device_transport)
        transport = CommandTransport(client)
        reconciler = ConnectionReconciler(
            settings=DeviceSettings(
                address=config.device_address,
                demo_mode=config.demo_mode,
            ),
            probe=ConnectivityProbe(client),
            transport=transport,
        )
        app.state.reconciler = reconciler

        log_event({
            "event_type": "SERVICE_STARTED",
            "env": config.env,
            "device_address": config.device_address,
            "demo_mode": config.demo_mode,
        })
        await reconciler.start()
        try:
            yield
        finally:
            await reconciler.stop()
            await transport.aclose()
            await client.aclose()
            log_event({"event_type": "SERVICE_STOPPED"})

    app = FastAPI(title="Relay Hub API", lifespan=lifespan)
    app.state.config = config

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app

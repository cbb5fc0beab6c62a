"""
FastAPI 应用入口点。
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from src.providore.auth.middleware import HmacAuthMiddleware
from src.providore.ca.authority import CertificateAuthority, OpenSSLCertificateAuthority
from src.providore.ca.lifecycle import CertificateLifecycleManager
from src.providore.clock import Clock, SystemClock
from src.providore.config import Config, config
from src.providore.devices.store import DeviceDirectory, load_devices
from src.providore.provisioning.router import router as provisioning_router


def _build_authority(settings: Config) -> CertificateAuthority | None:
    if settings.openssl_config_file is None or settings.openssl_password_file is None:
        logger.warning("未配置 openssl_config_file / openssl_password_file，证书签发不可用")
        return None
    return OpenSSLCertificateAuthority.from_settings(settings)


def create_app(
    settings: Config | None = None,
    devices: DeviceDirectory | None = None,
    clock: Clock | None = None,
    authority: CertificateAuthority | None = None,
) -> FastAPI:
    if settings is None:
        settings = config
    settings.check_tls()
    authority = authority or _build_authority(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.devices is None:
            app.state.devices = load_devices(settings.config_store / "devices.json")
        logger.info(f"config: {settings.model_dump_json(indent=4)}")
        yield

    app = FastAPI(title="Providore Device Provisioning Service", lifespan=lifespan)
    app.state.settings = settings
    app.state.devices = devices
    app.state.clock = clock or SystemClock()
    app.state.lifecycle = CertificateLifecycleManager(authority) if authority else None

    app.add_middleware(
        HmacAuthMiddleware,
        public_paths=settings.public_paths,
        version_required_paths=settings.version_required_paths,
    )
    app.include_router(provisioning_router)
    return app

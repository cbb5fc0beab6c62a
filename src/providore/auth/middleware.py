from __future__ import annotations

from typing import Iterable

from fastapi import HTTPException, Request, status
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from src.providore.auth.core import DeviceLookup, authenticate
from src.providore.auth.schemas import Rejection
from src.providore.clock import Clock
from src.providore.devices.schemas import Device


class HmacAuthMiddleware(BaseHTTPMiddleware):
    """
    对非公开路径执行 HMAC 认证。

    - 公开路径（如 CRL）直接放行，不做认证。
    - 硬失败（格式错误、时间戳错误、过期）直接返回状态码。
    - 软失败记录在 request.state.auth_rejection，由 require_device 决定是否拒绝。
    """

    def __init__(
        self,
        app: ASGIApp,
        devices: DeviceLookup | None = None,
        clock: Clock | None = None,
        public_paths: Iterable[str] = (),
        version_required_paths: Iterable[str] = (),
    ) -> None:
        super().__init__(app)
        self._devices = devices
        self._clock = clock
        self._public_paths = frozenset(public_paths)
        self._version_required_paths = frozenset(version_required_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.device = None
        request.state.auth_rejection = None

        path = request.url.path
        if path in self._public_paths:
            return await call_next(request)

        # 设备目录与时钟可在 lifespan 中才就绪，未注入时从 app.state 读取
        devices = self._devices if self._devices is not None else request.app.state.devices
        clock = self._clock if self._clock is not None else request.app.state.clock

        result = authenticate(
            request.method,
            path,
            request.headers,
            devices,
            clock,
            require_version=path in self._version_required_paths,
        )
        if isinstance(result, Rejection):
            if result.is_hard:
                logger.warning(f"认证失败 {request.method} {path}: {result.kind.value} ({result.reason})")
                return Response(status_code=result.status_code)
            logger.info(f"认证未通过，交由路由处理 {request.method} {path}: {result.kind.value}")
            request.state.auth_rejection = result
        else:
            request.state.device = result.device

        return await call_next(request)


def require_device(request: Request) -> Device:
    """需要认证的路由依赖：返回已认证设备，否则按记录的失败原因拒绝。"""
    device = getattr(request.state, "device", None)
    if device is not None:
        return device
    rejection: Rejection | None = getattr(request.state, "auth_rejection", None)
    status_code = rejection.status_code if rejection else status.HTTP_401_UNAUTHORIZED
    raise HTTPException(status_code=status_code, detail="Unauthorized")


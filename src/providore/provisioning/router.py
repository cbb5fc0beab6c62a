"""
设备下发服务的 FastAPI 路由定义。
除 CRL 外的路由都要求 HMAC 认证，并使用设备密钥对响应内容签名。
"""

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import FileResponse
from loguru import logger

from src.providore.auth.core import VERSION_HEADER
from src.providore.auth.middleware import require_device
from src.providore.auth.signing import attach_signature
from src.providore.devices.schemas import Device
from src.providore.errors import ConfigurationError

from . import services

router = APIRouter(tags=["Provisioning"])

PEM_MEDIA_TYPE = "application/x-pem-file"


def _signed(request: Request, body: bytes, media_type: str, device: Device) -> Response:
    response = Response(content=body, media_type=media_type)
    attach_signature(response, body, device.secret_key, request.app.state.clock)
    return response


def _serve(request: Request, device: Device, media_type: str, read) -> Response:
    try:
        body = read()
    except FileNotFoundError as e:
        logger.info(f"设备 {device.id} 请求的文件不存在: {e}")
        raise HTTPException(status_code=404, detail="Not Found")
    except ConfigurationError as e:
        logger.error(f"配置错误: {e}")
        raise HTTPException(status_code=500, detail="Internal Server Error")
    return _signed(request, body, media_type, device)


@router.get("/config.json")
async def get_config(request: Request, device: Device = Depends(require_device)) -> Response:
    """
    下发设备配置。
    """
    settings = request.app.state.settings
    version = request.headers.get(VERSION_HEADER)
    return _serve(
        request,
        device,
        "application/json",
        lambda: services.get_device_config(settings, device, version),
    )


@router.get("/firmware.bin")
async def get_firmware(request: Request, device: Device = Depends(require_device)) -> Response:
    """
    下发固件，按 x-firmware-version 选择版本。
    """
    settings = request.app.state.settings
    version = request.headers.get(VERSION_HEADER)
    return _serve(
        request,
        device,
        "application/octet-stream",
        lambda: services.get_firmware(settings, device, version),
    )


@router.get("/client.cert.pem")
async def get_certificate(request: Request, device: Device = Depends(require_device)) -> Response:
    """
    下发设备当前的客户端证书。
    """
    settings = request.app.state.settings
    return _serve(
        request,
        device,
        PEM_MEDIA_TYPE,
        lambda: services.get_certificate(settings, device),
    )


@router.post("/certificates/request")
async def request_certificate(request: Request, device: Device = Depends(require_device)) -> Response:
    """
    设备提交 CSR，吊销旧证书后签发新证书。
    """
    csr = await request.body()
    try:
        # CA 调用会阻塞到子进程结束，放到线程中执行
        certificate = await asyncio.to_thread(
            services.issue_certificate_service,
            request.app.state.settings,
            request.app.state.lifecycle,
            device,
            csr,
        )
    except ValueError as e:
        logger.warning(f"设备 {device.id} 的 CSR 被拒绝: {e}")
        raise HTTPException(status_code=400, detail="Bad Request")
    except RuntimeError as e:
        # CA 的诊断信息只写日志，不返回给设备
        logger.error(f"设备 {device.id} 证书签发失败: {e}")
        raise HTTPException(status_code=500, detail="Internal Server Error")

    return _signed(request, certificate.encode("utf-8"), PEM_MEDIA_TYPE, device)


@router.get("/crl.pem")
async def get_crl(request: Request) -> FileResponse:
    """
    公开路由：下发 CA 的 CRL，不需要认证，不签名。
    """
    try:
        crl = services.get_crl_path(request.app.state.settings)
    except ConfigurationError as e:
        logger.error(f"配置错误: {e}")
        raise HTTPException(status_code=500, detail="Internal Server Error")
    if not crl.exists():
        raise HTTPException(status_code=404, detail="Not Found")
    return FileResponse(path=crl, media_type=PEM_MEDIA_TYPE)

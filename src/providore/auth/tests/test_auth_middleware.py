"""
测试 middleware.py：硬失败直接返回状态码，软失败交给路由，公开路径跳过认证。
"""

from datetime import datetime, timezone

from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from src.providore.auth import signing
from src.providore.auth.middleware import HmacAuthMiddleware, require_device
from src.providore.devices.schemas import Device
from src.providore.devices.store import DeviceDirectory

CREATED_AT = "2021-04-08T11:00:21Z"
EXPIRY = "2021-04-08T11:15:21Z"


class FixedClock:
    def now(self) -> datetime:
        return datetime(2021, 4, 8, 11, 5, tzinfo=timezone.utc)


devices = DeviceDirectory.from_mapping({"abc123": {"secretKey": "secret"}})

app = FastAPI()
app.add_middleware(
    HmacAuthMiddleware,
    devices=devices,
    clock=FixedClock(),
    public_paths=["/public"],
    version_required_paths=["/versioned"],
)


@app.get("/private")
async def private(device: Device = Depends(require_device)):
    return {"device": device.id}


@app.get("/versioned")
async def versioned(device: Device = Depends(require_device)):
    return {"device": device.id}


@app.get("/public")
async def public():
    return {"ok": True}


client = TestClient(app)


def _auth_headers(path: str, secret: str = "secret", key_id: str = "abc123", version=None) -> dict:
    signature = signing.sign(signing.canonical_message("get", path, CREATED_AT, EXPIRY, version), secret)
    headers = {
        "Authorization": f'Hmac key-id="{key_id}", signature="{signature}"',
        "created-at": CREATED_AT,
        "expiry": EXPIRY,
    }
    if version is not None:
        headers["x-firmware-version"] = version
    return headers


def test_authenticated_request_reaches_route():
    response = client.get("/private", headers=_auth_headers("/private"))
    assert response.status_code == 200
    assert response.json() == {"device": "abc123"}


def test_missing_authorization_header_returns_400():
    response = client.get("/private")
    assert response.status_code == 400


def test_unsupported_scheme_returns_400():
    response = client.get("/private", headers={"Authorization": "UNKNOWN abc.123"})
    assert response.status_code == 400


def test_invalid_timestamp_returns_400():
    headers = _auth_headers("/private")
    headers["created-at"] = "not-a-date"
    response = client.get("/private", headers=headers)
    assert response.status_code == 400


def test_wrong_secret_returns_401():
    response = client.get("/private", headers=_auth_headers("/private", secret="notsecret"))
    assert response.status_code == 401


def test_unknown_device_returns_401():
    response = client.get("/private", headers=_auth_headers("/private", key_id="xyz123"))
    assert response.status_code == 401


def test_malformed_hmac_header_returns_401():
    response = client.get("/private", headers={"Authorization": "Hmac abc.123"})
    assert response.status_code == 401


def test_public_path_skips_authentication():
    assert client.get("/public").status_code == 200
    assert client.get("/public", headers={"Authorization": "Hmac abc.123"}).status_code == 200


def test_version_required_path():
    response = client.get("/versioned", headers=_auth_headers("/versioned"))
    assert response.status_code == 401

    response = client.get("/versioned", headers=_auth_headers("/versioned", version="1.0.0"))
    assert response.status_code == 200


def test_expired_request_returns_401():
    expired_app = FastAPI()

    class LateClock:
        def now(self) -> datetime:
            return datetime(2021, 4, 8, 12, 0, tzinfo=timezone.utc)

    expired_app.add_middleware(HmacAuthMiddleware, devices=devices, clock=LateClock())

    @expired_app.get("/private")
    async def _private(device: Device = Depends(require_device)):
        return {"device": device.id}

    response = TestClient(expired_app).get("/private", headers=_auth_headers("/private"))
    assert response.status_code == 401

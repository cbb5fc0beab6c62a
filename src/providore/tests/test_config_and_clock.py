"""
测试 config.py 与 clock.py。
"""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from src.providore.clock import SystemClock, format_timestamp, parse_timestamp
from src.providore.config import Config
from src.providore.errors import ConfigurationError


def test_relative_paths_resolved_against_config_store(tmp_path):
    settings = Config(
        config_store=tmp_path,
        certificate_store="tls",
        firmware_store="/srv/firmware",
        openssl_config_file="ca/openssl.cnf",
    )
    assert settings.certificate_store == tmp_path / "tls"
    assert settings.firmware_store == Path("/srv/firmware")
    assert settings.openssl_dir == tmp_path / "ca"
    assert settings.resolved_crl_file == tmp_path / "ca" / "crl.pem"


def test_crl_file_without_openssl_config(tmp_path):
    assert Config(config_store=tmp_path).resolved_crl_file is None


def test_paths_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("PROVIDORE_PUBLIC_PATHS", "/crl.pem, /health")
    monkeypatch.setenv("PROVIDORE_VERSION_REQUIRED_PATHS", '["/firmware.bin"]')
    settings = Config(config_store=tmp_path)
    assert settings.public_paths == ["/crl.pem", "/health"]
    assert settings.version_required_paths == ["/firmware.bin"]


def test_config_file_sets_config_store(tmp_path, monkeypatch):
    folder = tmp_path / "providore"
    folder.mkdir()
    (folder / "config.json").write_text(
        json.dumps({"port": 8443, "certificate_store": "tls"}), encoding="utf-8"
    )
    monkeypatch.setenv("CONFIG_FILE", str(folder / "config.json"))

    settings = Config()

    assert settings.port == 8443
    assert settings.config_store == folder
    assert settings.certificate_store == folder / "tls"


def test_https_requires_certificate(tmp_path):
    with pytest.raises(ConfigurationError):
        Config(config_store=tmp_path, protocol="https").check_tls()
    Config(config_store=tmp_path, protocol="https", ssl_cert_path="a", ssl_key_path="b").check_tls()


def test_format_timestamp_matches_iso_string():
    value = datetime(2021, 4, 8, 11, 0, 21, 123456, tzinfo=timezone.utc)
    assert format_timestamp(value) == "2021-04-08T11:00:21.123Z"


def test_format_timestamp_converts_to_utc():
    value = datetime(2021, 4, 8, 13, 0, 21, tzinfo=timezone(timedelta(hours=2)))
    assert format_timestamp(value) == "2021-04-08T11:00:21.000Z"


@pytest.mark.parametrize(
    "text",
    ["2021-04-08T11:00:21Z", "2021-04-08T11:00:21.000Z", "2021-04-08T11:00:21", "2021-04-08T13:00:21+02:00"],
)
def test_parse_timestamp(text):
    assert parse_timestamp(text) == datetime(2021, 4, 8, 11, 0, 21, tzinfo=timezone.utc)


def test_parse_timestamp_invalid():
    with pytest.raises(ValueError):
        parse_timestamp("yesterday")


def test_system_clock_is_utc():
    assert SystemClock().now().tzinfo == timezone.utc


def test_log_level_from_environment_and_config_file(tmp_path, monkeypatch):
    assert Config(config_store=tmp_path).log_level == "INFO"

    (tmp_path / "config.json").write_text(json.dumps({"log_level": "warning"}), encoding="utf-8")
    monkeypatch.setenv("CONFIG_FILE", str(tmp_path / "config.json"))
    assert Config().log_level == "warning"

    monkeypatch.setenv("PROVIDORE_LOG_LEVEL", "debug")
    assert Config().log_level == "debug"

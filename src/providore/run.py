#!/usr/bin/env python
import argparse
import os
import sys
from pathlib import Path

import uvicorn
from dotenv import load_dotenv
from loguru import logger


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Providore device provisioning server")
    parser.add_argument("-b", "--bind", help="IP Address to bind to")
    parser.add_argument("-p", "--port", type=int, help="TCP port to listen to")
    parser.add_argument("--ssl", choices=["true", "false"], help="Enable SSL")
    parser.add_argument("--cert", help="Path to the TLS certificate. Required if SSL is enabled")
    parser.add_argument("--cert-key", help="Path to the TLS key. Required if SSL is enabled")
    parser.add_argument("--cert-ca", help="Path to a TLS ca cert chain.")
    parser.add_argument("-c", "--config", help="Folder that stores device config files")
    parser.add_argument("--firmware-store", help="Folder that stores device firmware")
    parser.add_argument("--certificate-store", help="Folder that stores device certificates")
    return parser.parse_args(argv)


def build_overrides(args: argparse.Namespace) -> dict:
    """命令行参数优先于配置文件与环境变量。"""
    overrides = {}
    if args.bind is not None:
        overrides["bind"] = args.bind
    if args.port is not None:
        overrides["port"] = args.port
    if args.ssl is not None:
        overrides["protocol"] = "https" if args.ssl == "true" else "http"
    if args.cert is not None:
        overrides["ssl_cert_path"] = args.cert
    if args.cert_key is not None:
        overrides["ssl_key_path"] = args.cert_key
    if args.cert_ca is not None:
        overrides["ca_cert_path"] = args.cert_ca
    if args.config is not None:
        overrides["config_store"] = args.config
    if args.firmware_store is not None:
        overrides["firmware_store"] = args.firmware_store
    if args.certificate_store is not None:
        overrides["certificate_store"] = args.certificate_store
    return overrides


def configure_logging(level: str) -> str:
    level = level.upper()
    logger.remove()
    logger.add(sys.stderr, level=level)
    return level


def main(argv=None) -> None:
    load_dotenv(Path.cwd() / ".env")
    configure_logging(os.getenv("PROVIDORE_LOG_LEVEL", "INFO"))
    logger.info("Providore, start running!")

    # 延迟导入，确保 .env 已加载
    from src.providore.config import Config
    from src.providore.main import create_app

    settings = Config(**build_overrides(_parse_args(argv)))
    # 配置加载完成后以 log_level 为准
    log_level = configure_logging(settings.log_level)
    app = create_app(settings)

    ssl_options = {}
    if settings.protocol == "https":
        ssl_options = {
            "ssl_certfile": str(settings.ssl_cert_path),
            "ssl_keyfile": str(settings.ssl_key_path),
        }
        if settings.ca_cert_path is not None:
            ssl_options["ssl_ca_certs"] = str(settings.ca_cert_path)

    logger.info(f"{settings.protocol.upper()} server listening at {settings.protocol}://{settings.bind}:{settings.port}")
    uvicorn.run(
        app,
        host=settings.bind,
        port=settings.port,
        log_level=log_level.lower(),
        **ssl_options,
    )


if __name__ == "__main__":
    main()

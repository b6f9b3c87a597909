"""Centralized logging configuration with Pydantic Logfire integration."""

import logging
from typing import Any

import logfire
from fastapi import FastAPI

from discovery_service.config import get_settings
from discovery_service.constants import SERVICE_NAME, SERVICE_VERSION


def setup_logfire(app: FastAPI) -> None:
    """
    Initialize and configure Pydantic Logfire for observability.

    Sets up:
    - FastAPI instrumentation (request/response tracing)
    - Environment-aware configuration
    - Console formatting locally, plain messages in production
    """
    settings = get_settings()

    logfire_config: dict[str, Any] = {
        "service_name": SERVICE_NAME,
        "service_version": SERVICE_VERSION,
        "environment": settings.env,
        "send_to_logfire": "if-token-present",
    }

    # Add token if provided (for cloud logging)
    if settings.logfire_token:
        logfire_config["token"] = settings.logfire_token

    logfire.configure(**logfire_config)
    logfire.instrument_fastapi(app)

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.env == "local":
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
    else:
        # Logfire handles structured formatting
        logging.basicConfig(level=log_level, format="%(message)s")


def mask_client_ip(ip: str | None) -> str:
    """
    Mask the host part of a client IP before it is written to logs.

    IPv4 keeps the first two octets, IPv6 the first two groups.

    Args:
        ip: Client address as reported by the ASGI server

    Returns:
        Masked address, or "unknown" when there is none
    """
    if not ip:
        return "unknown"

    if ":" in ip:
        groups = ip.split(":")
        return ":".join(groups[:2] + ["*"] * (len(groups) - 2))

    octets = ip.split(".")
    if len(octets) != 4:
        # Not an address (e.g. "testclient")
        return ip
    return ".".join(octets[:2] + ["*", "*"])

"""
Logging setup and the per-request access log middleware.
"""

from __future__ import annotations

import logging
import sys
import time

from fastapi import Request

from . import config

logger = logging.getLogger("api.access")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging() -> None:
    level_name = config.env_str("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stdout)


async def access_log_middleware(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - started) * 1000
    logger.info(
        "request method=%s path=%s origin=%s status=%s duration_ms=%.1f",
        request.method,
        request.url.path,
        request.headers.get("origin", "-"),
        response.status_code,
        duration_ms,
    )
    return response

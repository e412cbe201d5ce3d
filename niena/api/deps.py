"""
Shared route helpers.
"""
import logging
from typing import Any, Callable

from fastapi import Request

logger = logging.getLogger(__name__)


def run_workflow(workflow: Callable[..., Any], *args, **kwargs) -> None:
    """
    BackgroundTasks entry point for long-running workflows.

    The workflow has already logged, compensated and emitted its failure
    event before re-raising; the error ends here so it does not surface
    as an unhandled ASGI exception after the response was sent.
    """
    try:
        workflow(*args, **kwargs)
    except Exception as e:
        logger.error("Background workflow %s failed: %s", getattr(workflow, "__name__", workflow), e)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"

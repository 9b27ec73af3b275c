import logging

import httpx

from proxy_gateway.config import AppConfig

logger = logging.getLogger("uvicorn.error")


def build_client(config: AppConfig) -> httpx.AsyncClient:
    """
    Create the shared outbound client.

    One client (and its connection pool) serves all requests. Redirects are
    handed back to the caller instead of being followed.
    """
    if config.request.accept_invalid_certs:
        logger.warning(
            "TLS certificate verification is disabled for upstream "
            f"{config.upstream_base_url}; do not use this in production"
        )
    return httpx.AsyncClient(
        verify=not config.request.accept_invalid_certs,
        timeout=httpx.Timeout(config.request.timeout),
        follow_redirects=False,
    )

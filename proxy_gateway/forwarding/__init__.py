from .route import (
    router,
    forward_to_target,
    get_target_url,
    prepare_headers,
    build_response,
)

__all__ = [
    "router",
    "forward_to_target",
    "get_target_url",
    "prepare_headers",
    "build_response",
]

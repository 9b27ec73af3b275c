from typing import Iterable, List, Tuple

# Headers whose values carry credentials and must not reach the logs
SENSITIVE_HEADERS = {
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
}


def mask_header_value(name: str, value: str) -> str:
    if name.lower() not in SENSITIVE_HEADERS or not value:
        return value
    return f"{value[:4]}****"


def masked_headers(headers: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """Header list safe for debug logging."""
    return [(name, mask_header_value(name, value)) for name, value in headers]

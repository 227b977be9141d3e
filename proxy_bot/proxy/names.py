from __future__ import annotations

from ..config import MAX_PROXY_NAME_LENGTH, MIN_PROXY_NAME_LENGTH
from ..errors import ProxyNameTooLong, ProxyNameTooShort


def check_proxy_name_bounds(name: str, max_length: int = MAX_PROXY_NAME_LENGTH) -> None:
    if len(name) < MIN_PROXY_NAME_LENGTH:
        raise ProxyNameTooShort(name)
    if len(name) > max_length:
        raise ProxyNameTooLong(name, max_length)

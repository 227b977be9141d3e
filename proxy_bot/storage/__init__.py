from .factory import build_proxy_store
from .store import ProxyStore

__all__ = ["ProxyStore", "build_proxy_store"]

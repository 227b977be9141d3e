from __future__ import annotations


class ProxyError(Exception):
    """Error whose message is meant to be shown to the user in the triggering channel."""


class ProxyNameTooShort(ProxyError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"The webhook's name, `{name}`, is shorter than two characters, and thus cannot be proxied. "
            "Please change the member name or use a longer system tag."
        )


class ProxyNameTooLong(ProxyError):
    def __init__(self, name: str, max_length: int) -> None:
        self.name = name
        self.max_length = max_length
        super().__init__(
            f"The webhook's name, `{name}`, is too long ({len(name)} > {max_length} characters), "
            "and thus cannot be proxied. Please change the member name, display name or server display name, "
            "or use a shorter system tag."
        )


class AttachmentTooLarge(ProxyError):
    def __init__(self, filename: str, size: int, limit: int) -> None:
        self.filename = filename
        self.size = size
        self.limit = limit
        super().__init__(
            f"The attachment `{filename}` is too large to proxy ({size / 1048576:.1f} MB > "
            f"{limit / 1048576:.1f} MB allowed in this server). Your message was left as is."
        )

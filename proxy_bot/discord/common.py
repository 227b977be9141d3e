from __future__ import annotations

import re

ERROR_EMOJI = "\u274c"

# Either an already wrapped <link> or a bare link without trailing punctuation.
LINK_REGEX = re.compile(r"<https?://[^\s>]+>|https?://[-\w+&@#/%?=~|!:,.;]*[-\w+&@#/%=~|]")


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    if limit <= 3:
        return text[:limit]
    return (text[: limit - 3].rstrip() + "...").strip()


def break_link_embeds(content: str) -> str:
    """Wrap bare links in angle brackets so Discord does not generate previews for them."""
    return LINK_REGEX.sub(
        lambda match: match.group(0) if match.group(0).startswith("<") else f"<{match.group(0)}>",
        content,
    )


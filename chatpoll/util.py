from __future__ import annotations

import os
from enum import Enum


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


class SplitStrategy(str, Enum):
    """How to break up outgoing text that exceeds the length limit.

    Attributes:
        NONE: Send as-is; the site may reject it.
        CHAR: Cut at exactly the limit.
        WORD: Cut at the last space before the limit when there is one.
    """

    NONE = "none"
    CHAR = "char"
    WORD = "word"


def split_message(text: str, max_len: int, strategy: SplitStrategy) -> list[str]:
    # Messages containing line breaks have no length limit on the site.
    if "\n" in text or strategy is SplitStrategy.NONE or max_len <= 0:
        return [text]

    parts: list[str] = []
    rest = text
    while len(rest) > max_len:
        cut = max_len
        skip = 0
        if strategy is SplitStrategy.WORD:
            space = rest.rfind(" ", 0, max_len + 1)
            if space > 0:
                cut = space
                skip = 1
        parts.append(rest[:cut])
        rest = rest[cut + skip :]

    if rest or not parts:
        parts.append(rest)
    return parts

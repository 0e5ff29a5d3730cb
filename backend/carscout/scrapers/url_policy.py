"""Allow/deny regex gate for discovered links."""

import re
from functools import lru_cache

from carscout.errors import ConfigurationError


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> re.Pattern:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigurationError(f"Invalid URL pattern {pattern!r}: {e}") from e


class URLPolicy:
    """Decides whether a URL may be crawled.

    Deny patterns are checked first and always win. A URL that matches no
    allow pattern is rejected. Patterns are searched against the full URL.
    """

    @staticmethod
    def is_allowed(url: str, allow: list[str], deny: list[str]) -> bool:
        if any(compile_pattern(pattern).search(url) for pattern in deny):
            return False
        return any(compile_pattern(pattern).search(url) for pattern in allow)

    @classmethod
    def filter(cls, urls: list[str], allow: list[str], deny: list[str]) -> list[str]:
        return [url for url in urls if cls.is_allowed(url, allow, deny)]

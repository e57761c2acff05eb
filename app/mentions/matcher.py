import re
from functools import lru_cache


@lru_cache(maxsize=256)
def _mention_pattern(first_name: str, last_name: str) -> re.Pattern[str]:
    first = re.escape(first_name)
    if not last_name:
        return re.compile(rf"@{first}(?!\w)", re.IGNORECASE)

    last = re.escape(last_name)
    # "@first last", "@firstlast" or a bare "@first", each ending at a word boundary
    return re.compile(rf"@{first}(?:\s*{last})?(?!\w)", re.IGNORECASE)


def is_mention(text: str, first_name: str, last_name: str = "") -> bool:
    """Whether text @mentions the named user (case-insensitive, literal names)."""
    first_name = first_name.strip()
    if not text or not first_name:
        return False
    return _mention_pattern(first_name, last_name.strip()).search(text) is not None

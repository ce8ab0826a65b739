"""Tag parsing shared by the server and the client store."""

from typing import Iterable, List, Union


def parse_tags(raw: Union[str, Iterable[str], None]) -> List[str]:
    """Split comma-separated tags, dropping blanks and keeping order."""
    if raw is None:
        return []
    items = raw.split(",") if isinstance(raw, str) else list(raw)
    return [str(tag).strip() for tag in items if str(tag).strip()]

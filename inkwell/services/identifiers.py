from typing import Union

from inkwell.core.errors import MalformedIdentifier

# Largest value a signed 64-bit INTEGER column can hold
MAX_IDENTIFIER = 2**63 - 1


def parse_identifier(raw: Union[int, str, None]) -> int:
    """Coerce a path/form identifier to a primary key or fail as not found."""
    if isinstance(raw, bool):
        raise MalformedIdentifier(raw)
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str) and raw.strip().isascii() and raw.strip().isdigit():
        value = int(raw.strip())
    else:
        raise MalformedIdentifier(raw)

    if not 1 <= value <= MAX_IDENTIFIER:
        raise MalformedIdentifier(raw)
    return value

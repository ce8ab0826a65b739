"""Ownership rules for mutating posts. Reads are never checked."""

from typing import Optional

from inkwell.core.errors import Forbidden
from inkwell.core.identity import Identity


def can_modify(identity: Optional[Identity], resource_owner_id: Optional[int]) -> bool:
    if identity is None or resource_owner_id is None:
        return False
    return identity.id == resource_owner_id


def ensure_can_modify(identity: Optional[Identity], resource_owner_id: Optional[int]) -> None:
    if not can_modify(identity, resource_owner_id):
        raise Forbidden("Not authorized to modify this post")

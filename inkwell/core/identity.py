from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class Identity:
    """Authenticated actor derived from verified token claims."""

    id: int
    username: str
    email: str

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "Identity":
        return cls(
            id=int(claims["id"]),
            username=str(claims["username"]),
            email=str(claims.get("email", "")),
        )

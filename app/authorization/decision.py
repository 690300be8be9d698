from pydantic import BaseModel
from typing import Optional


class Decision(BaseModel):
    """Outcome of a resolver or of the permission checker. Truthy when allowed."""

    allowed: bool
    source: Optional[str] = None  # direct | role | ownership
    reason: Optional[str] = None

    @classmethod
    def allow(cls, source: str) -> "Decision":
        return cls(allowed=True, source=source)

    @classmethod
    def deny(cls, reason: str = "no matching grant") -> "Decision":
        return cls(allowed=False, reason=reason)

    def __bool__(self) -> bool:
        return self.allowed

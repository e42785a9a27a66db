"""Identity handed to the core by the session provider."""

from dataclasses import dataclass

ROLE_QA = "QA"
ROLE_DEV = "DEV"


@dataclass(frozen=True)
class Actor:
    """Authenticated caller: external user id, global role and display name."""

    id: str
    role: str | None = None
    name: str = ""

from dataclasses import dataclass


@dataclass(slots=True)
class Principal:
    """Identity resolved upstream and passed in as a trusted header."""

    user_id: str


def parse_user_header(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None

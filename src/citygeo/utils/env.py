import os
from pathlib import Path
from typing import Optional


def env_int(
    name: str,
    default: int,
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
) -> int:
    """
    Read an integer from the environment.

    Unset or unparsable values fall back to `default`; the result is
    clamped into [minimum, maximum] when bounds are given.
    """
    raw = os.getenv(name)
    try:
        val = int(raw) if raw else default
    except ValueError:
        val = default
    if minimum is not None:
        val = max(minimum, val)
    if maximum is not None:
        val = min(maximum, val)
    return val


def env_optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def env_path(name: str, default: str) -> Path:
    return Path(os.getenv(name) or default)


def env_choice(name: str, choices: tuple, default: str) -> str:
    raw = (os.getenv(name) or default).strip().lower()
    if raw not in choices:
        raise RuntimeError(f"{name} must be one of {', '.join(choices)} (got {raw!r})")
    return raw

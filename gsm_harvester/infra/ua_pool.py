"""User-Agent rotation for outgoing requests."""

from __future__ import annotations

import random
from pathlib import Path
from typing import Iterable

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class UserAgentPool:
    """Pick a random configured User-Agent, or the desktop Chrome fallback."""

    def __init__(
        self,
        user_agents: Iterable[str] | None = None,
        file_path: Path | None = None,
        fallback: str = DEFAULT_USER_AGENT,
    ) -> None:
        candidates = list(user_agents or [])
        if file_path is not None and file_path.exists():
            candidates.extend(file_path.read_text(encoding="utf-8").splitlines())
        # read-only after construction
        self._agents = tuple(dict.fromkeys(ua.strip() for ua in candidates if ua.strip()))
        self.fallback = fallback

    def __len__(self) -> int:
        return len(self._agents)

    def get(self) -> str:
        if not self._agents:
            return self.fallback
        return random.choice(self._agents)


__all__ = ["DEFAULT_USER_AGENT", "UserAgentPool"]

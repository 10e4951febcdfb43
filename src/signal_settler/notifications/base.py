"""Notifier protocol."""

from __future__ import annotations

from typing import Protocol


class Notifier(Protocol):
    """Protocol for push backends. Implementations never raise from send()."""

    async def send(
        self,
        token: str,
        title: str,
        body: str,
        data: dict[str, str] | None = None,
    ) -> bool:
        ...

    async def close(self) -> None:
        ...

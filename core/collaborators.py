"""
Optional outside collaborators of the pipeline.

Both are best-effort: the pipeline and registry log and swallow their
failures, so a chat outage or a webhook API error never blocks a burn or
a registration. Concrete implementations live in flywheel_platform.
"""

from abc import ABC, abstractmethod


class Notifier(ABC):
    """Chat notifications. Message formats are the implementation's choice."""

    @abstractmethod
    async def notify_burn(self, project, leg) -> None:
        """A project leg burned. `leg` is a core.pipeline.LegResult."""
        ...

    @abstractmethod
    async def notify_platform_burn(self, project, leg) -> None:
        ...

    @abstractmethod
    async def notify_new_project(self, project) -> None:
        ...

    @abstractmethod
    async def notify_cycle_summary(self, summary: dict) -> None:
        ...

    async def close(self):
        return None


class WebhookRegistrar(ABC):
    """Keeps deposit addresses on the chain-event webhook's watch list."""

    @abstractmethod
    async def ensure_watched(self, address: str) -> None:
        ...

    @abstractmethod
    async def sync_all(self, addresses: list[str]) -> int:
        """Replace the watch list; returns how many addresses are watched."""
        ...

    async def close(self):
        return None

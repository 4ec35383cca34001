"""Explicit collaborator bundle passed to every rental operation.

Orchestrators never reach for module-level singletons: the store, the panel
client, the archive service, the notifier and a frozen configuration
snapshot all travel in a RentalContext. Tests build one from fakes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from server_rental.config import Settings, get_settings

if TYPE_CHECKING:
    from server_rental.connectors.panel import PanelClient
    from server_rental.services.archive import ArchiveService
    from server_rental.services.notification import NotificationGateway
    from server_rental.store import RentalStore


@dataclass(frozen=True)
class RentalSettings:
    """The configuration values the rental core consumes."""

    reminder_days: tuple[int, ...] = (3, 1)
    reminder_channel_id: str | None = None
    excluded_discord_ids: frozenset[str] = field(default_factory=frozenset)
    archive_base_path: str = "ServerBackups"
    panel_email_domain: str = "kpw.local"

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> RentalSettings:
        cfg = settings or get_settings()
        return cls(
            reminder_days=tuple(cfg.reminder_days_before_expiry),
            reminder_channel_id=cfg.reminder_channel_id,
            excluded_discord_ids=frozenset(cfg.excluded_discord_users),
            archive_base_path=cfg.archive_base_path,
            panel_email_domain=cfg.panel_email_domain,
        )


@dataclass
class RentalContext:
    store: RentalStore
    panel: PanelClient
    archive: ArchiveService
    notifier: NotificationGateway
    settings: RentalSettings = field(default_factory=RentalSettings)

"""Archive service - copies panel backups into long-term storage.

Uses rclone: the panel's backup artifacts are exposed through one rclone
remote (``archive_source_remote``) and copied to another
(``archive_remote``, typically Google Drive).

Archive paths are derived deterministically from the application and the
chosen backup::

    {base}/{start year}/[{application id}]_{YYYYMMDD start}_{description}_[User{organizer tail}]主催/
        [{YYYYMMDD backup}]_{comment}.tar.gz

A failed copy raises ArchiveError. The return orchestrator treats that as a
hard stop: nothing destructive runs after a failed archive.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from server_rental.config import Settings, get_settings
from server_rental.connectors.panel import PanelBackup
from server_rental.models.application import Application
from server_rental.rental.errors import ExternalFailure

log = structlog.get_logger(__name__)

# Characters that are unsafe in Windows / Drive paths, plus control characters
_UNSAFE_PATH_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')

PLACEHOLDER = "_"

# "organizer"; closes the folder name after the organizer label
ORGANIZER_SUFFIX = "主催"


class ArchiveError(ExternalFailure):
    """The archive copy failed; nothing was archived."""


@dataclass(frozen=True)
class ArchivePath:
    folder: str
    file_name: str

    @property
    def full_path(self) -> str:
        return f"{self.folder}/{self.file_name}"


def sanitize_path_component(value: str) -> str:
    """Replace every path-unsafe character with a neutral placeholder."""
    return _UNSAFE_PATH_CHARS.sub(PLACEHOLDER, value.strip())


def organizer_label(organizer_id: str) -> str:
    return f"User{organizer_id[-4:]}"


def build_archive_path(
    application: Application,
    backup: PanelBackup,
    base_path: str,
    comment: str | None = None,
    *,
    now: datetime | None = None,
) -> ArchivePath:
    """Return the archive location for ``backup`` of ``application``.

    An application without a start date (never activated) falls back to
    ``now`` for the year and date segments.
    """
    started = application.start_date or now or datetime.now(UTC)
    folder = "/".join(
        [
            base_path.rstrip("/"),
            str(started.year),
            (
                f"[{application.id}]_{started:%Y%m%d}_"
                f"{sanitize_path_component(application.description)}_"
                f"[{organizer_label(application.organizer_id)}]{ORGANIZER_SUFFIX}"
            ),
        ]
    )
    suffix = f"_{sanitize_path_component(comment)}" if comment else ""
    file_name = f"[{backup.created_at:%Y%m%d}]{suffix}.tar.gz"
    return ArchivePath(folder=folder, file_name=file_name)


class ArchiveService:
    """Copy backup artifacts with rclone.

    Args:
        source_remote: rclone remote exposing panel backups by UUID.
        destination_remote: rclone remote receiving archives.
        rclone_binary: rclone executable name or path.
        timeout_seconds: Kill the copy after this many seconds (None = no limit).
    """

    def __init__(
        self,
        source_remote: str = "pterodactyl",
        destination_remote: str = "gdrive",
        rclone_binary: str = "rclone",
        timeout_seconds: float | None = None,
    ) -> None:
        self.source_remote = source_remote
        self.destination_remote = destination_remote
        self.rclone_binary = rclone_binary
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ArchiveService:
        cfg = settings or get_settings()
        return cls(
            source_remote=cfg.archive_source_remote,
            destination_remote=cfg.archive_remote,
            rclone_binary=cfg.rclone_binary,
            timeout_seconds=cfg.archive_timeout_seconds,
        )

    async def copy(self, source_ref: str, destination_path: str) -> None:
        """Copy ``source_ref`` (a backup UUID) to ``destination_path``.

        Raises:
            ArchiveError: rclone could not be started, timed out or exited
                non-zero.
        """
        args = [
            "copyto",
            f"{self.source_remote}:{source_ref}",
            f"{self.destination_remote}:{destination_path}",
        ]
        log.info("archive.copy_started", source=source_ref, destination=destination_path)
        await self._run_rclone(args)
        log.info("archive.copy_completed", source=source_ref, destination=destination_path)

    async def _run_rclone(self, args: list[str]) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                self.rclone_binary,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            log.error("archive.rclone_spawn_failed", error=str(exc))
            raise ArchiveError(f"rclone execution error: {exc}") from exc

        try:
            _stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout_seconds
            )
        except TimeoutError as exc:
            process.kill()
            await process.wait()
            log.error("archive.rclone_timeout", timeout_seconds=self.timeout_seconds)
            raise ArchiveError(
                f"rclone timed out after {self.timeout_seconds} seconds"
            ) from exc

        if process.returncode != 0:
            detail = stderr.decode(errors="replace").strip()[-500:]
            log.error("archive.rclone_failed", returncode=process.returncode, stderr=detail)
            raise ArchiveError(f"rclone failed with code {process.returncode}: {detail}")

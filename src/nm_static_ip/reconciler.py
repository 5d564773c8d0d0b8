"""
Connection profile management through NetworkManager

This module is the only code that creates, backs up, modifies or activates
a connection profile. Every mutation is preceded by a backup of the
profile's keyfile whenever one exists; failures are reported with the
backup location and are never rolled back automatically.
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from .commands import DEFAULT_TIMEOUT, describe_failure, run_command
from .config import (
    BackupHandle, Interface, InterfaceKind, InterfaceName, ProfileName, ProfileSettings
)
from .errors import (
    ActivateFailed, ApplyFailed, BackupFailed, ProfileCreateFailed, ReconcileError
)
from .linux import split_terse

DEFAULT_CONNECTIONS_DIR = Path("/etc/NetworkManager/system-connections")
KEYFILE_SUFFIX = ".nmconnection"
BACKUP_MARKER = ".bak."
BACKUP_TIMESTAMP = "%Y%m%d%H%M%S"
PROFILE_PREFIX = "static-"

COMMAND_ERRORS = (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError)


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    """Outcome of a full ensure/backup/apply/activate pass"""
    profile: ProfileName
    created: bool
    backup: Optional[BackupHandle]


def yes_no(flag: bool) -> str:
    return "yes" if flag else "no"


class ProfileReconciler:
    """Creates, backs up, modifies and activates NetworkManager profiles"""

    def __init__(
        self,
        connections_dir: Path = DEFAULT_CONNECTIONS_DIR,
        timeout: float = DEFAULT_TIMEOUT,
        profile_prefix: str = PROFILE_PREFIX
    ):
        self.connections_dir = Path(connections_dir)
        self.timeout = timeout
        self.profile_prefix = profile_prefix
        self.logger = logging.getLogger(f"{__name__}.ProfileReconciler")

    def profile_name_for(self, interface: InterfaceName) -> ProfileName:
        """Deterministic name for a profile created by this tool"""
        return f"{self.profile_prefix}{interface}"

    def profile_path(self, profile: ProfileName) -> Path:
        """Default location of a keyfile for profile"""
        return self.connections_dir / f"{profile}{KEYFILE_SUFFIX}"

    def keyfile_for(self, profile: ProfileName) -> Path:
        """
        File NetworkManager stores profile in.

        Uses the FILENAME NetworkManager reports, falling back to the
        default keyfile location when the profile has none on disk.

        Raises:
            CalledProcessError, TimeoutExpired, FileNotFoundError: If nmcli cannot be queried
        """
        result = run_command(
            ["nmcli", "-t", "-f", "NAME,FILENAME", "connection", "show"],
            timeout=self.timeout
        )
        for line in result.stdout.splitlines():
            fields = split_terse(line)
            if len(fields) >= 2 and fields[0] == profile and fields[1]:
                return Path(fields[1])
        return self.profile_path(profile)

    def _bound_profile(self, interface: InterfaceName) -> Optional[ProfileName]:
        result = run_command(
            ["nmcli", "-g", "GENERAL.CONNECTION", "device", "show", interface],
            timeout=self.timeout,
            check=False
        )
        name = result.stdout.strip() if result.returncode == 0 else ""
        if not name or name == "--":
            return None
        return name

    def _profile_exists(self, profile: ProfileName) -> bool:
        result = run_command(
            ["nmcli", "-g", "NAME", "connection", "show"],
            timeout=self.timeout
        )
        names = [line.replace("\\:", ":") for line in result.stdout.splitlines()]
        return profile in names

    def ensure_profile(self, interface: Interface) -> ProfileName:
        """
        Find or create the profile for interface.

        Idempotent: a second call returns the same name without creating
        anything.

        Raises:
            ProfileCreateFailed: If nmcli cannot be queried or creation fails
        """
        return self._ensure_profile(interface)[0]

    def _ensure_profile(self, interface: Interface) -> tuple[ProfileName, bool]:
        try:
            existing = self._bound_profile(interface.name)
            if existing:
                self.logger.info(f"[OK] Using connection profile: {existing}")
                return existing, False

            name = self.profile_name_for(interface.name)
            if self._profile_exists(name):
                self.logger.info(f"[OK] Reusing existing connection profile: {name}")
                return name, False

            conn_type = "infiniband" if interface.kind is InterfaceKind.INFINIBAND else "ethernet"
            self.logger.info(f"[*] No connection profile for {interface.name}. Creating '{name}'...")
            run_command(
                ["nmcli", "connection", "add", "type", conn_type, "ifname", interface.name,
                 "con-name", name, "autoconnect", "yes"],
                timeout=self.timeout
            )
        except COMMAND_ERRORS as e:
            raise ProfileCreateFailed(
                f"Failed to create connection profile ({describe_failure(e)})",
                interface=interface.name,
                profile=self.profile_name_for(interface.name)
            ) from e

        self.logger.info(f"[OK] Created connection profile: {name}")
        return name, True

    def _backup_path(self, source: Path, stamp: datetime) -> Path:
        """Backup name that does not collide with an existing file"""
        candidate = source.with_name(f"{source.name}{BACKUP_MARKER}{stamp.strftime(BACKUP_TIMESTAMP)}")
        counter = 1
        while candidate.exists():
            candidate = source.with_name(
                f"{source.name}{BACKUP_MARKER}{stamp.strftime(BACKUP_TIMESTAMP)}.{counter}"
            )
            counter += 1
        return candidate

    def backup(self, profile: ProfileName) -> Optional[BackupHandle]:
        """
        Copy the profile keyfile aside before it is modified.

        Returns:
            BackupHandle, or None when the profile has no file on disk

        Raises:
            BackupFailed: If the profile file cannot be located or copied
        """
        try:
            source = self.keyfile_for(profile)
        except COMMAND_ERRORS as e:
            raise BackupFailed(
                f"Failed to locate the file of {profile} ({describe_failure(e)})",
                profile=profile
            ) from e

        if not source.is_file():
            self.logger.warning(f"[!] No profile file at {source}; {profile} will be modified without a backup")
            return None

        stamp = datetime.now()
        target = self._backup_path(source, stamp)
        try:
            shutil.copy2(source, target)
        except OSError as e:
            raise BackupFailed(
                f"Failed to back up {source}: {e}",
                profile=profile
            ) from e

        self.logger.info(f"[OK] Backed up existing profile to {target}")
        return BackupHandle(profile=profile, source=source, path=target, created=stamp)

    def list_backups(self, profile: ProfileName) -> list[BackupHandle]:
        """Backups of a profile, oldest first"""
        try:
            source = self.keyfile_for(profile)
        except COMMAND_ERRORS as e:
            self.logger.debug(f"Could not look up the file of {profile}: {describe_failure(e)}")
            source = self.profile_path(profile)
        if not source.parent.is_dir():
            return []

        handles: list[BackupHandle] = []
        for path in source.parent.glob(f"{source.name}{BACKUP_MARKER}*"):
            stamp_text = path.name[len(source.name) + len(BACKUP_MARKER):].split(".", 1)[0]
            try:
                created = datetime.strptime(stamp_text, BACKUP_TIMESTAMP)
            except ValueError:
                continue
            handles.append(BackupHandle(profile=profile, source=source, path=path, created=created))

        return sorted(handles, key=lambda h: (h.created, h.path.name))

    def apply(
        self,
        profile: ProfileName,
        settings: ProfileSettings,
        backup: Optional[BackupHandle] = None,
        interface: Optional[InterfaceName] = None
    ) -> None:
        """
        Write address, gateway, DNS and activation policy in one nmcli call.

        Raises:
            ApplyFailed: If nmcli rejects the change
        """
        cmd = [
            "nmcli", "connection", "modify", profile,
            "ipv4.method", "manual",
            "ipv4.addresses", settings.candidate.cidr,
            "ipv4.gateway", settings.gateway,
            "ipv4.dns", ",".join(settings.dns),
            "ipv4.never-default", yes_no(settings.never_default),
            "connection.autoconnect", yes_no(settings.autoconnect),
        ]

        self.logger.info(f"[*] Applying static IPv4 settings to {profile}...")
        try:
            run_command(cmd, timeout=self.timeout)
        except COMMAND_ERRORS as e:
            raise ApplyFailed(
                f"Failed to apply settings ({describe_failure(e)})",
                interface=interface,
                profile=profile,
                candidate=settings.candidate.cidr,
                backup=backup.path if backup else None
            ) from e

        self.logger.info(f"[OK] Applied {settings.candidate.cidr} gw {settings.gateway} to {profile}")

    def activate(
        self,
        profile: ProfileName,
        backup: Optional[BackupHandle] = None,
        interface: Optional[InterfaceName] = None
    ) -> None:
        """
        Re-activate profile so the new parameters take effect.

        Raises:
            ActivateFailed: If nmcli cannot bring the profile up
        """
        self.logger.info(f"[*] Bringing the connection {profile} up...")
        try:
            down = run_command(
                ["nmcli", "connection", "down", profile],
                timeout=self.timeout,
                check=False
            )
            if down.returncode != 0:
                self.logger.debug(f"{profile} was not active: {down.stderr.strip()}")

            cmd = ["nmcli", "connection", "up", profile]
            if interface:
                cmd += ["ifname", interface]
            run_command(cmd, timeout=self.timeout)
        except COMMAND_ERRORS as e:
            raise ActivateFailed(
                f"Failed to activate profile ({describe_failure(e)})",
                interface=interface,
                profile=profile,
                backup=backup.path if backup else None
            ) from e

        self.logger.info(f"[OK] Connection {profile} is up")

    def reconcile(self, interface: Interface, settings: ProfileSettings) -> ReconcileResult:
        """
        Ensure, back up, apply and activate, in that order.

        Nothing is modified unless the backup step succeeded. A profile
        created by this call holds nothing of the operator's, so it is not
        backed up.
        """
        try:
            profile, created = self._ensure_profile(interface)
            backup = None if created else self.backup(profile)
            self.apply(profile, settings, backup=backup, interface=interface.name)
            self.activate(profile, backup=backup, interface=interface.name)
        except ReconcileError as e:
            e.interface = e.interface or interface.name
            e.candidate = e.candidate or settings.candidate.cidr
            raise

        return ReconcileResult(profile=profile, created=created, backup=backup)

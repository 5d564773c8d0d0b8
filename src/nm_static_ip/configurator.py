"""
Workflow orchestrating static address assignment with a single confirmation gate
"""

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional, Sequence

from rich import box
from rich.console import Console
from rich.prompt import Confirm, Prompt
from rich.table import Table

from .allocator import DEFAULT_BASE_IP, DEFAULT_MAX_ATTEMPTS, CandidateAllocator
from .config import (
    BackupHandle, CandidateAddress, Interface, InterfaceKind, InterfaceName,
    InterfaceSnapshot, ProfileName, ProfileSettings, parse_dns_list
)
from .conflicts import ConflictDetector
from .detectors import AddressProber, NetworkInventory
from .errors import InventoryUnavailable, StaticIPError, SubnetConflict
from .factory import AddressProberFactory
from .reconciler import ProfileReconciler

logger = logging.getLogger(__name__)

DEFAULT_DNS = ("1.1.1.1", "8.8.8.8")


class WorkflowState(IntEnum):
    """Workflow steps, in order"""
    SELECT_INTERFACE = 0
    ALLOCATE_ADDRESS = 1
    DETECT_CONFLICT = 2
    CONFIRM = 3
    RECONCILE = 4
    REPORT = 5
    APPLIED = 6
    ABORTED = 7

    @property
    def display_name(self) -> str:
        """Human-readable step name"""
        names = {
            WorkflowState.SELECT_INTERFACE: "Selecting interface",
            WorkflowState.ALLOCATE_ADDRESS: "Allocating address",
            WorkflowState.DETECT_CONFLICT: "Checking subnet conflicts",
            WorkflowState.CONFIRM: "Awaiting confirmation",
            WorkflowState.RECONCILE: "Reconciling profile",
            WorkflowState.REPORT: "Reporting",
            WorkflowState.APPLIED: "Applied",
            WorkflowState.ABORTED: "Aborted",
        }
        return names.get(self, str(self.name))

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowState.APPLIED, WorkflowState.ABORTED)

    def can_transition_to(self, target: 'WorkflowState') -> bool:
        """Check if transition to target step is valid"""
        if self.is_terminal:
            return False
        # Aborting is only possible before anything was changed
        if target == WorkflowState.ABORTED:
            return self <= WorkflowState.CONFIRM
        if target == WorkflowState.APPLIED:
            return self == WorkflowState.REPORT
        return target.value == self.value + 1


@dataclass(frozen=True, slots=True)
class AssignmentRequest:
    """
    What the operator asked for.

    Attributes:
        interface: Target device, prompted for when None
        address: Explicit address, scanned for from base_ip when None
        base_ip: First address of the scan
        prefix: Prefix length
        gateway: Gateway, defaults to the candidate network's .1
        dns: DNS servers
        max_attempts: Candidates examined before giving up
        never_default: Keep the interface out of the default route
        reassign: Report the current addresses before replacing them

    Raises:
        ValueError: If any address, the prefix or the attempt count is invalid
    """
    interface: Optional[InterfaceName] = None
    address: Optional[str] = None
    base_ip: str = DEFAULT_BASE_IP
    prefix: int = 24
    gateway: Optional[str] = None
    dns: tuple[str, ...] = DEFAULT_DNS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    never_default: bool = False
    reassign: bool = False

    def __post_init__(self) -> None:
        CandidateAddress.parse(self.address or self.base_ip, self.prefix)
        if self.gateway:
            CandidateAddress.parse(self.gateway)
        parse_dns_list(",".join(self.dns))
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be positive, got {self.max_attempts}")


@dataclass
class WorkflowResult:
    """Final state of one workflow run"""
    state: WorkflowState
    interface: Optional[InterfaceName] = None
    candidate: Optional[CandidateAddress] = None
    settings: Optional[ProfileSettings] = None
    profile: Optional[ProfileName] = None
    created_profile: bool = False
    backup: Optional[BackupHandle] = None
    addresses: list[str] = field(default_factory=list)
    reason: str = ""
    dry_run: bool = False

    @property
    def applied(self) -> bool:
        return self.state == WorkflowState.APPLIED


class StaticIPConfigurator:
    """
    Sequences interface selection, allocation, conflict detection,
    confirmation and profile reconciliation.

    Workflow:
    1. Select interface (explicit or interactive)
    2. Allocate address (explicit check or linear scan)
    3. Detect subnet conflicts (override required)
    4. Confirm with operator
    5. Reconcile profile (ensure, backup, apply, activate)
    6. Report post-change state

    Everything before step 5 is read-only. No state survives between runs.
    """

    def __init__(
        self,
        request: AssignmentRequest,
        inventory: NetworkInventory,
        prober: Optional[AddressProber] = None,
        reconciler: Optional[ProfileReconciler] = None,
        dry_run: bool = False,
        skip_confirmation: bool = False,
        allow_subnet_conflict: bool = False,
        console: Optional[Console] = None
    ):
        """
        Initialize configurator.

        Args:
            request: Assignment parameters
            inventory: Interface inventory
            prober: Wire prober (auto-created if not provided)
            reconciler: Profile reconciler (default paths if not provided)
            dry_run: Stop after the summary without changing anything
            skip_confirmation: Answer yes at the confirmation gate
            allow_subnet_conflict: Proceed when the subnet exists on another interface
        """
        self.request = request
        self.inventory = inventory
        self.prober = prober or AddressProberFactory.create(inventory)
        self.reconciler = reconciler or ProfileReconciler()
        self.allocator = CandidateAllocator(self.prober)
        self.detector = ConflictDetector(inventory)
        self.dry_run = dry_run
        self.skip_confirmation = skip_confirmation
        self.allow_subnet_conflict = allow_subnet_conflict
        self.console = console or Console()

        self.state = WorkflowState.SELECT_INTERFACE
        self.history: list[WorkflowState] = [self.state]

    def _advance(self, target: WorkflowState) -> None:
        if not self.state.can_transition_to(target):
            raise RuntimeError(f"Invalid workflow transition: {self.state.name} -> {target.name}")
        logger.debug(f"Workflow: {self.state.display_name} -> {target.display_name}")
        self.state = target
        self.history.append(target)

    def _abort(self, reason: str, **details) -> WorkflowResult:
        self._advance(WorkflowState.ABORTED)
        return WorkflowResult(state=self.state, reason=reason, **details)

    def select_interface(self) -> Interface:
        """
        Resolve the target interface.

        Raises:
            InterfaceNotFound: If the named interface does not exist
            InventoryUnavailable: If no interface was named and NetworkManager cannot be queried
            StaticIPError: If there is nothing to choose from
        """
        name = self.request.interface
        if name:
            try:
                iface = self.inventory.find_interface(name)
            except InventoryUnavailable as e:
                logger.warning(f"[!] {e}; continuing with {name} unverified")
                return Interface(name=name, kind=InterfaceKind.OTHER)

            if not iface.is_configurable:
                logger.warning(f"[!] {name} is a {iface.kind.value} device; expected ethernet or infiniband")
            logger.info(f"[OK] Using interface: {name}")
            return iface

        logger.info("[*] No interface specified. Scanning available interfaces...")
        try:
            interfaces = list(self.inventory.list_managed_interfaces())
        except InventoryUnavailable as e:
            raise InventoryUnavailable(f"{e}; specify the interface explicitly") from e

        if not interfaces:
            raise StaticIPError("No suitable interfaces managed by NetworkManager were found")

        self.console.print(interface_table(interfaces, title="Available interfaces"))
        choices = [str(i) for i in range(1, len(interfaces) + 1)]
        try:
            pick = Prompt.ask(
                f"Choose an interface [1-{len(interfaces)}]",
                choices=choices,
                show_choices=False,
                console=self.console
            )
        except EOFError as e:
            raise StaticIPError("No input available to choose an interface; pass -i/--interface") from e
        iface = interfaces[int(pick) - 1]
        logger.info(f"[OK] Selected interface: {iface.name}")
        return iface

    def resolve_conflicts(self, interface: Interface, candidate: CandidateAddress) -> bool:
        """
        Returns:
            True if there is no conflict or the operator overrode it
        """
        try:
            self.detector.check(interface.name, candidate)
            return True
        except SubnetConflict as e:
            logger.warning(f"[!] The subnet for {candidate.cidr} appears to already exist on another interface:")
            for conflict in e.conflicts:
                logger.warning(f"[!]   {conflict.interface}: {conflict.cidr}")
            logger.warning("[!] Running the same subnet on multiple NICs is usually problematic.")

        if self.allow_subnet_conflict:
            logger.warning("[!] Subnet conflict overridden by --allow-subnet-conflict")
            return True

        if self.skip_confirmation:
            logger.error("[FAIL] Refusing subnet clash without --allow-subnet-conflict")
            return False

        return self._ask("Proceed anyway?")

    def _ask(self, question: str) -> bool:
        """Yes/no prompt; end of input counts as no"""
        try:
            return Confirm.ask(question, default=False, console=self.console)
        except EOFError:
            logger.warning("[!] No input available; treating as no (use -y to skip confirmation)")
            return False

    def confirm(self) -> bool:
        """Single yes/no gate before anything is changed"""
        if self.skip_confirmation:
            return True
        return self._ask("Apply these settings?")

    def run(self) -> WorkflowResult:
        """
        Execute the workflow.

        Returns:
            WorkflowResult in state APPLIED or ABORTED

        Raises:
            StaticIPError: Any fatal selection, allocation or reconciliation failure
        """
        interface = self.select_interface()

        self._advance(WorkflowState.ALLOCATE_ADDRESS)
        if self.request.reassign:
            self._report_current(interface)

        candidate = self.allocator.allocate(
            interface.name,
            explicit_address=self.request.address,
            base=self.request.base_ip,
            prefix=self.request.prefix,
            max_attempts=self.request.max_attempts
        )

        self._advance(WorkflowState.DETECT_CONFLICT)
        if not self.resolve_conflicts(interface, candidate):
            logger.error("[FAIL] Aborting to avoid subnet clash.")
            return self._abort("subnet conflict", interface=interface.name, candidate=candidate)

        gateway = self.request.gateway
        if not gateway:
            gateway = candidate.default_gateway()
            logger.info(f"[i] No gateway provided; defaulting to {gateway}")

        settings = ProfileSettings(
            candidate=candidate,
            gateway=gateway,
            dns=tuple(self.request.dns),
            autoconnect=True,
            never_default=self.request.never_default
        )

        self._advance(WorkflowState.CONFIRM)
        self.display_summary(interface, settings)

        if self.dry_run:
            logger.info("[DRY-RUN] Would create or reuse the connection profile")
            logger.info("[DRY-RUN] Would back up, modify and re-activate it")
            return self._abort(
                "dry-run", interface=interface.name, candidate=candidate,
                settings=settings, dry_run=True
            )

        if not self.confirm():
            logger.error("[FAIL] Aborted by user.")
            return self._abort("declined", interface=interface.name, candidate=candidate, settings=settings)

        self._advance(WorkflowState.RECONCILE)
        outcome = self.reconciler.reconcile(interface, settings)

        self._advance(WorkflowState.REPORT)
        addresses = self.inventory.interface_addresses(interface.name)
        snapshot = self.inventory.describe(interface.name)
        if settings.candidate.cidr not in addresses:
            logger.warning(f"[!] {settings.candidate.cidr} not yet visible on {interface.name}")
        self._display_results(interface, settings, outcome.profile, outcome.backup, addresses, snapshot)

        self._advance(WorkflowState.APPLIED)
        return WorkflowResult(
            state=self.state,
            interface=interface.name,
            candidate=candidate,
            settings=settings,
            profile=outcome.profile,
            created_profile=outcome.created,
            backup=outcome.backup,
            addresses=addresses
        )

    def _report_current(self, interface: Interface) -> None:
        """Reassign mode: show what is about to be replaced"""
        snapshot = self.inventory.describe(interface.name)
        current = ", ".join(snapshot.addresses) or "none"
        logger.info(f"[i] Current IPv4 on {interface.name}: {current} ({snapshot.summary()})")

    def display_summary(self, interface: Interface, settings: ProfileSettings) -> None:
        """Display what is about to be applied"""
        table = Table(title="Summary", box=box.SIMPLE, show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="white")

        table.add_row("Interface", interface.name)
        if self.request.reassign:
            table.add_row("Current IPv4", ", ".join(interface.addresses) or "none")
        table.add_row("IPv4", settings.candidate.cidr)
        table.add_row("Gateway", settings.gateway)
        table.add_row("DNS", ",".join(settings.dns))
        table.add_row("Autoconnect", "yes" if settings.autoconnect else "no")
        table.add_row("Default route", "no (lab-only)" if settings.never_default else "yes")
        if self.dry_run:
            table.caption = "[DRY-RUN MODE] No changes will be made"

        self.console.print(table)

    def _display_results(
        self,
        interface: Interface,
        settings: ProfileSettings,
        profile: ProfileName,
        backup: Optional[BackupHandle],
        addresses: Sequence[str],
        snapshot: InterfaceSnapshot
    ) -> None:
        """Display final configuration results"""
        table = Table(title="Configuration Complete", box=box.SIMPLE, show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="white")

        table.add_row("Interface", interface.name)
        table.add_row("Profile", profile)
        table.add_row("State", snapshot.state.value)
        table.add_row("Requested", settings.candidate.cidr)
        table.add_row("Current IPv4", ", ".join(addresses) or "none")
        table.add_row("Backup", str(backup) if backup else "none")

        self.console.print(table)
        logger.info(f"[OK] Done. {interface.name} now has {', '.join(addresses) or 'no IPv4 address'}")


def interface_table(interfaces: Sequence[Interface], title: str = "Interfaces") -> Table:
    """Numbered table of interfaces"""
    table = Table(title=title, box=box.SIMPLE)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Device", style="cyan")
    table.add_column("Type")
    table.add_column("State")
    table.add_column("Connection")
    table.add_column("IPv4")

    for index, iface in enumerate(interfaces, start=1):
        table.add_row(
            str(index),
            iface.name,
            iface.kind.value,
            iface.state.value,
            iface.profile or "--",
            ", ".join(iface.addresses) or "none"
        )
    return table

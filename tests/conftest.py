"""
Pytest configuration and shared fixtures
"""

import io
import ipaddress
import os
import subprocess
from typing import Callable, Optional
from unittest.mock import patch

import pytest
from rich.console import Console

from nm_static_ip.config import (
    DeviceState, Interface, InterfaceKind, InterfaceSnapshot
)
from nm_static_ip.detectors import AddressProber, InterfaceInventory
from nm_static_ip.errors import InventoryUnavailable
from nm_static_ip.settings import ENV_PREFIX


class FakeRun:
    """
    Stand-in for subprocess.run that answers by command prefix.

    Later registrations win, so a test can change the host's answer
    between two calls.
    """

    def __init__(self):
        self.calls: list[list[str]] = []
        self.timeouts: list[float] = []
        self._responses: list[tuple[tuple[str, ...], Callable]] = []

    def on(
        self,
        *prefix: str,
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
        raises: Optional[BaseException] = None,
        handler: Optional[Callable[[list[str]], subprocess.CompletedProcess]] = None
    ) -> None:
        def respond(cmd: list[str]) -> subprocess.CompletedProcess:
            if raises is not None:
                raise raises
            if handler is not None:
                return handler(cmd)
            return subprocess.CompletedProcess(cmd, returncode, stdout, stderr)

        self._responses.append((prefix, respond))

    def __call__(self, cmd, **kwargs) -> subprocess.CompletedProcess:
        cmd = list(cmd)
        self.calls.append(cmd)
        self.timeouts.append(kwargs.get("timeout"))
        for prefix, respond in reversed(self._responses):
            if tuple(cmd[:len(prefix)]) == prefix:
                return respond(cmd)
        return subprocess.CompletedProcess(cmd, 0, "", "")

    def commands(self, *prefix: str) -> list[list[str]]:
        """Recorded calls starting with prefix"""
        return [cmd for cmd in self.calls if tuple(cmd[:len(prefix)]) == prefix]


class FakeInventory(InterfaceInventory):
    """In-memory host with a fixed set of devices and bindings"""

    def __init__(
        self,
        devices: list[Interface] = (),
        addresses: Optional[dict[str, list[str]]] = None,
        unavailable: bool = False
    ):
        self.devices = list(devices)
        self.addresses = {
            name: [ipaddress.IPv4Interface(cidr) for cidr in cidrs]
            for name, cidrs in (addresses or {}).items()
        }
        self.unavailable = unavailable

    def list_devices(self):
        if self.unavailable:
            raise InventoryUnavailable("NetworkManager is not running")
        return [
            Interface(
                name=dev.name,
                kind=dev.kind,
                state=dev.state,
                profile=dev.profile,
                addresses=tuple(str(a) for a in self.addresses.get(dev.name, [])),
                managed=dev.managed
            )
            for dev in self.devices
        ]

    def describe(self, name):
        for dev in self.devices:
            if dev.name == name:
                return InterfaceSnapshot(
                    name=name,
                    state=dev.state,
                    profile=dev.profile or "none",
                    addresses=tuple(str(a) for a in self.addresses.get(name, []))
                )
        return InterfaceSnapshot(name=name)

    def local_addresses(self):
        return {name: list(addrs) for name, addrs in self.addresses.items()}

    def bind(self, name: str, cidr: str) -> None:
        self.addresses.setdefault(name, []).append(ipaddress.IPv4Interface(cidr))


class FakeProber(AddressProber):
    """Prober over a simulated set of addresses answering on the wire"""

    method = "fake"

    def __init__(self, inventory: InterfaceInventory, occupied: set[str] = frozenset()):
        super().__init__(inventory)
        self.occupied = set(occupied)
        self.calls: list[tuple[str, str]] = []

    def is_assigned_locally(self, address):
        self.calls.append(("local", address))
        return super().is_assigned_locally(address)

    def is_in_use(self, interface, address):
        self.calls.append(("wire", address))
        return address in self.occupied


@pytest.fixture
def fake_run():
    """Patch subprocess.run with a prefix-routed fake"""
    fake = FakeRun()
    with patch("subprocess.run", side_effect=fake):
        yield fake


@pytest.fixture
def isolated_home(tmp_path, monkeypatch):
    """Point HOME, XDG config and cwd at an empty temporary tree"""
    home = tmp_path / "home"
    work = tmp_path / "work"
    home.mkdir()
    work.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.chdir(work)
    for name in list(os.environ):
        if name.startswith(ENV_PREFIX):
            monkeypatch.delenv(name)
    return tmp_path


@pytest.fixture
def quiet_console() -> Console:
    """Console writing to memory"""
    return Console(file=io.StringIO(), width=120)


@pytest.fixture
def lab_interface() -> Interface:
    """Connected ethernet device with a bound profile"""
    return Interface(
        name="ens27f0",
        kind=InterfaceKind.ETHERNET,
        state=DeviceState.CONNECTED,
        profile="Wired connection 1"
    )


@pytest.fixture
def spare_interface() -> Interface:
    """Ethernet device with link but no profile"""
    return Interface(
        name="ens27f1",
        kind=InterfaceKind.ETHERNET,
        state=DeviceState.UP,
        profile=None
    )


@pytest.fixture
def uplink_interface() -> Interface:
    """Primary uplink holding the host's existing address"""
    return Interface(
        name="eno1",
        kind=InterfaceKind.ETHERNET,
        state=DeviceState.CONNECTED,
        profile="eno1"
    )


@pytest.fixture
def inventory(lab_interface, spare_interface, uplink_interface) -> FakeInventory:
    """Host with an uplink on 10.0.0.0/24 and two lab ports"""
    return FakeInventory(
        devices=[lab_interface, spare_interface, uplink_interface],
        addresses={"eno1": ["10.0.0.5/24"], "lo": ["127.0.0.1/8"]}
    )


NMCLI_DEVICE_STATUS = (
    "ens27f0:ethernet:connected:Wired connection 1\n"
    "ens27f1:ethernet:disconnected:\n"
    "wlp2s0:wifi:connected:Home\\:5G\n"
    "ib0:infiniband:unavailable:\n"
    "docker0:bridge:connected (externally):docker0\n"
    "virbr0-nic:ethernet:unmanaged:\n"
    "lo:loopback:unmanaged:\n"
)

IP_ADDR_SHOW = (
    "1: lo    inet 127.0.0.1/8 scope host lo\\       valid_lft forever preferred_lft forever\n"
    "2: ens27f0    inet 192.168.250.20/24 brd 192.168.250.255 scope global noprefixroute ens27f0\\"
    "       valid_lft forever preferred_lft forever\n"
    "4: wlp2s0    inet 10.0.0.5/24 brd 10.0.0.255 scope global dynamic noprefixroute wlp2s0\\"
    "       valid_lft 86000sec preferred_lft 86000sec\n"
)


@pytest.fixture
def nmcli_host(fake_run) -> FakeRun:
    """Fake host answering nmcli device status and ip addr"""
    fake_run.on("nmcli", "-t", "-f", "DEVICE,TYPE,STATE,CONNECTION", stdout=NMCLI_DEVICE_STATUS)
    fake_run.on("ip", "-o", "-4", "addr", "show", stdout=IP_ADDR_SHOW)
    return fake_run

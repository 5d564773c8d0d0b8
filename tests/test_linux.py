"""
Tests for the nmcli/ip backed inventory
"""

import ipaddress
import subprocess

import pytest
from nm_static_ip.config import DeviceState, InterfaceKind
from nm_static_ip.errors import InventoryUnavailable
from nm_static_ip.linux import LinuxNetworkInventory, parse_ip_addr, split_terse

from conftest import IP_ADDR_SHOW


class TestSplitTerse:
    """Test nmcli terse-mode field splitting"""

    def test_plain(self):
        assert split_terse("ens27f0:ethernet:connected:Wired connection 1") == [
            "ens27f0", "ethernet", "connected", "Wired connection 1"
        ]

    def test_escaped_colon(self):
        assert split_terse("wlp2s0:wifi:connected:Home\\:5G") == ["wlp2s0", "wifi", "connected", "Home:5G"]

    def test_empty_trailing_field(self):
        assert split_terse("ens27f1:ethernet:disconnected:") == ["ens27f1", "ethernet", "disconnected", ""]


class TestParseIpAddr:
    """Test iproute2 one-line output parsing"""

    def test_parses_all_interfaces(self):
        addresses = parse_ip_addr(IP_ADDR_SHOW)
        assert addresses["lo"] == [ipaddress.IPv4Interface("127.0.0.1/8")]
        assert addresses["ens27f0"] == [ipaddress.IPv4Interface("192.168.250.20/24")]
        assert addresses["wlp2s0"] == [ipaddress.IPv4Interface("10.0.0.5/24")]

    def test_multiple_addresses_and_vlan_suffix(self):
        output = (
            "3: eth0    inet 10.1.0.2/24 scope global eth0\\ valid_lft forever\n"
            "3: eth0    inet 10.1.1.2/24 scope global secondary eth0\\ valid_lft forever\n"
            "5: eth0.100@eth0    inet 172.16.0.2/16 scope global eth0.100\\ valid_lft forever\n"
        )
        addresses = parse_ip_addr(output)
        assert [str(a) for a in addresses["eth0"]] == ["10.1.0.2/24", "10.1.1.2/24"]
        assert [str(a) for a in addresses["eth0.100"]] == ["172.16.0.2/16"]

    def test_skips_garbage(self):
        assert parse_ip_addr("not ip output\n\n") == {}


class TestLinuxNetworkInventory:
    """Test inventory queries against a simulated host"""

    def test_list_devices(self, nmcli_host):
        devices = {d.name: d for d in LinuxNetworkInventory().list_devices()}

        assert devices["ens27f0"].kind == InterfaceKind.ETHERNET
        assert devices["ens27f0"].state == DeviceState.CONNECTED
        assert devices["ens27f0"].profile == "Wired connection 1"
        assert devices["ens27f0"].addresses == ("192.168.250.20/24",)

        assert devices["ens27f1"].state == DeviceState.UP
        assert devices["ens27f1"].profile is None

        assert devices["wlp2s0"].kind == InterfaceKind.WIRELESS
        assert devices["wlp2s0"].profile == "Home:5G"

        assert devices["ib0"].kind == InterfaceKind.INFINIBAND
        assert devices["virbr0-nic"].managed is False
        assert devices["lo"].managed is False

    def test_list_managed_interfaces(self, nmcli_host):
        """Test only managed ethernet and infiniband devices are offered"""
        names = [i.name for i in LinuxNetworkInventory().list_managed_interfaces()]
        assert names == ["ens27f0", "ens27f1", "ib0"]

    def test_commands_bounded_by_timeout(self, nmcli_host):
        LinuxNetworkInventory(timeout=7).list_devices()
        assert nmcli_host.commands("nmcli", "-t", "-f", "DEVICE,TYPE,STATE,CONNECTION")
        assert nmcli_host.timeouts == [7, 7]

    def test_nmcli_failure(self, fake_run):
        """Test a failing nmcli surfaces as InventoryUnavailable"""
        fake_run.on("nmcli", returncode=8, stderr="Error: NetworkManager is not running.")

        with pytest.raises(InventoryUnavailable, match="NetworkManager is not running"):
            LinuxNetworkInventory().list_devices()

    def test_nmcli_missing(self, fake_run):
        fake_run.on("nmcli", raises=FileNotFoundError("nmcli"))

        with pytest.raises(InventoryUnavailable):
            LinuxNetworkInventory().list_devices()

    def test_nmcli_timeout(self, fake_run):
        fake_run.on("nmcli", raises=subprocess.TimeoutExpired(["nmcli"], 30))

        with pytest.raises(InventoryUnavailable, match="timed out"):
            LinuxNetworkInventory().list_devices()

    def test_devices_without_ip_tool(self, fake_run):
        """Test device listing survives when addresses cannot be read"""
        fake_run.on("nmcli", "-t", "-f", "DEVICE,TYPE,STATE,CONNECTION",
                    stdout="ens27f0:ethernet:connected:Wired connection 1\n")
        fake_run.on("ip", returncode=1, stderr="ip: not permitted")

        devices = LinuxNetworkInventory().list_devices()
        assert devices[0].addresses == ()

    def test_local_addresses_failure(self, fake_run):
        fake_run.on("ip", raises=FileNotFoundError("ip"))

        with pytest.raises(InventoryUnavailable):
            LinuxNetworkInventory().local_addresses()

    def test_is_assigned_locally(self, nmcli_host):
        inventory = LinuxNetworkInventory()
        assert inventory.is_assigned_locally("192.168.250.20")
        assert not inventory.is_assigned_locally("192.168.250.21")

    def test_interface_addresses(self, nmcli_host):
        assert LinuxNetworkInventory().interface_addresses("ens27f0") == ["192.168.250.20/24"]
        assert nmcli_host.commands("ip", "-o", "-4", "addr", "show", "dev", "ens27f0")

    def test_interface_addresses_failure(self, fake_run):
        fake_run.on("ip", returncode=1, stderr='Device "eth9" does not exist.')
        assert LinuxNetworkInventory().interface_addresses("eth9") == []

    def test_describe(self, fake_run):
        fake_run.on("nmcli", "-t", "-f", "GENERAL.STATE,GENERAL.CONNECTION,IP4.ADDRESS", stdout=(
            "GENERAL.STATE:100 (connected)\n"
            "GENERAL.CONNECTION:static-ens27f0\n"
            "IP4.ADDRESS[1]:192.168.250.13/24\n"
        ))

        snapshot = LinuxNetworkInventory().describe("ens27f0")

        assert snapshot.state == DeviceState.CONNECTED
        assert snapshot.profile == "static-ens27f0"
        assert snapshot.addresses == ("192.168.250.13/24",)

    def test_describe_no_connection(self, fake_run):
        fake_run.on("nmcli", "-t", "-f", "GENERAL.STATE,GENERAL.CONNECTION,IP4.ADDRESS", stdout=(
            "GENERAL.STATE:30 (disconnected)\n"
            "GENERAL.CONNECTION:\n"
        ))

        snapshot = LinuxNetworkInventory().describe("ens27f1")

        assert snapshot.state == DeviceState.UP
        assert snapshot.profile == "none"
        assert snapshot.summary() == "state=up conn=none ip4=none"

    def test_describe_never_raises(self, fake_run):
        """Test an unreadable device is described as unknown"""
        fake_run.on("nmcli", returncode=10, stderr="Error: Device 'eth9' not found.")

        snapshot = LinuxNetworkInventory().describe("eth9")

        assert snapshot.state == DeviceState.UNKNOWN
        assert snapshot.profile == "unknown"
        assert snapshot.addresses == ()

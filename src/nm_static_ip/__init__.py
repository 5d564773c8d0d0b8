"""
NetworkManager Static IPv4 Assignment Package
Finds a free address, checks for subnet clashes and applies it to a
persistent connection profile with a backup taken first.

Version 1.0.0 - Python 3.12+
"""

__version__ = "1.0.0"

from .config import CandidateAddress, Interface, InterfaceKind, DeviceState, ProfileSettings
from .detectors import AddressProber, InterfaceInventory
from .factory import AddressProberFactory
from .allocator import CandidateAllocator
from .conflicts import ConflictDetector
from .reconciler import ProfileReconciler
from .configurator import AssignmentRequest, StaticIPConfigurator, WorkflowState
from .settings import Settings, load_settings, init_config

__all__ = [
    "CandidateAddress",
    "Interface",
    "InterfaceKind",
    "DeviceState",
    "ProfileSettings",
    "AddressProber",
    "InterfaceInventory",
    "AddressProberFactory",
    "CandidateAllocator",
    "ConflictDetector",
    "ProfileReconciler",
    "AssignmentRequest",
    "StaticIPConfigurator",
    "WorkflowState",
    "Settings",
    "load_settings",
    "init_config",
]

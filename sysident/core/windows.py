"""
SysIdent - Windows Version Resolution

This module maps raw Windows version signals to canonical product names and
resolves the OS word width. The version number space is overloaded in
undocumented ways (64-bit XP reports server version numbers, Home Server
shares 5.2 with Server 2003), so the rule order below matters.
"""

from __future__ import annotations

from dataclasses import dataclass
import ctypes
from enum import Enum, IntEnum
import logging
import os
import struct
import sys
from typing import Any, Callable, Optional, Union


logger = logging.getLogger("sysident.core.windows")

VER_SUITE_WH_SERVER = 0x8000
SM_SERVERR2 = 89

ENVIRONMENT_KEY = r"SYSTEM\CurrentControlSet\Control\Session Manager\Environment"
ARCHITECTURE_VALUE = "PROCESSOR_ARCHITECTURE"


class ArchitectureWidth(Enum):
    """Word width of the operating system."""
    BITS_32 = 32
    BITS_64 = 64
    UNKNOWN = 0


class PlatformId(IntEnum):
    """``dwPlatformId`` values from OSVERSIONINFOEX."""
    WIN32S = 0
    WIN32_WINDOWS = 1
    WIN32_NT = 2


class ProductType(IntEnum):
    """``wProductType`` values from OSVERSIONINFOEX."""
    WORKSTATION = 1
    DOMAIN_CONTROLLER = 2
    SERVER = 3


class ProcessorArchitecture(IntEnum):
    """``wProcessorArchitecture`` values from SYSTEM_INFO."""
    INTEL = 0
    IA64 = 6
    AMD64 = 9


@dataclass(frozen=True)
class WindowsVersionInfo:
    """Raw Windows version signals.

    Attributes:
        major: Major version number
        minor: Minor version number
        build: Build number
        platform_id: 9x or NT platform
        csd_version: Legacy build tag on 9x, service pack string on NT
        service_pack_major: Major service pack level
        suite_mask: Product suite bit mask
        product_type: Workstation, domain controller or server
    """
    major: int
    minor: int
    build: int = 0
    platform_id: int = PlatformId.WIN32_NT
    csd_version: str = ""
    service_pack_major: int = 0
    suite_mask: int = 0
    product_type: int = ProductType.WORKSTATION


@dataclass(frozen=True)
class _NameQuery:
    product_type: int
    suite_mask: int
    processor_architecture: int
    csd_version: str
    server_r2: Callable[[], int]

    @property
    def is_workstation(self) -> bool:
        return self.product_type == ProductType.WORKSTATION


def _by_product_type(workstation: str, server: str) -> Callable[[_NameQuery], str]:
    return lambda q: workstation if q.is_workstation else server


def _windows_95(q: _NameQuery) -> str:
    return "Windows 95 R2" if q.csd_version in ("B", "C") else "Windows 95"


def _windows_98(q: _NameQuery) -> str:
    return "Windows 98 SE" if q.csd_version == "A" else "Windows 98"


def _windows_5_2(q: _NameQuery) -> str:
    if q.suite_mask == VER_SUITE_WH_SERVER:
        return "Windows Home Server"
    if q.is_workstation and q.processor_architecture == ProcessorArchitecture.AMD64:
        return "Windows XP"
    return "Windows Server 2003" if q.server_r2() == 0 else "Windows Server 2003 R2"


# (platform, major, minor) -> resolver; a minor of None matches any minor.
# Entries are tried in order.
_VERSION_RULES: list[tuple[int, int, Optional[int], Callable[[_NameQuery], str]]] = [
    (PlatformId.WIN32_WINDOWS, 4, 0, _windows_95),
    (PlatformId.WIN32_WINDOWS, 4, 10, _windows_98),
    (PlatformId.WIN32_WINDOWS, 4, 90, lambda q: "Windows ME"),
    (PlatformId.WIN32_NT, 3, None, lambda q: "Windows NT 3.5.1"),
    (PlatformId.WIN32_NT, 4, None, lambda q: "Windows NT 4.0"),
    (PlatformId.WIN32_NT, 5, 0, lambda q: "Windows 2000"),
    (PlatformId.WIN32_NT, 5, 1, lambda q: "Windows XP"),
    (PlatformId.WIN32_NT, 5, 2, _windows_5_2),
    (PlatformId.WIN32_NT, 6, 0, _by_product_type("Windows Vista", "Windows Server 2008")),
    (PlatformId.WIN32_NT, 6, 1, _by_product_type("Windows 7", "Windows Server 2008 R2")),
    (PlatformId.WIN32_NT, 6, 2, _by_product_type("Windows 8", "Windows Server 2012")),
    (PlatformId.WIN32_NT, 6, 3, _by_product_type("Windows 8.1", "Windows Server 2012 R2")),
    (PlatformId.WIN32_NT, 10, 0, _by_product_type("Windows 10", "Windows Server 2016 Technical Preview")),
]


def lookup_windows_name(
    major: int,
    minor: int,
    product_type: int = ProductType.WORKSTATION,
    suite_mask: int = 0,
    processor_architecture: int = ProcessorArchitecture.INTEL,
    csd_version: str = "",
    platform_id: int = PlatformId.WIN32_NT,
    server_r2: Optional[Callable[[], int]] = None,
) -> str:
    """Look up the product name for a version tuple.

    Args:
        major: Major version number
        minor: Minor version number
        product_type: ProductType value
        suite_mask: Product suite bit mask
        processor_architecture: ProcessorArchitecture value of the system
        csd_version: Legacy build tag (9x) or service pack string
        platform_id: PlatformId value
        server_r2: Callable returning the SM_SERVERR2 metric; only called
            for 5.2 server installs (defaults to the live system metric)

    Returns:
        Product name, or empty string if the tuple is not in the table
    """
    query = _NameQuery(
        product_type=product_type,
        suite_mask=suite_mask,
        processor_architecture=processor_architecture,
        csd_version=(csd_version or "").strip(),
        server_r2=server_r2 or query_server_r2,
    )

    for rule_platform, rule_major, rule_minor, resolver in _VERSION_RULES:
        if platform_id != rule_platform or major != rule_major:
            continue
        if rule_minor is not None and minor != rule_minor:
            continue
        return resolver(query)

    return ""


def resolve_windows_name(major: int, minor: int, **kwargs: Any) -> str:
    """Same as lookup_windows_name, but "Unknown" instead of an empty name."""
    return lookup_windows_name(major, minor, **kwargs) or "Unknown"


def resolve_architecture_width(
    value: Optional[str],
    pointer_size: Optional[int] = None,
) -> ArchitectureWidth:
    """Resolve the OS word width from a PROCESSOR_ARCHITECTURE value.

    When the value is absent or unrecognized the interpreter's own pointer
    width is used. A 32-bit interpreter on a 64-bit OS therefore reports
    32 bits in that case; consumers rely on this, so it is kept.

    Args:
        value: PROCESSOR_ARCHITECTURE string (e.g. "AMD64")
        pointer_size: Pointer size in bytes (defaults to the interpreter's)

    Returns:
        ArchitectureWidth value
    """
    arch = (value or "").lower()
    if arch == "x86":
        return ArchitectureWidth.BITS_32
    if arch in ("amd64", "ia64"):
        return ArchitectureWidth.BITS_64

    if pointer_size is None:
        pointer_size = struct.calcsize("P")
    return ArchitectureWidth.BITS_64 if pointer_size == 8 else ArchitectureWidth.BITS_32


def read_processor_architecture_value() -> Optional[str]:
    """Read PROCESSOR_ARCHITECTURE from the system environment.

    The machine-wide registry value is preferred; the process environment
    is used when the registry cannot be read.

    Returns:
        The value, or None if neither source has it
    """
    if sys.platform == "win32":
        import winreg

        try:
            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, ENVIRONMENT_KEY) as key:
                value, _ = winreg.QueryValueEx(key, ARCHITECTURE_VALUE)
                if isinstance(value, str) and value:
                    return value
        except OSError as e:
            logger.debug("Cannot read %s from registry: %s", ARCHITECTURE_VALUE, e)

    return os.environ.get(ARCHITECTURE_VALUE) or None


def query_windows_version() -> Optional[WindowsVersionInfo]:
    """Query the running Windows version.

    Returns:
        WindowsVersionInfo, or None if the version query is unavailable
    """
    getwindowsversion = getattr(sys, "getwindowsversion", None)
    if getwindowsversion is None:
        return None

    try:
        winver = getwindowsversion()
    except OSError as e:
        logger.debug("GetVersionEx failed: %s", e)
        return None

    return WindowsVersionInfo(
        major=winver.major,
        minor=winver.minor,
        build=winver.build,
        platform_id=winver.platform,
        csd_version=winver.service_pack,
        service_pack_major=winver.service_pack_major,
        suite_mask=winver.suite_mask,
        product_type=winver.product_type,
    )


class _SystemInfo(ctypes.Structure):
    _fields_ = [
        ("wProcessorArchitecture", ctypes.c_ushort),
        ("wReserved", ctypes.c_ushort),
        ("dwPageSize", ctypes.c_uint32),
        ("lpMinimumApplicationAddress", ctypes.c_void_p),
        ("lpMaximumApplicationAddress", ctypes.c_void_p),
        ("dwActiveProcessorMask", ctypes.c_size_t),
        ("dwNumberOfProcessors", ctypes.c_uint32),
        ("dwProcessorType", ctypes.c_uint32),
        ("dwAllocationGranularity", ctypes.c_uint32),
        ("wProcessorLevel", ctypes.c_ushort),
        ("wProcessorRevision", ctypes.c_ushort),
    ]


def query_processor_architecture() -> Union[int, ProcessorArchitecture]:
    """Get ``wProcessorArchitecture`` from GetSystemInfo.

    Returns:
        Processor architecture code, INTEL if the call is unavailable
    """
    try:
        info = _SystemInfo()
        ctypes.windll.kernel32.GetSystemInfo(ctypes.byref(info))
        return info.wProcessorArchitecture
    except (AttributeError, OSError) as e:
        logger.debug("GetSystemInfo unavailable: %s", e)
        return ProcessorArchitecture.INTEL


def query_server_r2() -> int:
    """Get the SM_SERVERR2 system metric (non-zero on Server 2003 R2).

    Returns:
        Metric value, 0 if the call is unavailable
    """
    try:
        return int(ctypes.windll.user32.GetSystemMetrics(SM_SERVERR2))
    except (AttributeError, OSError) as e:
        logger.debug("GetSystemMetrics unavailable: %s", e)
        return 0

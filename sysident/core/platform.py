"""
Platform resolution for multi-OS identification.

This module builds an OSDescriptor for the running host: it picks the OS
family, then lets the matching family builder gather its name, word width
and version metadata.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import locale
import logging
from pathlib import Path
import platform
from typing import Callable, Optional

from .config import ProbeConfig, load_config
from .cpu import CPUDescriptor, darwin_cpu_blob, read_cpu_info
from .probe import OSFamily, kernel_name_is_darwin, resolve_family
from .windows import (
    ArchitectureWidth,
    WindowsVersionInfo,
    lookup_windows_name,
    query_processor_architecture,
    query_windows_version,
    read_processor_architecture_value,
    resolve_architecture_width,
)


logger = logging.getLogger("sysident.core.platform")

UNKNOWN = "Unknown"
DEFAULT_LOCALE_ID = 1033  # English - USA

_64BIT_MACHINES = {
    "x86_64", "amd64", "x64", "ia64", "aarch64", "arm64",
    "ppc64", "ppc64le", "s390x", "riscv64", "mips64", "sparc64", "loongarch64",
}
_32BIT_MACHINES = {
    "i386", "i486", "i586", "i686", "x86", "armv6l", "armv7l", "armv7",
    "arm", "ppc", "s390", "mips", "riscv32", "sparc",
}


@dataclass(frozen=True)
class OSDescriptor:
    """Snapshot of the running operating system.

    Attributes:
        family: OS family stamped by the builder that produced this snapshot
        name: Human-readable OS name, never empty
        architecture: OS word width
        version: Raw version signals (Windows only)
        service_pack: Service pack level (Windows only)
        locale_id: Windows-style locale identifier of the current locale
        framework_version: .NET Framework version, if known
        java_version: Java runtime version, if known
    """

    family: OSFamily
    name: str
    architecture: ArchitectureWidth = ArchitectureWidth.UNKNOWN
    version: Optional[WindowsVersionInfo] = None
    service_pack: int = 0
    locale_id: int = DEFAULT_LOCALE_ID
    framework_version: Optional[str] = None
    java_version: Optional[str] = None
    config: ProbeConfig = field(default_factory=ProbeConfig, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.name:
            object.__setattr__(self, "name", UNKNOWN)

    @property
    def is_unix_family(self) -> bool:
        """Check whether the OS exposes a Unix-style CPU info blob."""
        return self.family in (OSFamily.UNIX, OSFamily.MACOSX)

    def cpu(self) -> Optional[CPUDescriptor]:
        """Describe the primary CPU.

        Returns:
            CPUDescriptor for Unix-family systems, None otherwise
        """
        if self.family is OSFamily.UNIX:
            return CPUDescriptor.from_blob(read_cpu_info(self.config.cpuinfo_path))
        if self.family is OSFamily.MACOSX:
            return CPUDescriptor.from_blob(darwin_cpu_blob(self.config.command_timeout))
        return None


def parse_os_release(file_path: str = "/etc/os-release") -> dict[str, str]:
    """Parse /etc/os-release into a dictionary.

    Args:
        file_path: Path to os-release file

    Returns:
        Parsed key/value map (upper-case keys as in file)
    """
    data: dict[str, str] = {}
    path = Path(file_path)
    if not path.exists():
        return data

    try:
        with open(path, "r", encoding="utf-8") as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, value = line.split("=", 1)
                value = value.strip().strip('"').strip("'")
                data[key.strip()] = value
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Cannot parse %s: %s", path, e)
        return {}

    return data


def unix_display_name(os_release: dict[str, str], system: str = "", release: str = "") -> str:
    """Pick a display name for a Unix system.

    Args:
        os_release: Parsed os-release data
        system: Kernel name from uname, used when os-release is empty
        release: Kernel release from uname

    Returns:
        Display name, or "Unknown"
    """
    pretty_name = os_release.get("PRETTY_NAME", "").strip()
    if pretty_name:
        return pretty_name

    name = os_release.get("NAME", "").strip()
    if name:
        return " ".join(part for part in (name, os_release.get("VERSION_ID", "").strip()) if part)

    return " ".join(part for part in (system, release) if part) or UNKNOWN


def macos_display_name(release: str) -> str:
    """Name a macOS release the way Apple marketed that version.

    Args:
        release: Product version, e.g. "10.9.5" or "14.2"

    Returns:
        Display name, or "Unknown"
    """
    if not release:
        return UNKNOWN

    parts = release.split(".")
    try:
        major = int(parts[0])
        minor = int(parts[1]) if len(parts) > 1 else 0
    except ValueError:
        return f"macOS {release}"

    if major == 10 and minor <= 7:
        return f"Mac OS X {release}"
    if major == 10 and minor <= 11:
        return f"OS X {release}"
    return f"macOS {release}"


def machine_architecture_width(machine: str) -> ArchitectureWidth:
    """Map a uname machine string to a word width."""
    normalized = machine.strip().lower()
    if normalized in _64BIT_MACHINES:
        return ArchitectureWidth.BITS_64
    if normalized in _32BIT_MACHINES:
        return ArchitectureWidth.BITS_32
    return ArchitectureWidth.UNKNOWN


def current_locale_id() -> int:
    """Get the Windows locale identifier of the current locale.

    Names are matched as reported first, then through ``locale.normalize``
    so aliases such as ``german`` resolve to ``de_DE``. Windows-style names
    (``English_United States``) only resolve when the alias table knows
    them; anything else falls back to English - USA.

    Returns:
        LCID, or 1033 (English - USA) when it cannot be determined
    """
    try:
        name = locale.getlocale()[0]
    except ValueError as e:
        logger.debug("Cannot read current locale: %s", e)
        return DEFAULT_LOCALE_ID

    if not name:
        return DEFAULT_LOCALE_ID

    lcids = {
        locale_name.lower(): lcid
        for lcid, locale_name in sorted(locale.windows_locale.items(), reverse=True)
    }
    aliased = locale.normalize(name).split(".", 1)[0].split("@", 1)[0]
    for candidate in (name, aliased):
        lcid = lcids.get(candidate.replace("-", "_").lower())
        if lcid is not None:
            return lcid

    logger.debug("No locale identifier for %s", name)
    return DEFAULT_LOCALE_ID


def build_windows_descriptor(config: ProbeConfig) -> OSDescriptor:
    """Build the descriptor for a Windows host."""
    architecture = resolve_architecture_width(read_processor_architecture_value())
    version = query_windows_version()

    if version is None:
        name = UNKNOWN
        service_pack = 0
    else:
        name = lookup_windows_name(
            version.major,
            version.minor,
            product_type=version.product_type,
            suite_mask=version.suite_mask,
            processor_architecture=query_processor_architecture(),
            csd_version=version.csd_version,
            platform_id=version.platform_id,
        )
        service_pack = version.service_pack_major

    return OSDescriptor(
        family=OSFamily.WINDOWS,
        name=name,
        architecture=architecture,
        version=version,
        service_pack=service_pack,
        locale_id=current_locale_id(),
        config=config,
    )


def build_unix_descriptor(config: ProbeConfig) -> OSDescriptor:
    """Build the descriptor for a POSIX (non-Darwin) host."""
    uname = platform.uname()
    return OSDescriptor(
        family=OSFamily.UNIX,
        name=unix_display_name(parse_os_release(config.os_release_path), uname.system, uname.release),
        architecture=machine_architecture_width(uname.machine),
        locale_id=current_locale_id(),
        config=config,
    )


def build_macosx_descriptor(config: ProbeConfig) -> OSDescriptor:
    """Build the descriptor for a Darwin host."""
    release, _, machine = platform.mac_ver()
    return OSDescriptor(
        family=OSFamily.MACOSX,
        name=macos_display_name(release),
        architecture=machine_architecture_width(machine or platform.machine()),
        locale_id=current_locale_id(),
        config=config,
    )


def build_embedded_descriptor(config: ProbeConfig) -> OSDescriptor:
    """Build the descriptor for an embedded runtime host."""
    name = " ".join(part for part in (platform.system(), platform.release()) if part)
    return OSDescriptor(
        family=OSFamily.EMBEDDED,
        name=name,
        architecture=machine_architecture_width(platform.machine()),
        locale_id=current_locale_id(),
        config=config,
    )


_BUILDERS: dict[OSFamily, Callable[[ProbeConfig], OSDescriptor]] = {
    OSFamily.WINDOWS: build_windows_descriptor,
    OSFamily.UNIX: build_unix_descriptor,
    OSFamily.MACOSX: build_macosx_descriptor,
    OSFamily.EMBEDDED: build_embedded_descriptor,
}


def resolve_platform(config: Optional[ProbeConfig] = None) -> OSDescriptor:
    """Identify the running operating system.

    Args:
        config: Probe settings (loaded via load_config() if omitted)

    Returns:
        OSDescriptor for the detected (or configured) family
    """
    if config is None:
        config = load_config()

    if config.family_override is not None:
        family = config.family_override
        logger.debug("Using configured family override: %s", family.value)
    else:
        family = resolve_family(
            probe=lambda: kernel_name_is_darwin(buffer_size=config.probe_buffer_size),
        )

    return _BUILDERS[family](config)

"""
SysIdent - Core Module

This module contains the platform, version and CPU resolution engine.
"""

from .config import (
    ProbeConfig,
    load_config,
)
from .cpu import (
    CPUArchitecture,
    CPUDescriptor,
    read_cpu_info,
)
from .fields import (
    extract_field,
    iter_fields,
)
from .platform import (
    OSDescriptor,
    parse_os_release,
    resolve_platform,
)
from .probe import (
    CoarsePlatform,
    OSFamily,
    coarse_platform_signal,
    kernel_name_is_darwin,
    resolve_family,
)
from .windows import (
    ArchitectureWidth,
    WindowsVersionInfo,
    lookup_windows_name,
    resolve_architecture_width,
    resolve_windows_name,
)

__all__ = [
    "ProbeConfig",
    "load_config",
    "CPUArchitecture",
    "CPUDescriptor",
    "read_cpu_info",
    "extract_field",
    "iter_fields",
    "OSDescriptor",
    "parse_os_release",
    "resolve_platform",
    "CoarsePlatform",
    "OSFamily",
    "coarse_platform_signal",
    "kernel_name_is_darwin",
    "resolve_family",
    "ArchitectureWidth",
    "WindowsVersionInfo",
    "lookup_windows_name",
    "resolve_architecture_width",
    "resolve_windows_name",
]

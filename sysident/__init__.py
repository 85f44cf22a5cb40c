"""
SysIdent

Runtime identification of the host operating system and primary CPU.
Provides a single platform-independent query surface producing a
normalized OS and CPU description for diagnostics or telemetry.
"""

import logging

__version__ = "1.0.0"
__author__ = "SysIdent Project"

from .core.config import ProbeConfig, load_config
from .core.cpu import CPUArchitecture, CPUDescriptor
from .core.fields import extract_field
from .core.platform import OSDescriptor, parse_os_release, resolve_platform
from .core.probe import OSFamily, kernel_name_is_darwin, resolve_family
from .core.windows import (
    ArchitectureWidth,
    lookup_windows_name,
    resolve_architecture_width,
    resolve_windows_name,
)

logging.getLogger("sysident").addHandler(logging.NullHandler())

__all__ = [
    "ProbeConfig",
    "load_config",
    "CPUArchitecture",
    "CPUDescriptor",
    "extract_field",
    "OSDescriptor",
    "parse_os_release",
    "resolve_platform",
    "OSFamily",
    "kernel_name_is_darwin",
    "resolve_family",
    "ArchitectureWidth",
    "lookup_windows_name",
    "resolve_architecture_width",
    "resolve_windows_name",
]

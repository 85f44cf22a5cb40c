"""
SysIdent - CPU Descriptor

This module turns the raw CPU information blob exposed by Unix-like kernels
into a typed CPUDescriptor. Every field degrades to a documented default
when its line is missing or unparsable; a bad field never fails the whole
descriptor.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from pathlib import Path
import re
import subprocess
from typing import Optional

from .fields import extract_field, iter_fields


logger = logging.getLogger("sysident.core.cpu")

UNKNOWN = "Unknown"

# Labels as written by the Linux kernel in /proc/cpuinfo
NAME_LABEL = "model name"
BRAND_LABEL = "vendor_id"
FLAGS_LABEL = "flags"
CORES_LABEL = "cpu cores"
FREQUENCY_LABEL = "cpu MHz"

# Space-prefixed so that e.g. "lahf_lm" does not count as long mode
LONG_MODE_TOKENS = (" lm", " x86-64")

_CORES_PATTERN = re.compile(r"[0-9]+")
_FREQUENCY_PATTERN = re.compile(r"[0-9]*(?:\.[0-9]+)?")


class CPUArchitecture(Enum):
    """Instruction set width advertised by the CPU."""
    X86 = "x86"
    X64 = "x64"


def parse_name(blob: str) -> str:
    """Get the CPU model name, or "Unknown"."""
    return extract_field(blob, NAME_LABEL) or UNKNOWN


def parse_brand(blob: str) -> str:
    """Get the CPU vendor string, or "Unknown"."""
    return extract_field(blob, BRAND_LABEL) or UNKNOWN


def parse_architecture(blob: str) -> CPUArchitecture:
    """Infer 64-bit support from the capability flags.

    There is no dedicated architecture line; the kernel advertises long mode
    through the ``lm`` flag (``x86-64`` on some ports).
    """
    flags = extract_field(blob, FLAGS_LABEL)
    if flags:
        padded = " " + flags
        if any(token in padded for token in LONG_MODE_TOKENS):
            return CPUArchitecture.X64
    return CPUArchitecture.X86


def parse_cores(blob: str) -> int:
    """Get the physical core count, or 0 when absent or non-numeric."""
    value = extract_field(blob, CORES_LABEL)
    if value is None:
        return 0

    match = _CORES_PATTERN.match(value)
    if not match:
        return 0
    return int(match.group(0))


def parse_frequency(blob: str) -> float:
    """Get the clock frequency in MHz, or 0.0 when absent or non-numeric.

    Parsing always uses ``.`` as the decimal separator regardless of locale.
    """
    value = extract_field(blob, FREQUENCY_LABEL)
    if value is None:
        return 0.0

    match = _FREQUENCY_PATTERN.match(value)
    if not match or not match.group(0):
        return 0.0
    return float(match.group(0))


@dataclass(frozen=True)
class CPUDescriptor:
    """Normalized description of the primary CPU.

    Attributes:
        name: Model name, "Unknown" if not reported
        brand: Vendor string (e.g. GenuineIntel), "Unknown" if not reported
        architecture: x64 when long mode is advertised, otherwise x86
        cores: Physical cores per package, 0 if unknown
        frequency: Clock frequency in MHz, 0.0 if unknown
    """
    name: str = UNKNOWN
    brand: str = UNKNOWN
    architecture: CPUArchitecture = CPUArchitecture.X86
    cores: int = 0
    frequency: float = 0.0

    @classmethod
    def from_blob(cls, blob: str) -> "CPUDescriptor":
        """Build a descriptor from a raw ``label : value`` info blob.

        Args:
            blob: Text in /proc/cpuinfo format

        Returns:
            CPUDescriptor with each field extracted independently
        """
        return cls(
            name=parse_name(blob),
            brand=parse_brand(blob),
            architecture=parse_architecture(blob),
            cores=parse_cores(blob),
            frequency=parse_frequency(blob),
        )


def read_cpu_info(file_path: str = "/proc/cpuinfo") -> str:
    """Read the kernel CPU information blob.

    Undecodable bytes are replaced so the remaining lines still parse.

    Args:
        file_path: Path to the cpuinfo file

    Returns:
        File contents, or empty string if it cannot be read
    """
    path = Path(file_path)
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return f.read()
    except OSError as e:
        logger.debug("Cannot read CPU info from %s: %s", path, e)
        return ""


# sysctl keys mapped onto the cpuinfo labels they stand in for
_SYSCTL_BRAND = "machdep.cpu.brand_string"
_SYSCTL_VENDOR = "machdep.cpu.vendor"
_SYSCTL_CORES = "hw.physicalcpu"
_SYSCTL_FREQUENCY = "hw.cpufrequency"
_SYSCTL_64BIT = ("hw.optional.x86_64", "hw.optional.arm64")

SYSCTL_KEYS = [_SYSCTL_BRAND, _SYSCTL_VENDOR, _SYSCTL_CORES, _SYSCTL_FREQUENCY, *_SYSCTL_64BIT]


def sysctl_to_cpu_blob(output: str) -> str:
    """Rewrite ``sysctl`` output into a cpuinfo-style blob.

    Darwin has no /proc/cpuinfo; its sysctl output uses the same
    ``key: value`` shape, so the values are relabelled and the regular
    CPU parsers apply unchanged.

    Args:
        output: stdout of ``sysctl <keys...>``

    Returns:
        Blob using the cpuinfo labels
    """
    values = dict(iter_fields(output))
    lines: list[str] = []

    if values.get(_SYSCTL_BRAND):
        lines.append(f"{NAME_LABEL}\t: {values[_SYSCTL_BRAND]}")
    if values.get(_SYSCTL_VENDOR):
        lines.append(f"{BRAND_LABEL}\t: {values[_SYSCTL_VENDOR]}")
    if values.get(_SYSCTL_CORES):
        lines.append(f"{CORES_LABEL}\t: {values[_SYSCTL_CORES]}")

    hertz = values.get(_SYSCTL_FREQUENCY, "")
    if hertz.isdigit():
        lines.append(f"{FREQUENCY_LABEL}\t\t: {int(hertz) / 1_000_000:.3f}")

    if any(values.get(key) == "1" for key in _SYSCTL_64BIT):
        lines.append(f"{FLAGS_LABEL}\t\t: fpu lm")

    return "\n".join(lines)


def darwin_cpu_blob(timeout: int = 5) -> str:
    """Query Darwin CPU details through ``sysctl``.

    Unknown keys (e.g. frequency on Apple silicon) make sysctl exit non-zero
    while still printing the known ones, so stdout is used either way.

    Args:
        timeout: Command timeout in seconds

    Returns:
        cpuinfo-style blob, or empty string if sysctl cannot run
    """
    result = _run_command(["sysctl", *SYSCTL_KEYS], timeout=timeout)
    if result is None:
        return ""
    return sysctl_to_cpu_blob(result.stdout)


def _run_command(command: list[str], timeout: int) -> Optional[subprocess.CompletedProcess[str]]:
    """Run command safely and return CompletedProcess or None on failure."""
    if not command:
        return None

    try:
        return subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError, PermissionError, OSError) as e:
        logger.debug("Command %s failed: %s", command[0], e)
        return None

"""
SysIdent - Platform Disambiguation

This module decides which OS family is running. The coarse platform signal
(``os.name``) cannot tell a POSIX system from a Darwin one, so a native
``uname(3)`` probe breaks the tie.
"""

from __future__ import annotations

from contextlib import contextmanager
import ctypes
import ctypes.util
from enum import Enum
import logging
import os
from typing import Any, Callable, Iterator, Optional


logger = logging.getLogger("sysident.core.probe")

DARWIN_KERNEL_NAME = b"Darwin"

# struct utsname is five or six char arrays whose length differs between
# libc implementations, so the buffer is deliberately oversized.
MIN_PROBE_BUFFER_SIZE = 8192


class OSFamily(Enum):
    """Operating system families that can be identified."""
    WINDOWS = "windows"
    UNIX = "unix"
    MACOSX = "macosx"
    EMBEDDED = "embedded"


class CoarsePlatform(Enum):
    """Broad platform signal reported by the interpreter."""
    WINDOWS = "windows"
    UNIX = "unix"
    MACOSX = "macosx"


_COARSE_SIGNALS: dict[str, CoarsePlatform] = {
    "nt": CoarsePlatform.WINDOWS,
    "posix": CoarsePlatform.UNIX,
    "mac": CoarsePlatform.MACOSX,
}


def coarse_platform_signal(os_name: Optional[str] = None) -> CoarsePlatform:
    """Map ``os.name`` to a coarse platform.

    Darwin reports ``posix`` like every other Unix. Unrecognized names fall
    back to Windows.

    Args:
        os_name: Value to map (defaults to ``os.name``)

    Returns:
        CoarsePlatform value
    """
    name = os.name if os_name is None else os_name
    return _COARSE_SIGNALS.get(name, CoarsePlatform.WINDOWS)


def load_libc() -> Any:
    """Load the C library with prototypes for the probe functions."""
    libc = ctypes.CDLL(ctypes.util.find_library("c"), use_errno=True)

    libc.malloc.argtypes = [ctypes.c_size_t]
    libc.malloc.restype = ctypes.c_void_p
    libc.free.argtypes = [ctypes.c_void_p]
    libc.free.restype = None
    libc.uname.argtypes = [ctypes.c_void_p]
    libc.uname.restype = ctypes.c_int

    return libc


@contextmanager
def native_buffer(libc: Any, size: int) -> Iterator[int]:
    """Allocate a native buffer that is freed on every exit path.

    Args:
        libc: Library exposing ``malloc`` and ``free``
        size: Requested size in bytes, raised to MIN_PROBE_BUFFER_SIZE

    Yields:
        Address of the allocated buffer

    Raises:
        MemoryError: If the allocation returns NULL
    """
    address = libc.malloc(max(size, MIN_PROBE_BUFFER_SIZE))
    if not address:
        raise MemoryError("malloc returned NULL for probe buffer")

    try:
        yield address
    finally:
        libc.free(address)


def kernel_name_is_darwin(libc: Any = None, buffer_size: int = MIN_PROBE_BUFFER_SIZE) -> bool:
    """Check whether ``uname(3)`` reports the Darwin kernel.

    Every failure is treated as "not Darwin".

    Args:
        libc: C library handle (loaded on demand when omitted)
        buffer_size: Size of the scratch buffer for struct utsname

    Returns:
        True only if the kernel name is exactly "Darwin"
    """
    try:
        if libc is None:
            libc = load_libc()
        with native_buffer(libc, buffer_size) as address:
            if libc.uname(address) != 0:
                logger.debug("uname() returned an error")
                return False
            # sysname is the first member of struct utsname
            return ctypes.string_at(address) == DARWIN_KERNEL_NAME
    except (OSError, AttributeError, TypeError, ValueError, MemoryError, ctypes.ArgumentError) as e:
        logger.debug("Kernel name probe failed: %s", e)
        return False


def resolve_family(
    coarse: Optional[CoarsePlatform] = None,
    probe: Optional[Callable[[], bool]] = None,
) -> OSFamily:
    """Resolve the OS family from the coarse signal and, if needed, the probe.

    Args:
        coarse: Coarse platform signal (read from the interpreter if omitted)
        probe: Callable returning True on a Darwin kernel

    Returns:
        OSFamily value
    """
    if coarse is None:
        coarse = coarse_platform_signal()

    if coarse is CoarsePlatform.WINDOWS:
        return OSFamily.WINDOWS
    if coarse is CoarsePlatform.MACOSX:
        return OSFamily.MACOSX

    if probe is None:
        probe = kernel_name_is_darwin
    return OSFamily.MACOSX if probe() else OSFamily.UNIX

"""
Platform disambiguation tests.

Exercises the coarse platform mapping, the Darwin kernel probe and the
guaranteed release of its native buffer. Native calls go through a fake C
library backed by real ctypes buffers so allocations can be tracked.
"""

import ctypes
import sys
from pathlib import Path
from typing import Optional
from unittest import mock

import pytest

# Add project root to import path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sysident.core.probe import (
    MIN_PROBE_BUFFER_SIZE,
    CoarsePlatform,
    OSFamily,
    coarse_platform_signal,
    kernel_name_is_darwin,
    native_buffer,
    resolve_family,
)


class FakeLibc:
    """C library stand-in that tracks malloc/free pairs."""

    def __init__(
        self,
        sysname: bytes = b"Linux",
        uname_result: int = 0,
        uname_error: Optional[Exception] = None,
        malloc_null: bool = False,
    ) -> None:
        self.sysname = sysname
        self.uname_result = uname_result
        self.uname_error = uname_error
        self.malloc_null = malloc_null
        self.allocations: list[int] = []
        self.freed: list[int] = []
        self._buffers: dict[int, ctypes.Array] = {}

    def malloc(self, size: int) -> Optional[int]:
        if self.malloc_null:
            return None
        buffer = ctypes.create_string_buffer(size)
        address = ctypes.addressof(buffer)
        self._buffers[address] = buffer
        self.allocations.append(size)
        return address

    def free(self, address: int) -> None:
        self.freed.append(address)
        del self._buffers[address]

    def uname(self, address: int) -> int:
        if self.uname_error is not None:
            raise self.uname_error
        data = self.sysname + b"\0"
        ctypes.memmove(address, data, len(data))
        return self.uname_result

    @property
    def outstanding(self) -> int:
        return len(self._buffers)


class TestCoarsePlatformSignal:
    """Tests for os.name mapping."""

    @pytest.mark.parametrize(
        "os_name, expected",
        [
            ("nt", CoarsePlatform.WINDOWS),
            ("posix", CoarsePlatform.UNIX),
            ("mac", CoarsePlatform.MACOSX),
            ("java", CoarsePlatform.WINDOWS),
        ],
    )
    def test_mapping(self, os_name: str, expected: CoarsePlatform) -> None:
        """Maps known names and falls back to Windows."""
        assert coarse_platform_signal(os_name) is expected

    def test_defaults_to_running_interpreter(self) -> None:
        """Reads os.name when no value is given."""
        with mock.patch("sysident.core.probe.os.name", "nt"):
            assert coarse_platform_signal() is CoarsePlatform.WINDOWS


class TestNativeBuffer:
    """Tests for scoped buffer allocation."""

    def test_frees_on_success(self) -> None:
        """The buffer is released when the block completes."""
        libc = FakeLibc()

        with native_buffer(libc, MIN_PROBE_BUFFER_SIZE) as address:
            assert libc.outstanding == 1
            assert address

        assert libc.outstanding == 0
        assert libc.freed == [address]

    def test_frees_when_block_raises(self) -> None:
        """The buffer is released when the block raises."""
        libc = FakeLibc()

        with pytest.raises(RuntimeError):
            with native_buffer(libc, MIN_PROBE_BUFFER_SIZE):
                raise RuntimeError("boom")

        assert libc.outstanding == 0
        assert len(libc.freed) == 1

    def test_small_sizes_are_raised_to_minimum(self) -> None:
        """Requests below 8 KiB allocate the minimum size."""
        libc = FakeLibc()

        with native_buffer(libc, 16):
            pass

        assert libc.allocations == [MIN_PROBE_BUFFER_SIZE]

    def test_null_allocation_raises_memory_error(self) -> None:
        """A NULL malloc result raises and frees nothing."""
        libc = FakeLibc(malloc_null=True)

        with pytest.raises(MemoryError):
            with native_buffer(libc, MIN_PROBE_BUFFER_SIZE):
                pass

        assert libc.freed == []


class TestKernelNameIsDarwin:
    """Tests for the uname probe."""

    def test_darwin_kernel(self) -> None:
        """Returns True on a Darwin kernel and releases the buffer."""
        libc = FakeLibc(sysname=b"Darwin")

        assert kernel_name_is_darwin(libc) is True
        assert libc.outstanding == 0
        assert len(libc.freed) == 1

    def test_other_kernel(self) -> None:
        """Returns False for any other kernel name and releases the buffer."""
        libc = FakeLibc(sysname=b"Linux")

        assert kernel_name_is_darwin(libc) is False
        assert libc.outstanding == 0
        assert len(libc.freed) == 1

    def test_name_must_match_exactly(self) -> None:
        """Prefixes and case variants are not Darwin."""
        assert kernel_name_is_darwin(FakeLibc(sysname=b"darwin")) is False
        assert kernel_name_is_darwin(FakeLibc(sysname=b"DarwinX")) is False

    def test_uname_error_code(self) -> None:
        """A non-zero uname result is not Darwin, even with Darwin in the buffer."""
        libc = FakeLibc(sysname=b"Darwin", uname_result=-1)

        assert kernel_name_is_darwin(libc) is False
        assert libc.outstanding == 0

    def test_uname_raises(self) -> None:
        """An exception from the native call is swallowed after release."""
        libc = FakeLibc(uname_error=OSError("uname failed"))

        assert kernel_name_is_darwin(libc) is False
        assert libc.outstanding == 0
        assert len(libc.freed) == 1

    def test_missing_uname_symbol(self) -> None:
        """A library without uname is not Darwin and still frees the buffer."""
        libc = FakeLibc()
        libc.uname = None  # type: ignore[assignment]

        assert kernel_name_is_darwin(libc) is False
        assert libc.outstanding == 0

    def test_allocation_failure(self) -> None:
        """A NULL allocation is treated as not Darwin."""
        assert kernel_name_is_darwin(FakeLibc(malloc_null=True)) is False

    def test_library_load_failure(self) -> None:
        """Failing to load libc is treated as not Darwin."""
        with mock.patch("sysident.core.probe.load_libc", side_effect=OSError("no libc")):
            assert kernel_name_is_darwin() is False

    def test_buffer_size_is_passed_through(self) -> None:
        """Larger configured buffers are honoured."""
        libc = FakeLibc()

        kernel_name_is_darwin(libc, buffer_size=16384)

        assert libc.allocations == [16384]

    @pytest.mark.skipif(not sys.platform.startswith("linux"), reason="Linux only")
    def test_real_linux_kernel(self) -> None:
        """The real probe does not report Darwin on Linux."""
        assert kernel_name_is_darwin() is False


class TestResolveFamily:
    """Tests for the family cascade."""

    def test_windows_skips_probe(self) -> None:
        """A Windows signal never runs the probe."""
        probe = mock.MagicMock(return_value=True)

        assert resolve_family(CoarsePlatform.WINDOWS, probe) is OSFamily.WINDOWS
        probe.assert_not_called()

    def test_macosx_skips_probe(self) -> None:
        """A distinct Mac signal never runs the probe."""
        probe = mock.MagicMock(return_value=False)

        assert resolve_family(CoarsePlatform.MACOSX, probe) is OSFamily.MACOSX
        probe.assert_not_called()

    def test_unix_with_darwin_probe(self) -> None:
        """A Unix signal with a Darwin kernel resolves to MacOSX."""
        assert resolve_family(CoarsePlatform.UNIX, lambda: True) is OSFamily.MACOSX

    def test_unix_without_darwin_probe(self) -> None:
        """A Unix signal with any other kernel resolves to Unix."""
        assert resolve_family(CoarsePlatform.UNIX, lambda: False) is OSFamily.UNIX

    def test_unix_with_failing_native_probe(self) -> None:
        """A failing native probe resolves to Unix and releases its buffer."""
        libc = FakeLibc(uname_error=OSError("uname failed"))

        family = resolve_family(CoarsePlatform.UNIX, lambda: kernel_name_is_darwin(libc))

        assert family is OSFamily.UNIX
        assert libc.outstanding == 0

    def test_defaults_to_interpreter_signal(self) -> None:
        """Reads the coarse signal when none is given."""
        with mock.patch("sysident.core.probe.os.name", "nt"):
            assert resolve_family() is OSFamily.WINDOWS


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

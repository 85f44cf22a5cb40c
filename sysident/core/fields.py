"""
SysIdent - Field Extraction

This module pulls labeled values out of unstructured ``label : value``
text blobs such as ``/proc/cpuinfo`` or ``sysctl`` output.
"""

from typing import Any, Iterator, Optional


def iter_fields(blob: Any) -> Iterator[tuple[str, str]]:
    """Yield ``(label, value)`` pairs from a text blob in line order.

    Lines without a ``:`` separator are skipped. Only the first ``:`` splits
    a line, so values may themselves contain colons.

    Args:
        blob: Multi-line text; anything that is not a string yields nothing

    Yields:
        Tuples of stripped label and stripped value
    """
    if not isinstance(blob, str):
        return

    for raw_line in blob.splitlines():
        if ":" not in raw_line:
            continue
        label, value = raw_line.split(":", 1)
        yield label.strip(), value.strip()


def extract_field(blob: Any, label: str) -> Optional[str]:
    """Extract the value of the first line whose label matches exactly.

    Label comparison is case-sensitive; whitespace around the separator is
    ignored. Per-processor blobs repeat their fields, so only the first
    occurrence (processor 0) is reported.

    Args:
        blob: Multi-line ``label : value`` text
        label: Label to look for, e.g. ``"model name"``

    Returns:
        The stripped value, or None if no line matches or the value is empty
    """
    for line_label, value in iter_fields(blob):
        if line_label == label:
            return value or None
    return None

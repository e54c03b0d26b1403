"""Build version information and version capability checks."""

from __future__ import annotations

import re

DEFAULT_VERSION = "unknown"
DEFAULT_PRODUCT = "community"
DELIMITER = ","
CRI_VERSION = "1.5.0"

# Set at build time as "<version><delimiter><product>"; empty means defaults.
COMBINED_VERSION = ""

_INTEGER = re.compile(r"[+-]?\d+")


def parse_combined_version(combined: str, delimiter: str = DELIMITER) -> tuple[str, str]:
    """Split a combined "version,product" string into its two parts.

    Missing parts fall back to the default version and product.
    """
    version, product = DEFAULT_VERSION, DEFAULT_PRODUCT
    if combined:
        fields = combined.split(delimiter)
        version = fields[0]
        if len(fields) > 1:
            product = fields[1]
    return version, product


VERSION, PRODUCT = parse_combined_version(COMBINED_VERSION)


def _to_int(text: str) -> int | None:
    if _INTEGER.fullmatch(text) is None:
        return None
    return int(text)


def has_cri_command(version: str = VERSION) -> bool:
    """Tell whether a three-part version is at least the one that added CRI support."""
    parts = version.split(".")
    if len(parts) != 3:
        return False
    for part, cri_part in zip(parts, CRI_VERSION.split(".")):
        value = _to_int(part)
        if value is None:
            return False
        required = int(cri_part)
        if value == required:
            continue
        return value > required
    return True
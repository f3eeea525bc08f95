"""
Partition classification for factory image files.

Filenames are matched case-insensitively against an ordered rule list and
the first rule that matches decides the partition. Compound names come
before the shorter names they contain:

    vendor_boot.img  -> vendor_boot   (not boot, not vendor)
    init_boot.img    -> init_boot     (not boot)
    vbmeta_system.img-> vbmeta_system (not system)
    bootloader-*.img -> bootloader    (not boot)

After the canonical names, the loose tokens boot/system/vendor catch
renamed images such as ``boot_a.img`` or ``system-signed.img``.
Anything else is unclassified and is skipped by the flasher.
"""

import os
from typing import Callable, List, Optional, Tuple

Predicate = Callable[[str], bool]


def _contains(token: str) -> Predicate:
    return lambda name: token in name


# Canonical image names
CANONICAL_RULES: List[Tuple[Predicate, str]] = [
    (lambda name: name.startswith("bootloader"), "bootloader"),
    (lambda name: name.startswith("radio"), "radio"),
    (_contains("vendor_kernel_boot"), "vendor_kernel_boot"),
    (_contains("vendor_boot"), "vendor_boot"),
    (_contains("init_boot"), "init_boot"),
    (_contains("vbmeta_system"), "vbmeta_system"),
    (_contains("boot.img"), "boot"),
    (_contains("system.img"), "system"),
    (_contains("vendor.img"), "vendor"),
    (_contains("vbmeta.img"), "vbmeta"),
    (_contains("recovery.img"), "recovery"),
    (_contains("product.img"), "product"),
    (_contains("userdata.img"), "userdata"),
    (_contains("dtbo.img"), "dtbo"),
]

# Loose tokens, only consulted when no canonical name matched
FALLBACK_RULES: List[Tuple[Predicate, str]] = [
    (_contains("boot"), "boot"),
    (_contains("system"), "system"),
    (_contains("vendor"), "vendor"),
]

RULES: List[Tuple[Predicate, str]] = CANONICAL_RULES + FALLBACK_RULES


def classify(filename: str, rules: Optional[List[Tuple[Predicate, str]]] = None) -> Optional[str]:
    """Return the partition for an image filename, or None if unrecognized"""
    name = os.path.basename(filename).lower()
    for predicate, label in (rules if rules is not None else RULES):
        if predicate(name):
            return label
    return None


__all__ = ["CANONICAL_RULES", "FALLBACK_RULES", "RULES", "classify"]

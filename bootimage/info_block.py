"""Kernel info block: the fixed 512-byte record between bootloader and kernel."""

import struct

from .errors import ImageTooLargeError

BLOCK_SIZE = 512

KERNEL_SIZE_OFFSET = 0
PACKAGE_SIZE_OFFSET = 8

_U32_MAX = 0xFFFFFFFF


def _check_u32(size: int, what: str) -> int:
    if size < 0:
        raise ImageTooLargeError(f"{what} size must not be negative (got {size})")
    if size > _U32_MAX:
        raise ImageTooLargeError(
            f"{what} can't be loaded by BIOS bootloader because is too big "
            f"({size} bytes, limit {_U32_MAX})"
        )
    return size


def create_kernel_info_block(kernel_size: int, package_size: int | None = None) -> bytes:
    """
    Build the info block read by the BIOS-stage bootloader.

    Layout (all little-endian, unused bytes zero):
      [0, 4)   kernel size (u32)
      [8, 12)  package size (u32), zero when no package is attached
    """
    kernel_size = _check_u32(kernel_size, "Kernel")
    package_size = 0 if package_size is None else _check_u32(package_size, "Package")

    block = bytearray(BLOCK_SIZE)
    struct.pack_into("<I", block, KERNEL_SIZE_OFFSET, kernel_size)
    struct.pack_into("<I", block, PACKAGE_SIZE_OFFSET, package_size)
    return bytes(block)


def read_kernel_info_block(block: bytes) -> tuple[int, int]:
    """Return (kernel_size, package_size) from an encoded block."""
    if len(block) != BLOCK_SIZE:
        raise ValueError(f"Info block must be {BLOCK_SIZE} bytes, got {len(block)}")
    (kernel_size,) = struct.unpack_from("<I", block, KERNEL_SIZE_OFFSET)
    (package_size,) = struct.unpack_from("<I", block, PACKAGE_SIZE_OFFSET)
    return kernel_size, package_size

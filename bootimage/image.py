"""Disk image assembly: bootloader, info block, kernel and package, 512-byte aligned."""

import logging
import os
from pathlib import Path
from typing import BinaryIO

from .errors import ImageConsistencyError, ImageIOError
from .info_block import BLOCK_SIZE, create_kernel_info_block

log = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 64 * 1024


def default_image_path(kernel_path: Path) -> Path:
    """`bootimage-<kernel stem>.bin`, next to the kernel executable."""
    kernel_path = Path(kernel_path)
    return kernel_path.parent / f"bootimage-{kernel_path.stem}.bin"


def padding_size(written: int, alignment: int = BLOCK_SIZE) -> int:
    """Zero bytes needed to bring `written` up to the next alignment boundary."""
    return (alignment - written % alignment) % alignment


def _copy_stream(output: BinaryIO, source: BinaryIO, declared_size: int, name: str) -> int:
    """Copy `source` into `output` in chunks, retrying interrupted reads."""
    copied = 0
    while True:
        try:
            chunk = source.read(COPY_CHUNK_SIZE)
        except InterruptedError:
            continue
        if not chunk:
            break
        output.write(chunk)
        copied += len(chunk)

    if copied != declared_size:
        raise ImageConsistencyError(
            f"{name}: copied {copied} bytes but file size is {declared_size}"
        )
    return copied


def _write_segment(output: BinaryIO, output_path: Path, source: BinaryIO,
                   declared_size: int, name: str) -> int:
    """Write one variable-length segment followed by its 512-byte padding."""
    try:
        copied = _copy_stream(output, source, declared_size, name)
    except OSError as e:
        raise ImageIOError(f"copy {name} into image", output_path, e) from e

    try:
        output.write(bytes(padding_size(copied)))
    except OSError as e:
        raise ImageIOError(f"pad {name} segment", output_path, e) from e
    return copied + padding_size(copied)


def _open_input(path: Path, name: str) -> tuple[BinaryIO, int]:
    try:
        f = open(path, "rb")
    except OSError as e:
        raise ImageIOError(f"open {name} file", path, e) from e
    try:
        size = os.fstat(f.fileno()).st_size
    except OSError as e:
        f.close()
        raise ImageIOError(f"read {name} file metadata", path, e) from e
    return f, size


def create_disk_image(
    bootloader: bytes,
    kernel_path: Path,
    output_path: Path | None = None,
    package_path: Path | None = None,
    minimum_image_size: int | None = None,
    root_dir: Path | None = None,
) -> Path:
    """
    Assemble a bootable disk image and return the path it was written to.

    Layout:
      [bootloader][info block (512)][kernel][pad to 512][package][pad to 512]
    optionally zero-extended to `minimum_image_size`.
    """
    kernel_path = Path(kernel_path)
    output_path = Path(output_path) if output_path else default_image_path(kernel_path)

    kernel, kernel_size = _open_input(kernel_path, "kernel")
    package = None
    try:
        package_size = None
        if package_path is not None:
            package, package_size = _open_input(Path(package_path), "package")

        info_block = create_kernel_info_block(kernel_size, package_size)

        shown = output_path
        if root_dir is not None and output_path.is_relative_to(root_dir):
            shown = output_path.relative_to(root_dir)
        log.info("Creating disk image at %s", shown)

        try:
            output = open(output_path, "wb")
        except OSError as e:
            raise ImageIOError("create output bootimage file", output_path, e) from e

        with output:
            try:
                output.write(bootloader)
                output.write(info_block)
            except OSError as e:
                raise ImageIOError("write bootloader and info block", output_path, e) from e

            written = len(bootloader) + len(info_block)
            written += _write_segment(output, output_path, kernel, kernel_size, "kernel")

            if package is not None:
                log.info("Writing specified package to output")
                written += _write_segment(output, output_path, package, package_size, "package")

            if minimum_image_size is not None and written < minimum_image_size:
                log.debug("Extending image from %d to %d bytes", written, minimum_image_size)
                try:
                    output.truncate(minimum_image_size)
                except OSError as e:
                    raise ImageIOError("resize output bootimage file", output_path, e) from e
                written = minimum_image_size
    finally:
        kernel.close()
        if package is not None:
            package.close()

    log.debug(
        "Image %s: %d bytes (bootloader %d, kernel %d, package %s)",
        output_path, written, len(bootloader), kernel_size, package_size,
    )
    return output_path

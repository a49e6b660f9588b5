"""bootimage - bootable disk images for bare-metal kernels, and a QEMU test harness."""

from .builder import Builder, run_image
from .config import BootimageConfig, load_config, parse_config
from .errors import (
    BootimageError,
    ConfigError,
    ElfFormatError,
    EmulatorError,
    ImageConsistencyError,
    ImageIOError,
    ImageTooLargeError,
    MissingSectionError,
)
from .extractor import BOOTLOADER_SECTION, extract_bootloader_section, read_bootloader
from .image import create_disk_image, default_image_path
from .info_block import BLOCK_SIZE, create_kernel_info_block, read_kernel_info_block

__version__ = "0.5.0"

__all__ = [
    # Builder
    "Builder",
    "run_image",
    # Config
    "BootimageConfig",
    "load_config",
    "parse_config",
    # Errors
    "BootimageError",
    "ConfigError",
    "ElfFormatError",
    "EmulatorError",
    "ImageConsistencyError",
    "ImageIOError",
    "ImageTooLargeError",
    "MissingSectionError",
    # Extractor
    "BOOTLOADER_SECTION",
    "extract_bootloader_section",
    "read_bootloader",
    # Image
    "create_disk_image",
    "default_image_path",
    # Info block
    "BLOCK_SIZE",
    "create_kernel_info_block",
    "read_kernel_info_block",
    # Harness subpackage
    "harness",
]

"""Build and run orchestration on top of the image assembler."""

import logging
import subprocess
from pathlib import Path

from .config import BootimageConfig
from .errors import EmulatorError
from .extractor import read_bootloader
from .image import create_disk_image, default_image_path

log = logging.getLogger(__name__)


class Builder:
    """Turns kernel executables into boot images with one bootloader."""

    def __init__(self, bootloader_path: Path, config: BootimageConfig | None = None,
                 root_dir: Path | None = None):
        self.bootloader_path = Path(bootloader_path)
        self.config = config or BootimageConfig()
        self.root_dir = root_dir
        self._bootloader: bytes | None = None

    @property
    def bootloader(self) -> bytes:
        """The `.bootloader` section, read once per Builder."""
        if self._bootloader is None:
            self._bootloader = read_bootloader(self.bootloader_path)
            log.debug(
                "Bootloader section: %d bytes from %s",
                len(self._bootloader), self.bootloader_path,
            )
        return self._bootloader

    def create_bootimage(self, kernel_path: Path, output_path: Path | None = None) -> Path:
        """Build one image; `output_path` overrides config and the default name."""
        output = output_path or self.config.output or default_image_path(kernel_path)
        return create_disk_image(
            self.bootloader,
            kernel_path,
            output_path=output,
            package_path=self.config.package_filepath,
            minimum_image_size=self.config.minimum_image_size,
            root_dir=self.root_dir,
        )

    def build_all(self, kernel_paths: list[Path]) -> list[Path]:
        """Build an image for each kernel at its default location."""
        return [self.create_bootimage(k, default_image_path(k)) for k in kernel_paths]


def run_image(config: BootimageConfig, image_path: Path, extra_args: list[str] | None = None) -> int:
    """Run the configured command on an image and return its exit code."""
    cmd = config.run_args(image_path) + list(extra_args or [])
    log.info("Running: %s", " ".join(cmd))
    try:
        result = subprocess.run(cmd)
    except OSError as e:
        raise EmulatorError(f"Failed to execute run `{cmd}`: {e}") from e
    return result.returncode

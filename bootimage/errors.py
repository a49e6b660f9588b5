"""Exception hierarchy for image building and test runs."""


class BootimageError(Exception):
    """Base class for every failure the command line reports."""


class ConfigError(BootimageError):
    """Invalid or unreadable bootimage configuration."""


class ImageTooLargeError(BootimageError):
    """A size does not fit the 32-bit fields of the kernel info block."""


class ElfFormatError(BootimageError):
    """The bootloader file is not a well-formed ELF image."""


class MissingSectionError(BootimageError):
    """The bootloader ELF has no `.bootloader` section."""


class ImageIOError(BootimageError):
    """I/O failure while reading inputs for, or writing, the disk image."""

    def __init__(self, stage: str, path, cause: OSError):
        self.stage = stage
        self.path = path
        self.cause = cause
        super().__init__(f"Could not {stage} ({path}): {cause}")


class ImageConsistencyError(BootimageError):
    """Bytes copied into the image disagree with the declared source size."""


class EmulatorError(BootimageError):
    """QEMU could not be launched or its output could not be collected."""

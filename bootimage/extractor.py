"""ELF → raw `.bootloader` section extraction."""

import io
import logging
from pathlib import Path

from elftools.common.exceptions import ELFError, ELFParseError
from elftools.common.utils import struct_parse
from elftools.elf.elffile import ELFFile

from .errors import ElfFormatError, ImageIOError, MissingSectionError

log = logging.getLogger(__name__)

BOOTLOADER_SECTION = ".bootloader"

# Expected header / section-header entry sizes per ELF class
_EHSIZE = {32: 52, 64: 64}
_SHENTSIZE = {32: 40, 64: 64}


def _sanity_check(elf: ELFFile, file_size: int) -> None:
    """Structural checks on the ELF header and section header table."""
    header = elf.header
    if header["e_ident"]["EI_VERSION"] != "EV_CURRENT":
        raise ElfFormatError(f"Unsupported ELF version: {header['e_ident']['EI_VERSION']}")
    if header["e_ehsize"] != _EHSIZE[elf.elfclass]:
        raise ElfFormatError(
            f"ELF header size {header['e_ehsize']} does not match "
            f"ELF{elf.elfclass} ({_EHSIZE[elf.elfclass]})"
        )

    shnum = header["e_shnum"]
    if shnum == 0:
        return
    if header["e_shentsize"] != _SHENTSIZE[elf.elfclass]:
        raise ElfFormatError(f"Bad section header entry size: {header['e_shentsize']}")
    table_end = header["e_shoff"] + shnum * header["e_shentsize"]
    if table_end > file_size:
        raise ElfFormatError(
            f"Section header table ends at {table_end}, past end of file ({file_size})"
        )
    if header["e_shstrndx"] >= shnum:
        raise ElfFormatError(f"Section name table index {header['e_shstrndx']} out of range")

    # Every section with file data must lie inside the file, names included
    for index in range(shnum):
        shdr = struct_parse(
            elf.structs.Elf_Shdr,
            elf.stream,
            stream_pos=header["e_shoff"] + index * header["e_shentsize"],
        )
        if shdr["sh_type"] == "SHT_NOBITS":
            continue
        end = shdr["sh_offset"] + shdr["sh_size"]
        if end > file_size:
            raise ElfFormatError(
                f"Section {index} spans [{shdr['sh_offset']}, {end}), "
                f"past end of file ({file_size})"
            )


def extract_section(elf_bytes: bytes, name: str) -> bytes:
    """
    Return an owned copy of the raw bytes of section `name`.

    Raises ElfFormatError if the buffer is not a sane ELF image and
    MissingSectionError if no section carries that name.
    """
    try:
        elf = ELFFile(io.BytesIO(elf_bytes))
        _sanity_check(elf, len(elf_bytes))
        section = elf.get_section_by_name(name)
    except (ELFError, ELFParseError, OverflowError, ValueError) as e:
        raise ElfFormatError(f"Not a valid ELF file: {e}") from e

    if section is None:
        raise MissingSectionError(f"bootloader must have a {name} section")

    if section["sh_type"] == "SHT_NOBITS":
        raise ElfFormatError(f"Section {name} has no file data (SHT_NOBITS)")
    start = section["sh_offset"]
    end = start + section["sh_size"]
    if end > len(elf_bytes):
        raise ElfFormatError(
            f"Section {name} spans [{start}, {end}), past end of file ({len(elf_bytes)})"
        )

    log.debug("Found %s section: %d bytes at offset %#x", name, end - start, start)
    return bytes(elf_bytes[start:end])


def extract_bootloader_section(elf_bytes: bytes) -> bytes:
    """Extract the `.bootloader` section from a bootloader executable."""
    return extract_section(elf_bytes, BOOTLOADER_SECTION)


def read_bootloader(path: Path) -> bytes:
    """Read a bootloader ELF from disk and return its bootable section."""
    try:
        elf_bytes = Path(path).read_bytes()
    except OSError as e:
        raise ImageIOError("read bootloader", path, e) from e
    return extract_bootloader_section(elf_bytes)

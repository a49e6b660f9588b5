import struct

import pytest

from bootimage.errors import ElfFormatError, ImageIOError, MissingSectionError
from bootimage.extractor import extract_bootloader_section, extract_section, read_bootloader


def test_extracts_bootloader_section(make_elf):
    code = b"\xfa\x31\xc0" + bytes(509) + b"\x55\xaa"
    elf = make_elf({".text": b"\xcc" * 32, ".bootloader": code, ".data": b"xyz"})
    assert extract_bootloader_section(elf) == code


def test_returns_owned_bytes(make_elf):
    elf = bytearray(make_elf({".bootloader": b"abc"}))
    section = extract_bootloader_section(elf)
    elf[:] = bytes(len(elf))
    assert section == b"abc"
    assert isinstance(section, bytes)


def test_empty_section(make_elf):
    assert extract_bootloader_section(make_elf({".bootloader": b""})) == b""


def test_missing_section(make_elf):
    elf = make_elf({".text": b"\x90" * 8, ".bootloader2": b"nope"})
    with pytest.raises(MissingSectionError):
        extract_bootloader_section(elf)


def test_name_must_match_exactly(make_elf):
    elf = make_elf({".bootloader.text": b"nope"})
    with pytest.raises(MissingSectionError):
        extract_bootloader_section(elf)


def test_other_section_by_name(make_elf):
    elf = make_elf({".text": b"\x90" * 8, ".bootloader": b"boot"})
    assert extract_section(elf, ".text") == b"\x90" * 8


def test_not_an_elf():
    with pytest.raises(ElfFormatError):
        extract_bootloader_section(b"MZ\x90\x00 definitely not an ELF file")


def test_truncated_header():
    with pytest.raises(ElfFormatError):
        extract_bootloader_section(b"\x7fELF")


def test_bad_header_size(make_elf):
    elf = bytearray(make_elf({".bootloader": b"abc"}))
    struct.pack_into("<H", elf, 52, 60)  # e_ehsize
    with pytest.raises(ElfFormatError):
        extract_bootloader_section(bytes(elf))


def test_section_table_past_end_of_file(make_elf):
    elf = make_elf({".bootloader": b"abc"})
    with pytest.raises(ElfFormatError):
        extract_bootloader_section(elf[:-10])


def test_nobits_section_rejected(make_elf):
    elf = make_elf({".bootloader": bytes(64)}, nobits=(".bootloader",))
    with pytest.raises(ElfFormatError):
        extract_bootloader_section(elf)


def test_read_bootloader(bootloader_elf, bootloader_code):
    assert read_bootloader(bootloader_elf) == bootloader_code


def test_read_bootloader_missing_file(tmp_path):
    with pytest.raises(ImageIOError) as excinfo:
        read_bootloader(tmp_path / "missing")
    assert excinfo.value.stage == "read bootloader"


def _section_header_offset(elf: bytes, index: int) -> int:
    (shoff,) = struct.unpack_from("<Q", elf, 40)
    return shoff + index * 64


def test_name_table_offset_out_of_range(make_elf):
    elf = bytearray(make_elf({".bootloader": b"abc"}))
    (shstrndx,) = struct.unpack_from("<H", elf, 62)
    sh_offset = _section_header_offset(elf, shstrndx) + 24
    struct.pack_into("<Q", elf, sh_offset, 0xFFFFFFFFFFFFFFF0)
    with pytest.raises(ElfFormatError):
        extract_bootloader_section(bytes(elf))


def test_section_size_past_end_of_file(make_elf):
    elf = bytearray(make_elf({".text": b"\x90" * 8, ".bootloader": b"abc"}))
    sh_size = _section_header_offset(elf, 1) + 32  # .text
    struct.pack_into("<Q", elf, sh_size, 1 << 40)
    with pytest.raises(ElfFormatError, match="past end of file"):
        extract_bootloader_section(bytes(elf))

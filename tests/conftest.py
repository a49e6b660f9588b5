import struct

import pytest

SHT_PROGBITS = 1
SHT_STRTAB = 3
SHT_NOBITS = 8


def build_elf64(sections: dict[str, bytes], nobits: tuple[str, ...] = ()) -> bytes:
    """
    Minimal little-endian ELF64 executable with the given sections.

    Layout: ELF header, section data, .shstrtab, section header table.
    """
    names = list(sections) + [".shstrtab"]
    shstrtab = b"\x00"
    name_offsets = {}
    for name in names:
        name_offsets[name] = len(shstrtab)
        shstrtab += name.encode() + b"\x00"

    body = bytearray()
    placed = []  # (name, type, offset, size)
    offset = 64
    for name, data in sections.items():
        if name in nobits:
            placed.append((name, SHT_NOBITS, offset, len(data)))
            continue
        placed.append((name, SHT_PROGBITS, offset, len(data)))
        body += data
        offset += len(data)
    placed.append((".shstrtab", SHT_STRTAB, offset, len(shstrtab)))
    body += shstrtab
    offset += len(shstrtab)

    pad = (8 - offset % 8) % 8
    body += bytes(pad)
    shoff = offset + pad

    headers = bytes(64)  # null section
    for name, sh_type, sh_offset, size in placed:
        headers += struct.pack(
            "<IIQQQQIIQQ",
            name_offsets[name], sh_type, 0, 0, sh_offset, size, 0, 0, 1, 0,
        )

    e_ident = b"\x7fELF" + bytes([2, 1, 1, 0]) + bytes(8)
    header = struct.pack(
        "<16sHHIQQQIHHHHHH",
        e_ident,
        2,  # ET_EXEC
        62,  # EM_X86_64
        1,  # EV_CURRENT
        0, 0, shoff, 0,
        64, 56, 0, 64,
        len(placed) + 1,
        len(placed),  # .shstrtab is last
    )
    return header + bytes(body) + headers


@pytest.fixture
def make_elf():
    return build_elf64


@pytest.fixture
def bootloader_code():
    return bytes(range(256)) * 2 + b"\x55\xaa"


@pytest.fixture
def bootloader_elf(tmp_path, bootloader_code):
    path = tmp_path / "bootloader"
    path.write_bytes(build_elf64({".text": b"\x90" * 16, ".bootloader": bootloader_code}))
    return path

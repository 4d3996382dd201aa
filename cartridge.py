"""
NES Cartridge loading and the fixed NROM mapping
Parses iNES images into a CartridgeStore the Bus and PPU share
"""

import os
from typing import Optional

from utils import debug_print

NES_TAG = b"NES\x1a"
HEADER_SIZE = 16
TRAINER_SIZE = 512
PRG_ROM_PAGE_SIZE = 0x4000  # 16KB
CHR_ROM_PAGE_SIZE = 0x2000  # 8KB
PRG_RAM_SIZE = 0x2000  # 8KB at $6000-$7FFF

HORIZONTAL = "horizontal"
VERTICAL = "vertical"
FOUR_SCREEN = "four_screen"


class ConstructionError(Exception):
    """Raised for cartridge images the core refuses to run."""


class Mapper:
    def __init__(self, cart: "CartridgeStore"):
        self.cart = cart

    # CPU; None means nothing drives the data bus
    def cpu_read(self, addr: int) -> Optional[int]:
        return None

    def cpu_write(self, addr: int, value: int):
        pass

    # PPU
    def ppu_read(self, addr: int) -> int:
        return 0

    def ppu_write(self, addr: int, value: int):
        pass


class Mapper0(Mapper):
    """NROM: 16KB or 32KB PRG, 8KB CHR, no bank switching"""

    def __init__(self, cart):
        super().__init__(cart)
        bank_count = len(cart.prg_rom) // PRG_ROM_PAGE_SIZE
        if bank_count not in (1, 2):
            raise ConstructionError(
                f"NROM expects 1 or 2 PRG banks, image has {bank_count}"
            )
        # 16KB images are mirrored into $C000-$FFFF
        self.prg_mask = len(cart.prg_rom) - 1

    def cpu_read(self, addr):
        if 0x6000 <= addr <= 0x7FFF:
            return self.cart.prg_ram[addr - 0x6000]
        if addr >= 0x8000:
            return self.cart.prg_rom[(addr - 0x8000) & self.prg_mask]
        # $4020-$5FFF is not wired on NROM boards
        return None

    def cpu_write(self, addr, value):
        if 0x6000 <= addr <= 0x7FFF:
            self.cart.prg_ram[addr - 0x6000] = value
        # PRG ROM writes are dropped; NROM has no mapper registers

    def ppu_read(self, addr):
        return self.cart.chr[addr & 0x1FFF]

    def ppu_write(self, addr, value):
        if self.cart.chr_ram:
            self.cart.chr[addr & 0x1FFF] = value


MAPPERS = {
    0: Mapper0,
}


class CartridgeStore:
    """Decoded program and character data plus the mapping mode.

    Program ROM is immutable. Character data is immutable unless the image
    carried no CHR ROM, in which case 8KB of character RAM is provided.
    """

    def __init__(self, prg_rom, chr_rom=b"", mapper=0, mirroring=HORIZONTAL,
                 has_battery=False):
        if mapper not in MAPPERS:
            raise ConstructionError(f"Unsupported mapper {mapper}")
        if not prg_rom:
            raise ConstructionError("Cartridge has no PRG ROM")

        self.prg_rom = bytes(prg_rom)
        self.chr_ram = len(chr_rom) == 0
        if self.chr_ram:
            self.chr = bytearray(CHR_ROM_PAGE_SIZE)
        else:
            self.chr = bytes(chr_rom)
        self.prg_ram = bytearray(PRG_RAM_SIZE)
        self.mapper = mapper
        self.mirroring = mirroring
        self.has_battery = has_battery

        # Nametable index -> offset into the PPU's 2KB of VRAM
        if mirroring == HORIZONTAL:
            self.name_table_map = (0, 0, 0x400, 0x400)
        else:
            # Four-screen boards carry extra VRAM we do not model; approximate with vertical
            self.name_table_map = (0, 0x400, 0, 0x400)

        self.mapper_obj = MAPPERS[mapper](self)

    def cpu_read(self, addr):
        """Read from cartridge (CPU side)"""
        return self.mapper_obj.cpu_read(addr)

    def cpu_write(self, addr, value):
        """Write to cartridge (CPU side)"""
        self.mapper_obj.cpu_write(addr, value)

    def ppu_read(self, addr):
        """Read from cartridge (PPU side)"""
        return self.mapper_obj.ppu_read(addr)

    def ppu_write(self, addr, value):
        """Write to cartridge (PPU side)"""
        self.mapper_obj.ppu_write(addr, value)

    def __repr__(self):
        return (
            f"CartridgeStore(prg={len(self.prg_rom) // 1024}KB, "
            f"chr={len(self.chr) // 1024}KB{' RAM' if self.chr_ram else ''}, "
            f"mapper={self.mapper}, mirroring={self.mirroring})"
        )


def parse_ines(data):
    """Build a CartridgeStore from the raw bytes of an iNES image."""
    if len(data) < HEADER_SIZE or data[:4] != NES_TAG:
        raise ConstructionError("Invalid NES ROM file")

    prg_rom_size = data[4]
    chr_rom_size = data[5]
    flags6 = data[6]
    flags7 = data[7]

    mirroring = VERTICAL if flags6 & 1 else HORIZONTAL
    has_battery = bool((flags6 >> 1) & 1)
    has_trainer = bool((flags6 >> 2) & 1)
    if (flags6 >> 3) & 1:
        mirroring = FOUR_SCREEN

    mapper = (flags7 & 0xF0) | (flags6 >> 4)
    if (flags7 & 0x0C) == 0x08:
        # NES 2.0 carries mapper bits 8-11 in byte 8
        mapper |= (data[8] & 0x0F) << 8

    prg_start = HEADER_SIZE + (TRAINER_SIZE if has_trainer else 0)
    prg_end = prg_start + prg_rom_size * PRG_ROM_PAGE_SIZE
    chr_end = prg_end + chr_rom_size * CHR_ROM_PAGE_SIZE
    if len(data) < chr_end:
        raise ConstructionError(
            f"Truncated ROM: header declares {chr_end} bytes, file has {len(data)}"
        )

    cart = CartridgeStore(
        data[prg_start:prg_end],
        data[prg_end:chr_end],
        mapper=mapper,
        mirroring=mirroring,
        has_battery=has_battery,
    )
    debug_print(
        f"PRG ROM: {prg_rom_size * 16}KB CHR ROM: {chr_rom_size * 8}KB "
        f"Mapper: {mapper} Mirroring: {mirroring}",
        "cart",
    )
    return cart


def load_cartridge(rom_path):
    """Load a ROM file from disk"""
    try:
        with open(rom_path, "rb") as f:
            data = f.read()
    except OSError as e:
        raise ConstructionError(f"Cannot read ROM '{rom_path}': {e}") from e
    cart = parse_ines(data)
    debug_print(f"Loaded ROM: {os.path.basename(rom_path)} {cart!r}", "cart")
    return cart

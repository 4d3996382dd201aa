"""
Shared test helpers: in-memory iNES images and wired machines
"""

import pytest

from bus import Bus
from cartridge import parse_ines
from cpu import CPU
from nes import NES
from ppu import PPU

PRG_BASE = 0x8000


def build_ines(
    program=b"",
    prg_banks=1,
    chr_data=None,
    chr_banks=1,
    mapper=0,
    vertical=False,
    trainer=False,
    nes2=False,
    reset=PRG_BASE,
    nmi=PRG_BASE,
    irq=PRG_BASE,
):
    """Assemble an iNES image with program at $8000 and the three vectors set"""
    prg = bytearray(prg_banks * 0x4000)
    prg[: len(program)] = program
    for offset, vector in ((0xFFFA, nmi), (0xFFFC, reset), (0xFFFE, irq)):
        index = (offset - PRG_BASE) & (len(prg) - 1)
        prg[index] = vector & 0xFF
        prg[index + 1] = vector >> 8

    if chr_data is None:
        chr_data = bytes(chr_banks * 0x2000)
    else:
        chr_banks = len(chr_data) // 0x2000

    flags6 = ((mapper & 0x0F) << 4) | (1 if vertical else 0) | (4 if trainer else 0)
    flags7 = mapper & 0xF0
    byte8 = 0
    if nes2:
        flags7 |= 0x08
        byte8 = (mapper >> 8) & 0x0F
    header = bytes([0x4E, 0x45, 0x53, 0x1A, prg_banks, chr_banks, flags6, flags7, byte8]) + bytes(7)
    return header + (bytes(512) if trainer else b"") + bytes(prg) + bytes(chr_data)


def make_nes(program, **kwargs):
    """NES with `program` at $8000 and the reset vector pointing at it"""
    return NES(parse_ines(build_ines(program, **kwargs)))


@pytest.fixture
def machine():
    """A Bus/PPU/CPU triad with no cartridge; programs run from RAM"""
    ppu = PPU()
    bus = Bus(None, ppu)
    cpu = CPU(bus)
    return cpu, bus, ppu


@pytest.fixture
def cpu(machine):
    return machine[0]


def load_program(cpu, program, addr=0x0200):
    """Copy program into RAM at addr and point PC at it"""
    for i, byte in enumerate(program):
        cpu.bus.write(addr + i, byte)
    cpu.PC = addr
    return addr

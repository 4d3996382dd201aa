#!/usr/bin/env python3
"""
Bus tests: address decoding, mirroring, open bus, OAM DMA and controllers
"""

from bus import Bus
from cartridge import parse_ines
from conftest import build_ines, make_nes
from ppu import PPU


def cart_bus(program=b"", **kwargs):
    cart = parse_ines(build_ines(program, **kwargs))
    ppu = PPU(cart)
    return Bus(cart, ppu), ppu


def test_ram_mirrors_every_2k(machine):
    _, bus, _ = machine
    for addr in range(0x800):
        bus.write(addr, (addr * 7 + 3) & 0xFF)
    for addr in range(0x2000):
        assert bus.read(addr) == bus.read(addr & 0x7FF)


def test_write_through_mirror(machine):
    _, bus, _ = machine
    bus.write(0x1803, 0x5A)
    assert bus.ram[0x003] == 0x5A
    assert bus.read(0x0803) == 0x5A


def test_ppu_ports_mirror_every_8_bytes(machine):
    _, bus, ppu = machine
    bus.write(0x3FFE, 0x21)  # $2006
    assert ppu.w == 1
    bus.write(0x2406, 0x08)
    assert ppu.v == 0x2108
    bus.write(0x2FFF, 0x44)  # $2007
    assert ppu.read_vram(0x2108) == 0x44


def test_write_only_ppu_port_reads_latch(machine):
    _, bus, _ = machine
    bus.write(0x2000, 0x00)
    bus.write(0x2005, 0x6D)
    assert bus.read(0x2000) == 0x6D
    assert bus.read(0x3FF8) == 0x6D


def test_open_bus_in_unmapped_io_space(machine):
    _, bus, _ = machine
    bus.write(0x0010, 0x42)
    bus.read(0x0010)
    assert bus.read(0x4018) == 0x42
    assert bus.read(0x5000) == 0x42
    bus.write(0x4000, 0x99)  # audio register write lands nowhere
    assert bus.read(0x4020) == 0x99


class ExpansionCart:
    """Cartridge that drives the bus everywhere from $4020 up and logs writes"""

    def __init__(self):
        self.writes = []

    def cpu_read(self, addr):
        return addr & 0xFF

    def cpu_write(self, addr, value):
        self.writes.append((addr, value))


def test_expansion_space_belongs_to_the_cartridge():
    cart = ExpansionCart()
    bus = Bus(cart, PPU())
    assert bus.read(0x4020) == 0x20
    assert bus.read(0x5ABC) == 0xBC
    assert bus.peek(0x5001) == 0x01

    bus.write(0x4000, 0x11)  # audio register
    bus.write(0x4018, 0x22)  # test-mode register
    bus.write(0x4020, 0x33)
    bus.write(0x5FFF, 0x44)
    assert cart.writes == [(0x4020, 0x33), (0x5FFF, 0x44)]

    bus.write(0x0010, 0x77)
    bus.read(0x0010)
    assert bus.read(0x4018) == 0x77


def test_nrom_leaves_expansion_space_open():
    bus, _ = cart_bus(bytes([0xEA]))
    bus.write(0x0010, 0x42)
    bus.read(0x0010)
    assert bus.read(0x5000) == 0x42
    assert bus.peek(0x4020) == 0x42
    bus.write(0x5000, 0x99)
    assert bus.read(0x6000) == 0x00


def test_prg_rom_and_mirroring_of_16k_image():
    bus, _ = cart_bus(bytes([0xEA, 0x12, 0x34]))
    assert bus.read(0x8000) == 0xEA
    assert bus.read(0xC001) == 0x12
    bus.write(0x8000, 0x00)  # ROM writes are dropped
    assert bus.read(0x8000) == 0xEA


def test_32k_image_is_not_mirrored():
    bus, _ = cart_bus(bytes([0x11]), prg_banks=2)
    assert bus.read(0x8000) == 0x11
    assert bus.read(0xC000) == 0x00


def test_prg_ram_window():
    bus, _ = cart_bus()
    bus.write(0x6000, 0xAB)
    bus.write(0x7FFF, 0xCD)
    assert bus.read(0x6000) == 0xAB
    assert bus.read(0x7FFF) == 0xCD


def test_read_u16_little_endian(machine):
    _, bus, _ = machine
    bus.write(0x0100, 0x34)
    bus.write(0x0101, 0x12)
    assert bus.read_u16(0x0100) == 0x1234


def test_oam_dma_copies_page_in_order(machine):
    _, bus, ppu = machine
    for i in range(256):
        bus.write(0x0200 + i, i)
    bus.write(0x4014, 0x02)
    assert bytes(ppu.oam) == bytes(range(256))
    assert bus.take_dma_cycles(10) == 513
    assert bus.take_dma_cycles(10) == 0


def test_oam_dma_starts_at_oam_addr(machine):
    _, bus, ppu = machine
    for i in range(256):
        bus.write(0x0300 + i, i)
    bus.write(0x2003, 0x04)
    bus.write(0x4014, 0x03)
    assert ppu.oam[4] == 0
    assert ppu.oam[3] == 0xFF
    assert ppu.oam_addr == 0x04
    assert bus.take_dma_cycles(11) == 514


def test_dma_stall_charged_by_step():
    """STA $4014 costs 4 cycles plus a 514-cycle stall on an odd cycle"""
    nes = make_nes(bytes([0xA9, 0x02, 0x8D, 0x14, 0x40]))
    for i in range(256):
        nes.bus.ram[0x200 + i] = 255 - i
    nes.step()
    assert nes.cpu.total_cycles == 9
    dots_before = nes.ppu.scanline * 341 + nes.ppu.cycle
    cycles = nes.step()
    assert cycles == 4 + 514
    assert nes.cpu.total_cycles == 13 + 514
    assert nes.ppu.scanline * 341 + nes.ppu.cycle - dots_before == cycles * 3
    assert nes.ppu.oam[0] == 255


def test_controller_protocol(machine):
    _, bus, _ = machine
    bus.controllers[0].set_buttons(0b10010101)  # A, Select, Up, Right
    bus.write(0x4016, 1)
    bus.write(0x4016, 0)
    bits = [bus.read(0x4016) & 1 for _ in range(8)]
    assert bits == [1, 0, 1, 0, 1, 0, 0, 1]
    assert bus.read(0x4016) & 1 == 1
    assert bus.read(0x4016) & 0x40


def test_controller_strobe_high_returns_a(machine):
    _, bus, _ = machine
    bus.controllers[1].set_buttons(0x01)
    bus.write(0x4016, 1)
    assert [bus.read(0x4017) & 1 for _ in range(4)] == [1, 1, 1, 1]


def test_peek_has_no_side_effects(machine):
    _, bus, ppu = machine
    ppu.status.vblank = True
    ppu.w = 1
    assert bus.peek(0x2002) & 0x80
    assert ppu.status.vblank
    assert ppu.w == 1

    bus.controllers[0].set_buttons(0xFF)
    bus.write(0x4016, 1)
    bus.write(0x4016, 0)
    bus.peek(0x4016)
    assert bus.controllers[0].index == 0

    bus.write(0x0005, 0x77)
    bus.read(0x0005)
    bus.peek(0x0006)
    assert bus.open_bus == 0x77


def test_state_round_trip(machine):
    _, bus, _ = machine
    bus.write(0x0123, 0x45)
    state = bus.get_state()
    bus.write(0x0123, 0x00)
    bus.set_state(state)
    assert bus.read(0x0123) == 0x45

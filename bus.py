"""
NES CPU Bus
Routes the 16-bit CPU address space to RAM, PPU ports, I/O and the cartridge
"""

from controller import Controller
from utils import debug_enabled, debug_print

RAM_SIZE = 0x800  # 2KB internal RAM, mirrored to $1FFF
OAM_DMA_CYCLES = 513  # +1 when the transfer starts on an odd CPU cycle


class Bus:
    def __init__(self, cartridge=None, ppu=None):
        self.ram = bytearray(RAM_SIZE)
        self.cartridge = cartridge  # Shared with the PPU
        self.ppu = ppu  # Register port only; PPU memory is private

        # Open bus state: last value driven on the data lines
        self.open_bus = 0

        self.controllers = [Controller(), Controller()]

        # OAM DMA stall waiting to be charged to the CPU
        self.dma_pending = False

    def set_cartridge(self, cartridge):
        """Set the cartridge reference"""
        self.cartridge = cartridge

    def reset(self):
        """Power-on state: clear RAM, the open-bus latch and any pending DMA"""
        self.ram = bytearray(RAM_SIZE)
        self.open_bus = 0
        self.dma_pending = False
        for controller in self.controllers:
            controller.write_strobe(0)

    def read(self, addr):
        """Read from CPU memory"""
        addr &= 0xFFFF

        if addr < 0x2000:
            # Internal RAM (mirrored every 2KB)
            self.open_bus = self.ram[addr & 0x7FF]
        elif addr < 0x4000:
            # PPU registers (mirrored every 8 bytes)
            self.open_bus = self.ppu.read_register(0x2000 + (addr & 7))
        elif addr == 0x4016 or addr == 0x4017:
            # Controller data in bit 0, bit 6 driven high, rest open bus
            bit = self.controllers[addr - 0x4016].read()
            self.open_bus = (self.open_bus & 0xE0) | 0x40 | bit
        elif addr < 0x4020:
            # APU/I-O registers are write-only here
            pass
        elif self.cartridge is not None:
            # $4020-$FFFF belongs to the cartridge; unmapped space leaves open bus
            value = self.cartridge.cpu_read(addr)
            if value is not None:
                self.open_bus = value
        return self.open_bus

    def write(self, addr, value):
        """Write to CPU memory"""
        addr &= 0xFFFF
        value &= 0xFF
        self.open_bus = value

        if addr < 0x2000:
            self.ram[addr & 0x7FF] = value
        elif addr < 0x4000:
            self.ppu.write_register(0x2000 + (addr & 7), value)
        elif addr == 0x4014:
            self.oam_dma(value)
        elif addr == 0x4016:
            # Strobe is shared by both ports
            for controller in self.controllers:
                controller.write_strobe(value)
        elif addr < 0x4020:
            # Audio registers are not emulated
            pass
        elif self.cartridge is not None:
            self.cartridge.cpu_write(addr, value)

    def oam_dma(self, page):
        """Copy 256 bytes from page*$100 into OAM starting at OAMADDR"""
        start_addr = page << 8
        oam = self.ppu.oam
        oam_addr = self.ppu.oam_addr
        for i in range(256):
            oam[(oam_addr + i) & 0xFF] = self.read(start_addr + i)
        self.dma_pending = True
        if debug_enabled("bus"):
            debug_print(f"OAM DMA from ${start_addr:04X}", "bus")

    def take_dma_cycles(self, cpu_cycle=0):
        """Return the DMA stall owed to the CPU (0 if none) and clear it.

        cpu_cycle is the CPU cycle count at which the transfer began; an odd
        count costs one extra alignment cycle.
        """
        if not self.dma_pending:
            return 0
        self.dma_pending = False
        return OAM_DMA_CYCLES + (cpu_cycle & 1)

    def read_u16(self, addr):
        """Little-endian 16-bit read, used for vectors"""
        lo = self.read(addr)
        hi = self.read((addr + 1) & 0xFFFF)
        return (hi << 8) | lo

    def peek(self, addr):
        """Read without side effects on PPU ports, controllers or open bus"""
        addr &= 0xFFFF
        if addr < 0x2000:
            return self.ram[addr & 0x7FF]
        if addr < 0x4000 and self.ppu is not None:
            return self.ppu.peek_register(0x2000 + (addr & 7))
        if addr >= 0x4020 and self.cartridge is not None:
            value = self.cartridge.cpu_read(addr)
            if value is not None:
                return value
        return self.open_bus

    def get_state(self):
        return {
            "ram": bytes(self.ram),
            "open_bus": self.open_bus,
            "dma_pending": self.dma_pending,
            "controllers": [c.get_state() for c in self.controllers],
            "prg_ram": bytes(self.cartridge.prg_ram) if self.cartridge else b"",
            "chr_ram": (
                bytes(self.cartridge.chr)
                if self.cartridge is not None and self.cartridge.chr_ram
                else b""
            ),
        }

    def set_state(self, state):
        self.ram = bytearray(state["ram"])
        self.open_bus = state["open_bus"]
        self.dma_pending = state["dma_pending"]
        for controller, saved in zip(self.controllers, state["controllers"]):
            controller.set_state(saved)
        if self.cartridge is not None:
            if state["prg_ram"]:
                self.cartridge.prg_ram[:] = state["prg_ram"]
            if self.cartridge.chr_ram and state["chr_ram"]:
                self.cartridge.chr[:] = state["chr_ram"]

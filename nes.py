"""
Main NES Emulator Class
Coordinates CPU, PPU and the Bus on a single clock
"""

from bus import Bus
from cartridge import ConstructionError, load_cartridge
from controller import buttons_to_byte
from cpu import CPU
from interrupt import irq_line, nmi_line
from ppu import PPU
from utils import debug_enabled, debug_print

# NTSC: the PPU runs exactly three dots per CPU cycle
PPU_TICKS_PER_CPU_CYCLE = 3

STATE_VERSION = 1


class NES:
    def __init__(self, cartridge=None):
        # Interrupt lines: vblank drives the NMI, nothing drives the IRQ yet
        self.nmi_line = nmi_line()
        self.irq_line = irq_line()

        # Initialize components; Bus and PPU never see the CPU
        self.ppu = PPU(cartridge, self.nmi_line)
        self.bus = Bus(cartridge, self.ppu)
        self.cpu = CPU(self.bus, self.nmi_line, self.irq_line)
        self.cartridge = None
        self.load_error = None  # Why the last load_rom() failed

        if cartridge is not None:
            self.insert_cartridge(cartridge)

    def insert_cartridge(self, cartridge):
        """Attach a validated CartridgeStore and reset; raises ConstructionError"""
        if cartridge is None:
            raise ConstructionError("No cartridge given")
        self.cartridge = cartridge
        self.bus.set_cartridge(cartridge)
        self.ppu.set_cartridge(cartridge)
        # Power-on: RAM and I/O latches start clean, unlike a soft reset
        self.bus.reset()
        self.reset()

    def load_rom(self, rom_path):
        """Load a ROM file and reset the machine.
        Returns True on success, False on failure; the reason is kept in load_error.
        """
        try:
            cartridge = load_cartridge(rom_path)
        except ConstructionError as e:
            self.load_error = str(e)
            debug_print(f"Failed to load ROM '{rom_path}': {e}", "nes")
            return False
        self.load_error = None
        self.insert_cartridge(cartridge)
        debug_print(f"ROM '{rom_path}' loaded ({cartridge!r})", "nes")
        return True

    def reset(self):
        """Reset CPU and PPU; the reset sequence itself runs 7 CPU cycles"""
        self.ppu.reset()
        cycles = self.cpu.reset()
        self._tick_ppu(cycles)
        debug_print(f"Reset complete, PC=0x{self.cpu.PC:04X}", "nes")

    def _tick_ppu(self, cpu_cycles):
        tick = self.ppu.tick
        for _ in range(cpu_cycles * PPU_TICKS_PER_CPU_CYCLE):
            tick()

    def step(self):
        """Run one CPU instruction (or interrupt) and the matching PPU dots.

        Returns the CPU cycles consumed, any OAM DMA stall included.
        """
        cycles = self.cpu.step()
        dma_cycles = self.bus.take_dma_cycles(self.cpu.total_cycles)
        if dma_cycles:
            self.cpu.add_dma_cycles(dma_cycles)
            cycles += dma_cycles
        self._tick_ppu(cycles)
        return cycles

    def step_frame(self):
        """Run until the PPU finishes a frame and return the frame buffer"""
        while not self.ppu.frame_complete:
            self.step()
        if debug_enabled("nes"):
            debug_print(
                f"Frame {self.ppu.frame} complete at CPU cycle {self.cpu.total_cycles}",
                "nes",
            )
        return self.ppu.take_frame()

    run_until_frame = step_frame

    def run_frames(self, count):
        """Run count frames, returning the last frame buffer"""
        frame = self.ppu.screen
        for _ in range(count):
            frame = self.step_frame()
        return frame

    def run_for_cycles(self, cycles):
        """Run whole instructions until at least `cycles` CPU cycles have passed"""
        executed = 0
        while executed < cycles:
            executed += self.step()
        return executed

    def run_instructions(self, count, callback=None):
        """Run count instructions, calling callback(nes) before each one"""
        executed = 0
        for _ in range(count):
            if callback is not None:
                callback(self)
            executed += self.step()
        return executed

    def set_controller_input(self, controller, buttons):
        """Set controller input
        controller: 1 or 2
        buttons: dict with keys 'A', 'B', 'Select', 'Start', 'Up', 'Down', 'Left', 'Right',
            or an 8-bit snapshot (A in bit 0 ... Right in bit 7)
        """
        if controller not in (1, 2):
            raise ValueError(f"Controller port must be 1 or 2, got {controller!r}")
        if isinstance(buttons, dict):
            buttons = buttons_to_byte(buttons)
        self.bus.controllers[controller - 1].set_buttons(buttons)

    def get_screen(self):
        """Get the current screen buffer"""
        return self.ppu.screen

    def is_frame_ready(self):
        return self.ppu.frame_complete

    def save_state(self):
        """Snapshot every piece of mutable state as a plain dict"""
        return {
            "version": STATE_VERSION,
            "cpu": self.cpu.get_state(),
            "bus": self.bus.get_state(),
            "ppu": self.ppu.get_state(),
        }

    def load_state(self, state):
        """Restore a snapshot produced by save_state()"""
        if state.get("version") != STATE_VERSION:
            raise ValueError(f"Unsupported save state version {state.get('version')!r}")
        self.cpu.set_state(state["cpu"])
        self.bus.set_state(state["bus"])
        self.ppu.set_state(state["ppu"])
        debug_print(f"State loaded, PC=0x{self.cpu.PC:04X}", "nes")

    def get_cpu_state(self):
        """Get CPU state for debugging"""
        return {
            "A": self.cpu.A,
            "X": self.cpu.X,
            "Y": self.cpu.Y,
            "PC": self.cpu.PC,
            "S": self.cpu.S,
            "C": self.cpu.C,
            "Z": self.cpu.Z,
            "I": self.cpu.I,
            "D": self.cpu.D,
            "B": self.cpu.B,
            "V": self.cpu.V,
            "N": self.cpu.N,
            "cycles": self.cpu.total_cycles,
        }

    def get_ppu_state(self):
        """Get PPU state for debugging"""
        return {
            "ctrl": self.ppu.ctrl.value,
            "mask": self.ppu.mask.value,
            "status": self.ppu.status.value,
            "scanline": self.ppu.scanline,
            "cycle": self.ppu.cycle,
            "frame": self.ppu.frame,
            "v": self.ppu.v,
            "t": self.ppu.t,
            "x": self.ppu.x,
            "w": self.ppu.w,
        }

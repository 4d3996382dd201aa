"""
NES 6502 CPU Emulator
Implements the MOS Technology 6502 core of the 2A03 (no decimal mode)
Each step() runs one whole instruction or interrupt sequence and returns its cycle cost
"""

from interrupt import INTERRUPT_CYCLES, RESET_VECTOR, irq_line, nmi_line
from utils import debug_enabled, debug_print

ADDRESSING_MODES = (
    "implied",
    "accumulator",
    "immediate",
    "zero_page",
    "zero_page_x",
    "zero_page_y",
    "absolute",
    "absolute_x",
    "absolute_y",
    "indirect",
    "indexed_indirect",
    "indirect_indexed",
    "relative",
)

# Read instructions pay +1 when indexing crosses a page
PAGE_PENALTY_OPS = frozenset(
    ["ADC", "AND", "CMP", "EOR", "LDA", "LDX", "LDY", "ORA", "SBC", "LAX", "LAS", "NOP"]
)
PAGE_PENALTY_MODES = frozenset(["absolute_x", "absolute_y", "indirect_indexed"])

# Opcodes with no entry (the JAM family) run as 1-byte no-ops costing this much
ILLEGAL_OPCODE_CYCLES = 2

# opcode: (operation, addressing mode, length, base cycles)
OPCODES = {
    # Load/Store
    0xA9: ("LDA", "immediate", 2, 2),
    0xA5: ("LDA", "zero_page", 2, 3),
    0xB5: ("LDA", "zero_page_x", 2, 4),
    0xAD: ("LDA", "absolute", 3, 4),
    0xBD: ("LDA", "absolute_x", 3, 4),
    0xB9: ("LDA", "absolute_y", 3, 4),
    0xA1: ("LDA", "indexed_indirect", 2, 6),
    0xB1: ("LDA", "indirect_indexed", 2, 5),
    0xA2: ("LDX", "immediate", 2, 2),
    0xA6: ("LDX", "zero_page", 2, 3),
    0xB6: ("LDX", "zero_page_y", 2, 4),
    0xAE: ("LDX", "absolute", 3, 4),
    0xBE: ("LDX", "absolute_y", 3, 4),
    0xA0: ("LDY", "immediate", 2, 2),
    0xA4: ("LDY", "zero_page", 2, 3),
    0xB4: ("LDY", "zero_page_x", 2, 4),
    0xAC: ("LDY", "absolute", 3, 4),
    0xBC: ("LDY", "absolute_x", 3, 4),
    0x85: ("STA", "zero_page", 2, 3),
    0x95: ("STA", "zero_page_x", 2, 4),
    0x8D: ("STA", "absolute", 3, 4),
    0x9D: ("STA", "absolute_x", 3, 5),
    0x99: ("STA", "absolute_y", 3, 5),
    0x81: ("STA", "indexed_indirect", 2, 6),
    0x91: ("STA", "indirect_indexed", 2, 6),
    0x86: ("STX", "zero_page", 2, 3),
    0x96: ("STX", "zero_page_y", 2, 4),
    0x8E: ("STX", "absolute", 3, 4),
    0x84: ("STY", "zero_page", 2, 3),
    0x94: ("STY", "zero_page_x", 2, 4),
    0x8C: ("STY", "absolute", 3, 4),
    # Transfer
    0xAA: ("TAX", "implied", 1, 2),
    0xA8: ("TAY", "implied", 1, 2),
    0xBA: ("TSX", "implied", 1, 2),
    0x8A: ("TXA", "implied", 1, 2),
    0x9A: ("TXS", "implied", 1, 2),
    0x98: ("TYA", "implied", 1, 2),
    # Stack
    0x48: ("PHA", "implied", 1, 3),
    0x68: ("PLA", "implied", 1, 4),
    0x08: ("PHP", "implied", 1, 3),
    0x28: ("PLP", "implied", 1, 4),
    # Arithmetic
    0x69: ("ADC", "immediate", 2, 2),
    0x65: ("ADC", "zero_page", 2, 3),
    0x75: ("ADC", "zero_page_x", 2, 4),
    0x6D: ("ADC", "absolute", 3, 4),
    0x7D: ("ADC", "absolute_x", 3, 4),
    0x79: ("ADC", "absolute_y", 3, 4),
    0x61: ("ADC", "indexed_indirect", 2, 6),
    0x71: ("ADC", "indirect_indexed", 2, 5),
    0xE9: ("SBC", "immediate", 2, 2),
    0xE5: ("SBC", "zero_page", 2, 3),
    0xF5: ("SBC", "zero_page_x", 2, 4),
    0xED: ("SBC", "absolute", 3, 4),
    0xFD: ("SBC", "absolute_x", 3, 4),
    0xF9: ("SBC", "absolute_y", 3, 4),
    0xE1: ("SBC", "indexed_indirect", 2, 6),
    0xF1: ("SBC", "indirect_indexed", 2, 5),
    # Logic
    0x29: ("AND", "immediate", 2, 2),
    0x25: ("AND", "zero_page", 2, 3),
    0x35: ("AND", "zero_page_x", 2, 4),
    0x2D: ("AND", "absolute", 3, 4),
    0x3D: ("AND", "absolute_x", 3, 4),
    0x39: ("AND", "absolute_y", 3, 4),
    0x21: ("AND", "indexed_indirect", 2, 6),
    0x31: ("AND", "indirect_indexed", 2, 5),
    0x49: ("EOR", "immediate", 2, 2),
    0x45: ("EOR", "zero_page", 2, 3),
    0x55: ("EOR", "zero_page_x", 2, 4),
    0x4D: ("EOR", "absolute", 3, 4),
    0x5D: ("EOR", "absolute_x", 3, 4),
    0x59: ("EOR", "absolute_y", 3, 4),
    0x41: ("EOR", "indexed_indirect", 2, 6),
    0x51: ("EOR", "indirect_indexed", 2, 5),
    0x09: ("ORA", "immediate", 2, 2),
    0x05: ("ORA", "zero_page", 2, 3),
    0x15: ("ORA", "zero_page_x", 2, 4),
    0x0D: ("ORA", "absolute", 3, 4),
    0x1D: ("ORA", "absolute_x", 3, 4),
    0x19: ("ORA", "absolute_y", 3, 4),
    0x01: ("ORA", "indexed_indirect", 2, 6),
    0x11: ("ORA", "indirect_indexed", 2, 5),
    0x24: ("BIT", "zero_page", 2, 3),
    0x2C: ("BIT", "absolute", 3, 4),
    # Shift/Rotate
    0x0A: ("ASL", "accumulator", 1, 2),
    0x06: ("ASL", "zero_page", 2, 5),
    0x16: ("ASL", "zero_page_x", 2, 6),
    0x0E: ("ASL", "absolute", 3, 6),
    0x1E: ("ASL", "absolute_x", 3, 7),
    0x4A: ("LSR", "accumulator", 1, 2),
    0x46: ("LSR", "zero_page", 2, 5),
    0x56: ("LSR", "zero_page_x", 2, 6),
    0x4E: ("LSR", "absolute", 3, 6),
    0x5E: ("LSR", "absolute_x", 3, 7),
    0x2A: ("ROL", "accumulator", 1, 2),
    0x26: ("ROL", "zero_page", 2, 5),
    0x36: ("ROL", "zero_page_x", 2, 6),
    0x2E: ("ROL", "absolute", 3, 6),
    0x3E: ("ROL", "absolute_x", 3, 7),
    0x6A: ("ROR", "accumulator", 1, 2),
    0x66: ("ROR", "zero_page", 2, 5),
    0x76: ("ROR", "zero_page_x", 2, 6),
    0x6E: ("ROR", "absolute", 3, 6),
    0x7E: ("ROR", "absolute_x", 3, 7),
    # Compare
    0xC9: ("CMP", "immediate", 2, 2),
    0xC5: ("CMP", "zero_page", 2, 3),
    0xD5: ("CMP", "zero_page_x", 2, 4),
    0xCD: ("CMP", "absolute", 3, 4),
    0xDD: ("CMP", "absolute_x", 3, 4),
    0xD9: ("CMP", "absolute_y", 3, 4),
    0xC1: ("CMP", "indexed_indirect", 2, 6),
    0xD1: ("CMP", "indirect_indexed", 2, 5),
    0xE0: ("CPX", "immediate", 2, 2),
    0xE4: ("CPX", "zero_page", 2, 3),
    0xEC: ("CPX", "absolute", 3, 4),
    0xC0: ("CPY", "immediate", 2, 2),
    0xC4: ("CPY", "zero_page", 2, 3),
    0xCC: ("CPY", "absolute", 3, 4),
    # Increment/Decrement
    0xE6: ("INC", "zero_page", 2, 5),
    0xF6: ("INC", "zero_page_x", 2, 6),
    0xEE: ("INC", "absolute", 3, 6),
    0xFE: ("INC", "absolute_x", 3, 7),
    0xC6: ("DEC", "zero_page", 2, 5),
    0xD6: ("DEC", "zero_page_x", 2, 6),
    0xCE: ("DEC", "absolute", 3, 6),
    0xDE: ("DEC", "absolute_x", 3, 7),
    0xE8: ("INX", "implied", 1, 2),
    0xC8: ("INY", "implied", 1, 2),
    0xCA: ("DEX", "implied", 1, 2),
    0x88: ("DEY", "implied", 1, 2),
    # Branches
    0x10: ("BPL", "relative", 2, 2),
    0x30: ("BMI", "relative", 2, 2),
    0x50: ("BVC", "relative", 2, 2),
    0x70: ("BVS", "relative", 2, 2),
    0x90: ("BCC", "relative", 2, 2),
    0xB0: ("BCS", "relative", 2, 2),
    0xD0: ("BNE", "relative", 2, 2),
    0xF0: ("BEQ", "relative", 2, 2),
    # Jumps and subroutines
    0x4C: ("JMP", "absolute", 3, 3),
    0x6C: ("JMP", "indirect", 3, 5),
    0x20: ("JSR", "absolute", 3, 6),
    0x60: ("RTS", "implied", 1, 6),
    0x00: ("BRK", "implied", 1, 7),
    0x40: ("RTI", "implied", 1, 6),
    # Flags
    0x18: ("CLC", "implied", 1, 2),
    0x38: ("SEC", "implied", 1, 2),
    0x58: ("CLI", "implied", 1, 2),
    0x78: ("SEI", "implied", 1, 2),
    0xB8: ("CLV", "implied", 1, 2),
    0xD8: ("CLD", "implied", 1, 2),
    0xF8: ("SED", "implied", 1, 2),
    0xEA: ("NOP", "implied", 1, 2),
    # Unofficial NOPs
    0x1A: ("NOP", "implied", 1, 2),
    0x3A: ("NOP", "implied", 1, 2),
    0x5A: ("NOP", "implied", 1, 2),
    0x7A: ("NOP", "implied", 1, 2),
    0xDA: ("NOP", "implied", 1, 2),
    0xFA: ("NOP", "implied", 1, 2),
    0x80: ("NOP", "immediate", 2, 2),
    0x82: ("NOP", "immediate", 2, 2),
    0x89: ("NOP", "immediate", 2, 2),
    0xC2: ("NOP", "immediate", 2, 2),
    0xE2: ("NOP", "immediate", 2, 2),
    0x04: ("NOP", "zero_page", 2, 3),
    0x44: ("NOP", "zero_page", 2, 3),
    0x64: ("NOP", "zero_page", 2, 3),
    0x14: ("NOP", "zero_page_x", 2, 4),
    0x34: ("NOP", "zero_page_x", 2, 4),
    0x54: ("NOP", "zero_page_x", 2, 4),
    0x74: ("NOP", "zero_page_x", 2, 4),
    0xD4: ("NOP", "zero_page_x", 2, 4),
    0xF4: ("NOP", "zero_page_x", 2, 4),
    0x0C: ("NOP", "absolute", 3, 4),
    0x1C: ("NOP", "absolute_x", 3, 4),
    0x3C: ("NOP", "absolute_x", 3, 4),
    0x5C: ("NOP", "absolute_x", 3, 4),
    0x7C: ("NOP", "absolute_x", 3, 4),
    0xDC: ("NOP", "absolute_x", 3, 4),
    0xFC: ("NOP", "absolute_x", 3, 4),
    # Unofficial loads/stores
    0xA7: ("LAX", "zero_page", 2, 3),
    0xB7: ("LAX", "zero_page_y", 2, 4),
    0xAF: ("LAX", "absolute", 3, 4),
    0xBF: ("LAX", "absolute_y", 3, 4),
    0xA3: ("LAX", "indexed_indirect", 2, 6),
    0xB3: ("LAX", "indirect_indexed", 2, 5),
    0xAB: ("LAX", "immediate", 2, 2),
    0x87: ("SAX", "zero_page", 2, 3),
    0x97: ("SAX", "zero_page_y", 2, 4),
    0x8F: ("SAX", "absolute", 3, 4),
    0x83: ("SAX", "indexed_indirect", 2, 6),
    0xEB: ("SBC", "immediate", 2, 2),
    # Unofficial read-modify-write combos
    0xC7: ("DCP", "zero_page", 2, 5),
    0xD7: ("DCP", "zero_page_x", 2, 6),
    0xCF: ("DCP", "absolute", 3, 6),
    0xDF: ("DCP", "absolute_x", 3, 7),
    0xDB: ("DCP", "absolute_y", 3, 7),
    0xC3: ("DCP", "indexed_indirect", 2, 8),
    0xD3: ("DCP", "indirect_indexed", 2, 8),
    0xE7: ("ISC", "zero_page", 2, 5),
    0xF7: ("ISC", "zero_page_x", 2, 6),
    0xEF: ("ISC", "absolute", 3, 6),
    0xFF: ("ISC", "absolute_x", 3, 7),
    0xFB: ("ISC", "absolute_y", 3, 7),
    0xE3: ("ISC", "indexed_indirect", 2, 8),
    0xF3: ("ISC", "indirect_indexed", 2, 8),
    0x07: ("SLO", "zero_page", 2, 5),
    0x17: ("SLO", "zero_page_x", 2, 6),
    0x0F: ("SLO", "absolute", 3, 6),
    0x1F: ("SLO", "absolute_x", 3, 7),
    0x1B: ("SLO", "absolute_y", 3, 7),
    0x03: ("SLO", "indexed_indirect", 2, 8),
    0x13: ("SLO", "indirect_indexed", 2, 8),
    0x27: ("RLA", "zero_page", 2, 5),
    0x37: ("RLA", "zero_page_x", 2, 6),
    0x2F: ("RLA", "absolute", 3, 6),
    0x3F: ("RLA", "absolute_x", 3, 7),
    0x3B: ("RLA", "absolute_y", 3, 7),
    0x23: ("RLA", "indexed_indirect", 2, 8),
    0x33: ("RLA", "indirect_indexed", 2, 8),
    0x47: ("SRE", "zero_page", 2, 5),
    0x57: ("SRE", "zero_page_x", 2, 6),
    0x4F: ("SRE", "absolute", 3, 6),
    0x5F: ("SRE", "absolute_x", 3, 7),
    0x5B: ("SRE", "absolute_y", 3, 7),
    0x43: ("SRE", "indexed_indirect", 2, 8),
    0x53: ("SRE", "indirect_indexed", 2, 8),
    0x67: ("RRA", "zero_page", 2, 5),
    0x77: ("RRA", "zero_page_x", 2, 6),
    0x6F: ("RRA", "absolute", 3, 6),
    0x7F: ("RRA", "absolute_x", 3, 7),
    0x7B: ("RRA", "absolute_y", 3, 7),
    0x63: ("RRA", "indexed_indirect", 2, 8),
    0x73: ("RRA", "indirect_indexed", 2, 8),
    # Unofficial immediates
    0x0B: ("ANC", "immediate", 2, 2),
    0x2B: ("ANC", "immediate", 2, 2),
    0x4B: ("ALR", "immediate", 2, 2),
    0x6B: ("ARR", "immediate", 2, 2),
    0xCB: ("AXS", "immediate", 2, 2),
    0x8B: ("XAA", "immediate", 2, 2),
    # Unstable high-byte stores
    0xBB: ("LAS", "absolute_y", 3, 4),
    0x9B: ("TAS", "absolute_y", 3, 5),
    0x9C: ("SHY", "absolute_x", 3, 5),
    0x9E: ("SHX", "absolute_y", 3, 5),
    0x9F: ("AHX", "absolute_y", 3, 5),
    0x93: ("AHX", "indirect_indexed", 2, 6),
}

# Unofficial mnemonics, marked with * in traces
UNOFFICIAL_OPCODES = frozenset(
    [0x1A, 0x3A, 0x5A, 0x7A, 0xDA, 0xFA, 0x80, 0x82, 0x89, 0xC2, 0xE2,
     0x04, 0x44, 0x64, 0x14, 0x34, 0x54, 0x74, 0xD4, 0xF4,
     0x0C, 0x1C, 0x3C, 0x5C, 0x7C, 0xDC, 0xFC, 0xEB]
    + [op for op, entry in OPCODES.items() if entry[0] in (
        "LAX", "SAX", "DCP", "ISC", "SLO", "RLA", "SRE", "RRA",
        "ANC", "ALR", "ARR", "AXS", "XAA", "LAS", "TAS", "SHY", "SHX", "AHX")]
)


class CPU:
    def __init__(self, bus, nmi=None, irq=None, opcodes=None):
        self.bus = bus

        # Registers
        self.A = 0  # Accumulator
        self.X = 0  # X Register
        self.Y = 0  # Y Register
        self.PC = 0  # Program Counter
        self.S = 0xFD  # Stack Pointer

        # Status flags (P register)
        self.C = 0  # Carry flag
        self.Z = 0  # Zero flag
        self.I = 1  # Interrupt disable
        self.D = 0  # Decimal mode (stored, never used by ADC/SBC)
        self.B = 0  # Break flag
        self.V = 0  # Overflow flag
        self.N = 0  # Negative flag

        # Cycle tracking
        self.total_cycles = 0  # Every cycle executed, DMA stalls included
        self.illegal_opcode_count = 0

        # Interrupt lines; the NES wires the PPU to nmi_line
        self.nmi_line = nmi if nmi is not None else nmi_line()
        self.irq_line = irq if irq is not None else irq_line()

        self.instructions = OPCODES if opcodes is None else opcodes
        self.instruction_dispatch = self._build_dispatch(self.instructions)

    def _build_dispatch(self, instructions):
        """Resolve every table entry to bound handlers, rejecting malformed ones"""
        resolvers = {mode: getattr(self, f"addr_{mode}") for mode in ADDRESSING_MODES}
        dispatch = {}
        for opcode, entry in instructions.items():
            if not 0 <= opcode <= 0xFF:
                raise ValueError(f"Opcode out of range: {opcode!r}")
            if len(entry) != 4:
                raise ValueError(f"Opcode 0x{opcode:02X}: expected 4 fields, got {entry!r}")
            instruction, addressing_mode, length, cycles = entry
            handler = getattr(self, f"execute_{str(instruction).lower()}", None)
            if handler is None:
                raise ValueError(f"Opcode 0x{opcode:02X}: unknown operation {instruction!r}")
            if addressing_mode not in resolvers:
                raise ValueError(
                    f"Opcode 0x{opcode:02X}: unknown addressing mode {addressing_mode!r}"
                )
            if length not in (1, 2, 3) or cycles <= 0:
                raise ValueError(f"Opcode 0x{opcode:02X}: bad length/cycles {entry!r}")
            page_penalty = (
                instruction in PAGE_PENALTY_OPS and addressing_mode in PAGE_PENALTY_MODES
            )
            dispatch[opcode] = (
                handler,
                resolvers[addressing_mode],
                addressing_mode,
                length,
                cycles,
                page_penalty,
            )
        return dispatch

    def reset(self):
        """Reset the CPU and load PC from the reset vector; costs 7 cycles"""
        self.A = 0
        self.X = 0
        self.Y = 0
        self.S = 0xFD
        self.C = 0
        self.Z = 0
        self.I = 1
        self.D = 0
        self.B = 0
        self.V = 0
        self.N = 0

        self.PC = self.bus.read_u16(RESET_VECTOR)
        self.total_cycles = INTERRUPT_CYCLES
        self.illegal_opcode_count = 0
        self.nmi_line.clear()
        self.irq_line.clear()
        debug_print(f"Reset, PC=0x{self.PC:04X}", "cpu")
        return INTERRUPT_CYCLES

    def step(self):
        """Run one instruction (or service one interrupt) and return its cycle cost"""
        for line in (self.nmi_line, self.irq_line):
            if line.pending and (not line.maskable or not self.I):
                cycles = self._handle_interrupt(line)
                break
        else:
            cycles = self.run_instruction()
        self.total_cycles += cycles
        return cycles

    def run_instruction(self):
        pc = self.PC
        opcode = self.bus.read(pc)
        entry = self.instruction_dispatch.get(opcode)
        if entry is None:
            # JAM opcodes: keep going instead of halting the machine
            self.illegal_opcode_count += 1
            self.PC = (pc + 1) & 0xFFFF
            if debug_enabled("cpu"):
                debug_print(f"Illegal opcode 0x{opcode:02X} at PC=0x{pc:04X}", "cpu")
            return ILLEGAL_OPCODE_CYCLES

        handler, resolve, addressing_mode, length, cycles, page_penalty = entry
        address, page_crossed = resolve(pc)
        self.PC = (pc + length) & 0xFFFF

        extra_cycles = handler(address, addressing_mode)
        if extra_cycles:
            cycles += extra_cycles
        if page_penalty and page_crossed:
            cycles += 1
        return cycles

    def _handle_interrupt(self, line):
        """Push PC and status, set I, and jump through the line's vector"""
        old_pc = self.PC
        self.push_stack((self.PC >> 8) & 0xFF)
        self.push_stack(self.PC & 0xFF)
        # Hardware interrupts push B clear and bit 5 set
        self.push_stack((self.get_status_byte() & 0xCF) | 0x20)
        self.I = 1
        self.PC = self.bus.read_u16(line.vector)
        line.clear()
        if debug_enabled("cpu"):
            debug_print(
                f"{line.name}: 0x{old_pc:04X} -> handler 0x{self.PC:04X}", "cpu"
            )
        return INTERRUPT_CYCLES

    def add_dma_cycles(self, cycles):
        """Account for cycles the CPU spent halted by OAM DMA"""
        self.total_cycles += cycles

    # Status register

    def get_status_byte(self):
        """Get the status register as a byte"""
        return (
            (self.N << 7)
            | (self.V << 6)
            | (1 << 5)
            | (self.B << 4)
            | (self.D << 3)
            | (self.I << 2)
            | (self.Z << 1)
            | self.C
        )

    def set_status_byte(self, value):
        """Set the status register from a byte"""
        self.N = (value >> 7) & 1
        self.V = (value >> 6) & 1
        self.B = (value >> 4) & 1
        self.D = (value >> 3) & 1
        self.I = (value >> 2) & 1
        self.Z = (value >> 1) & 1
        self.C = value & 1

    def _pull_status(self):
        # Bits 4 and 5 do not exist in the register; keep ours
        status = self.pop_stack()
        self.set_status_byte((status & 0xCF) | (self.get_status_byte() & 0x30))

    def set_zero_negative(self, value):
        """Set zero and negative flags based on value"""
        self.Z = 1 if value == 0 else 0
        self.N = 1 if value & 0x80 else 0

    # Stack (page 1, wraps silently)

    def push_stack(self, value):
        """Push a byte onto the stack"""
        self.bus.write(0x0100 + self.S, value)
        self.S = (self.S - 1) & 0xFF

    def pop_stack(self):
        """Pop a byte from the stack"""
        self.S = (self.S + 1) & 0xFF
        return self.bus.read(0x0100 + self.S)

    # Addressing modes: each takes the opcode address and returns
    # (effective address, page crossed)

    def addr_implied(self, pc):
        return None, False

    def addr_accumulator(self, pc):
        return None, False

    def addr_immediate(self, pc):
        return (pc + 1) & 0xFFFF, False

    def addr_zero_page(self, pc):
        return self.bus.read((pc + 1) & 0xFFFF), False

    def addr_zero_page_x(self, pc):
        return (self.bus.read((pc + 1) & 0xFFFF) + self.X) & 0xFF, False

    def addr_zero_page_y(self, pc):
        return (self.bus.read((pc + 1) & 0xFFFF) + self.Y) & 0xFF, False

    def addr_absolute(self, pc):
        return self.bus.read_u16((pc + 1) & 0xFFFF), False

    def addr_absolute_x(self, pc):
        base = self.bus.read_u16((pc + 1) & 0xFFFF)
        addr = (base + self.X) & 0xFFFF
        return addr, (base & 0xFF00) != (addr & 0xFF00)

    def addr_absolute_y(self, pc):
        base = self.bus.read_u16((pc + 1) & 0xFFFF)
        addr = (base + self.Y) & 0xFFFF
        return addr, (base & 0xFF00) != (addr & 0xFF00)

    def addr_indirect(self, pc):
        pointer = self.bus.read_u16((pc + 1) & 0xFFFF)
        low = self.bus.read(pointer)
        # 6502 bug: the high byte is fetched without carrying into the page
        high = self.bus.read((pointer & 0xFF00) | ((pointer + 1) & 0xFF))
        return (high << 8) | low, False

    def addr_indexed_indirect(self, pc):
        pointer = (self.bus.read((pc + 1) & 0xFFFF) + self.X) & 0xFF
        low = self.bus.read(pointer)
        high = self.bus.read((pointer + 1) & 0xFF)
        return (high << 8) | low, False

    def addr_indirect_indexed(self, pc):
        pointer = self.bus.read((pc + 1) & 0xFFFF)
        low = self.bus.read(pointer)
        high = self.bus.read((pointer + 1) & 0xFF)
        base = (high << 8) | low
        addr = (base + self.Y) & 0xFFFF
        return addr, (base & 0xFF00) != (addr & 0xFF00)

    def addr_relative(self, pc):
        offset = self.bus.read((pc + 1) & 0xFFFF)
        if offset & 0x80:
            offset -= 256
        return (pc + 2 + offset) & 0xFFFF, False

    # Shared ALU helpers

    def _adc(self, value):
        result = self.A + value + self.C
        self.V = 1 if ((self.A ^ result) & (value ^ result) & 0x80) else 0
        self.C = 1 if result > 0xFF else 0
        self.A = result & 0xFF
        self.set_zero_negative(self.A)

    def _sbc(self, value):
        self._adc(value ^ 0xFF)

    def _compare(self, register, value):
        self.C = 1 if register >= value else 0
        self.set_zero_negative((register - value) & 0xFF)

    def _read_modify_write(self, operand, addressing_mode, operation):
        """Apply operation to A or memory, with the hardware's dummy write"""
        if addressing_mode == "accumulator":
            self.A = operation(self.A)
            return self.A
        value = self.bus.read(operand)
        self.bus.write(operand, value)
        value = operation(value)
        self.bus.write(operand, value)
        return value

    def _asl(self, value):
        self.C = (value >> 7) & 1
        value = (value << 1) & 0xFF
        self.set_zero_negative(value)
        return value

    def _lsr(self, value):
        self.C = value & 1
        value >>= 1
        self.set_zero_negative(value)
        return value

    def _rol(self, value):
        carry = self.C
        self.C = (value >> 7) & 1
        value = ((value << 1) | carry) & 0xFF
        self.set_zero_negative(value)
        return value

    def _ror(self, value):
        carry = self.C
        self.C = value & 1
        value = (value >> 1) | (carry << 7)
        self.set_zero_negative(value)
        return value

    def _branch(self, condition, target):
        """Returns the extra cycles: +1 taken, +1 more across a page"""
        if not condition:
            return 0
        extra = 2 if (self.PC & 0xFF00) != (target & 0xFF00) else 1
        self.PC = target
        return extra

    # Load/Store

    def execute_lda(self, operand, addressing_mode):
        self.A = self.bus.read(operand)
        self.set_zero_negative(self.A)

    def execute_ldx(self, operand, addressing_mode):
        self.X = self.bus.read(operand)
        self.set_zero_negative(self.X)

    def execute_ldy(self, operand, addressing_mode):
        self.Y = self.bus.read(operand)
        self.set_zero_negative(self.Y)

    def execute_sta(self, operand, addressing_mode):
        self.bus.write(operand, self.A)

    def execute_stx(self, operand, addressing_mode):
        self.bus.write(operand, self.X)

    def execute_sty(self, operand, addressing_mode):
        self.bus.write(operand, self.Y)

    # Transfer

    def execute_tax(self, operand, addressing_mode):
        self.X = self.A
        self.set_zero_negative(self.X)

    def execute_tay(self, operand, addressing_mode):
        self.Y = self.A
        self.set_zero_negative(self.Y)

    def execute_tsx(self, operand, addressing_mode):
        self.X = self.S
        self.set_zero_negative(self.X)

    def execute_txa(self, operand, addressing_mode):
        self.A = self.X
        self.set_zero_negative(self.A)

    def execute_txs(self, operand, addressing_mode):
        self.S = self.X

    def execute_tya(self, operand, addressing_mode):
        self.A = self.Y
        self.set_zero_negative(self.A)

    # Stack

    def execute_pha(self, operand, addressing_mode):
        self.push_stack(self.A)

    def execute_pla(self, operand, addressing_mode):
        self.A = self.pop_stack()
        self.set_zero_negative(self.A)

    def execute_php(self, operand, addressing_mode):
        # B and bit 5 are always set when pushed by PHP
        self.push_stack(self.get_status_byte() | 0x30)

    def execute_plp(self, operand, addressing_mode):
        self._pull_status()

    # Arithmetic and logic

    def execute_adc(self, operand, addressing_mode):
        self._adc(self.bus.read(operand))

    def execute_sbc(self, operand, addressing_mode):
        self._sbc(self.bus.read(operand))

    def execute_and(self, operand, addressing_mode):
        self.A &= self.bus.read(operand)
        self.set_zero_negative(self.A)

    def execute_eor(self, operand, addressing_mode):
        self.A ^= self.bus.read(operand)
        self.set_zero_negative(self.A)

    def execute_ora(self, operand, addressing_mode):
        self.A |= self.bus.read(operand)
        self.set_zero_negative(self.A)

    def execute_bit(self, operand, addressing_mode):
        """Bit Test - Z from A & M, V and N copied from bits 6 and 7 of M"""
        value = self.bus.read(operand)
        self.Z = 1 if (self.A & value) == 0 else 0
        self.V = (value >> 6) & 1
        self.N = (value >> 7) & 1

    def execute_cmp(self, operand, addressing_mode):
        self._compare(self.A, self.bus.read(operand))

    def execute_cpx(self, operand, addressing_mode):
        self._compare(self.X, self.bus.read(operand))

    def execute_cpy(self, operand, addressing_mode):
        self._compare(self.Y, self.bus.read(operand))

    # Shift/Rotate

    def execute_asl(self, operand, addressing_mode):
        self._read_modify_write(operand, addressing_mode, self._asl)

    def execute_lsr(self, operand, addressing_mode):
        self._read_modify_write(operand, addressing_mode, self._lsr)

    def execute_rol(self, operand, addressing_mode):
        self._read_modify_write(operand, addressing_mode, self._rol)

    def execute_ror(self, operand, addressing_mode):
        self._read_modify_write(operand, addressing_mode, self._ror)

    # Increment/Decrement

    def execute_inc(self, operand, addressing_mode):
        value = self._read_modify_write(operand, addressing_mode, lambda v: (v + 1) & 0xFF)
        self.set_zero_negative(value)

    def execute_dec(self, operand, addressing_mode):
        value = self._read_modify_write(operand, addressing_mode, lambda v: (v - 1) & 0xFF)
        self.set_zero_negative(value)

    def execute_inx(self, operand, addressing_mode):
        self.X = (self.X + 1) & 0xFF
        self.set_zero_negative(self.X)

    def execute_iny(self, operand, addressing_mode):
        self.Y = (self.Y + 1) & 0xFF
        self.set_zero_negative(self.Y)

    def execute_dex(self, operand, addressing_mode):
        self.X = (self.X - 1) & 0xFF
        self.set_zero_negative(self.X)

    def execute_dey(self, operand, addressing_mode):
        self.Y = (self.Y - 1) & 0xFF
        self.set_zero_negative(self.Y)

    # Branches

    def execute_bpl(self, operand, addressing_mode):
        return self._branch(not self.N, operand)

    def execute_bmi(self, operand, addressing_mode):
        return self._branch(self.N, operand)

    def execute_bvc(self, operand, addressing_mode):
        return self._branch(not self.V, operand)

    def execute_bvs(self, operand, addressing_mode):
        return self._branch(self.V, operand)

    def execute_bcc(self, operand, addressing_mode):
        return self._branch(not self.C, operand)

    def execute_bcs(self, operand, addressing_mode):
        return self._branch(self.C, operand)

    def execute_bne(self, operand, addressing_mode):
        return self._branch(not self.Z, operand)

    def execute_beq(self, operand, addressing_mode):
        return self._branch(self.Z, operand)

    # Jumps and subroutines

    def execute_jmp(self, operand, addressing_mode):
        self.PC = operand

    def execute_jsr(self, operand, addressing_mode):
        # Push the address of the last byte of the JSR
        return_addr = (self.PC - 1) & 0xFFFF
        self.push_stack((return_addr >> 8) & 0xFF)
        self.push_stack(return_addr & 0xFF)
        self.PC = operand

    def execute_rts(self, operand, addressing_mode):
        low = self.pop_stack()
        high = self.pop_stack()
        self.PC = (((high << 8) | low) + 1) & 0xFFFF

    def execute_brk(self, operand, addressing_mode):
        # BRK skips a padding byte
        return_addr = (self.PC + 1) & 0xFFFF
        self.push_stack((return_addr >> 8) & 0xFF)
        self.push_stack(return_addr & 0xFF)
        self.push_stack(self.get_status_byte() | 0x30)
        self.I = 1
        self.PC = self.bus.read_u16(0xFFFE)

    def execute_rti(self, operand, addressing_mode):
        self._pull_status()
        low = self.pop_stack()
        high = self.pop_stack()
        self.PC = (high << 8) | low

    # Flags

    def execute_clc(self, operand, addressing_mode):
        self.C = 0

    def execute_sec(self, operand, addressing_mode):
        self.C = 1

    def execute_cli(self, operand, addressing_mode):
        self.I = 0

    def execute_sei(self, operand, addressing_mode):
        self.I = 1

    def execute_clv(self, operand, addressing_mode):
        self.V = 0

    def execute_cld(self, operand, addressing_mode):
        self.D = 0

    def execute_sed(self, operand, addressing_mode):
        self.D = 1

    def execute_nop(self, operand, addressing_mode):
        # Multi-byte NOPs still perform their read
        if operand is not None:
            self.bus.read(operand)

    # Unofficial opcodes

    def execute_lax(self, operand, addressing_mode):
        """Load Accumulator and X with the same value"""
        value = self.bus.read(operand)
        self.A = value
        self.X = value
        self.set_zero_negative(value)

    def execute_sax(self, operand, addressing_mode):
        """Store A & X"""
        self.bus.write(operand, self.A & self.X)

    def execute_dcp(self, operand, addressing_mode):
        """DEC memory then CMP"""
        value = self._read_modify_write(operand, addressing_mode, lambda v: (v - 1) & 0xFF)
        self._compare(self.A, value)

    def execute_isc(self, operand, addressing_mode):
        """INC memory then SBC"""
        value = self._read_modify_write(operand, addressing_mode, lambda v: (v + 1) & 0xFF)
        self._sbc(value)

    def execute_slo(self, operand, addressing_mode):
        """ASL memory then ORA"""
        self.A |= self._read_modify_write(operand, addressing_mode, self._asl)
        self.set_zero_negative(self.A)

    def execute_rla(self, operand, addressing_mode):
        """ROL memory then AND"""
        self.A &= self._read_modify_write(operand, addressing_mode, self._rol)
        self.set_zero_negative(self.A)

    def execute_sre(self, operand, addressing_mode):
        """LSR memory then EOR"""
        self.A ^= self._read_modify_write(operand, addressing_mode, self._lsr)
        self.set_zero_negative(self.A)

    def execute_rra(self, operand, addressing_mode):
        """ROR memory then ADC"""
        self._adc(self._read_modify_write(operand, addressing_mode, self._ror))

    def execute_anc(self, operand, addressing_mode):
        self.A &= self.bus.read(operand)
        self.set_zero_negative(self.A)
        self.C = self.N

    def execute_alr(self, operand, addressing_mode):
        """AND then LSR A"""
        self.A = self._lsr(self.A & self.bus.read(operand))

    def execute_arr(self, operand, addressing_mode):
        """AND then ROR A, with C and V taken from bits 6 and 5"""
        value = self.A & self.bus.read(operand)
        self.A = (value >> 1) | (self.C << 7)
        self.set_zero_negative(self.A)
        self.C = (self.A >> 6) & 1
        self.V = ((self.A >> 6) ^ (self.A >> 5)) & 1

    def execute_axs(self, operand, addressing_mode):
        """X = (A & X) - imm, flags as CMP"""
        value = self.bus.read(operand)
        base = self.A & self.X
        self.C = 1 if base >= value else 0
        self.X = (base - value) & 0xFF
        self.set_zero_negative(self.X)

    def execute_xaa(self, operand, addressing_mode):
        self.A = (self.A | 0xEE) & self.X & self.bus.read(operand)
        self.set_zero_negative(self.A)

    def execute_las(self, operand, addressing_mode):
        value = self.bus.read(operand) & self.S
        self.A = value
        self.X = value
        self.S = value
        self.set_zero_negative(value)

    def _store_high_and(self, operand, value):
        self.bus.write(operand, value & (((operand >> 8) + 1) & 0xFF))

    def execute_tas(self, operand, addressing_mode):
        self.S = self.A & self.X
        self._store_high_and(operand, self.S)

    def execute_shy(self, operand, addressing_mode):
        self._store_high_and(operand, self.Y)

    def execute_shx(self, operand, addressing_mode):
        self._store_high_and(operand, self.X)

    def execute_ahx(self, operand, addressing_mode):
        self._store_high_and(operand, self.A & self.X)

    # Save state

    def get_state(self):
        return {
            "A": self.A,
            "X": self.X,
            "Y": self.Y,
            "PC": self.PC,
            "S": self.S,
            "P": self.get_status_byte(),
            "total_cycles": self.total_cycles,
            "illegal_opcode_count": self.illegal_opcode_count,
            "nmi_pending": self.nmi_line.pending,
            "irq_pending": self.irq_line.pending,
        }

    def set_state(self, state):
        self.A = state["A"]
        self.X = state["X"]
        self.Y = state["Y"]
        self.PC = state["PC"]
        self.S = state["S"]
        self.set_status_byte(state["P"])
        self.total_cycles = state["total_cycles"]
        self.illegal_opcode_count = state["illegal_opcode_count"]
        self.nmi_line.pending = state["nmi_pending"]
        self.irq_line.pending = state["irq_pending"]

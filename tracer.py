"""
Instruction disassembly and nestest-style execution traces
All memory access goes through Bus.peek so tracing never disturbs the machine
"""

from cpu import OPCODES, UNOFFICIAL_OPCODES
from utils import hex_bytes


def _format_operand(addressing_mode, addr, operand_bytes):
    if addressing_mode == "implied":
        return ""
    if addressing_mode == "accumulator":
        return "A"
    low = operand_bytes[0] if operand_bytes else 0
    word = (operand_bytes[1] << 8 | low) if len(operand_bytes) > 1 else low
    if addressing_mode == "immediate":
        return f"#${low:02X}"
    if addressing_mode == "zero_page":
        return f"${low:02X}"
    if addressing_mode == "zero_page_x":
        return f"${low:02X},X"
    if addressing_mode == "zero_page_y":
        return f"${low:02X},Y"
    if addressing_mode == "absolute":
        return f"${word:04X}"
    if addressing_mode == "absolute_x":
        return f"${word:04X},X"
    if addressing_mode == "absolute_y":
        return f"${word:04X},Y"
    if addressing_mode == "indirect":
        return f"(${word:04X})"
    if addressing_mode == "indexed_indirect":
        return f"(${low:02X},X)"
    if addressing_mode == "indirect_indexed":
        return f"(${low:02X}),Y"
    if addressing_mode == "relative":
        offset = low - 256 if low & 0x80 else low
        return f"${(addr + 2 + offset) & 0xFFFF:04X}"
    raise ValueError(f"Unknown addressing mode {addressing_mode!r}")


def decode(bus, addr, opcodes=OPCODES):
    """Return (raw bytes, mnemonic, operand text, unofficial) for one instruction"""
    opcode = bus.peek(addr)
    entry = opcodes.get(opcode)
    if entry is None:
        return [opcode], "JAM", "", True
    instruction, addressing_mode, length, _ = entry
    raw = [bus.peek((addr + i) & 0xFFFF) for i in range(length)]
    operand = _format_operand(addressing_mode, addr, raw[1:])
    return raw, instruction, operand, opcode in UNOFFICIAL_OPCODES


def disassemble(bus, addr):
    """Disassemble one instruction, returning (text, length)"""
    raw, instruction, operand, _ = decode(bus, addr)
    text = f"{instruction} {operand}" if operand else instruction
    return text, len(raw)


def disassemble_range(bus, start, count):
    """Disassemble count instructions starting at start, as (addr, text) pairs"""
    lines = []
    addr = start & 0xFFFF
    for _ in range(count):
        text, length = disassemble(bus, addr)
        lines.append((addr, text))
        addr = (addr + length) & 0xFFFF
    return lines


def trace_line(cpu):
    """Format the instruction at cpu.PC and the register file like nestest.log"""
    raw, instruction, operand, unofficial = decode(cpu.bus, cpu.PC)
    text = f"{instruction} {operand}" if operand else instruction
    marker = "*" if unofficial else " "
    return (
        f"{cpu.PC:04X}  {hex_bytes(raw):<8} {marker}{text:<31} "
        f"A:{cpu.A:02X} X:{cpu.X:02X} Y:{cpu.Y:02X} P:{cpu.get_status_byte():02X} "
        f"SP:{cpu.S:02X} CYC:{cpu.total_cycles}"
    )


class Tracer:
    """Collects trace lines; pass to NES.run_instructions as the callback"""

    def __init__(self, stream=None, limit=None):
        self.stream = stream
        self.limit = limit
        self.lines = []

    def __call__(self, nes):
        line = trace_line(nes.cpu)
        if self.stream is not None:
            self.stream.write(line + "\n")
        else:
            if self.limit is not None and len(self.lines) >= self.limit:
                self.lines.pop(0)
            self.lines.append(line)

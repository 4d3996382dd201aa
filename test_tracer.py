#!/usr/bin/env python3
"""
Disassembler and nestest-style trace tests
"""

import io

import pytest

from conftest import make_nes
from tracer import Tracer, decode, disassemble, disassemble_range, trace_line


@pytest.mark.parametrize(
    "program, text, length",
    [
        ([0xA9, 0x01], "LDA #$01", 2),
        ([0x8D, 0x00, 0x02], "STA $0200", 3),
        ([0xB5, 0x80], "LDA $80,X", 2),
        ([0xB6, 0x80], "LDX $80,Y", 2),
        ([0xBD, 0x34, 0x12], "LDA $1234,X", 3),
        ([0xB9, 0x34, 0x12], "LDA $1234,Y", 3),
        ([0xA1, 0x20], "LDA ($20,X)", 2),
        ([0xB1, 0x20], "LDA ($20),Y", 2),
        ([0x6C, 0xFF, 0x02], "JMP ($02FF)", 3),
        ([0x4A], "LSR A", 1),
        ([0xEA], "NOP", 1),
        ([0xD0, 0xFE], "BNE $8000", 2),
        ([0xF0, 0x04], "BEQ $8006", 2),
    ],
)
def test_disassemble_modes(program, text, length):
    nes = make_nes(bytes(program))
    assert disassemble(nes.bus, 0x8000) == (text, length)


def test_unofficial_and_jam_decode():
    nes = make_nes(bytes([0xA7, 0x10, 0x02]))
    raw, mnemonic, operand, unofficial = decode(nes.bus, 0x8000)
    assert (raw, mnemonic, operand, unofficial) == ([0xA7, 0x10], "LAX", "$10", True)
    raw, mnemonic, _, unofficial = decode(nes.bus, 0x8002)
    assert (raw, mnemonic, unofficial) == ([0x02], "JAM", True)


def test_disassemble_range():
    nes = make_nes(bytes([0xA9, 0x01, 0x8D, 0x00, 0x02, 0xEA]))
    assert disassemble_range(nes.bus, 0x8000, 3) == [
        (0x8000, "LDA #$01"),
        (0x8002, "STA $0200"),
        (0x8005, "NOP"),
    ]


def test_trace_line_matches_nestest_layout():
    nes = make_nes(bytes([0x4C, 0xF5, 0xC5]))
    expected = (
        "8000  4C F5 C5  JMP $C5F5" + " " * 22
        + " A:00 X:00 Y:00 P:24 SP:FD CYC:7"
    )
    assert trace_line(nes.cpu) == expected


def test_trace_line_marks_unofficial_opcodes():
    nes = make_nes(bytes([0x04, 0x10]))
    line = trace_line(nes.cpu)
    assert line.startswith("8000  04 10    *NOP $10")


def test_tracing_does_not_disturb_ppu():
    nes = make_nes(bytes([0xAD, 0x02, 0x20]))  # LDA $2002
    nes.ppu.status.vblank = True
    trace_line(nes.cpu)
    assert nes.ppu.status.vblank
    nes.step()
    assert not nes.ppu.status.vblank


def test_tracer_collects_lines():
    nes = make_nes(bytes([0xA9, 0x01, 0xEA, 0xEA, 0xEA]))
    tracer = Tracer(limit=2)
    nes.run_instructions(4, callback=tracer)
    assert len(tracer.lines) == 2
    assert tracer.lines[-1].startswith("8004  EA")
    assert "CYC:13" in tracer.lines[-1]


def test_tracer_writes_to_stream():
    nes = make_nes(bytes([0xA9, 0x01, 0xEA]))
    stream = io.StringIO()
    nes.run_instructions(2, callback=Tracer(stream))
    lines = stream.getvalue().splitlines()
    assert len(lines) == 2
    assert lines[1].startswith("8002  EA")
    assert "A:01" in lines[1]

#!/usr/bin/env python3
"""
Clock coordinator tests: CPU/PPU lockstep, frames, interrupts, input and save states
"""

import pytest

from cartridge import ConstructionError, parse_ines
from conftest import build_ines, make_nes
from nes import NES, PPU_TICKS_PER_CPU_CYCLE

# LDA #$80 / STA $2000 / JMP $8005, NMI handler at $8010: INC $10 / RTI
NMI_PROGRAM = bytes(
    [0xA9, 0x80, 0x8D, 0x00, 0x20, 0x4C, 0x05, 0x80]
    + [0xEA] * 8
    + [0xE6, 0x10, 0x40]
)


def dot(nes):
    return nes.ppu.scanline * 341 + nes.ppu.cycle


def test_load_and_store_program():
    """LDA #$01 / STA $0200 / NOP"""
    nes = make_nes(bytes([0xA9, 0x01, 0x8D, 0x00, 0x02, 0xEA]))
    assert nes.cpu.PC == 0x8000
    for _ in range(3):
        nes.step()
    assert nes.bus.ram[0x200] == 0x01
    assert nes.cpu.A == 0x01
    assert nes.cpu.Z == 0
    assert nes.cpu.N == 0
    assert nes.cpu.PC == 0x8006


def test_reset_runs_seven_cycles_of_ppu():
    nes = make_nes(b"")
    assert nes.cpu.total_cycles == 7
    assert dot(nes) == 7 * PPU_TICKS_PER_CPU_CYCLE


def test_three_ppu_dots_per_cpu_cycle():
    nes = make_nes(bytes([0xA9, 0x01, 0x8D, 0x00, 0x02, 0xEA, 0xBD, 0xFF, 0x01]))
    for expected in (2, 4, 2, 4):
        before = dot(nes)
        cycles_before = nes.cpu.total_cycles
        cycles = nes.step()
        assert cycles == expected
        assert nes.cpu.total_cycles - cycles_before == cycles
        assert dot(nes) - before == cycles * PPU_TICKS_PER_CPU_CYCLE


def test_step_frame_returns_full_frame():
    nes = make_nes(bytes([0x4C, 0x00, 0x80]))
    frame = nes.step_frame()
    assert len(frame) == 256 * 240
    assert nes.ppu.frame == 1
    assert not nes.is_frame_ready()
    assert nes.run_until_frame() is nes.get_screen()
    assert nes.ppu.frame == 2


def test_frame_takes_one_frame_of_cpu_time():
    nes = make_nes(bytes([0x4C, 0x00, 0x80]))
    nes.step_frame()
    start = nes.cpu.total_cycles
    nes.step_frame()
    # 89342 dots / 3, give or take one JMP of overshoot
    assert abs((nes.cpu.total_cycles - start) - 89342 / 3) < 4


def test_vblank_nmi_reaches_handler():
    nes = make_nes(NMI_PROGRAM, nmi=0x8010)
    nes.step_frame()
    assert nes.bus.ram[0x10] == 1
    nes.run_frames(3)
    assert nes.bus.ram[0x10] == 4
    assert not nes.nmi_line.pending


def test_nmi_not_delivered_when_disabled():
    program = bytearray(NMI_PROGRAM)
    program[1] = 0x00  # LDA #$00: NMI stays off
    nes = make_nes(bytes(program), nmi=0x8010)
    nes.run_frames(2)
    assert nes.bus.ram[0x10] == 0


def test_nmi_ignores_interrupt_disable():
    program = bytes([0x78]) + NMI_PROGRAM[:5] + bytes([0x4C, 0x06, 0x80])
    program = program.ljust(0x10, b"\xEA") + NMI_PROGRAM[0x10:]
    nes = make_nes(program, nmi=0x8010)
    nes.step_frame()
    assert nes.cpu.I == 1
    assert nes.bus.ram[0x10] == 1


def test_run_for_cycles():
    nes = make_nes(bytes([0xEA] * 100))
    executed = nes.run_for_cycles(21)
    assert executed == 22
    assert nes.cpu.total_cycles == 7 + 22


def test_run_instructions_calls_callback_first():
    nes = make_nes(bytes([0xEA] * 10))
    seen = []
    executed = nes.run_instructions(4, callback=lambda n: seen.append(n.cpu.PC))
    assert executed == 8
    assert seen == [0x8000, 0x8001, 0x8002, 0x8003]


def test_controller_input_dict_and_byte():
    nes = make_nes(b"")
    nes.set_controller_input(1, {"A": True, "Start": True})
    assert nes.bus.controllers[0].buttons == 0x09
    nes.set_controller_input(2, 0x80)
    assert nes.bus.controllers[1].buttons == 0x80

    nes.bus.write(0x4016, 1)
    nes.bus.write(0x4016, 0)
    assert [nes.bus.read(0x4016) & 1 for _ in range(4)] == [1, 0, 0, 1]


def test_controller_port_validated():
    nes = make_nes(b"")
    with pytest.raises(ValueError):
        nes.set_controller_input(3, 0)


def test_load_rom(tmp_path):
    path = tmp_path / "program.nes"
    path.write_bytes(build_ines(bytes([0xEA]), reset=0x8000))
    nes = NES()
    assert nes.load_rom(str(path))
    assert nes.cpu.PC == 0x8000

    assert not nes.load_rom(str(tmp_path / "missing.nes"))
    bad = tmp_path / "bad.nes"
    bad.write_bytes(b"not a rom")
    assert not nes.load_rom(str(bad))


def test_load_rom_keeps_failure_reason(tmp_path):
    nes = NES()
    rom = tmp_path / "mmc1.nes"
    rom.write_bytes(build_ines(mapper=1))
    assert not nes.load_rom(str(rom))
    assert "Unsupported mapper 1" in nes.load_error

    assert not nes.load_rom(str(tmp_path / "missing.nes"))
    assert "Cannot read ROM" in nes.load_error

    good = tmp_path / "program.nes"
    good.write_bytes(build_ines(bytes([0xEA])))
    assert nes.load_rom(str(good))
    assert nes.load_error is None


def test_insert_cartridge_is_power_on_but_reset_keeps_ram():
    """Swapping cartridges clears work RAM; the reset button does not"""
    nes = make_nes(bytes([0xEA]))
    nes.bus.write(0x0010, 0x5A)
    nes.reset()
    assert nes.bus.read(0x0010) == 0x5A

    nes.insert_cartridge(parse_ines(build_ines(bytes([0xEA]))))
    assert nes.bus.read(0x0010) == 0x00
    assert nes.cpu.PC == 0x8000


def test_insert_cartridge_requires_cartridge():
    with pytest.raises(ConstructionError):
        NES().insert_cartridge(None)


def test_debug_state_views():
    nes = make_nes(b"")
    cpu_state = nes.get_cpu_state()
    assert cpu_state["PC"] == 0x8000
    assert cpu_state["cycles"] == 7
    assert cpu_state["I"] == 1
    ppu_state = nes.get_ppu_state()
    assert (ppu_state["scanline"], ppu_state["cycle"]) == (0, 21)


def test_save_state_resumes_identically():
    nes = make_nes(NMI_PROGRAM, nmi=0x8010)
    nes.step_frame()
    nes.run_instructions(500)
    state = nes.save_state()

    nes.run_instructions(3000)
    expected = nes.save_state()

    nes.load_state(state)
    nes.run_instructions(3000)
    assert nes.save_state() == expected
    assert nes.bus.ram[0x10] == expected["bus"]["ram"][0x10]


def test_load_state_rejects_unknown_version():
    nes = make_nes(b"")
    state = nes.save_state()
    state["version"] = 99
    with pytest.raises(ValueError):
        nes.load_state(state)

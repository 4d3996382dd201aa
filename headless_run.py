#!/usr/bin/env python3
"""
Run a ROM without a window: N frames, optional instruction trace and final frame PNG
"""

import argparse
import sys
import time

from config import RUN_CONFIG
from nes import NES
from tile_viewer import save_frame
from tracer import Tracer
from utils import set_debug

DEBUG_CHANNELS = ("cpu", "ppu", "bus", "nes", "cart")


def build_parser():
    parser = argparse.ArgumentParser(description="Headless NES run without SDL.")
    parser.add_argument("rom", help="Path to ROM file")
    parser.add_argument(
        "--frames", type=int, default=RUN_CONFIG["frames"], help="Number of frames to run"
    )
    parser.add_argument("--trace", default=None, help="Write a nestest-style instruction trace here")
    parser.add_argument("--screenshot", default=None, help="Save the last frame as PNG here")
    parser.add_argument(
        "--debug",
        nargs="*",
        choices=DEBUG_CHANNELS,
        default=None,
        help="Enable debug output, optionally limited to the given channels",
    )
    return parser


def run(nes, frames, tracer=None):
    """Run frames frames, tracing every instruction when a tracer is given"""
    frame = nes.get_screen()
    for _ in range(frames):
        if tracer is None:
            frame = nes.step_frame()
            continue
        while not nes.is_frame_ready():
            tracer(nes)
            nes.step()
        frame = nes.ppu.take_frame()
    return frame


def main(argv=None):
    args = build_parser().parse_args(argv)
    if args.frames < 0:
        print("--frames must be non-negative")
        return 2

    if args.debug is not None:
        set_debug(True, channels=args.debug or None)

    nes = NES()
    if not nes.load_rom(args.rom):
        print(f"Failed to load ROM {args.rom}: {nes.load_error}")
        return 1

    start = time.time()
    if args.trace:
        with open(args.trace, "w", buffering=1) as trace_fp:
            frame = run(nes, args.frames, Tracer(trace_fp))
    else:
        frame = run(nes, args.frames)
    elapsed = time.time() - start

    state = nes.get_cpu_state()
    print(
        f"Ran {args.frames} frames ({state['cycles']} CPU cycles) in {elapsed:.2f}s; "
        f"PC=0x{state['PC']:04X} A=0x{state['A']:02X} X=0x{state['X']:02X} Y=0x{state['Y']:02X}"
    )
    if nes.cpu.illegal_opcode_count:
        print(f"Illegal opcodes executed: {nes.cpu.illegal_opcode_count}")

    if args.screenshot:
        save_frame(frame, args.screenshot)
        print(f"Saved frame to {args.screenshot}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
Pattern table and frame export tests
"""

import pytest
from PIL import Image

from cartridge import parse_ines
from conftest import build_ines
from ppu import SYSTEM_PALETTE
from tile_viewer import (
    DEFAULT_TILE_PALETTE,
    frame_to_image,
    main,
    pattern_table_image,
    save_frame,
    tile_pixels,
)


def rgb(color):
    return ((color >> 16) & 0xFF, (color >> 8) & 0xFF, color & 0xFF)


def cart_with_tile():
    chr_data = bytearray(0x2000)
    # Tile 1 of table 0: row 0 is color 3 on the left half, color 1 on the right
    chr_data[0x10] = 0xFF
    chr_data[0x18] = 0xF0
    # Tile 0 of table 1: row 7 all color 2
    chr_data[0x1000 + 7 + 8] = 0xFF
    return parse_ines(build_ines(chr_data=bytes(chr_data)))


def test_tile_pixels():
    cart = cart_with_tile()
    pixels = {(x, y): p for x, y, p in tile_pixels(cart.chr, 0x10)}
    assert len(pixels) == 64
    assert pixels[0, 0] == 3
    assert pixels[7, 0] == 1
    assert pixels[0, 1] == 0


def test_pattern_table_image():
    cart = cart_with_tile()
    img = pattern_table_image(cart, 0)
    assert img.size == (128, 128)
    assert img.getpixel((8, 0)) == rgb(SYSTEM_PALETTE[DEFAULT_TILE_PALETTE[3]])
    assert img.getpixel((15, 0)) == rgb(SYSTEM_PALETTE[DEFAULT_TILE_PALETTE[1]])
    assert img.getpixel((0, 0)) == rgb(SYSTEM_PALETTE[DEFAULT_TILE_PALETTE[0]])

    img = pattern_table_image(cart, 1, palette=(0x0F, 0x16, 0x2A, 0x12), scale=2)
    assert img.size == (256, 256)
    assert img.getpixel((0, 14)) == rgb(SYSTEM_PALETTE[0x2A])


def test_pattern_table_must_exist():
    with pytest.raises(ValueError):
        pattern_table_image(cart_with_tile(), 2)


def test_frame_to_image():
    frame = [0x102030] * (256 * 240)
    frame[-1] = 0xFF0000
    img = frame_to_image(frame)
    assert img.size == (256, 240)
    assert img.getpixel((0, 0)) == (0x10, 0x20, 0x30)
    assert img.getpixel((255, 239)) == (0xFF, 0, 0)
    assert frame_to_image(frame, scale=3).size == (768, 720)


def test_frame_to_image_rejects_wrong_size():
    with pytest.raises(ValueError):
        frame_to_image([0] * 100)


def test_save_frame(tmp_path):
    path = tmp_path / "frame.png"
    save_frame([0x00FF00] * (256 * 240), str(path))
    with Image.open(path) as img:
        assert img.size == (256, 240)
        assert img.convert("RGB").getpixel((10, 10)) == (0, 0xFF, 0)


def test_cli_writes_both_tables(tmp_path):
    rom = tmp_path / "tiles.nes"
    rom.write_bytes(build_ines())
    prefix = str(tmp_path / "pt")
    assert main([str(rom), "--scale", "1", "--prefix", prefix]) == 0
    assert (tmp_path / "pt_0.png").exists()
    assert (tmp_path / "pt_1.png").exists()

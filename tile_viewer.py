"""
Pattern table and frame buffer export with Pillow
"""

import argparse

from PIL import Image

from cartridge import load_cartridge
from ppu import SCREEN_HEIGHT, SCREEN_WIDTH, SYSTEM_PALETTE

# Greys used when no palette is given: backdrop, light, mid, dark
DEFAULT_TILE_PALETTE = (0x0F, 0x30, 0x10, 0x00)


def _rgb(color):
    return ((color >> 16) & 0xFF, (color >> 8) & 0xFF, color & 0xFF)


def tile_pixels(chr_data, tile_addr):
    """Yield (x, y, 2-bit pixel) for the 8x8 tile at tile_addr"""
    for row in range(8):
        low = chr_data[tile_addr + row]
        high = chr_data[tile_addr + row + 8]
        for col in range(8):
            shift = 7 - col
            yield col, row, ((low >> shift) & 1) | (((high >> shift) & 1) << 1)


def pattern_table_image(cart, table, palette=None, scale=1):
    """Render the 256 tiles of pattern table 0 or 1 as a 16x16 grid (128x128)"""
    if table not in (0, 1):
        raise ValueError(f"Pattern table must be 0 or 1, got {table!r}")
    colors = [_rgb(SYSTEM_PALETTE[i & 0x3F]) for i in (palette or DEFAULT_TILE_PALETTE)]

    img = Image.new("RGB", (128, 128))
    pixels = img.load()
    base = table * 0x1000
    for tile in range(256):
        tile_x = (tile % 16) * 8
        tile_y = (tile // 16) * 8
        for x, y, pixel in tile_pixels(cart.chr, base + tile * 16):
            pixels[tile_x + x, tile_y + y] = colors[pixel]

    if scale != 1:
        img = img.resize((128 * scale, 128 * scale), Image.Resampling.NEAREST)
    return img


def frame_to_image(frame, scale=1):
    """Convert a 256x240 frame buffer of 0xRRGGBB ints to an RGB image"""
    if len(frame) != SCREEN_WIDTH * SCREEN_HEIGHT:
        raise ValueError(f"Frame buffer has {len(frame)} pixels, expected {SCREEN_WIDTH * SCREEN_HEIGHT}")
    data = bytearray(len(frame) * 3)
    for i, color in enumerate(frame):
        data[i * 3] = (color >> 16) & 0xFF
        data[i * 3 + 1] = (color >> 8) & 0xFF
        data[i * 3 + 2] = color & 0xFF
    img = Image.frombytes("RGB", (SCREEN_WIDTH, SCREEN_HEIGHT), bytes(data))
    if scale != 1:
        img = img.resize((SCREEN_WIDTH * scale, SCREEN_HEIGHT * scale), Image.Resampling.NEAREST)
    return img


def save_frame(frame, path, scale=1):
    """Write a frame buffer to path; format follows the extension"""
    img = frame_to_image(frame, scale)
    img.save(path)
    return path


def main(argv=None):
    parser = argparse.ArgumentParser(description="Dump a ROM's pattern tables as PNG files.")
    parser.add_argument("rom", help="Path to ROM file")
    parser.add_argument("--scale", type=int, default=2, help="Pixel scale factor")
    parser.add_argument("--prefix", default="pattern_table", help="Output file prefix")
    args = parser.parse_args(argv)

    cart = load_cartridge(args.rom)
    for table in (0, 1):
        path = f"{args.prefix}_{table}.png"
        pattern_table_image(cart, table, scale=args.scale).save(path)
        print(f"Saved {path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

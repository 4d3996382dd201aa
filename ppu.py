"""
NES PPU (Picture Processing Unit) Emulator
Handles graphics rendering for the NES
"""

from utils import debug_enabled, debug_print

# PPU timing constants (NTSC)
VISIBLE_SCANLINES = 240
VISIBLE_DOTS = 256
DOTS_PER_SCANLINE = 341
END_DOT = 340
SCANLINES_PER_FRAME = 262
VBLANK_SCANLINE = 241
PRE_RENDER_SCANLINE = 261

SCREEN_WIDTH = 256
SCREEN_HEIGHT = 240

# Address bit masks for the loopy v/t registers
COARSE_X = 0x1F
COARSE_Y = 0x3E0
FINE_Y = 0x7000
HORIZONTAL_BITS = 0x41F
VERTICAL_BITS = 0x7BE0

# 2C02 system palette, 0xRRGGBB
SYSTEM_PALETTE = [
    0x666666, 0x002A88, 0x1412A7, 0x3B00A4, 0x5C007E, 0x6E0040, 0x6C0600, 0x561D00,
    0x333500, 0x0B4800, 0x005200, 0x004F08, 0x00404D, 0x000000, 0x000000, 0x000000,
    0xADADAD, 0x155FD9, 0x4240FF, 0x7527FE, 0xA01ACC, 0xB71E7B, 0xB53120, 0x994E00,
    0x6B6D00, 0x388700, 0x0C9300, 0x008F32, 0x007C8D, 0x000000, 0x000000, 0x000000,
    0xFFFEFF, 0x64B0FF, 0x9290FF, 0xC676FF, 0xF36AFF, 0xFE6ECC, 0xFE8170, 0xEA9E22,
    0xBCBE00, 0x88D800, 0x5CE430, 0x45E082, 0x48CDDE, 0x4F4F4F, 0x000000, 0x000000,
    0xFFFEFF, 0xC0DFFF, 0xD3D2FF, 0xE8C8FF, 0xFBC2FF, 0xFEC4EA, 0xFECCC5, 0xF7D8A5,
    0xE4E594, 0xCFEF96, 0xBDF4AB, 0xB3F3CC, 0xB5EBF2, 0xB8B8B8, 0x000000, 0x000000,
]

# Bit-reversed bytes, for horizontally flipped sprites
REVERSED_BYTES = [int(f"{b:08b}"[::-1], 2) for b in range(256)]


def _bit(bit, doc):
    mask = 1 << bit

    def getter(self):
        return bool(self.value & mask)

    def setter(self, on):
        if on:
            self.value |= mask
        else:
            self.value &= ~mask & 0xFF

    return property(getter, setter, doc=doc)


class Register:
    """An 8-bit register exposed as named flags"""

    def __init__(self, value=0):
        self.value = value & 0xFF

    def __int__(self):
        return self.value

    def __repr__(self):
        return f"{type(self).__name__}(0x{self.value:02X})"


class PPUCtrl(Register):
    """$2000 PPUCTRL"""

    vram_increment_32 = _bit(2, "Add 32 to v per PPUDATA access instead of 1")
    sprite_table_high = _bit(3, "8x8 sprites use $1000")
    background_table_high = _bit(4, "Background uses $1000")
    tall_sprites = _bit(5, "8x16 sprites")
    nmi_enabled = _bit(7, "Raise NMI at vblank start")

    @property
    def nametable(self):
        return self.value & 0x03

    @property
    def increment(self):
        return 32 if self.vram_increment_32 else 1

    @property
    def sprite_table(self):
        return 0x1000 if self.sprite_table_high else 0x0000

    @property
    def background_table(self):
        return 0x1000 if self.background_table_high else 0x0000

    @property
    def sprite_height(self):
        return 16 if self.tall_sprites else 8


class PPUMask(Register):
    """$2001 PPUMASK"""

    greyscale = _bit(0, "Force palette entries to the grey column")
    show_background_left = _bit(1, "Show background in the leftmost 8 pixels")
    show_sprites_left = _bit(2, "Show sprites in the leftmost 8 pixels")
    show_background = _bit(3, "Background rendering")
    show_sprites = _bit(4, "Sprite rendering")
    emphasize_red = _bit(5, "Red emphasis")
    emphasize_green = _bit(6, "Green emphasis")
    emphasize_blue = _bit(7, "Blue emphasis")

    @property
    def rendering_enabled(self):
        return bool(self.value & 0x18)

    @property
    def emphasis(self):
        return self.value & 0xE0


class PPUStatus(Register):
    """$2002 PPUSTATUS, only bits 7-5 are stored"""

    sprite_overflow = _bit(5, "More than eight sprites on a scanline")
    sprite_zero_hit = _bit(6, "Opaque sprite 0 pixel overlapped opaque background")
    vblank = _bit(7, "Vertical blank in progress")


def apply_emphasis(rgb, emphasis):
    """Dim the channels that are not emphasized"""
    if not emphasis:
        return rgb
    r = (rgb >> 16) & 0xFF
    g = (rgb >> 8) & 0xFF
    b = rgb & 0xFF
    if not emphasis & 0x20:
        r = r * 3 // 4
    if not emphasis & 0x40:
        g = g * 3 // 4
    if not emphasis & 0x80:
        b = b * 3 // 4
    return (r << 16) | (g << 8) | b


class PPU:
    def __init__(self, cartridge=None, nmi=None):
        self.cartridge = cartridge  # Pattern tables and mirroring come from here
        self.nmi = nmi  # InterruptLine raised at vblank

        # PPU registers
        self.ctrl = PPUCtrl()  # $2000
        self.mask = PPUMask()  # $2001
        self.status = PPUStatus()  # $2002
        self.oam_addr = 0  # $2003

        # Internal registers
        self.v = 0  # Current VRAM address (15 bits)
        self.t = 0  # Temporary VRAM address (15 bits)
        self.x = 0  # Fine X scroll (3 bits)
        self.w = 0  # Write toggle (1 bit)

        self.buffer = 0  # PPUDATA read buffer
        self.io_latch = 0  # Last value seen on the CPU-facing data bus

        # PPU Memory
        self.vram = bytearray(0x800)  # 2KB nametable RAM
        self.palette_ram = bytearray(0x20)
        self.oam = bytearray(0x100)  # 64 sprites x 4 bytes

        # Rendering state
        self.scanline = 0
        self.cycle = 0
        self.frame = 0
        self.odd_frame = False
        self.frame_complete = False

        self._reset_pipeline()

        # Output buffer (256x240 packed 0xRRGGBB)
        self.screen = [0] * (SCREEN_WIDTH * SCREEN_HEIGHT)

    def _reset_pipeline(self):
        # Background latches for next tile
        self.bg_next_tile_id = 0
        self.bg_next_tile_attr = 0
        self.bg_next_tile_lsb = 0
        self.bg_next_tile_msb = 0

        # Background shift registers
        self.bg_shift_pattern_low = 0
        self.bg_shift_pattern_high = 0
        self.bg_shift_attrib_low = 0
        self.bg_shift_attrib_high = 0

        # Sprites selected for the current scanline: (x, low, high, attr, is_sprite0)
        self.line_sprites = []

    def set_cartridge(self, cartridge):
        self.cartridge = cartridge

    def reset(self):
        """Reset PPU to power-on state"""
        self.ctrl = PPUCtrl()
        self.mask = PPUMask()
        self.status = PPUStatus()
        self.oam_addr = 0
        self.v = 0
        self.t = 0
        self.x = 0
        self.w = 0
        self.buffer = 0
        self.io_latch = 0
        self.scanline = 0
        self.cycle = 0
        self.frame = 0
        self.odd_frame = False
        self.frame_complete = False

        self.vram = bytearray(0x800)
        self.palette_ram = bytearray(0x20)
        self.oam = bytearray(0x100)
        self._reset_pipeline()
        self.screen = [0] * (SCREEN_WIDTH * SCREEN_HEIGHT)

    # Register ports

    def read_register(self, addr):
        """Read from PPU register at $2000-$2007"""
        addr &= 0x2007
        if addr == 0x2002:  # PPUSTATUS
            # Bits 7-5 are flags, bits 4-0 are whatever the latch last held
            result = self.status.value | (self.io_latch & 0x1F)
            self.status.vblank = False
            self.w = 0
            if result & 0x80 and debug_enabled("ppu"):
                debug_print(
                    f"Read PPUSTATUS=0x{result:02X} (VBlank set) "
                    f"scanline={self.scanline} cycle={self.cycle} frame={self.frame}",
                    "ppu",
                )
        elif addr == 0x2004:  # OAMDATA
            result = self.oam[self.oam_addr]
            if self.oam_addr & 3 == 2:
                # Unimplemented attribute bits read back as 0
                result &= 0xE3
        elif addr == 0x2007:  # PPUDATA
            if self.v & 0x3FFF < 0x3F00:
                result = self.buffer
                self.buffer = self.read_vram(self.v)
            else:
                # Palette reads are immediate; the buffer gets the nametable underneath
                self.buffer = self.read_vram(self.v - 0x1000)
                result = (self.io_latch & 0xC0) | (self.read_vram(self.v) & 0x3F)
            self.v = (self.v + self.ctrl.increment) & 0x7FFF
        else:
            # Write-only registers return the latch
            return self.io_latch

        self.io_latch = result
        return result

    def peek_register(self, addr):
        """Register value without side effects, for debuggers"""
        addr &= 0x2007
        if addr == 0x2002:
            return self.status.value | (self.io_latch & 0x1F)
        if addr == 0x2004:
            return self.oam[self.oam_addr]
        if addr == 0x2007:
            return self.buffer
        return self.io_latch

    def write_register(self, addr, value):
        """Write to PPU register at $2000-$2007"""
        addr &= 0x2007
        value &= 0xFF
        self.io_latch = value

        if addr == 0x2000:  # PPUCTRL
            nmi_was_enabled = self.ctrl.nmi_enabled
            self.ctrl.value = value
            self.t = (self.t & 0xF3FF) | ((value & 0x03) << 10)
            # Enabling NMI during vblank fires immediately
            if (
                not nmi_was_enabled
                and self.ctrl.nmi_enabled
                and self.status.vblank
                and self.nmi is not None
            ):
                self.nmi.signal()
            if debug_enabled("ppu"):
                nmi = "on" if self.ctrl.nmi_enabled else "off"
                debug_print(
                    f"WRITE $2000=0x{value:02X} (BGtbl={(value >> 4) & 1} "
                    f"SPRtbl={(value >> 3) & 1} NMI={nmi}) frame={self.frame} "
                    f"scanline={self.scanline} cycle={self.cycle}",
                    "ppu",
                )
        elif addr == 0x2001:  # PPUMASK
            was_rendering = self.mask.rendering_enabled
            self.mask.value = value
            if was_rendering != self.mask.rendering_enabled and debug_enabled("ppu"):
                state = "ENABLED" if self.mask.rendering_enabled else "DISABLED"
                debug_print(f"RENDERING {state} at frame {self.frame}, mask=0x{value:02X}", "ppu")
        elif addr == 0x2003:  # OAMADDR
            self.oam_addr = value
        elif addr == 0x2004:  # OAMDATA
            self.oam[self.oam_addr] = value
            self.oam_addr = (self.oam_addr + 1) & 0xFF
        elif addr == 0x2005:  # PPUSCROLL
            if self.w == 0:
                self.t = (self.t & 0xFFE0) | (value >> 3)
                self.x = value & 0x07
                self.w = 1
            else:
                self.t = (self.t & 0x8FFF) | ((value & 0x07) << 12)
                self.t = (self.t & 0xFC1F) | ((value & 0xF8) << 2)
                self.w = 0
        elif addr == 0x2006:  # PPUADDR
            if self.w == 0:
                self.t = (self.t & 0x80FF) | ((value & 0x3F) << 8)
                self.w = 1
            else:
                self.t = (self.t & 0xFF00) | value
                self.v = self.t
                self.w = 0
        elif addr == 0x2007:  # PPUDATA
            self.write_vram(self.v, value)
            self.v = (self.v + self.ctrl.increment) & 0x7FFF
        # $2002 is read-only; writes only touch the latch

    # Internal memory

    def _nametable_offset(self, addr):
        addr = (addr & 0x0FFF)
        table = addr >> 10
        if self.cartridge is not None:
            base = self.cartridge.name_table_map[table]
        else:
            base = (table & 1) * 0x400
        return base + (addr & 0x3FF)

    @staticmethod
    def _palette_index(addr):
        addr &= 0x1F
        # $3F10/$3F14/$3F18/$3F1C mirror the backdrop entries below them
        if addr & 0x13 == 0x10:
            addr &= 0x0F
        return addr

    def read_vram(self, addr):
        """Read from PPU address space ($0000-$3FFF)"""
        addr &= 0x3FFF
        if addr < 0x2000:
            if self.cartridge is None:
                return 0
            return self.cartridge.ppu_read(addr)
        if addr < 0x3F00:
            return self.vram[self._nametable_offset(addr)]
        return self.palette_ram[self._palette_index(addr)]

    def write_vram(self, addr, value):
        """Write to PPU address space ($0000-$3FFF)"""
        addr &= 0x3FFF
        if addr < 0x2000:
            if self.cartridge is not None:
                self.cartridge.ppu_write(addr, value)
        elif addr < 0x3F00:
            self.vram[self._nametable_offset(addr)] = value
        else:
            self.palette_ram[self._palette_index(addr)] = value & 0x3F

    # Timing

    def tick(self):
        """Execute one PPU cycle"""
        scanline = self.scanline
        cycle = self.cycle
        rendering = self.mask.rendering_enabled

        if scanline < VISIBLE_SCANLINES or scanline == PRE_RENDER_SCANLINE:
            if rendering:
                self.fetch_background_data()
                if cycle == 257:
                    if scanline < VISIBLE_SCANLINES:
                        self.prepare_sprites()
                    else:
                        self.line_sprites = []
            if scanline < VISIBLE_SCANLINES and 0 < cycle <= VISIBLE_DOTS:
                self.render_pixel(cycle - 1)
            elif scanline == PRE_RENDER_SCANLINE and cycle == 1:
                self.status.vblank = False
                self.status.sprite_zero_hit = False
                self.status.sprite_overflow = False
                if self.nmi is not None:
                    self.nmi.clear()
        elif scanline == VBLANK_SCANLINE and cycle == 1:
            self.status.vblank = True
            if debug_enabled("ppu"):
                debug_print(f"VBlank start frame={self.frame}", "ppu")
            if self.ctrl.nmi_enabled and self.nmi is not None:
                self.nmi.signal()

        # Advance counters
        cycle += 1
        if (
            scanline == PRE_RENDER_SCANLINE
            and cycle == END_DOT
            and self.odd_frame
            and rendering
        ):
            # Odd frames drop the last dot of the pre-render line
            cycle = DOTS_PER_SCANLINE
        if cycle >= DOTS_PER_SCANLINE:
            cycle = 0
            scanline += 1
            if scanline >= SCANLINES_PER_FRAME:
                scanline = 0
                self.frame += 1
                self.odd_frame = not self.odd_frame
                self.frame_complete = True
        self.cycle = cycle
        self.scanline = scanline

    def take_frame(self):
        """Return the finished frame buffer and clear the frame-ready flag"""
        self.frame_complete = False
        return self.screen

    # Background pipeline

    def fetch_background_data(self):
        """Background fetch/shift work for the current dot"""
        cycle = self.cycle
        if 2 <= cycle <= 257 or 322 <= cycle <= 337:
            self.bg_shift_pattern_low = (self.bg_shift_pattern_low << 1) & 0xFFFF
            self.bg_shift_pattern_high = (self.bg_shift_pattern_high << 1) & 0xFFFF
            self.bg_shift_attrib_low = (self.bg_shift_attrib_low << 1) & 0xFFFF
            self.bg_shift_attrib_high = (self.bg_shift_attrib_high << 1) & 0xFFFF

        if 1 <= cycle <= 256 or 321 <= cycle <= 336:
            cycle_in_tile = (cycle - 1) & 7
            if cycle_in_tile == 0:  # Nametable byte
                self.load_background_shifters()
                self.bg_next_tile_id = self.read_vram(0x2000 | (self.v & 0x0FFF))
            elif cycle_in_tile == 2:  # Attribute byte
                v = self.v
                attr = self.read_vram(
                    0x23C0 | (v & 0x0C00) | ((v >> 4) & 0x38) | ((v >> 2) & 0x07)
                )
                if v & 0x40:  # Bottom half of the 32x32 block
                    attr >>= 4
                if v & 0x02:  # Right half
                    attr >>= 2
                self.bg_next_tile_attr = attr & 0x03
            elif cycle_in_tile == 4:  # Pattern low
                self.bg_next_tile_lsb = self.read_vram(self._background_row_addr())
            elif cycle_in_tile == 6:  # Pattern high
                self.bg_next_tile_msb = self.read_vram(self._background_row_addr() + 8)
            elif cycle_in_tile == 7:
                self.increment_x()

        if cycle == 256:
            self.increment_y()
        elif cycle == 257:
            self.load_background_shifters()
            self.copy_x()
        elif self.scanline == PRE_RENDER_SCANLINE and 280 <= cycle <= 304:
            self.copy_y()

    def _background_row_addr(self):
        fine_y = (self.v >> 12) & 0x07
        return self.ctrl.background_table + (self.bg_next_tile_id << 4) + fine_y

    def load_background_shifters(self):
        self.bg_shift_pattern_low = (self.bg_shift_pattern_low & 0xFF00) | self.bg_next_tile_lsb
        self.bg_shift_pattern_high = (self.bg_shift_pattern_high & 0xFF00) | self.bg_next_tile_msb
        attr = self.bg_next_tile_attr
        self.bg_shift_attrib_low = (self.bg_shift_attrib_low & 0xFF00) | (0xFF if attr & 1 else 0)
        self.bg_shift_attrib_high = (self.bg_shift_attrib_high & 0xFF00) | (0xFF if attr & 2 else 0)

    def increment_x(self):
        """Increment coarse X component of v"""
        if (self.v & COARSE_X) == 31:
            # Wrap coarse X and switch horizontal nametable
            self.v &= ~COARSE_X
            self.v ^= 0x400
        else:
            self.v += 1

    def increment_y(self):
        """Increment fine Y, carrying into coarse Y and the vertical nametable"""
        if (self.v & FINE_Y) != FINE_Y:
            self.v += 0x1000
            return
        self.v &= ~FINE_Y
        coarse_y = (self.v & COARSE_Y) >> 5
        if coarse_y == 29:
            coarse_y = 0
            self.v ^= 0x800
        elif coarse_y == 31:
            # Attribute rows wrap without switching nametables
            coarse_y = 0
        else:
            coarse_y += 1
        self.v = (self.v & ~COARSE_Y) | (coarse_y << 5)

    def copy_x(self):
        self.v = (self.v & ~HORIZONTAL_BITS) | (self.t & HORIZONTAL_BITS)

    def copy_y(self):
        self.v = (self.v & ~VERTICAL_BITS) | (self.t & VERTICAL_BITS)

    # Sprites

    def prepare_sprites(self):
        """Select up to 8 sprites for the next scanline and fetch their rows"""
        height = self.ctrl.sprite_height
        selected = []
        for index in range(0, 256, 4):
            row = self.scanline - self.oam[index]
            if not 0 <= row < height:
                continue
            if len(selected) == 8:
                self.status.sprite_overflow = True
                break
            selected.append((index, row))

        sprites = []
        for index, row in selected:
            tile = self.oam[index + 1]
            attr = self.oam[index + 2]
            if attr & 0x80:  # Vertical flip
                row = height - 1 - row
            if height == 16:
                table = (tile & 1) * 0x1000
                tile &= 0xFE
                if row >= 8:
                    tile += 1
                    row -= 8
            else:
                table = self.ctrl.sprite_table
            addr = table + (tile << 4) + row
            low = self.read_vram(addr)
            high = self.read_vram(addr + 8)
            if attr & 0x40:  # Horizontal flip
                low = REVERSED_BYTES[low]
                high = REVERSED_BYTES[high]
            sprites.append((self.oam[index + 3], low, high, attr, index == 0))
        self.line_sprites = sprites

    # Pixel output

    def render_pixel(self, x):
        """Compose background and sprite pixels at (x, scanline)"""
        mask = self.mask
        if not mask.rendering_enabled:
            color = self.palette_ram[0]
        else:
            bg_pixel = 0
            bg_palette = 0
            if mask.show_background and (x >= 8 or mask.show_background_left):
                bit = 0x8000 >> self.x
                bg_pixel = (
                    (1 if self.bg_shift_pattern_low & bit else 0)
                    | (2 if self.bg_shift_pattern_high & bit else 0)
                )
                bg_palette = (
                    (1 if self.bg_shift_attrib_low & bit else 0)
                    | (2 if self.bg_shift_attrib_high & bit else 0)
                )

            sp_pixel = 0
            sp_palette = 0
            sp_behind = False
            if mask.show_sprites and (x >= 8 or mask.show_sprites_left):
                for sprite_x, low, high, attr, is_sprite0 in self.line_sprites:
                    offset = x - sprite_x
                    if not 0 <= offset < 8:
                        continue
                    shift = 7 - offset
                    pixel = ((low >> shift) & 1) | (((high >> shift) & 1) << 1)
                    if pixel == 0:
                        continue
                    if is_sprite0 and bg_pixel and x != 255:
                        self.status.sprite_zero_hit = True
                    sp_pixel = pixel
                    sp_palette = (attr & 0x03) + 4
                    sp_behind = bool(attr & 0x20)
                    break

            if sp_pixel and (not bg_pixel or not sp_behind):
                palette_addr = (sp_palette << 2) | sp_pixel
            elif bg_pixel:
                palette_addr = (bg_palette << 2) | bg_pixel
            else:
                palette_addr = 0
            color = self.palette_ram[self._palette_index(palette_addr)]

        if mask.greyscale:
            color &= 0x30
        self.screen[self.scanline * SCREEN_WIDTH + x] = apply_emphasis(
            SYSTEM_PALETTE[color & 0x3F], mask.emphasis
        )

    # Save state

    def get_state(self):
        return {
            "ctrl": self.ctrl.value,
            "mask": self.mask.value,
            "status": self.status.value,
            "oam_addr": self.oam_addr,
            "v": self.v,
            "t": self.t,
            "x": self.x,
            "w": self.w,
            "buffer": self.buffer,
            "io_latch": self.io_latch,
            "vram": bytes(self.vram),
            "palette_ram": bytes(self.palette_ram),
            "oam": bytes(self.oam),
            "scanline": self.scanline,
            "cycle": self.cycle,
            "frame": self.frame,
            "odd_frame": self.odd_frame,
            "frame_complete": self.frame_complete,
            "bg_next": (
                self.bg_next_tile_id,
                self.bg_next_tile_attr,
                self.bg_next_tile_lsb,
                self.bg_next_tile_msb,
            ),
            "bg_shift": (
                self.bg_shift_pattern_low,
                self.bg_shift_pattern_high,
                self.bg_shift_attrib_low,
                self.bg_shift_attrib_high,
            ),
            "line_sprites": [list(s) for s in self.line_sprites],
        }

    def set_state(self, state):
        self.ctrl = PPUCtrl(state["ctrl"])
        self.mask = PPUMask(state["mask"])
        self.status = PPUStatus(state["status"])
        self.oam_addr = state["oam_addr"]
        self.v = state["v"]
        self.t = state["t"]
        self.x = state["x"]
        self.w = state["w"]
        self.buffer = state["buffer"]
        self.io_latch = state["io_latch"]
        self.vram = bytearray(state["vram"])
        self.palette_ram = bytearray(state["palette_ram"])
        self.oam = bytearray(state["oam"])
        self.scanline = state["scanline"]
        self.cycle = state["cycle"]
        self.frame = state["frame"]
        self.odd_frame = state["odd_frame"]
        self.frame_complete = state["frame_complete"]
        (
            self.bg_next_tile_id,
            self.bg_next_tile_attr,
            self.bg_next_tile_lsb,
            self.bg_next_tile_msb,
        ) = state["bg_next"]
        (
            self.bg_shift_pattern_low,
            self.bg_shift_pattern_high,
            self.bg_shift_attrib_low,
            self.bg_shift_attrib_high,
        ) = state["bg_shift"]
        self.line_sprites = [tuple(s) for s in state["line_sprites"]]

"""
NES Emulator with SDL2 Graphics
Main entry point for the emulator
"""

import array
import os
import sys
import time

import sdl2

from config import DISPLAY_CONFIG, INPUT_CONFIG, RUN_CONFIG, apply_config
from controller import BUTTONS
from nes import NES
from ppu import SCREEN_HEIGHT, SCREEN_WIDTH
from tile_viewer import save_frame


def build_key_map(input_config):
    """Map SDL keycodes to controller button names"""
    key_map = {}
    for key_name, button in input_config.items():
        if button not in BUTTONS:
            raise ValueError(f"Unknown controller button {button!r} for key {key_name!r}")
        keycode = sdl2.SDL_GetKeyFromName(key_name.encode())
        if keycode == sdl2.SDLK_UNKNOWN:
            raise ValueError(f"Unknown SDL key name {key_name!r}")
        key_map[keycode] = button
    return key_map


class Emulator:
    def __init__(self):
        self.nes = NES()
        self.running = False

        # Display settings
        self.scale = DISPLAY_CONFIG["scale"]
        self.window_width = SCREEN_WIDTH * self.scale
        self.window_height = SCREEN_HEIGHT * self.scale

        # SDL components
        self.window = None
        self.renderer = None
        self.texture = None
        self.key_map = {}

        # Controller state
        self.controller_state = {name: False for name in BUTTONS}

        # Timing
        self.target_fps = DISPLAY_CONFIG["target_fps"]
        self.frame_time = 1.0 / self.target_fps

        self.last_frame = None

    def initialize_sdl(self):
        """Initialize SDL2"""
        if sdl2.SDL_Init(sdl2.SDL_INIT_VIDEO | sdl2.SDL_INIT_EVENTS) != 0:
            print(f"SDL2 initialization failed: {sdl2.SDL_GetError()}")
            return False

        # Create window
        self.window = sdl2.SDL_CreateWindow(
            DISPLAY_CONFIG["title"].encode(),
            sdl2.SDL_WINDOWPOS_CENTERED,
            sdl2.SDL_WINDOWPOS_CENTERED,
            self.window_width,
            self.window_height,
            sdl2.SDL_WINDOW_SHOWN,
        )
        if not self.window:
            print(f"Window creation failed: {sdl2.SDL_GetError()}")
            return False

        # Create renderer
        flags = sdl2.SDL_RENDERER_ACCELERATED
        if DISPLAY_CONFIG["vsync"]:
            flags |= sdl2.SDL_RENDERER_PRESENTVSYNC
        self.renderer = sdl2.SDL_CreateRenderer(self.window, -1, flags)
        if not self.renderer:
            print(f"Renderer creation failed: {sdl2.SDL_GetError()}")
            return False

        # Frame buffer pixels are 0x00RRGGBB, which is RGB888 in native byte order
        self.texture = sdl2.SDL_CreateTexture(
            self.renderer,
            sdl2.SDL_PIXELFORMAT_RGB888,
            sdl2.SDL_TEXTUREACCESS_STREAMING,
            SCREEN_WIDTH,
            SCREEN_HEIGHT,
        )
        if not self.texture:
            print(f"Texture creation failed: {sdl2.SDL_GetError()}")
            return False

        try:
            self.key_map = build_key_map(INPUT_CONFIG)
        except ValueError as e:
            print(f"Input configuration error: {e}")
            return False

        print("SDL2 initialized successfully")
        return True

    def take_screenshot(self, filename=None):
        """Save the last completed frame as PNG"""
        if self.last_frame is None:
            print("No frame to save yet")
            return None
        if filename is None:
            directory = RUN_CONFIG["screenshot_dir"]
            os.makedirs(directory, exist_ok=True)
            filename = os.path.join(directory, f"screenshot_{int(time.time())}.png")
        try:
            save_frame(self.last_frame, filename, scale=self.scale)
        except OSError as e:
            print(f"Error taking screenshot: {e}")
            return None
        print(f"Screenshot saved as: {filename}")
        return filename

    def cleanup_sdl(self):
        """Clean up SDL2 resources"""
        if self.texture:
            sdl2.SDL_DestroyTexture(self.texture)
        if self.renderer:
            sdl2.SDL_DestroyRenderer(self.renderer)
        if self.window:
            sdl2.SDL_DestroyWindow(self.window)
        sdl2.SDL_Quit()

    def handle_events(self):
        """Handle SDL events"""
        event = sdl2.SDL_Event()
        while sdl2.SDL_PollEvent(event):
            if event.type == sdl2.SDL_QUIT:
                self.running = False
            elif event.type == sdl2.SDL_KEYDOWN:
                self.handle_key(event.key.keysym.sym, True)
            elif event.type == sdl2.SDL_KEYUP:
                self.handle_key(event.key.keysym.sym, False)

    def handle_key(self, key, pressed):
        """Handle key press/release"""
        if pressed:
            if key == sdl2.SDLK_ESCAPE:
                self.running = False
                return
            if key == sdl2.SDLK_r:
                self.nes.reset()
                print("Reset NES")
                return
            if key == sdl2.SDLK_F12:
                self.take_screenshot()
                return
        button = self.key_map.get(key)
        if button is not None:
            self.controller_state[button] = pressed

    def update_texture(self, frame):
        """Upload the frame buffer to the SDL texture"""
        pixels = array.array("I", frame).tobytes()
        sdl2.SDL_UpdateTexture(self.texture, None, pixels, SCREEN_WIDTH * 4)

    def render(self):
        """Render the current frame"""
        sdl2.SDL_SetRenderDrawColor(self.renderer, 0, 0, 0, 255)
        sdl2.SDL_RenderClear(self.renderer)
        sdl2.SDL_RenderCopy(self.renderer, self.texture, None, None)
        sdl2.SDL_RenderPresent(self.renderer)

    def print_controls(self):
        print("Controls:")
        for key_name, button in INPUT_CONFIG.items():
            print(f"  {key_name}: {button}")
        print("  R: Reset")
        print("  F12: Take screenshot")
        print("  Escape: Quit")

    def run(self, rom_path):
        """Run the emulator"""
        if not self.initialize_sdl():
            self.cleanup_sdl()
            return False

        if not self.nes.load_rom(rom_path):
            print(f"Failed to load ROM {rom_path}: {self.nes.load_error}")
            self.cleanup_sdl()
            return False

        self.running = True
        print("Starting emulator...")
        self.print_controls()

        frame_count = 0
        start_time = time.time()

        while self.running:
            frame_start = time.time()

            self.handle_events()
            self.nes.set_controller_input(1, self.controller_state)

            self.last_frame = self.nes.step_frame()
            self.update_texture(self.last_frame)
            self.render()

            frame_count += 1
            if DISPLAY_CONFIG["show_fps"] and frame_count % 120 == 0:
                elapsed = time.time() - start_time
                fps = frame_count / elapsed if elapsed > 0 else 0
                print(f"FPS: {fps:.1f}")

            frame_duration = time.time() - frame_start
            if frame_duration < self.frame_time:
                sleep_time = self.frame_time - frame_duration
                if sleep_time > 0.001:
                    time.sleep(sleep_time)

        self.cleanup_sdl()
        return True


def main():
    """Main entry point"""
    if len(sys.argv) != 2:
        print("Usage: python main.py <rom_file>")
        print("Example: python main.py game.nes")
        return 1

    rom_path = sys.argv[1]
    if not os.path.exists(rom_path):
        print(f"ROM file not found: {rom_path}")
        return 1

    apply_config()
    emulator = Emulator()

    try:
        success = emulator.run(rom_path)
        return 0 if success else 1
    except KeyboardInterrupt:
        print("\nEmulator stopped by user")
        return 0
    except Exception as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

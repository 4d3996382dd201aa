"""
Configuration for the NES core front ends
Hardware timing is fixed and lives beside the code that uses it; only
presentation, input and run defaults are tunable here
"""

from utils import set_debug

# Window / presentation
DISPLAY_CONFIG = {
    "scale": 3,  # Window is 256x240 times this factor
    "title": "NES",
    "target_fps": 60,  # NTSC frame rate
    "vsync": True,  # Ask the renderer to sync to the display
    "show_fps": True,  # Print FPS to the console every few seconds
}

# SDL key names -> controller buttons for port 1
INPUT_CONFIG = {
    "Z": "A",
    "X": "B",
    "Right Shift": "Select",
    "Return": "Start",
    "Up": "Up",
    "Down": "Down",
    "Left": "Left",
    "Right": "Right",
}

# Headless runner defaults
RUN_CONFIG = {
    "frames": 60,  # Frames to run when --frames is not given
    "screenshot_dir": "screenshots",  # Where F12 screenshots are written
}

# Debug output
DEBUG_CONFIG = {
    "enabled": False,
    "channels": (),  # Empty means every channel once enabled
}


def describe_config():
    """Return the active configuration as printable lines"""
    lines = []
    for category, opts in [
        ("Display", DISPLAY_CONFIG),
        ("Input", INPUT_CONFIG),
        ("Run", RUN_CONFIG),
        ("Debug", DEBUG_CONFIG),
    ]:
        settings = ", ".join(f"{k}={v}" for k, v in opts.items())
        lines.append(f"  {category}: {settings}")
    return lines


def apply_config(verbose=True):
    """Apply debug settings and report the configuration"""
    if verbose:
        print("Configuration:")
        for line in describe_config():
            print(line)
    set_debug(DEBUG_CONFIG["enabled"], channels=DEBUG_CONFIG["channels"] or None)

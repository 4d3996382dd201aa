DEBUG_MODE = False  # Default to quiet; enable via set_debug(True) when needed
DEBUG_CHANNELS = None  # None means every channel is printed


def set_debug(value, channels=None):
    """
    Set debug mode on/off

    Args:
        value (bool): True to enable debugging, False to disable
        channels (iterable): optional channel names ("cpu", "ppu", "bus",
            "nes", "cart") to restrict output to. None prints all channels.
    """
    global DEBUG_MODE, DEBUG_CHANNELS
    DEBUG_MODE = bool(value)
    DEBUG_CHANNELS = frozenset(channels) if channels else None


def debug_enabled(channel=None):
    """Return True when a message on `channel` would be printed."""
    if not DEBUG_MODE:
        return False
    if DEBUG_CHANNELS is None or channel is None:
        return True
    return channel in DEBUG_CHANNELS


def debug_print(text, channel=None):
    """
    Prints the given text to the console for debugging purposes.

    Args:
        text (str): The text to print.
        channel (str): component the message belongs to.
    """
    if debug_enabled(channel):
        if channel:
            print(f"[{channel.upper()}] {text}")
        else:
            print(text)


def hex_bytes(data):
    """Format a byte sequence as space separated two digit hex."""
    return " ".join(f"{b:02X}" for b in data)

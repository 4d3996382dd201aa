"""
Standard NES controller behind $4016/$4017
"""

BUTTON_A = 0x01
BUTTON_B = 0x02
BUTTON_SELECT = 0x04
BUTTON_START = 0x08
BUTTON_UP = 0x10
BUTTON_DOWN = 0x20
BUTTON_LEFT = 0x40
BUTTON_RIGHT = 0x80

BUTTONS = {
    "A": BUTTON_A,
    "B": BUTTON_B,
    "Select": BUTTON_SELECT,
    "Start": BUTTON_START,
    "Up": BUTTON_UP,
    "Down": BUTTON_DOWN,
    "Left": BUTTON_LEFT,
    "Right": BUTTON_RIGHT,
}


def buttons_to_byte(buttons):
    """Pack a dict of button name -> pressed into the 8-bit snapshot"""
    button_byte = 0
    for name, bit in BUTTONS.items():
        if buttons.get(name, False):
            button_byte |= bit
    return button_byte


class Controller:
    """Shift register latched by the strobe bit.

    While strobe is high every read returns the A button. When strobe goes
    from high to low the current buttons are latched and subsequent reads
    return A, B, Select, Start, Up, Down, Left, Right, then 1s.
    """

    def __init__(self):
        self.buttons = 0
        self.shift = 0
        self.index = 0
        self.strobe = 0

    def set_buttons(self, value):
        self.buttons = value & 0xFF

    def write_strobe(self, value):
        old_strobe = self.strobe
        self.strobe = value & 1
        if old_strobe and not self.strobe:
            self.shift = self.buttons
            self.index = 0

    def read(self):
        if self.strobe:
            return self.buttons & 1
        if self.index > 7:
            return 1
        result = (self.shift >> self.index) & 1
        self.index += 1
        return result

    def get_state(self):
        return {
            "buttons": self.buttons,
            "shift": self.shift,
            "index": self.index,
            "strobe": self.strobe,
        }

    def set_state(self, state):
        self.buttons = state["buttons"]
        self.shift = state["shift"]
        self.index = state["index"]
        self.strobe = state["strobe"]

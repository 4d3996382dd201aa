"""
Interrupt lines shared between the PPU (or any other source) and the CPU
"""

NMI_VECTOR = 0xFFFA
RESET_VECTOR = 0xFFFC
IRQ_VECTOR = 0xFFFE

# Cycles the CPU spends pushing PC/status and loading a vector
INTERRUPT_CYCLES = 7


class InterruptLine:
    """A single pending/clear interrupt request.

    The PPU's vblank line is non-maskable (NMI); a maskable line is only
    serviced while the CPU's InterruptDisable flag is clear.
    """

    def __init__(self, name, vector, maskable):
        self.name = name
        self.vector = vector
        self.maskable = maskable
        self.pending = False

    def signal(self):
        self.pending = True

    def clear(self):
        self.pending = False

    def __repr__(self):
        state = "pending" if self.pending else "clear"
        return f"InterruptLine({self.name}, {state})"


def nmi_line():
    return InterruptLine("NMI", NMI_VECTOR, maskable=False)


def irq_line():
    return InterruptLine("IRQ", IRQ_VECTOR, maskable=True)

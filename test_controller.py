#!/usr/bin/env python3
"""
Test the controller shift register and button packing
"""

from controller import BUTTON_A, BUTTON_RIGHT, BUTTON_START, Controller, buttons_to_byte


def test_buttons_to_byte():
    assert buttons_to_byte({}) == 0
    assert buttons_to_byte({"A": True, "Start": True, "B": False}) == BUTTON_A | BUTTON_START
    assert buttons_to_byte({"Right": True, "Bogus": True}) == BUTTON_RIGHT


def test_reads_follow_button_order_then_ones():
    """After a strobe pulse reads return A..Right, then 1 forever"""
    controller = Controller()
    controller.set_buttons(0b01000010)  # B, Left
    controller.write_strobe(1)
    controller.write_strobe(0)
    bits = [controller.read() for _ in range(8)]
    assert bits == [0, 1, 0, 0, 0, 0, 1, 0]
    assert [controller.read() for _ in range(3)] == [1, 1, 1]


def test_latch_happens_on_falling_edge():
    controller = Controller()
    controller.set_buttons(BUTTON_A)
    controller.write_strobe(1)
    controller.set_buttons(0)
    controller.write_strobe(0)
    assert controller.read() == 0


def test_buttons_changed_after_latch_are_not_seen():
    controller = Controller()
    controller.set_buttons(BUTTON_A)
    controller.write_strobe(1)
    controller.write_strobe(0)
    controller.set_buttons(0)
    assert controller.read() == 1


def test_strobe_high_keeps_returning_a():
    controller = Controller()
    controller.set_buttons(BUTTON_A | BUTTON_START)
    controller.write_strobe(1)
    assert [controller.read() for _ in range(10)] == [1] * 10


def test_state_round_trip():
    controller = Controller()
    controller.set_buttons(0xA5)
    controller.write_strobe(1)
    controller.write_strobe(0)
    controller.read()
    state = controller.get_state()

    other = Controller()
    other.set_state(state)
    assert [other.read() for _ in range(7)] == [controller.read() for _ in range(7)]

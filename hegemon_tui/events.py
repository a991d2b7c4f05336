"""Input events passed from the terminal backend to the application."""

from dataclasses import dataclass
from enum import Enum
from typing import Union


class Key(Enum):
    """Keys the application distinguishes."""

    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"
    ESC = "esc"
    CHAR = "char"


class MouseButton(Enum):
    """Mouse buttons, including the two wheel directions."""

    LEFT = "left"
    MIDDLE = "middle"
    RIGHT = "right"
    WHEEL_UP = "wheel_up"
    WHEEL_DOWN = "wheel_down"


@dataclass(frozen=True)
class KeyEvent:
    """A key press. ``char`` is only set for ``Key.CHAR``."""

    key: Key
    char: str = ""


@dataclass(frozen=True)
class MouseEvent:
    """A mouse button press at a cell position."""

    button: MouseButton
    x: int = 0
    y: int = 0


Event = Union[KeyEvent, MouseEvent]


def char(c: str) -> KeyEvent:
    """Shorthand for a character key event."""
    return KeyEvent(Key.CHAR, c)


UP = KeyEvent(Key.UP)
DOWN = KeyEvent(Key.DOWN)
ESC = KeyEvent(Key.ESC)

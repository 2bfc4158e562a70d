"""Registration of command set-up functions run at program start."""

from __future__ import annotations

from typing import Callable

_var_init_fncs: list[Callable[[], object]] = []
_cmd_init_fncs: list[Callable[[], object]] = []


def register_command_var(c: Callable[[], object]) -> bool:
    """Register a function that creates a command object; returns True."""
    _var_init_fncs.append(c)
    return True


def register_command_init(c: Callable[[], object]) -> bool:
    """Register a function that configures a command; returns True."""
    _cmd_init_fncs.append(c)
    return True


def setup() -> None:
    """Run every variable function, then every init function, in order."""
    for fn in list(_var_init_fncs):
        fn()
    for fn in list(_cmd_init_fncs):
        fn()
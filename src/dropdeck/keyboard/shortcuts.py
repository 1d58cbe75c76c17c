from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from dropdeck.signals import ListenerHandle, SignalSource
from dropdeck.utils.logger_util import get_logger, logging

logger = get_logger(__name__, logging.DEBUG)

KEYDOWN = "keydown"


@dataclass
class KeyEvent:
    key: str
    ctrl: bool = False
    shift: bool = False
    alt: bool = False
    meta: bool = False
    # focus is in a text input / textarea / select / contenteditable
    target_is_input: bool = False
    default_prevented: bool = False
    propagation_stopped: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True

    def stop_propagation(self) -> None:
        self.propagation_stopped = True


@dataclass(frozen=True)
class KeyboardShortcut:
    key: str
    ctrl: bool = False
    shift: bool = False
    alt: bool = False
    meta: bool = False
    handler: Optional[Callable[[KeyEvent], None]] = None
    description: str = ""
    prevent_default: bool = True
    stop_propagation: bool = False
    # do not fire while a text input has focus
    ignore_inputs: bool = False

    def bind(self, handler: Callable[[KeyEvent], None]) -> "KeyboardShortcut":
        return dataclasses.replace(self, handler=handler)


def is_mac(platform: str) -> bool:
    """True for macOS platform strings (``MacIntel``, ``darwin``, ...)."""
    p = (platform or "").lower()
    return "mac" in p or p.startswith("darwin")


def _pressed(event: KeyEvent, mac: bool) -> Tuple[bool, bool, bool, bool]:
    # (primary, shift, alt, other); on macOS Cmd plays the Ctrl role
    if mac:
        return (event.meta, event.shift, event.alt, event.ctrl)
    return (event.ctrl, event.shift, event.alt, event.meta)


def _required(shortcut: KeyboardShortcut, mac: bool) -> Tuple[bool, bool, bool, bool]:
    if mac:
        return (shortcut.ctrl or shortcut.meta, shortcut.shift, shortcut.alt, False)
    return (shortcut.ctrl, shortcut.shift, shortcut.alt, shortcut.meta)


def matches_shortcut(event: KeyEvent, shortcut: KeyboardShortcut, platform: str = "") -> bool:
    """Key (case-insensitive) and the full modifier set must match exactly."""
    if event.key.lower() != shortcut.key.lower():
        return False
    mac = is_mac(platform)
    if _pressed(event, mac) != _required(shortcut, mac):
        return False
    if shortcut.ignore_inputs and event.target_is_input:
        return False
    return True


def format_shortcut(shortcut: KeyboardShortcut, platform: str = "") -> str:
    """Human-readable label, e.g. ``Ctrl+K`` or ``⌘K`` on macOS."""
    mac = is_mac(platform)
    parts: List[str] = []
    if shortcut.ctrl:
        parts.append("⌘" if mac else "Ctrl")
    if shortcut.shift:
        parts.append("⇧" if mac else "Shift")
    if shortcut.alt:
        parts.append("⌥" if mac else "Alt")
    if shortcut.meta and not (mac and shortcut.ctrl):
        parts.append("⌘" if mac else "Win")
    if shortcut.key:
        parts.append(shortcut.key.upper() if len(shortcut.key) == 1 else shortcut.key)
    return ("" if mac else "+").join(parts)


class ShortcutDispatcher:
    """Routes ``keydown`` signals to the first exactly-matching binding.

    The binding table may be swapped at any time with ``set_shortcuts``; the
    single listener registration is released by ``close()``.
    """

    def __init__(self, signals: SignalSource, shortcuts: Iterable[KeyboardShortcut] = (), platform: str = ""):
        self.platform = platform
        self._shortcuts: List[KeyboardShortcut] = []
        self.set_shortcuts(shortcuts)
        self._handle: Optional[ListenerHandle] = signals.add_listener(KEYDOWN, self.dispatch)

    @property
    def shortcuts(self) -> List[KeyboardShortcut]:
        return list(self._shortcuts)

    def set_shortcuts(self, shortcuts: Iterable[KeyboardShortcut]) -> None:
        table = list(shortcuts)
        for s in table:
            if s.handler is None:
                raise ValueError(f"shortcut {format_shortcut(s, self.platform)!r} has no handler")
        self._shortcuts = table

    def dispatch(self, event: KeyEvent) -> Optional[KeyboardShortcut]:
        if self._handle is None:
            return None
        for s in self._shortcuts:
            if not matches_shortcut(event, s, self.platform):
                continue
            if s.prevent_default:
                event.prevent_default()
            if s.stop_propagation:
                event.stop_propagation()
            logger.debug("shortcut %s fired", format_shortcut(s, self.platform))
            s.handler(event)
            return s
        return None

    @property
    def closed(self) -> bool:
        return self._handle is None

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def __enter__(self) -> "ShortcutDispatcher":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


APP_SHORTCUTS: Dict[str, KeyboardShortcut] = {
    "search": KeyboardShortcut("k", ctrl=True, description="Open search"),
    "refresh": KeyboardShortcut("r", ctrl=True, description="Refresh deliveries"),
    "settings": KeyboardShortcut(",", ctrl=True, description="Open settings"),
    "help": KeyboardShortcut("?", shift=True, description="Show keyboard shortcuts"),
    "escape": KeyboardShortcut("Escape", description="Close modal/panel"),
    "next": KeyboardShortcut("j", ignore_inputs=True, description="Next delivery"),
    "previous": KeyboardShortcut("k", ignore_inputs=True, description="Previous delivery"),
    "select": KeyboardShortcut("Enter", ignore_inputs=True, description="Select delivery"),
    "map_toggle": KeyboardShortcut("m", ignore_inputs=True, description="Toggle map view"),
}


def app_shortcuts(handlers: Dict[str, Callable[[KeyEvent], None]]) -> List[KeyboardShortcut]:
    """Bind handlers to the named APP_SHORTCUTS, in APP_SHORTCUTS order."""
    unknown = set(handlers) - set(APP_SHORTCUTS)
    if unknown:
        raise KeyError(f"unknown app shortcut(s): {sorted(unknown)}")
    return [s.bind(handlers[name]) for name, s in APP_SHORTCUTS.items() if name in handlers]

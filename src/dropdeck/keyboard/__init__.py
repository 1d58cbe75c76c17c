from dropdeck.keyboard.shortcuts import (
    APP_SHORTCUTS,
    KeyEvent,
    KeyboardShortcut,
    ShortcutDispatcher,
    app_shortcuts,
    format_shortcut,
    matches_shortcut,
)

__all__ = [
    "APP_SHORTCUTS",
    "KeyEvent",
    "KeyboardShortcut",
    "ShortcutDispatcher",
    "app_shortcuts",
    "format_shortcut",
    "matches_shortcut",
]

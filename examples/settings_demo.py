"""
Settings screen of a small list app, driven without any UI.

The host keeps its preferences in a plain dict, describes the settings
screen declaratively and replays a few user interactions against the
session the way a presentation layer would.

Run with:
    python examples/settings_demo.py
"""

import logging
from enum import IntEnum
from typing import Any, Dict, Optional, Sequence

from propertysheet import (
    PropertyRow,
    RowType,
    SessionController,
    SettingsDelegate,
    p_multivalue,
    p_row,
    p_section,
)

logger = logging.getLogger(__name__)


class BackgroundColor(IntEnum):
    WHITE = 0
    YELLOW = 1
    GREEN = 2
    BLUE = 3


def settings_schema(show_sync_interval: bool = False):
    sync_rows = [p_row("Sync", RowType.BOOLEAN, False, identifier="sync")]
    if show_sync_interval:
        sync_rows.append(p_row("Every (minutes)", RowType.INTEGER, 15, keyboard_hint=4, identifier="sync_minutes"))

    return [
        p_section("Appearance", rows=[
            p_row("Background", RowType.MULTI_VALUE, [
                p_multivalue(color.name.title(), color.value) for color in BackgroundColor
            ], identifier="background"),
            p_row("Title", RowType.STRING, "My list", identifier="title"),
        ]),
        p_section("Account", footer="Credentials never leave this device", rows=sync_rows + [
            p_row("Server", RowType.MULTI_LEVEL, [
                p_section("Server", key="server", rows=[
                    p_row("Host", RowType.STRING, "localhost", identifier="host"),
                    p_row("Port", RowType.INTEGER, 443, keyboard_hint=4, identifier="port"),
                ]),
            ], identifier="server"),
            p_row("Reset to defaults", RowType.ACTION),
        ]),
    ]


class ListAppSettings(SettingsDelegate):
    """Host delegate: owns the stored preferences and applies changes live."""

    def __init__(self, preferences: Dict[str, Any]):
        self.preferences = preferences

    def initial_values(self):
        return self.preferences

    def default_values(self):
        return {"background": BackgroundColor.WHITE.value}

    def on_row_changed(self, value: Any, row: PropertyRow) -> None:
        if row.identifier == "background":
            logger.info(f"Background is now {BackgroundColor(value).name.lower()}")
        if row.identifier == "sync":
            self.preferences["sync"] = value

    def refresh_schema(self, current_groups: Sequence[Any]) -> Optional[Sequence[Any]]:
        # Called for every level; only the top level depends on other rows
        if any(group.key == "server" for group in current_groups):
            return None
        return settings_schema(show_sync_interval=bool(self.preferences.get("sync")))

    def perform_action(self, row: PropertyRow, session) -> None:
        logger.info("Resetting preferences")
        self.preferences.clear()

    def did_dismiss(self, session) -> None:
        logger.info(f"Closed settings level {session.nesting_level} with {session.diff()}")


def main():
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    delegate = ListAppSettings({"title": "Groceries"})
    controller = SessionController(settings_schema(), delegate)
    root = controller.begin()

    for group in root.descriptors():
        for row in group.rows:
            logger.info(f"[{group.title}] {row.name}: {row.value!r} ({row.interaction_kind.value})")

    root.select_choice("background", BackgroundColor.YELLOW.value)
    root.activate("sync")
    logger.info(f"Sync interval row shown: {root.row_for('sync_minutes') is not None}")
    root.commit("sync_minutes", "30")

    server = root.activate("server")
    server.commit("host", "lists.example.org")
    server.dismiss()

    output = controller.dismiss()
    logger.info(f"Settings output: {output}")


if __name__ == "__main__":
    main()

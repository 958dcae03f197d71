from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import BaseModel

Category = Literal["tracking", "store", "api"]

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class DebugFlags(BaseModel):
    """Per-category debug toggles. Built once from settings and handed to DebugLogger."""

    show_tracking_debug: bool = False
    show_store_debug: bool = False
    show_api_debug: bool = False

    def enabled(self, category: Category) -> bool:
        return bool(getattr(self, f"show_{category}_debug", False))


class DebugLogger:
    """
    Category-gated diagnostics on top of stdlib logging.

    Errors never go through here: modules log failures on their own
    `logging.getLogger(__name__)` so they are always visible.

    Usage:
      debug = DebugLogger(DebugFlags(show_tracking_debug=True))
      debug.tracking("Logged %s for content %s", "like", 603)
    """

    def __init__(
        self,
        flags: DebugFlags | None = None,
        *,
        production: bool = False,
        logger: logging.Logger | None = None,
    ):
        self.flags = flags or DebugFlags()
        self.production = production
        self.logger = logger or logging.getLogger("nettrailers.debug")

    def is_enabled(self, category: Category) -> bool:
        return not self.production and self.flags.enabled(category)

    def _emit(self, category: Category, msg: str, args: tuple[Any, ...]) -> None:
        if self.is_enabled(category):
            self.logger.info(f"[{category}] {msg}", *args)

    def tracking(self, msg: str, *args: Any) -> None:
        self._emit("tracking", msg, args)

    def store(self, msg: str, *args: Any) -> None:
        self._emit("store", msg, args)

    def api(self, msg: str, *args: Any) -> None:
        self._emit("api", msg, args)


def configure_logging(level: str | int = "INFO") -> None:
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)

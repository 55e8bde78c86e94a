# src/desk_agent/notifier.py

from __future__ import annotations

import logging
import shutil
import subprocess
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)

NOTIFY_SEND = "notify-send"


class DesktopNotifier:
    """
    System notifications through the freedesktop `notify-send` tool.

    - availability is checked on every call (the binary may appear/disappear)
    - unavailable -> no-op; the caller's own logging is the only trace
    - on_click: if given, a default action is requested and the callback runs when the user
      clicks the notification (a daemon thread waits for the click)
    """

    def __init__(self, *, app_name: str = "desk-agent", on_click: Callable[[], None] | None = None) -> None:
        self._app_name = app_name
        self._on_click = on_click

    @staticmethod
    def is_supported() -> bool:
        return shutil.which(NOTIFY_SEND) is not None

    def notify(self, title: str, body: str) -> None:
        binary = shutil.which(NOTIFY_SEND)
        if binary is None:
            logger.debug("Notifications unsupported; dropped title=%r", title)
            return

        cmd = [binary, "--app-name", self._app_name, str(title or self._app_name), str(body or "")]

        if self._on_click is None:
            try:
                subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
            except OSError:
                logger.warning("notify-send failed to start", exc_info=True)
            return

        threading.Thread(
            target=self._notify_and_wait,
            args=(cmd,),
            name="notify-click",
            daemon=True,
        ).start()

    def _notify_and_wait(self, cmd: list[str]) -> None:
        wait_cmd = [cmd[0], "--action=default=Open", "--wait", *cmd[1:]]
        try:
            proc = subprocess.run(wait_cmd, capture_output=True, text=True, check=False)
        except OSError:
            logger.warning("notify-send failed to start", exc_info=True)
            return

        if proc.stdout.strip() == "default" and self._on_click is not None:
            try:
                self._on_click()
            except Exception:
                logger.exception("Notification click handler failed")

"""
Intervention dispatch — tells the user to take a break.

Every intervention is broadcast as a TRIGGER_INTERVENTION message to the
subscribed UI surfaces (dashboard WebSocket, overlays); when enabled, a
native desktop notification is raised as well.
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
import sys
from typing import Any, Callable, Dict, List, Set

from ..transport.messages import TriggerIntervention

logger = logging.getLogger(__name__)

TITLE = "Drift"


def format_message(score: float) -> str:
    return f"Focus drifting? Take a break! (AI Score: {round(score * 100)}%)"


class Notifier:

    def __init__(self, desktop: bool = True, break_url: str = "/break"):
        self.desktop = desktop
        self.break_url = break_url
        self._subscribers: List[Callable[[Dict[str, Any]], None]] = []
        self.sent: List[TriggerIntervention] = []
        self._pending: Set[asyncio.Future] = set()

    def subscribe(self, fn: Callable[[Dict[str, Any]], None]) -> Callable[[], None]:
        """Register a surface; returns an unsubscribe function."""
        self._subscribers.append(fn)
        return lambda: self._subscribers.remove(fn)

    def trigger(self, score: float) -> TriggerIntervention:
        msg = TriggerIntervention(
            score=score,
            title=TITLE,
            message=format_message(score),
            breakUrl=self.break_url,
        )
        self.sent.append(msg)
        del self.sent[:-50]
        wire = msg.to_wire()
        for fn in list(self._subscribers):
            try:
                fn(wire)
            except Exception:
                logger.exception("Intervention subscriber failed")
        logger.info("Intervention sent (score %.2f)", score)
        if self.desktop:
            self._dispatch_desktop(msg.title or TITLE, msg.message or "")
        return msg

    async def drain(self) -> None:
        """Wait for desktop notifications still running in the executor."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    def _dispatch_desktop(self, title: str, message: str) -> None:
        # The notifier subprocess can take seconds; keep it off the event loop
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            shown = self._show_desktop(title, message)
            logger.debug("Desktop notification shown=%s", shown)
            return
        fut = loop.run_in_executor(None, self._show_desktop, title, message)
        self._pending.add(fut)
        fut.add_done_callback(self._desktop_done)

    def _desktop_done(self, fut: asyncio.Future) -> None:
        self._pending.discard(fut)
        if fut.cancelled():
            return
        if fut.exception() is not None:
            logger.error("Desktop notification crashed: %s", fut.exception())
        else:
            logger.debug("Desktop notification shown=%s", fut.result())

    # ------------------------------------------------------------------
    # Platform implementations
    # ------------------------------------------------------------------

    def _show_desktop(self, title: str, message: str) -> bool:
        if sys.platform == "win32":
            return self._windows_toast(title, message)
        if sys.platform == "darwin":
            return self._macos_notify(title, message)
        return self._linux_notify(title, message)

    def _windows_toast(self, title: str, message: str) -> bool:
        script = (
            "[Windows.UI.Notifications.ToastNotificationManager, Windows.UI.Notifications, "
            "ContentType = WindowsRuntime] > $null; "
            "$t = [Windows.UI.Notifications.ToastNotificationManager]::GetTemplateContent("
            "[Windows.UI.Notifications.ToastTemplateType]::ToastText02); "
            f"$t.GetElementsByTagName('text')[0].AppendChild($t.CreateTextNode('{_ps_quote(title)}')) > $null; "
            f"$t.GetElementsByTagName('text')[1].AppendChild($t.CreateTextNode('{_ps_quote(message)}')) > $null; "
            "[Windows.UI.Notifications.ToastNotificationManager]::CreateToastNotifier('Drift')"
            ".Show([Windows.UI.Notifications.ToastNotification]::new($t))"
        )
        return self._run(["powershell", "-NoProfile", "-Command", script])

    def _macos_notify(self, title: str, message: str) -> bool:
        script = f'display notification "{_as_quote(message)}" with title "{_as_quote(title)}"'
        return self._run(["osascript", "-e", script])

    def _linux_notify(self, title: str, message: str) -> bool:
        return self._run(["notify-send", "--urgency=critical", title, message])

    @staticmethod
    def _run(cmd: List[str]) -> bool:
        try:
            subprocess.run(cmd, check=True, capture_output=True, timeout=5)
            return True
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("Desktop notification unavailable: %s", e)
            return False


def _ps_quote(text: str) -> str:
    return text.replace("'", "''")


def _as_quote(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')

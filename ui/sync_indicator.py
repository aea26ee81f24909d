from __future__ import annotations

from typing import Awaitable, Callable, Optional

import flet as ft

from models.sync_status import SyncStatus


OFFLINE_BG = "#FEE2E2"
SYNCING_BG = "#E0E7FF"
PENDING_BG = "#FEF3C7"
SYNCED_BG = "#DCFCE7"


def status_label(status: SyncStatus) -> str:
    pending = status.pending_action_count
    if not status.is_online:
        return f"Offline · {pending} pending" if pending else "Offline"
    if status.is_syncing:
        return "Syncing..."
    if pending:
        return f"{pending} pending action" + ("" if pending == 1 else "s")
    return "All changes synced"


def status_color(status: SyncStatus) -> str:
    if not status.is_online:
        return OFFLINE_BG
    if status.is_syncing:
        return SYNCING_BG
    if status.pending_action_count:
        return PENDING_BG
    return SYNCED_BG


class SyncIndicator:
    """Banner with the offline/pending state and a "Sync now" button.

    Register :meth:`apply` as a status listener on the orchestrator.
    """

    def __init__(
        self,
        page: Optional[ft.Page] = None,
        on_sync_now: Optional[Callable[[], Awaitable[object]]] = None,
    ):
        self.page = page
        self.on_sync_now = on_sync_now
        self.label = ft.Text(status_label(SyncStatus()), weight=ft.FontWeight.W_500)
        self.errors = ft.Text("", size=12, visible=False)
        self.sync_button = ft.TextButton(
            "Sync now",
            on_click=self._handle_sync_click,
            visible=on_sync_now is not None,
        )
        self.view = ft.Container(
            content=ft.Row(
                controls=[ft.Column([self.label, self.errors], spacing=2, expand=True), self.sync_button],
                alignment=ft.MainAxisAlignment.SPACE_BETWEEN,
            ),
            bgcolor=status_color(SyncStatus()),
            padding=8,
            border_radius=8,
        )

    def apply(self, status: SyncStatus) -> None:
        self.label.value = status_label(status)
        self.view.bgcolor = status_color(status)
        self.sync_button.disabled = status.is_syncing or not status.is_online
        if status.recent_errors:
            self.errors.value = "; ".join(status.recent_errors[:2])
            self.errors.visible = True
        else:
            self.errors.value = ""
            self.errors.visible = False
        if self.page is not None:
            self.page.update()

    async def _handle_sync_click(self, e):
        if self.on_sync_now is not None:
            await self.on_sync_now()

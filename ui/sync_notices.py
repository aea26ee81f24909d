import flet as ft

from ui.dialogs import close_alert_dialog, open_alert_dialog


class FletNotifier:
    """Shows sync notices (dropped uploads) as a modal dialog on ``page``."""

    def __init__(self, page: ft.Page):
        self.page = page
        self.dialogs: list[ft.AlertDialog] = []

    def notify(self, title: str, message: str) -> None:
        dlg = None

        def _close(e):
            close_alert_dialog(self.page, dlg)
            if dlg in self.dialogs:
                self.dialogs.remove(dlg)

        dlg = open_alert_dialog(
            self.page,
            title=title,
            content=ft.Text(message),
            actions=[ft.TextButton("OK", on_click=_close)],
        )
        self.dialogs.append(dlg)

from contextlib import contextmanager

from PySide6.QtCore import QSettings


class HasSettings:
    """
    Mixin for widgets persisting their state in a ``QSettings`` group.

    Settings are loaded when the widget is created and saved when it is
    closed.
    """

    def __init__(self):
        super().__init__()
        self.settings = QSettings()
        with self.settings_group():
            self.settings_load()

    @contextmanager
    def settings_group(self):
        self.settings.beginGroup(self.settings_group_name())
        try:
            yield self.settings
        finally:
            self.settings.endGroup()

    def settings_group_name(self) -> str:
        raise NotImplementedError()

    def settings_load(self):
        pass

    def settings_save(self):
        pass

    def closeEvent(self, event):
        super().closeEvent(event)  # type: ignore

        with self.settings_group():
            self.settings_save()
        event.accept()

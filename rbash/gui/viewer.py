from PySide6 import QtCore, QtGui
from PySide6.QtCore import Signal
from PySide6.QtWidgets import (
    QHBoxLayout,
    QLabel,
    QLayout,
    QProgressBar,
    QSizePolicy,
    QToolButton,
    QVBoxLayout,
    QWidget,
)

from rbash.gui.common import ColorGray


class Viewer(QWidget):
    """
    A panel shown in the main window's working area, to the right of the
    panel that opened it.

    Each viewer owns at most one child panel per slot. Opening a new panel
    in a slot closes the previous one along with everything it opened.
    """

    addedNewPanel = Signal(QWidget)

    def __init__(self, title: str, working_area: QLayout):
        super().__init__()

        self.working_area = working_area
        self.children_by_slot: dict[str, QWidget] = {}

        self.title = QLabel(title)
        self.title.setTextInteractionFlags(QtCore.Qt.TextSelectableByMouse)
        palette = self.title.palette()
        palette.setColor(QtGui.QPalette.WindowText, ColorGray)
        self.title.setPalette(palette)

        close = QToolButton()
        close.setText("×")
        close.setAutoRaise(True)
        close.clicked.connect(self.close)

        header = QHBoxLayout()
        header.setContentsMargins(4, 0, 0, 0)
        header.addWidget(self.title, 1)
        header.addWidget(close)

        self.progress = QProgressBar()
        self.progress.setMaximumHeight(12)
        self.progress.hide()

        self.layout = QVBoxLayout()
        self.layout.setContentsMargins(0, 0, 0, 0)
        self.layout.addLayout(header)
        self.layout.addWidget(self.progress)

        self.setSizePolicy(
            QSizePolicy(QSizePolicy.Minimum, QSizePolicy.Minimum)
        )
        self.setMinimumWidth(400)
        self.setLayout(self.layout)

    def set_body(self, widget: QWidget):
        """
        Place the viewer's main widget between the header and the progress
        bar.
        """
        self.layout.insertWidget(1, widget, 1)

    def on_loading_start(self, maximum: int):
        self.progress.setRange(0, maximum)
        self.progress.setValue(0)
        self.progress.show()

    def on_loading_progress(self, value: int):
        self.progress.setValue(value)

    def on_loading_complete(self):
        self.progress.hide()

    def open_panel(self, slot: str, panel: QWidget):
        self.close_panel(slot)

        self.children_by_slot[slot] = panel
        self.working_area.addWidget(panel)
        self.addedNewPanel.emit(panel)

        if isinstance(panel, Viewer):
            # Lets the main window scroll to panels opened further down.
            panel.addedNewPanel.connect(
                self.addedNewPanel.emit,
                QtCore.Qt.QueuedConnection,  # noqa
            )

    def close_panel(self, slot: str):
        panel = self.children_by_slot.pop(slot, None)
        if panel is None:
            return

        self.working_area.removeWidget(panel)
        panel.close()
        panel.deleteLater()

    def closeEvent(self, event: QtGui.QCloseEvent) -> None:
        for slot in list(self.children_by_slot):
            self.close_panel(slot)

        super().closeEvent(event)
        self.working_area.removeWidget(self)

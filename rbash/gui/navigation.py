from pathlib import Path

from PySide6 import QtCore, QtGui
from PySide6.QtCore import Signal
from PySide6.QtWidgets import (
    QLayout,
    QTreeWidget,
    QTreeWidgetItem,
    QVBoxLayout,
    QWidget,
)

from rbash.collection import Collection
from rbash.gui.common import ColorGray, ColorOrange, monospace, tr
from rbash.gui.viewer import Viewer
from rbash.gui.viewers.mod_viewer import ModViewer
from rbash.modfile import ModFile


class ModNode(QTreeWidgetItem):
    def __init__(self, mod: ModFile):
        super().__init__()
        self.mod = mod

        self.setText(0, mod.name)
        self.setText(1, f"{mod.index:02X}")
        self.setFont(1, monospace())
        self.setForeground(1, QtGui.QBrush(ColorGray))
        if mod.is_empty:
            self.setForeground(0, QtGui.QBrush(ColorGray))

    def get_viewer(self, working_area: QLayout) -> Viewer:
        return ModViewer(self.mod, working_area)


class CollectionNode(QTreeWidgetItem):
    """
    A loaded collection. The node owns the collection and closes it when
    removed from the tree.
    """

    def __init__(self, collection: Collection, path: str):
        super().__init__()
        self.collection = collection

        self.setText(0, Path(path).name or path)
        self.setToolTip(0, path)
        self.setText(1, collection.kind.name)
        self.setForeground(1, QtGui.QBrush(ColorOrange))

        self.addChildren(
            [ModNode(mod) for mod in collection.load_order_mods()]
        )

    def close(self):
        self.collection.close()


class Navigation(QWidget):
    addedNewPanel = Signal(QWidget)

    def __init__(self, working_area: QLayout):
        super().__init__()

        self.working_area = working_area
        self.viewer: Viewer | None = None

        self.tree = QTreeWidget()
        self.tree.setColumnCount(2)
        self.tree.setHeaderLabels(
            (
                tr("Navigation", "Name", None),
                tr("Navigation", "Index", None),
            )
        )
        self.tree.itemDoubleClicked.connect(self.on_item_double_clicked)

        self.layout = QVBoxLayout(self)
        self.layout.addWidget(self.tree)
        self.layout.setContentsMargins(0, 0, 0, 0)

    def add_collection(self, node: CollectionNode):
        self.tree.addTopLevelItem(node)
        node.setExpanded(True)

    def close_collections(self):
        if self.viewer is not None:
            self.viewer.close()
            self.viewer = None

        while self.tree.topLevelItemCount():
            node = self.tree.takeTopLevelItem(0)
            if isinstance(node, CollectionNode):
                node.close()

    def on_item_double_clicked(self, item: QTreeWidgetItem, column: int):
        if not isinstance(item, ModNode):
            return

        if self.viewer is not None:
            self.viewer.close()

        self.viewer = item.get_viewer(self.working_area)
        self.viewer.addedNewPanel.connect(
            self.addedNewPanel.emit, QtCore.Qt.QueuedConnection  # noqa
        )
        self.working_area.addWidget(self.viewer)
        self.addedNewPanel.emit(self.viewer)

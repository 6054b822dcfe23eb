from PySide6.QtCore import Qt
from PySide6.QtWidgets import (
    QHeaderView,
    QLayout,
    QSizePolicy,
    QTreeWidget,
    QTreeWidgetItem,
)

from rbash.gui.common import ColorGray, monospace, tr
from rbash.gui.viewer import Viewer
from rbash.io import BinaryReader

#: Offsets tried when guessing, fields are rarely misaligned by more.
MAX_OFFSET = 3

# (label, BinaryReader method)
INTERPRETATIONS = (
    ("uint8", "uint8"),
    ("uint16", "uint16"),
    ("uint32", "uint32"),
    ("uint64", "uint64"),
    ("int8", "int8"),
    ("int16", "int16"),
    ("int32", "int32"),
    ("int64", "int64"),
    ("float", "float_"),
    ("double", "double"),
    ("cstring", "cstring"),
)


def guess(data: bytes, offset: int) -> list[tuple[str, object]]:
    """
    Read `data` at `offset` as every type in ``INTERPRETATIONS``. Types that
    don't fit in the remaining bytes come back as ``None``.
    """
    io = BinaryReader(data)
    results = []
    for label, method in INTERPRETATIONS:
        io.seek(offset)
        try:
            value = getattr(io, method)()
        except (EOFError, UnicodeDecodeError):
            value = None
        results.append((label, value))
    return results


class BinaryViewer(Viewer):
    """
    Shows a raw field value as every numeric type it could be.
    """

    def __init__(self, title: str, data: bytes, working_area: QLayout):
        super().__init__(title, working_area=working_area)
        self.data = data
        self.setMinimumWidth(0)

        self.tree = QTreeWidget()
        self.tree.setColumnCount(2)
        self.tree.setHeaderLabels(
            (
                tr("BinaryViewer", "Type", None),
                tr("BinaryViewer", "Value", None),
            )
        )
        header = self.tree.header()
        header.setStretchLastSection(False)
        header.setSectionResizeMode(0, QHeaderView.ResizeToContents)
        header.setSectionResizeMode(1, QHeaderView.Stretch)
        self.tree.setAlternatingRowColors(True)
        self.tree.setSizePolicy(
            QSizePolicy.Minimum, QSizePolicy.MinimumExpanding
        )

        raw = QTreeWidgetItem((tr("BinaryViewer", "Bytes", None), data.hex(" ")))
        raw.setFont(1, monospace())
        self.tree.addTopLevelItem(raw)

        for offset in range(min(MAX_OFFSET, len(data))):
            section = QTreeWidgetItem(
                (tr("BinaryViewer", "Offset {0}", None).format(offset),)
            )
            section.setFirstColumnSpanned(True)
            section.setForeground(0, ColorGray)
            font = self.tree.font()
            font.setItalic(True)
            section.setFont(0, font)

            for label, value in guess(data, offset):
                item = QTreeWidgetItem((label, repr(value)))
                item.setTextAlignment(1, Qt.AlignRight)
                if value is None:
                    item.setForeground(1, ColorGray)
                section.addChild(item)

            self.tree.addTopLevelItem(section)
            section.setExpanded(offset == 0)

        self.set_body(self.tree)

from PySide6 import QtGui
from PySide6.QtWidgets import (
    QHeaderView,
    QLayout,
    QTreeWidget,
    QTreeWidgetItem,
)

from rbash.enums import RecordHeaderFlag
from rbash.gui.common import (
    ColorGray,
    ColorGreen,
    ColorPurple,
    ColorRed,
    format_formid,
    monospace,
    tr,
)
from rbash.gui.viewer import Viewer
from rbash.gui.viewers.record_viewer import RecordViewer
from rbash.modfile import ModFile
from rbash.record import Record


class RecordChild(QTreeWidgetItem):
    def __init__(self, record: Record):
        super().__init__()
        self.record = record

        self.setText(0, format_formid(record.form_id))
        self.setFont(0, monospace())
        self.setToolTip(0, tr("ModViewer", "Form ID", None))

        editor_id = record.editor_id
        if editor_id:
            self.setText(1, editor_id)
            self.setForeground(1, QtGui.QBrush(ColorPurple))

        if record.is_winning():
            self.setText(2, tr("ModViewer", "Winning", None))
            self.setForeground(2, QtGui.QBrush(ColorGreen))
        else:
            self.setText(2, tr("ModViewer", "Overridden", None))
            self.setForeground(2, QtGui.QBrush(ColorGray))

        if record.flags & RecordHeaderFlag.Deleted:
            self.setForeground(0, QtGui.QBrush(ColorRed))


class TypeChild(QTreeWidgetItem):
    """
    A record type of the mod. Its records are only fetched the first time
    it is expanded.
    """

    def __init__(self, mod: ModFile, rec_type: str):
        super().__init__()
        self.mod = mod
        self.rec_type = rec_type
        self.populated = False

        self.setText(0, rec_type)
        self.setFont(0, monospace())
        self.setText(1, str(mod.record_num(rec_type)))
        self.setForeground(1, QtGui.QBrush(ColorGray))
        self.setChildIndicatorPolicy(QTreeWidgetItem.ShowIndicator)

    def populate(self):
        if self.populated:
            return
        self.populated = True
        self.addChildren(
            [RecordChild(record) for record in self.mod.records(self.rec_type)]
        )


class ModViewer(Viewer):
    """
    Lists the record types of a mod and, once expanded, their records.
    """

    def __init__(self, mod: ModFile, working_area: QLayout):
        super().__init__(mod.name, working_area=working_area)
        self.mod = mod

        self.details = QTreeWidget()
        self.details.setUniformRowHeights(True)
        self.details.setColumnCount(3)
        self.details.setHeaderLabels(
            (
                tr("ModViewer", "Type / Form ID", None),
                tr("ModViewer", "EDID", None),
                tr("ModViewer", "State", None),
            )
        )
        self.details.header().setSectionResizeMode(1, QHeaderView.Stretch)
        self.details.itemExpanded.connect(self.on_item_expanded)
        self.details.itemDoubleClicked.connect(self.on_item_double_clicked)
        self.set_body(self.details)

        summary = QTreeWidgetItem(self.details)
        summary.setText(0, tr("ModViewer", "Details", None))
        summary.addChildren(
            [
                QTreeWidgetItem(["File", mod.file_name]),
                QTreeWidgetItem(["Load Order", f"{mod.index:02X}"]),
                QTreeWidgetItem(["ITM Records", str(mod.itm_num())]),
                QTreeWidgetItem(["Orphans", str(mod.orphan_record_num())]),
                QTreeWidgetItem(["Empty Groups", str(mod.empty_groups_num())]),
            ]
        )
        summary.setExpanded(True)

        rec_types = sorted(mod.record_types())
        self.on_loading_start(len(rec_types))
        for i, rec_type in enumerate(rec_types):
            self.details.addTopLevelItem(TypeChild(mod, rec_type))
            self.on_loading_progress(i + 1)
        self.on_loading_complete()

    def on_item_expanded(self, item: QTreeWidgetItem):
        if isinstance(item, TypeChild):
            item.populate()

    def on_item_double_clicked(self, item: QTreeWidgetItem, column: int):
        if isinstance(item, RecordChild):
            self.open_panel(
                "record", RecordViewer(item.record, self.working_area)
            )

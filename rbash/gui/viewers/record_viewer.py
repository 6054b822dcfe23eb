from PySide6.QtWidgets import (
    QHBoxLayout,
    QHeaderView,
    QLayout,
    QPushButton,
    QSpinBox,
    QTreeWidget,
    QTreeWidgetItem,
    QWidget,
)

from rbash.cbash import CBashError
from rbash.enums import RecordHeaderFlag
from rbash.fields import FieldPath, field_type, get_raw, get_value
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
from rbash.gui.viewers.binary_viewer import BinaryViewer
from rbash.record import Record

#: Fields shared by every record type.
HEADER_FIELDS = (
    (1, "Flags"),
    (2, "Form ID"),
    (3, "Flags 2"),
    (4, "Editor ID"),
)


class FieldChild(QTreeWidgetItem):
    def __init__(self, record: Record, path: FieldPath, label: str):
        super().__init__()
        self.record = record
        self.path = path

        self.setText(0, label)
        try:
            type_ = field_type(record, path)
            value = get_value(record, path)
        except (CBashError, TypeError) as e:
            self.setText(1, str(e))
            self.setForeground(1, ColorRed)
            return

        self.setText(1, "-" if value is None else str(value))
        self.setForeground(1, ColorPurple)
        self.setText(2, type_.name)
        self.setForeground(2, ColorGray)


class ConflictChild(QTreeWidgetItem):
    def __init__(self, record: Record, winning: bool):
        super().__init__()
        self.record = record

        self.setText(0, record.mod.name)
        self.setText(1, format_formid(record.form_id))
        self.setFont(1, monospace())
        if winning:
            self.setText(2, tr("RecordViewer", "Winning", None))
            self.setForeground(2, ColorGreen)


class RecordViewer(Viewer):
    """
    Details of a single record: its header, every version of it across the
    collection and any field the user asks for.
    """

    def __init__(self, record: Record, working_area: QLayout):
        super().__init__(
            f"{record.type} {format_formid(record.form_id)}",
            working_area=working_area,
        )
        self.record = record

        self.details = QTreeWidget()
        self.details.setColumnCount(3)
        self.details.setHeaderLabels(
            (
                tr("RecordViewer", "Field", None),
                tr("RecordViewer", "Value", None),
                tr("RecordViewer", "Data Type", None),
            )
        )
        header = self.details.header()
        header.setStretchLastSection(False)
        header.setSectionResizeMode(1, QHeaderView.Stretch)
        self.details.currentItemChanged.connect(self.on_item_changed)
        self.details.itemDoubleClicked.connect(self.on_item_double_clicked)

        self.field_id = QSpinBox()
        self.field_id.setRange(0, 0xFFFF)
        self.field_id.setValue(5)
        self.field_id.setPrefix(tr("RecordViewer", "Field ", None))
        inspect = QPushButton(tr("RecordViewer", "Inspect", None))
        inspect.clicked.connect(self.on_inspect)

        inspector = QWidget()
        inspector_layout = QHBoxLayout(inspector)
        inspector_layout.setContentsMargins(0, 0, 0, 0)
        inspector_layout.addWidget(self.field_id, 1)
        inspector_layout.addWidget(inspect)

        self.set_body(self.details)
        self.layout.insertWidget(2, inspector)

        self.populate()

    def populate(self):
        record = self.record

        summary = QTreeWidgetItem(self.details)
        summary.setText(0, tr("RecordViewer", "Details", None))

        flags = QTreeWidgetItem(["Flags", f"0x{int(record.flags):08X}"])
        flags.addChildren(
            [
                QTreeWidgetItem([flag.name, str(True)])
                for flag in RecordHeaderFlag
                if flag in record.flags
            ]
        )
        summary.addChildren(
            [
                QTreeWidgetItem(["Type", record.type]),
                QTreeWidgetItem(["Form ID", format_formid(record.form_id)]),
                QTreeWidgetItem(["Editor ID", record.editor_id or "-"]),
                flags,
                QTreeWidgetItem(["Mod", record.mod.name]),
                QTreeWidgetItem(["Winning", str(record.is_winning())]),
                QTreeWidgetItem(["Invalid Form IDs", str(record.is_invalid)]),
            ]
        )

        self.conflicts = QTreeWidgetItem(self.details)
        self.conflicts.setText(0, tr("RecordViewer", "Conflicts", None))
        versions = record.conflicts()
        self.conflicts.setText(1, str(len(versions)))
        self.conflicts.addChildren(
            [
                ConflictChild(version, winning=i == 0)
                for i, version in enumerate(versions)
            ]
        )

        # Earlier versions from the plugins this one overrides.
        self.history = QTreeWidgetItem(self.details)
        self.history.setText(0, tr("RecordViewer", "History", None))
        earlier = record.history()
        self.history.setText(1, str(len(earlier)))
        self.history.addChildren(
            [ConflictChild(version, winning=False) for version in earlier]
        )

        self.fields = QTreeWidgetItem(self.details)
        self.fields.setText(0, tr("RecordViewer", "Fields", None))
        self.fields.addChildren(
            [
                FieldChild(record, FieldPath.of(field_id), label)
                for field_id, label in HEADER_FIELDS
            ]
        )

        self.details.expandAll()

    def on_inspect(self):
        field_id = self.field_id.value()
        item = FieldChild(
            self.record,
            FieldPath.of(field_id),
            tr("RecordViewer", "Field {0}", None).format(field_id),
        )
        self.fields.addChild(item)
        self.details.setCurrentItem(item)

    def on_item_changed(
        self, current: QTreeWidgetItem, previous: QTreeWidgetItem
    ):
        if not isinstance(current, FieldChild):
            return

        data = get_raw(current.record, current.path)
        if not data:
            self.close_panel("field")
            return

        self.open_panel(
            "field",
            BinaryViewer(current.text(0), data, working_area=self.working_area),
        )

    def on_item_double_clicked(self, item: QTreeWidgetItem, column: int):
        if not isinstance(item, ConflictChild) or item.record == self.record:
            return

        self.open_panel(
            "conflict", RecordViewer(item.record, self.working_area)
        )

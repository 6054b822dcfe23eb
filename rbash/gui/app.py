import logging
import sys
from pathlib import Path

from PySide6 import QtCore
from PySide6.QtCore import (
    QCoreApplication,
    QObject,
    QRunnable,
    QThreadPool,
    QTranslator,
    Signal,
)
from PySide6.QtGui import QKeySequence, Qt
from PySide6.QtWidgets import (
    QApplication,
    QComboBox,
    QDialog,
    QDialogButtonBox,
    QFileDialog,
    QFormLayout,
    QHBoxLayout,
    QLabel,
    QLayout,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMainWindow,
    QMessageBox,
    QProgressBar,
    QPushButton,
    QScrollArea,
    QSizePolicy,
    QSplitter,
    QVBoxLayout,
    QWidget,
)

from rbash.cbash import CBashError
from rbash.collection import Collection
from rbash.enums import CollectionType, ModFlags
from rbash.gui.common import tr
from rbash.gui.navigation import CollectionNode, Navigation
from rbash.gui.settings import HasSettings

logger = logging.getLogger(__name__)

PLUGIN_SUFFIXES = (".esm", ".esp")
MOD_FLAGS = ModFlags.NORMAL | ModFlags.TRACK_NEW_TYPES


def find_plugins(directory: Path) -> list[Path]:
    """
    Plugins in `directory`, masters first, then by modification time which
    is how the older games order their plugins.
    """
    if not directory.is_dir():
        return []

    plugins = [
        path
        for path in directory.iterdir()
        if path.is_file() and path.suffix.lower() in PLUGIN_SUFFIXES
    ]
    return sorted(
        plugins,
        key=lambda p: (p.suffix.lower() != ".esm", p.stat().st_mtime, p.name),
    )


class OpenCollectionDialog(QDialog):
    """
    Asks for a mods directory, the game it belongs to and which of its
    plugins should be loaded.
    """

    def __init__(self, parent: QWidget, directory: str, kind: int):
        super().__init__(parent)
        self.setWindowTitle(tr("OpenCollection", "Open Collection", None))
        self.setMinimumWidth(500)

        self.directory = QLineEdit(directory)
        self.directory.editingFinished.connect(self.refresh_plugins)
        browse = QPushButton(tr("OpenCollection", "Browse...", None))
        browse.clicked.connect(self.on_browse)

        directory_row = QHBoxLayout()
        directory_row.addWidget(self.directory, 1)
        directory_row.addWidget(browse)

        self.kind = QComboBox()
        for collection_type in CollectionType:
            if collection_type is CollectionType.Unknown:
                continue
            self.kind.addItem(collection_type.name, int(collection_type))
        index = self.kind.findData(kind)
        if index >= 0:
            self.kind.setCurrentIndex(index)

        self.plugins = QListWidget()

        buttons = QDialogButtonBox(
            QDialogButtonBox.Ok | QDialogButtonBox.Cancel
        )
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)

        form = QFormLayout()
        form.addRow(tr("OpenCollection", "Directory", None), directory_row)
        form.addRow(tr("OpenCollection", "Game", None), self.kind)
        form.addRow(tr("OpenCollection", "Plugins", None), self.plugins)

        layout = QVBoxLayout(self)
        layout.addLayout(form)
        layout.addWidget(buttons)

        self.refresh_plugins()

    def on_browse(self):
        directory = QFileDialog.getExistingDirectory(
            self,
            tr("OpenCollection", "Mods Directory", None),
            self.directory.text(),
        )
        if directory:
            self.directory.setText(directory)
            self.refresh_plugins()

    def refresh_plugins(self):
        self.plugins.clear()
        for path in find_plugins(Path(self.directory.text())):
            item = QListWidgetItem(path.name)
            item.setFlags(item.flags() | Qt.ItemIsUserCheckable)
            item.setCheckState(Qt.Checked)
            self.plugins.addItem(item)

    def selected_kind(self) -> CollectionType:
        return CollectionType(self.kind.currentData())

    def selected_plugins(self) -> list[str]:
        return [
            self.plugins.item(i).text()
            for i in range(self.plugins.count())
            if self.plugins.item(i).checkState() == Qt.Checked
        ]


class CollectionLoaderSignals(QObject):
    progress = Signal(int, int, str)
    done = Signal()
    failed = Signal(str)


class CollectionLoaderThread(QRunnable):
    """
    Runs the (slow) collection load off the UI thread.
    """

    def __init__(self, collection: Collection):
        super().__init__()
        self.collection = collection
        self.s = CollectionLoaderSignals()

    def run(self):
        try:
            self.collection.load(progress=self.on_progress)
        except Exception as e:
            logger.exception("Loading the collection failed")
            self.s.failed.emit(str(e))
            return
        self.s.done.emit()

    def on_progress(self, index: int, total: int, name: str):
        self.s.progress.emit(index, total, name)


class StarterWidget(QWidget):
    """
    Shown in the working area until a collection has been opened.
    """

    openCollection = Signal()

    def __init__(self):
        super().__init__()

        self.layout = QVBoxLayout(self)
        self.layout.setContentsMargins(0, 0, 0, 0)
        self.layout.setAlignment(Qt.AlignCenter)

        self.layout.addWidget(QLabel(tr("MainWindow", "Welcome to rbash!", None)))
        self.layout.addWidget(
            QLabel(
                tr(
                    "MainWindow",
                    "Open a mods directory to browse its plugins.",
                    None,
                )
            )
        )
        btn = QPushButton(tr("MainWindow", "Open Collection", None))
        btn.clicked.connect(self.openCollection.emit)
        self.layout.addWidget(btn)


class MainWindow(HasSettings, QMainWindow):
    collectionOpened = Signal()

    def __init__(self):
        super().__init__()
        self.setWindowTitle("rbash")
        self.loaders: list[CollectionLoaderThread] = []

        self.menu = self.menuBar()
        self.menu_file = self.menu.addMenu(tr("MainWindow", "File", None))

        self.open_action = self.menu_file.addAction(
            tr("MainWindow", "Open Collection", None)
        )
        self.open_action.setShortcut(QKeySequence.Open)
        self.open_action.triggered.connect(self.on_open_collection)

        self.close_action = self.menu_file.addAction(
            tr("MainWindow", "Close All", None)
        )
        self.close_action.triggered.connect(self.on_close_collections)

        self.menu_file.addSeparator()

        file_exit = self.menu_file.addAction(tr("MainWindow", "Exit", None))
        file_exit.setShortcut(QKeySequence.Quit)
        file_exit.triggered.connect(self.close)

        self.progress = QProgressBar()
        self.progress.setMaximumWidth(300)
        self.progress.setTextVisible(True)
        self.progress.hide()
        self.statusBar().addPermanentWidget(self.progress)

        self.panel_scroll_container = QScrollArea()
        self.panel_scroll_container.setWidgetResizable(True)
        self.panel_scroll_container.setSizePolicy(
            QSizePolicy.MinimumExpanding, QSizePolicy.Expanding
        )

        self.panel_container = QWidget()
        self.panel_container.setMinimumWidth(800)
        self.panel_container_layout = QHBoxLayout(self.panel_container)
        self.panel_container_layout.setContentsMargins(0, 0, 0, 0)
        self.panel_container_layout.setSizeConstraint(QLayout.SetMinimumSize)
        self.panel_scroll_container.setWidget(self.panel_container)

        self.navigation = Navigation(working_area=self.panel_container_layout)
        self.navigation.setMinimumWidth(250)
        self.navigation.addedNewPanel.connect(
            self.on_added_new_panel, QtCore.Qt.QueuedConnection  # noqa
        )

        starter = StarterWidget()
        starter.openCollection.connect(self.on_open_collection)
        self.collectionOpened.connect(starter.close)
        self.panel_container_layout.addWidget(starter)

        splitter = QSplitter()
        splitter.addWidget(self.navigation)
        splitter.addWidget(self.panel_scroll_container)
        splitter.setSizes([250, 1000])
        self.setCentralWidget(splitter)

    def settings_group_name(self) -> str:
        return "main"

    def settings_load(self):
        geometry = self.settings.value("geometry")
        if geometry is not None:
            self.restoreGeometry(geometry)
        state = self.settings.value("state")
        if state is not None:
            self.restoreState(state)

    def settings_save(self):
        self.settings.setValue("geometry", self.saveGeometry())
        self.settings.setValue("state", self.saveState())

    def closeEvent(self, event):
        # A load still running on the pool owns its collection until it ends.
        QThreadPool.globalInstance().waitForDone()
        self.navigation.close_collections()
        super().closeEvent(event)

    def on_open_collection(self):
        with self.settings_group() as settings:
            directory = settings.value("last_open_dir", ".")
            kind = int(settings.value("game", int(CollectionType.Oblivion)))

        dialog = OpenCollectionDialog(self, directory, kind)
        if dialog.exec() != QDialog.Accepted:
            return

        directory = dialog.directory.text()
        kind = dialog.selected_kind()
        plugins = dialog.selected_plugins()
        with self.settings_group() as settings:
            settings.setValue("last_open_dir", directory)
            settings.setValue("game", int(kind))

        if not plugins:
            QMessageBox.warning(
                self,
                "rbash",
                tr("MainWindow", "No plugins were selected.", None),
            )
            return

        try:
            collection = Collection(directory, kind)
            for plugin in plugins:
                collection.add_mod(plugin, MOD_FLAGS)
        except CBashError as e:
            QMessageBox.critical(self, "rbash", str(e))
            return

        loader = CollectionLoaderThread(collection)
        loader.s.progress.connect(
            self.on_loading_progress, QtCore.Qt.QueuedConnection  # noqa
        )
        loader.s.done.connect(
            lambda: self.on_loading_done(loader, directory),
            QtCore.Qt.QueuedConnection,  # noqa
        )
        loader.s.failed.connect(
            lambda message: self.on_loading_failed(loader, message),
            QtCore.Qt.QueuedConnection,  # noqa
        )
        self.loaders.append(loader)

        self.set_loading(True)
        self.progress.setRange(0, 0)
        QThreadPool.globalInstance().start(loader)

    def set_loading(self, loading: bool):
        """
        CBash isn't thread-safe. While a collection loads nothing else may
        call into it, so every widget that does is disabled.
        """
        for widget in (
            self.open_action,
            self.close_action,
            self.navigation,
            self.panel_scroll_container,
        ):
            widget.setEnabled(not loading)
        self.progress.setVisible(loading)

    def on_loading_progress(self, index: int, total: int, name: str):
        self.progress.setRange(0, total)
        self.progress.setValue(index)
        self.progress.setFormat(name)

    def on_loading_finished(self, loader: CollectionLoaderThread):
        self.loaders.remove(loader)
        self.set_loading(False)

    def on_loading_done(self, loader: CollectionLoaderThread, directory: str):
        self.on_loading_finished(loader)
        self.navigation.add_collection(
            CollectionNode(loader.collection, directory)
        )
        self.collectionOpened.emit()

    def on_loading_failed(self, loader: CollectionLoaderThread, message: str):
        self.on_loading_finished(loader)
        loader.collection.close()
        QMessageBox.critical(self, "rbash", message)

    def on_close_collections(self):
        self.navigation.close_collections()

    def on_added_new_panel(self, panel: QWidget):
        self.panel_scroll_container.ensureWidgetVisible(panel)


def create_app():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = QApplication([])
    app.setApplicationName("rbash")
    app.setOrganizationName("rbash")

    translator = QTranslator()
    QCoreApplication.installTranslator(translator)

    window = MainWindow()
    window.show()

    sys.exit(app.exec())


if __name__ == "__main__":
    create_app()

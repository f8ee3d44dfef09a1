import logging
import sys

from PySide6.QtWidgets import QApplication

from config.constants import APP_NAME, APP_VERSION
from config.container import Container
from config.settings import Settings, configure_logging
from ui.main_window import MainWindow
from ui.presenters.formula_presenter import FormulaPresenter


def main() -> int:
    settings = Settings.from_env()
    configure_logging(settings)
    logging.info("Starting %s %s (data dir: %s)", APP_NAME, APP_VERSION, settings.data_dir)

    app = QApplication(sys.argv)
    app.setApplicationName(APP_NAME)
    app.setApplicationVersion(APP_VERSION)

    presenter = FormulaPresenter(Container(settings=settings))
    window = MainWindow(presenter=presenter)
    window.show()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())

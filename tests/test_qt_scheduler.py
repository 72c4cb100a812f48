import pytest

QtCore = pytest.importorskip("PySide6.QtCore")

from collage_sheets.generator import CancellationToken, GenerationContext, SheetGenerator  # noqa: E402
from collage_sheets.qt_scheduler import QtEventLoopScheduler  # noqa: E402
from collage_sheets.scheduling import Checkpoint, CheckpointKind  # noqa: E402

from conftest import make_sources, small_settings  # noqa: E402


@pytest.fixture(scope="module")
def qt_app():
    return QtCore.QCoreApplication.instance() or QtCore.QCoreApplication([])


def test_queued_events_run_during_pauses(qt_app, small_cells):
    fired = []
    scheduler = QtEventLoopScheduler(cell_pause=0.001, sheet_pause=0.005)
    QtCore.QTimer.singleShot(0, lambda: fired.append(True))
    scheduler.yield_control(Checkpoint(CheckpointKind.SHEET_DONE, 1))
    assert fired == [True]


def test_cancel_from_event_loop_stops_generation(qt_app, small_cells):
    token = CancellationToken()
    QtCore.QTimer.singleShot(0, token.cancel)
    context = GenerationContext(
        should_cancel=token,
        scheduler=QtEventLoopScheduler(cell_pause=0.001, sheet_pause=0.005),
    )
    result = SheetGenerator(make_sources(27), small_settings(), context=context).run()
    assert result.cancelled
    assert len(result.sheets) < 3


def test_completes_without_interruption(qt_app, small_cells):
    context = GenerationContext(scheduler=QtEventLoopScheduler(cell_pause=0, sheet_pause=0.001))
    result = SheetGenerator(make_sources(10), small_settings(), context=context).run()
    assert len(result.sheets) == 2

import pytest

from collage_sheets.controllers import GenerationSession, NoImagesError, NoResultsError
from collage_sheets.export import CombineRefusedError
from collage_sheets.models import GenerationState
from collage_sheets.rendering import sheet as sheet_module
from collage_sheets.scheduling import CheckpointKind, Scheduler

from conftest import make_sources, small_settings


def make_session(**kwargs):
    statuses = []
    session = GenerationSession(small_settings(), scheduler=kwargs.pop("scheduler", Scheduler()),
                                on_status=statuses.append, **kwargs)
    return session, statuses


def test_run_returns_to_idle(small_cells):
    session, statuses = make_session()
    result = session.run(make_sources(10))
    assert result.state is GenerationState.COMPLETED
    assert len(session.results) == 2
    assert session.status.state is GenerationState.IDLE
    assert session.status.progress == 100
    assert not session.is_generating
    assert statuses[-1].state is GenerationState.IDLE
    assert any(status.state is GenerationState.RENDERING for status in statuses)


def test_empty_input_is_rejected():
    session, _ = make_session()
    with pytest.raises(NoImagesError):
        session.run([])


def test_unexpected_error_keeps_partial_sheets(small_cells, monkeypatch):
    original = sheet_module.SheetBuilder.finish_sheet

    def explode_on_second(self, index):
        if index == 2:
            raise RuntimeError("encoder crashed")
        return original(self, index)

    monkeypatch.setattr(sheet_module.SheetBuilder, "finish_sheet", explode_on_second)
    session, statuses = make_session()
    result = session.run(make_sources(20))
    assert result.state is GenerationState.FAILED
    assert [s.index for s in session.results] == [1]
    assert "encoder crashed" in session.last_error
    assert statuses[-1].state is GenerationState.IDLE


def test_cancel_through_session(small_cells):
    session = None

    class CancelAfterFirstSheet(Scheduler):
        def yield_control(self, checkpoint):
            if checkpoint.kind is CheckpointKind.SHEET_DONE:
                session.cancel()

    session, _ = make_session(scheduler=CancelAfterFirstSheet())
    result = session.run(make_sources(27))
    assert result.cancelled
    assert len(session.results) == 1
    assert session.status.state is GenerationState.IDLE

    # a fresh run is not affected by the previous cancellation
    session._scheduler = Scheduler()
    assert session.run(make_sources(2)).state is GenerationState.COMPLETED


def test_combine_refused_for_large_source_count(small_cells):
    session, _ = make_session()
    session.run(make_sources(101))
    with pytest.raises(CombineRefusedError):
        session.combine()
    assert session.archive()


def test_exports_need_results():
    session, _ = make_session()
    with pytest.raises(NoResultsError):
        session.archive()
    with pytest.raises(NoResultsError):
        session.combine()


def test_combine_after_run(small_cells):
    session, _ = make_session()
    session.run(make_sources(4))
    assert session.combine()

from data_models import default_session
from history import HistoryManager


def _session(step_branch: str):
    return default_session().model_copy(update={"branch": step_branch})


def test_undo_on_empty_history_is_a_noop():
    history = HistoryManager()

    assert history.undo() is None
    assert len(history) == 0
    assert not history.can_undo


def test_undo_replays_in_reverse_order():
    history = HistoryManager()
    for name in ("a", "b", "c"):
        history.record_before_mutation(_session(name))

    assert [history.undo().branch for _ in range(3)] == ["c", "b", "a"]
    assert history.undo() is None


def test_capacity_evicts_oldest_first():
    history = HistoryManager(limit=50)
    for i in range(60):
        history.record_before_mutation(_session(f"b{i}"))

    assert len(history) == 50
    popped = [history.undo().branch for _ in range(50)]
    assert popped[0] == "b59"
    assert popped[-1] == "b10"


def test_snapshot_is_not_aliased_with_live_session():
    history = HistoryManager()
    live = default_session()

    history.record_before_mutation(live)
    live.repo_details.language = "Go"
    live.logs.append(None)

    restored = history.undo()
    assert restored.repo_details.language == "PHP"
    assert restored.logs == []

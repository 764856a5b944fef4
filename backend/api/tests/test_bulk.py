import pytest

from tancms import repo
from tancms.bulk import DEFAULT_ACTIONS, BulkActionController, BulkOutcome, run_bulk_action
from tancms.errors import NotFoundError, ValidationError
from tancms.models import BulkAction


class Recorder:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def __call__(self, action_id, items):
        self.calls.append((action_id, list(items)))
        if self.fail:
            raise RuntimeError("backend down")


@pytest.mark.unit
def test_default_catalogue_flags_destructive_actions():
    flagged = {a.id for a in DEFAULT_ACTIONS if a.requires_confirmation}
    assert flagged == {"archive", "delete"}
    assert all(a.confirmation_message for a in DEFAULT_ACTIONS if a.requires_confirmation)


@pytest.mark.unit
def test_unconfirmed_action_runs_immediately_and_clears_selection():
    recorder = Recorder()
    ctl = BulkActionController(recorder)
    ctl.select_all(["a", "b"])

    assert ctl.request("publish") is BulkOutcome.COMPLETED
    assert recorder.calls == [("publish", ["a", "b"])]
    assert ctl.selected == []


@pytest.mark.unit
def test_confirmation_required_action_waits_for_confirm():
    recorder = Recorder()
    ctl = BulkActionController(recorder)
    for item in ("a", "b", "c"):
        ctl.select(item)

    assert ctl.request("delete") is BulkOutcome.PENDING_CONFIRMATION
    assert recorder.calls == []
    assert ctl.pending.id == "delete"

    assert ctl.confirm() is BulkOutcome.COMPLETED
    assert recorder.calls == [("delete", ["a", "b", "c"])]
    assert ctl.pending is None


@pytest.mark.unit
def test_cancel_leaves_items_selected_and_untouched():
    recorder = Recorder()
    ctl = BulkActionController(recorder)
    ctl.select_all(["a", "b", "c"])

    ctl.request("archive")
    assert ctl.cancel() is BulkOutcome.CANCELLED

    assert recorder.calls == []
    assert ctl.selected == ["a", "b", "c"]
    assert ctl.pending is None
    assert ctl.confirm() is BulkOutcome.IGNORED


@pytest.mark.unit
def test_failure_is_caught_and_selection_kept():
    ctl = BulkActionController(Recorder(fail=True))
    ctl.select_all(["a", "b"])

    assert ctl.request("publish") is BulkOutcome.FAILED
    assert ctl.selected == ["a", "b"]
    assert isinstance(ctl.last_error, RuntimeError)
    assert ctl.in_flight is False


@pytest.mark.unit
def test_empty_selection_and_reentrant_requests_are_ignored():
    recorder = Recorder()
    ctl = BulkActionController(recorder)
    assert ctl.request("publish") is BulkOutcome.IGNORED

    def reentrant(action_id, items):
        recorder.calls.append((action_id, items))
        assert ctl.request("publish") is BulkOutcome.IGNORED

    ctl.on_action = reentrant
    ctl.select("a")
    assert ctl.request("publish") is BulkOutcome.COMPLETED
    assert len(recorder.calls) == 1


@pytest.mark.unit
def test_selection_helpers():
    ctl = BulkActionController(Recorder())
    ctl.select("a")
    ctl.select("a")
    ctl.toggle("b")
    assert ctl.selected == ["a", "b"]
    assert ctl.is_all_selected(2)
    ctl.toggle("a")
    assert ctl.selected == ["b"]
    assert not ctl.is_all_selected(2)
    ctl.clear_selection()
    assert ctl.selected_count == 0


@pytest.mark.unit
def test_custom_action_list():
    recorder = Recorder()
    ctl = BulkActionController(recorder, actions=[BulkAction(id="feature", label="Feature", requires_confirmation=True)])
    ctl.select("a")
    assert ctl.request("feature") is BulkOutcome.PENDING_CONFIRMATION
    with pytest.raises(ValidationError):
        ctl.request("publish")


@pytest.mark.unit
def test_run_bulk_action_updates_each_entry(engine, article_type):
    ids = [repo.create_entry(engine, article_type["id"])["id"] for _ in range(3)]

    result = run_bulk_action(engine, "publish", ids)

    assert result == {"action": "publish", "processed": ids}
    assert {repo.get_entry(engine, i)["status"] for i in ids} == {"PUBLISHED"}


@pytest.mark.unit
def test_run_bulk_action_keeps_work_done_before_a_failure(engine, article_type):
    first = repo.create_entry(engine, article_type["id"])["id"]
    last = repo.create_entry(engine, article_type["id"])["id"]

    with pytest.raises(NotFoundError):
        run_bulk_action(engine, "delete", [first, "missing", last])

    with pytest.raises(NotFoundError):
        repo.get_entry(engine, first)
    assert repo.get_entry(engine, last)["status"] == "DRAFT"


@pytest.mark.unit
def test_run_bulk_action_rejects_unknown_actions(engine):
    with pytest.raises(ValidationError):
        run_bulk_action(engine, "explode", ["x"])

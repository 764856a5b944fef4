from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from tancms import repo
from tancms.errors import ConflictError, NotFoundError
from tancms.tables import content_field_values
from tancms.workflow import WorkflowError

from .conftest import field_id


def _values(entry):
    return {fv["field"]["name"]: fv["value"] for fv in entry["field_values"]}


@pytest.mark.unit
def test_entry_slugs_are_unique_per_content_type(engine, article_type):
    first = repo.create_entry(engine, article_type["id"], slug="hello")
    second = repo.create_entry(engine, article_type["id"], slug="hello")
    third = repo.create_entry(engine, article_type["id"], slug="hello")

    assert [first["slug"], second["slug"], third["slug"]] == ["hello", "hello-1", "hello-2"]


@pytest.mark.unit
def test_same_slug_is_fine_in_another_content_type(engine, article_type):
    other = repo.create_content_type(engine, name="Page", display_name="Page")
    repo.create_entry(engine, article_type["id"], slug="hello")
    assert repo.create_entry(engine, other["id"], slug="hello")["slug"] == "hello"


@pytest.mark.unit
def test_entries_without_slug_do_not_collide(engine, article_type):
    a = repo.create_entry(engine, article_type["id"])
    b = repo.create_entry(engine, article_type["id"])
    assert a["slug"] is None and b["slug"] is None


@pytest.mark.unit
def test_create_encodes_values_and_joins_field_definitions(engine, article_type):
    entry = repo.create_entry(
        engine,
        article_type["id"],
        slug="first",
        field_values=[
            {"field_id": field_id(article_type, "title"), "value": "Hello"},
            {"field_id": field_id(article_type, "rating"), "value": 4.5},
            {"field_id": field_id(article_type, "featured"), "value": True},
        ],
    )

    assert entry["status"] == "DRAFT"
    assert entry["content_type"]["id"] == article_type["id"]
    assert [f["name"] for f in entry["content_type"]["fields"]] == ["title", "body", "rating", "featured"]
    assert _values(entry) == {"title": "Hello", "rating": "4.5", "featured": "true"}
    assert entry["field_values"][0]["field"]["field_type"] == "TEXT"


@pytest.mark.unit
def test_create_in_missing_type(engine):
    with pytest.raises(NotFoundError):
        repo.create_entry(engine, "missing", slug="x")


@pytest.mark.unit
def test_update_replaces_the_whole_value_set(engine, article_type):
    entry = repo.create_entry(
        engine,
        article_type["id"],
        field_values=[
            {"field_id": field_id(article_type, "title"), "value": "Old title"},
            {"field_id": field_id(article_type, "body"), "value": "<p>Old body</p>"},
        ],
    )

    updated = repo.update_entry(
        engine,
        entry["id"],
        {"field_values": [{"field_id": field_id(article_type, "rating"), "value": 3}]},
    )

    assert _values(updated) == {"rating": "3"}
    with engine.connect() as conn:
        rows = conn.execute(
            select(content_field_values.c.value).where(content_field_values.c.entry_id == entry["id"])
        ).scalars().all()
    assert rows == ["3"]


@pytest.mark.unit
def test_update_without_field_values_keeps_them(engine, article_type):
    entry = repo.create_entry(
        engine,
        article_type["id"],
        slug="keep",
        field_values=[{"field_id": field_id(article_type, "title"), "value": "Stay"}],
    )
    updated = repo.update_entry(engine, entry["id"], {"slug": "kept"})
    assert updated["slug"] == "kept"
    assert _values(updated) == {"title": "Stay"}


@pytest.mark.unit
def test_update_slug_is_uniquified_excluding_self(engine, article_type):
    hello = repo.create_entry(engine, article_type["id"], slug="hello")
    other = repo.create_entry(engine, article_type["id"], slug="other")

    assert repo.update_entry(engine, hello["id"], {"slug": "hello"})["slug"] == "hello"
    assert repo.update_entry(engine, other["id"], {"slug": "hello"})["slug"] == "hello-1"
    assert repo.update_entry(engine, other["id"], {"slug": None})["slug"] is None


@pytest.mark.unit
def test_missing_entry_is_not_found(engine):
    with pytest.raises(NotFoundError):
        repo.get_entry(engine, "missing")
    with pytest.raises(NotFoundError):
        repo.update_entry(engine, "missing", {"slug": "x"})
    with pytest.raises(NotFoundError):
        repo.delete_entry(engine, "missing")


@pytest.mark.unit
def test_pagination_counts_pages_and_returns_remainder(engine, article_type):
    for i in range(25):
        repo.create_entry(engine, article_type["id"], slug=f"entry-{i}")

    first = repo.list_entries(engine, article_type["id"], page=1, page_size=10)
    last = repo.list_entries(engine, article_type["id"], page=3, page_size=10)

    assert first["total"] == 25
    assert first["pages"] == 3
    assert len(first["entries"]) == 10
    assert first["entries"][0]["slug"] == "entry-24"
    assert last["current_page"] == 3
    assert len(last["entries"]) == 5


@pytest.mark.unit
def test_empty_listing_has_zero_pages(engine, article_type):
    result = repo.list_entries(engine, article_type["id"])
    assert result["total"] == 0
    assert result["pages"] == 0
    assert result["entries"] == []


@pytest.mark.unit
def test_listing_filters_by_status_and_search(engine, article_type):
    title = field_id(article_type, "title")
    repo.create_entry(engine, article_type["id"], slug="alpha", field_values=[{"field_id": title, "value": "Zebra"}])
    repo.create_entry(engine, article_type["id"], slug="beta", status="PUBLISHED")
    repo.create_entry(engine, article_type["id"], slug="gamma")

    published = repo.list_entries(engine, article_type["id"], status="published")
    assert [e["slug"] for e in published["entries"]] == ["beta"]

    by_value = repo.list_entries(engine, article_type["id"], q="zeb")
    assert [e["slug"] for e in by_value["entries"]] == ["alpha"]

    by_slug = repo.list_entries(engine, article_type["id"], q="GAM")
    assert [e["slug"] for e in by_slug["entries"]] == ["gamma"]


@pytest.mark.unit
def test_delete_removes_values(engine, article_type):
    entry = repo.create_entry(
        engine, article_type["id"], field_values=[{"field_id": field_id(article_type, "title"), "value": "x"}]
    )
    repo.delete_entry(engine, entry["id"])

    with engine.connect() as conn:
        assert conn.execute(select(func.count()).select_from(content_field_values)).scalar_one() == 0


@pytest.mark.unit
def test_status_changes_follow_the_workflow(engine, article_type):
    entry = repo.create_entry(engine, article_type["id"], slug="post")

    result = repo.set_entry_status(engine, entry["id"], "PUBLISHED")
    assert result == {"entry_id": entry["id"], "from_status": "DRAFT", "to_status": "PUBLISHED"}
    assert repo.get_entry(engine, entry["id"])["published_at"] is not None

    repo.set_entry_status(engine, entry["id"], "ARCHIVED")
    with pytest.raises(WorkflowError):
        repo.set_entry_status(engine, entry["id"], "PUBLISHED")
    assert repo.get_entry(engine, entry["id"])["status"] == "ARCHIVED"


@pytest.mark.unit
def test_scheduling_requires_a_timestamp(engine, article_type):
    entry = repo.create_entry(engine, article_type["id"])
    with pytest.raises(WorkflowError):
        repo.set_entry_status(engine, entry["id"], "SCHEDULED")

    when = datetime.now(timezone.utc) + timedelta(days=1)
    repo.set_entry_status(engine, entry["id"], "SCHEDULED", when)
    stored = repo.get_entry(engine, entry["id"])
    assert stored["status"] == "SCHEDULED"
    assert stored["scheduled_at"] is not None


@pytest.mark.unit
def test_publish_due_entries_only_promotes_past_schedules(engine, article_type):
    now = datetime.now(timezone.utc)
    due = repo.create_entry(engine, article_type["id"], status="SCHEDULED", scheduled_at=now - timedelta(minutes=5))
    later = repo.create_entry(engine, article_type["id"], status="SCHEDULED", scheduled_at=now + timedelta(hours=1))

    assert repo.publish_due_entries(engine, now) == [due["id"]]
    assert repo.get_entry(engine, due["id"])["status"] == "PUBLISHED"
    assert repo.get_entry(engine, later["id"])["status"] == "SCHEDULED"
    assert repo.publish_due_entries(engine, now) == []


@pytest.mark.unit
def test_slug_race_is_retried_with_a_fresh_probe(engine, article_type, monkeypatch):
    repo.create_entry(engine, article_type["id"], slug="hello")

    real_uniquify = repo.uniquify
    calls = []

    def stale_probe(base, exists):
        calls.append(base)
        if len(calls) == 1:
            # what a concurrent writer would have seen before our insert
            return base
        return real_uniquify(base, exists)

    monkeypatch.setattr(repo, "uniquify", stale_probe)
    entry = repo.create_entry(engine, article_type["id"], slug="hello")

    assert entry["slug"] == "hello-1"
    assert len(calls) == 2


@pytest.mark.unit
def test_persistent_slug_conflict_raises(engine, article_type, monkeypatch):
    repo.create_entry(engine, article_type["id"], slug="hello")
    monkeypatch.setattr(repo, "uniquify", lambda base, exists: base)

    with pytest.raises(ConflictError):
        repo.create_entry(engine, article_type["id"], slug="hello")


@pytest.mark.unit
def test_integrity_errors_other_than_slug_are_not_retried(engine, article_type, monkeypatch):
    real_uniquify = repo.uniquify
    calls = []

    def counting(base, exists):
        calls.append(base)
        return real_uniquify(base, exists)

    monkeypatch.setattr(repo, "uniquify", counting)

    with pytest.raises(IntegrityError):
        repo.create_entry(engine, article_type["id"], slug="x", field_values=[{"field_id": "nope", "value": "v"}])
    assert calls == ["x"]

    with pytest.raises(IntegrityError):
        repo.create_entry(engine, article_type["id"], field_values=[{"field_id": "nope", "value": "v"}])


@pytest.mark.unit
def test_pages_do_not_overlap_when_creation_times_tie(engine, article_type, monkeypatch):
    monkeypatch.setattr(repo, "_now", lambda: datetime(2024, 1, 1, tzinfo=timezone.utc))
    created = {repo.create_entry(engine, article_type["id"])["id"] for _ in range(7)}

    seen = []
    for page in (1, 2, 3, 4):
        seen += [e["id"] for e in repo.list_entries(engine, article_type["id"], page=page, page_size=2)["entries"]]

    assert len(seen) == 7
    assert set(seen) == created
    assert seen == sorted(created, reverse=True)

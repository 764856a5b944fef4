from __future__ import annotations

import json
import math
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, TypeVar

import structlog
from sqlalchemy import delete, func, insert, or_, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from tancms.codec import encode_value
from tancms.errors import ConflictError, NotFoundError
from tancms.models import ContentStatus, FieldType
from tancms.slugs import slugify, uniquify
from tancms.tables import content_entries, content_field_values, content_fields, content_types
from tancms.workflow import normalize_status, validate_transition

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Slug probe + write share one transaction; a unique-constraint hit from a
# concurrent writer re-runs the whole unit with a fresh probe.
SLUG_ATTEMPTS = 3


# ----------------------------
# Helpers
# ----------------------------

def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# Postgres reports the constraint name, SQLite the constrained columns.
TYPE_SLUG_CONSTRAINT = ("uq_content_types_slug", "content_types.slug")
ENTRY_SLUG_CONSTRAINT = ("uq_content_entries_type_slug", "content_entries.content_type_id, content_entries.slug")


def _violates(e: IntegrityError, constraint: Tuple[str, ...]) -> bool:
    message = str(e.orig)
    return any(marker in message for marker in constraint)


def _run(
    engine: Engine,
    op: Callable[[Connection], T],
    *,
    what: str,
    slug_constraint: Optional[Tuple[str, ...]] = None,
) -> T:
    """
    Run `op` in one transaction. When `slug_constraint` is given, a violation
    of that constraint re-runs the unit with a fresh probe; any other
    integrity error propagates unchanged.
    """
    if slug_constraint is None:
        with engine.begin() as conn:
            return op(conn)

    last_error: Optional[IntegrityError] = None
    for attempt in range(1, SLUG_ATTEMPTS + 1):
        try:
            with engine.begin() as conn:
                return op(conn)
        except IntegrityError as e:
            if not _violates(e, slug_constraint):
                raise
            last_error = e
            logger.warning("slug.conflict_retry", what=what, attempt=attempt, error=str(e.orig))

    raise ConflictError(
        message=f"Could not store {what}: uniqueness conflict persisted after {SLUG_ATTEMPTS} attempts",
        code="slug.conflict",
    ) from last_error


def _type_slug_taken(conn: Connection, exclude_id: Optional[str] = None) -> Callable[[str], bool]:
    def exists(slug: str) -> bool:
        stmt = select(content_types.c.id).where(content_types.c.slug == slug)
        if exclude_id:
            stmt = stmt.where(content_types.c.id != exclude_id)
        return conn.execute(stmt.limit(1)).first() is not None

    return exists


def _entry_slug_taken(
    conn: Connection, content_type_id: str, exclude_id: Optional[str] = None
) -> Callable[[str], bool]:
    def exists(slug: str) -> bool:
        stmt = select(content_entries.c.id).where(
            content_entries.c.content_type_id == content_type_id,
            content_entries.c.slug == slug,
        )
        if exclude_id:
            stmt = stmt.where(content_entries.c.id != exclude_id)
        return conn.execute(stmt.limit(1)).first() is not None

    return exists


def _field_type_value(field_type: Any) -> str:
    return FieldType(str(getattr(field_type, "value", field_type)).upper()).value


def _dump_options(options: Optional[Dict[str, Any]]) -> Optional[str]:
    return json.dumps(options) if options is not None else None


def _field_out(d: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": d["id"],
        "content_type_id": d["content_type_id"],
        "name": d["name"],
        "display_name": d["display_name"],
        "field_type": d["field_type"],
        "required": bool(d["is_required"]),
        "unique": bool(d["is_unique"]),
        "default_value": d["default_value"],
        "options": json.loads(d["options"]) if d["options"] else None,
        "related_type": d["related_type"],
        "order": int(d["sort_order"]),
        "created_at": d["created_at"],
        "updated_at": d["updated_at"],
    }


def _field_row(content_type_id: str, data: Dict[str, Any], default_order: int, now: datetime) -> Dict[str, Any]:
    order = data.get("order")
    return {
        "id": _new_id(),
        "content_type_id": content_type_id,
        "name": data["name"],
        "display_name": data.get("display_name") or data["name"],
        "field_type": _field_type_value(data["field_type"]),
        "is_required": bool(data.get("required") or False),
        "is_unique": bool(data.get("unique") or False),
        "default_value": data.get("default_value"),
        "options": _dump_options(data.get("options")),
        "related_type": data.get("related_type"),
        "sort_order": default_order if order is None else int(order),
        "created_at": now,
        "updated_at": now,
    }


def _value_rows(entry_id: str, field_values: Iterable[Dict[str, Any]], now: datetime) -> List[Dict[str, Any]]:
    return [
        {
            "id": _new_id(),
            "entry_id": entry_id,
            "field_id": fv["field_id"],
            "value": encode_value(fv.get("value")),
            "created_at": now,
        }
        for fv in field_values
    ]


def _fields_by_type(conn: Connection, type_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
    out: Dict[str, List[Dict[str, Any]]] = {tid: [] for tid in type_ids}
    if not type_ids:
        return out

    rows = conn.execute(
        select(content_fields)
        .where(content_fields.c.content_type_id.in_(type_ids))
        .order_by(content_fields.c.sort_order.asc(), content_fields.c.created_at.asc())
    ).mappings().all()

    for r in rows:
        out[r["content_type_id"]].append(_field_out(dict(r)))
    return out


def _type_out(row: Dict[str, Any], fields: List[Dict[str, Any]]) -> Dict[str, Any]:
    d = dict(row)
    d["fields"] = fields
    return d


def _load_type(conn: Connection, *, type_id: Optional[str] = None, slug: Optional[str] = None) -> Dict[str, Any]:
    stmt = select(content_types)
    if type_id is not None:
        stmt = stmt.where(content_types.c.id == type_id)
    else:
        stmt = stmt.where(content_types.c.slug == slug)

    row = conn.execute(stmt).mappings().first()
    if row is None:
        key = f"id '{type_id}'" if type_id is not None else f"slug '{slug}'"
        raise NotFoundError(message=f"Content type with {key} not found", code="content_type.not_found")

    return _type_out(row, _fields_by_type(conn, [row["id"]])[row["id"]])


def _load_entry_row(conn: Connection, entry_id: str) -> Dict[str, Any]:
    row = conn.execute(select(content_entries).where(content_entries.c.id == entry_id)).mappings().first()
    if row is None:
        raise NotFoundError(message=f"Entry '{entry_id}' not found", code="entry.not_found")
    return dict(row)


def _values_for_entries(conn: Connection, entry_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
    out: Dict[str, List[Dict[str, Any]]] = {eid: [] for eid in entry_ids}
    if not entry_ids:
        return out

    field_cols = [c.label(f"field__{c.name}") for c in content_fields.c]
    stmt = (
        select(
            content_field_values.c.id,
            content_field_values.c.entry_id,
            content_field_values.c.field_id,
            content_field_values.c.value,
            *field_cols,
        )
        .join(content_fields, content_fields.c.id == content_field_values.c.field_id)
        .where(content_field_values.c.entry_id.in_(entry_ids))
        .order_by(content_fields.c.sort_order.asc(), content_field_values.c.created_at.asc())
    )

    for r in conn.execute(stmt).mappings().all():
        field = {k[len("field__"):]: v for k, v in r.items() if k.startswith("field__")}
        out[r["entry_id"]].append(
            {
                "id": r["id"],
                "field_id": r["field_id"],
                "value": r["value"],
                "field": _field_out(field),
            }
        )
    return out


# ----------------------------
# Content types
# ----------------------------

def create_content_type(
    engine: Engine,
    name: str,
    display_name: str,
    description: Optional[str] = None,
    fields: Iterable[Dict[str, Any]] = (),
) -> Dict[str, Any]:
    field_specs = list(fields)
    base_slug = slugify(name)

    seen = set()
    for spec in field_specs:
        if spec["name"] in seen:
            raise ConflictError(
                message=f"Field '{spec['name']}' is defined more than once",
                code="field.conflict",
            )
        seen.add(spec["name"])

    def op(conn: Connection) -> str:
        now = _now()
        type_id = _new_id()
        slug = uniquify(base_slug, _type_slug_taken(conn))

        conn.execute(
            insert(content_types).values(
                id=type_id,
                name=name,
                display_name=display_name,
                slug=slug,
                description=description,
                created_at=now,
                updated_at=now,
            )
        )

        rows = [_field_row(type_id, f, i, now) for i, f in enumerate(field_specs)]
        if rows:
            conn.execute(insert(content_fields), rows)
        return type_id

    type_id = _run(engine, op, what="content type", slug_constraint=TYPE_SLUG_CONSTRAINT)
    logger.info("content_type.created", content_type_id=type_id, fields=len(field_specs))
    return get_content_type(engine, type_id)


def update_content_type(engine: Engine, type_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Partial update of name / display_name / description. A changed `name`
    regenerates the slug, uniquified against every other type.
    """

    def op(conn: Connection) -> None:
        current = _load_type(conn, type_id=type_id)
        values: Dict[str, Any] = {}

        if changes.get("name"):
            values["name"] = changes["name"]
            if changes["name"] != current["name"]:
                values["slug"] = uniquify(slugify(changes["name"]), _type_slug_taken(conn, exclude_id=type_id))
        if changes.get("display_name"):
            values["display_name"] = changes["display_name"]
        if "description" in changes:
            values["description"] = changes["description"]

        if not values:
            return

        values["updated_at"] = _now()
        conn.execute(update(content_types).where(content_types.c.id == type_id).values(**values))

    _run(engine, op, what="content type", slug_constraint=TYPE_SLUG_CONSTRAINT if changes.get("name") else None)
    logger.info("content_type.updated", content_type_id=type_id, changed=sorted(changes))
    return get_content_type(engine, type_id)


def get_content_type(engine: Engine, type_id: str) -> Dict[str, Any]:
    with engine.begin() as conn:
        return _load_type(conn, type_id=type_id)


def get_content_type_by_slug(engine: Engine, slug: str) -> Dict[str, Any]:
    with engine.begin() as conn:
        return _load_type(conn, slug=slug)


def list_content_types(engine: Engine) -> List[Dict[str, Any]]:
    counts = (
        select(content_entries.c.content_type_id, func.count().label("entry_count"))
        .group_by(content_entries.c.content_type_id)
        .subquery()
    )
    stmt = (
        select(content_types, func.coalesce(counts.c.entry_count, 0).label("entry_count"))
        .outerjoin(counts, counts.c.content_type_id == content_types.c.id)
        .order_by(content_types.c.created_at.desc(), content_types.c.id.desc())
    )

    with engine.begin() as conn:
        rows = conn.execute(stmt).mappings().all()
        fields = _fields_by_type(conn, [r["id"] for r in rows])

    items = []
    for r in rows:
        item = _type_out(r, fields[r["id"]])
        item["entry_count"] = int(r["entry_count"])
        items.append(item)
    return items


def delete_content_type(engine: Engine, type_id: str) -> Dict[str, Any]:
    # Fields, entries and their values go with it (ON DELETE CASCADE).
    with engine.begin() as conn:
        _load_type(conn, type_id=type_id)
        entry_count = conn.execute(
            select(func.count()).select_from(content_entries).where(content_entries.c.content_type_id == type_id)
        ).scalar_one()
        conn.execute(delete(content_types).where(content_types.c.id == type_id))

    if entry_count:
        logger.warning("content_type.deleted_with_entries", content_type_id=type_id, entry_count=int(entry_count))
    else:
        logger.info("content_type.deleted", content_type_id=type_id)
    return {"id": type_id, "deleted_entries": int(entry_count)}


# ----------------------------
# Content fields
# ----------------------------

_FIELD_COLUMNS = {
    "name": "name",
    "display_name": "display_name",
    "field_type": "field_type",
    "required": "is_required",
    "unique": "is_unique",
    "default_value": "default_value",
    "related_type": "related_type",
    "order": "sort_order",
}
_NON_NULL_FIELD_KEYS = {"name", "display_name", "field_type", "required", "unique", "order"}


def add_field(engine: Engine, content_type_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Append a field. Without an explicit `order` it takes the current field count."""
    try:
        with engine.begin() as conn:
            _load_type(conn, type_id=content_type_id)
            existing = conn.execute(
                select(func.count())
                .select_from(content_fields)
                .where(content_fields.c.content_type_id == content_type_id)
            ).scalar_one()

            row = _field_row(content_type_id, data, int(existing), _now())
            conn.execute(insert(content_fields).values(**row))
    except IntegrityError as e:
        raise ConflictError(
            message=f"Field '{data.get('name')}' already exists on this content type",
            code="field.conflict",
        ) from e

    logger.info("field.added", content_type_id=content_type_id, field_id=row["id"], order=row["sort_order"])
    return _field_out(row)


def update_field(engine: Engine, field_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    """Only provided attributes are written; `options` is replaced, never merged."""
    values: Dict[str, Any] = {}
    for key, column in _FIELD_COLUMNS.items():
        if key not in changes:
            continue
        value = changes[key]
        if value is None and key in _NON_NULL_FIELD_KEYS:
            continue
        if key == "field_type":
            value = _field_type_value(value)
        values[column] = value
    if "options" in changes:
        values["options"] = _dump_options(changes["options"])

    try:
        with engine.begin() as conn:
            row = conn.execute(select(content_fields).where(content_fields.c.id == field_id)).mappings().first()
            if row is None:
                raise NotFoundError(message=f"Field '{field_id}' not found", code="field.not_found")

            if values:
                values["updated_at"] = _now()
                conn.execute(update(content_fields).where(content_fields.c.id == field_id).values(**values))
                row = conn.execute(select(content_fields).where(content_fields.c.id == field_id)).mappings().one()
    except IntegrityError as e:
        raise ConflictError(message=f"Field name '{changes.get('name')}' already in use", code="field.conflict") from e

    logger.info("field.updated", field_id=field_id, changed=sorted(values))
    return _field_out(dict(row))


def delete_field(engine: Engine, field_id: str) -> None:
    # Remaining fields keep their order values; gaps are not compacted.
    with engine.begin() as conn:
        result = conn.execute(delete(content_fields).where(content_fields.c.id == field_id))
        if result.rowcount == 0:
            raise NotFoundError(message=f"Field '{field_id}' not found", code="field.not_found")
    logger.info("field.deleted", field_id=field_id)


# ----------------------------
# Content entries
# ----------------------------

def create_entry(
    engine: Engine,
    content_type_id: str,
    slug: Optional[str] = None,
    field_values: Iterable[Dict[str, Any]] = (),
    status: str = ContentStatus.DRAFT.value,
    scheduled_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    values_in = list(field_values)
    status = normalize_status(status) or ContentStatus.DRAFT.value

    def op(conn: Connection) -> str:
        _load_type(conn, type_id=content_type_id)
        now = _now()
        entry_id = _new_id()
        final_slug = uniquify(slug, _entry_slug_taken(conn, content_type_id)) if slug else None

        conn.execute(
            insert(content_entries).values(
                id=entry_id,
                content_type_id=content_type_id,
                slug=final_slug,
                status=status,
                scheduled_at=scheduled_at,
                published_at=now if status == ContentStatus.PUBLISHED.value else None,
                created_at=now,
                updated_at=now,
            )
        )

        rows = _value_rows(entry_id, values_in, now)
        if rows:
            conn.execute(insert(content_field_values), rows)
        return entry_id

    entry_id = _run(engine, op, what="entry", slug_constraint=ENTRY_SLUG_CONSTRAINT if slug else None)
    logger.info("entry.created", entry_id=entry_id, content_type_id=content_type_id, values=len(values_in))
    return get_entry(engine, entry_id)


def list_entries(
    engine: Engine,
    content_type_id: str,
    page: int = 1,
    page_size: int = 10,
    status: Optional[str] = None,
    q: Optional[str] = None,
) -> Dict[str, Any]:
    page = max(int(page), 1)
    page_size = max(int(page_size), 1)

    where = [content_entries.c.content_type_id == content_type_id]
    if status:
        where.append(content_entries.c.status == normalize_status(status))
    if q:
        pattern = f"%{q}%"
        matching_values = select(content_field_values.c.entry_id).where(content_field_values.c.value.ilike(pattern))
        where.append(or_(content_entries.c.slug.ilike(pattern), content_entries.c.id.in_(matching_values)))

    with engine.begin() as conn:
        _load_type(conn, type_id=content_type_id)

        total = conn.execute(select(func.count()).select_from(content_entries).where(*where)).scalar_one()
        rows = conn.execute(
            select(content_entries)
            .where(*where)
            .order_by(content_entries.c.created_at.desc(), content_entries.c.id.desc())
            .limit(page_size)
            .offset((page - 1) * page_size)
        ).mappings().all()
        values = _values_for_entries(conn, [r["id"] for r in rows])

    entries = []
    for r in rows:
        entry = dict(r)
        entry["field_values"] = values[r["id"]]
        entries.append(entry)

    total = int(total)
    return {
        "entries": entries,
        "total": total,
        "pages": math.ceil(total / page_size),
        "current_page": page,
        "page_size": page_size,
    }


def get_entry(engine: Engine, entry_id: str) -> Dict[str, Any]:
    """Entry with its content type (field schema included) and values joined to their fields."""
    with engine.begin() as conn:
        entry = _load_entry_row(conn, entry_id)
        entry["content_type"] = _load_type(conn, type_id=entry["content_type_id"])
        entry["field_values"] = _values_for_entries(conn, [entry_id])[entry_id]
    return entry


def update_entry(engine: Engine, entry_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    `slug`: re-uniquified within the content type, excluding this entry
    (empty/None clears it).
    `field_values`: replace-all. Every stored value row is deleted and the
    supplied set written; values not supplied are gone afterwards.
    """

    def op(conn: Connection) -> None:
        current = _load_entry_row(conn, entry_id)
        now = _now()
        values: Dict[str, Any] = {"updated_at": now}

        if "slug" in changes:
            slug = changes["slug"]
            values["slug"] = (
                uniquify(slug, _entry_slug_taken(conn, current["content_type_id"], exclude_id=entry_id))
                if slug
                else None
            )

        conn.execute(update(content_entries).where(content_entries.c.id == entry_id).values(**values))

        if changes.get("field_values") is not None:
            conn.execute(delete(content_field_values).where(content_field_values.c.entry_id == entry_id))
            rows = _value_rows(entry_id, changes["field_values"], now)
            if rows:
                conn.execute(insert(content_field_values), rows)

    _run(engine, op, what="entry", slug_constraint=ENTRY_SLUG_CONSTRAINT if changes.get("slug") else None)
    logger.info("entry.updated", entry_id=entry_id, changed=sorted(changes))
    return get_entry(engine, entry_id)


def set_entry_status(
    engine: Engine,
    entry_id: str,
    status: str,
    scheduled_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Validated status change. Raises WorkflowError for disallowed transitions."""
    to_status = normalize_status(status)

    with engine.begin() as conn:
        current = _load_entry_row(conn, entry_id)
        from_status = current["status"]
        validate_transition(from_status, to_status, scheduled_at)

        now = _now()
        values: Dict[str, Any] = {
            "status": to_status,
            "scheduled_at": scheduled_at if to_status == ContentStatus.SCHEDULED.value else None,
            "updated_at": now,
        }
        if to_status == ContentStatus.PUBLISHED.value and from_status != to_status:
            values["published_at"] = now

        conn.execute(update(content_entries).where(content_entries.c.id == entry_id).values(**values))

    logger.info("entry.status_changed", entry_id=entry_id, from_status=from_status, to_status=to_status)
    return {"entry_id": entry_id, "from_status": from_status, "to_status": to_status}


def delete_entry(engine: Engine, entry_id: str) -> None:
    # Field values go with it (ON DELETE CASCADE).
    with engine.begin() as conn:
        result = conn.execute(delete(content_entries).where(content_entries.c.id == entry_id))
        if result.rowcount == 0:
            raise NotFoundError(message=f"Entry '{entry_id}' not found", code="entry.not_found")
    logger.info("entry.deleted", entry_id=entry_id)


def publish_due_entries(engine: Engine, now: Optional[datetime] = None) -> List[str]:
    """Promote SCHEDULED entries whose scheduled_at has passed. Returns their ids."""
    now = now or _now()
    due = (
        content_entries.c.status == ContentStatus.SCHEDULED.value,
        content_entries.c.scheduled_at.is_not(None),
        content_entries.c.scheduled_at <= now,
    )

    with engine.begin() as conn:
        ids = list(conn.execute(select(content_entries.c.id).where(*due)).scalars().all())
        if ids:
            conn.execute(
                update(content_entries)
                .where(content_entries.c.id.in_(ids))
                .values(status=ContentStatus.PUBLISHED.value, published_at=now, updated_at=now)
            )

    if ids:
        logger.info("entry.scheduled_published", count=len(ids))
    return ids


# ----------------------------
# Public (published-only) reads
# ----------------------------

def list_published_entries(engine: Engine, type_slug: str, page: int = 1, page_size: int = 10) -> Dict[str, Any]:
    content_type = get_content_type_by_slug(engine, type_slug)
    result = list_entries(engine, content_type["id"], page=page, page_size=page_size, status=ContentStatus.PUBLISHED.value)
    result["content_type"] = content_type
    return result


def get_published_entry(engine: Engine, type_slug: str, entry_slug: str) -> Dict[str, Any]:
    with engine.begin() as conn:
        content_type = _load_type(conn, slug=type_slug)
        row = conn.execute(
            select(content_entries.c.id).where(
                content_entries.c.content_type_id == content_type["id"],
                content_entries.c.slug == entry_slug,
                content_entries.c.status == ContentStatus.PUBLISHED.value,
            )
        ).first()

    if row is None:
        raise NotFoundError(message=f"No published entry '{entry_slug}' in '{type_slug}'", code="entry.not_found")
    return get_entry(engine, row[0])

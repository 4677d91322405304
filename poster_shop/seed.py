"""Populate the database from the CSV exports in a seed directory.

Each file maps to one model through ``IMPORT_PLAN``; columns are coerced
according to that model's schema before the rows are inserted. Rows that
would collide with an existing primary or unique key are skipped.
"""

import csv
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set, Tuple, Type

import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy.exc import SQLAlchemyError

from .models import (
    ALLOWED_ROLES,
    Cartline,
    Genre,
    GenrePosterRel,
    Poster,
    User,
    UserRating,
    db,
)
from .security import hash_password
from .utils import normalize_email

NUMBER = "number"
BOOLEAN = "boolean"
DATE = "date"
STRING = "string"

FALSE_VALUES = {"", "0", "false"}


class InvalidRow(ValueError):
    """Raised for a CSV row that cannot be stored; the row is skipped."""


@dataclass(frozen=True)
class Field:
    column: str
    attribute: str
    kind: str


@dataclass(frozen=True)
class ImportSpec:
    filename: str
    model: Type[db.Model]
    fields: Tuple[Field, ...]
    unique_keys: Tuple[Tuple[str, ...], ...]


IMPORT_PLAN: Tuple[ImportSpec, ...] = (
    ImportSpec(
        "user.csv",
        User,
        (
            Field("id", "id", NUMBER),
            Field("firstname", "firstname", STRING),
            Field("lastname", "lastname", STRING),
            Field("email", "email", STRING),
            Field("password", "password", STRING),
            Field("role", "role", STRING),
            Field("isActive", "is_active", BOOLEAN),
            Field("createdAt", "created_at", DATE),
        ),
        (("id",), ("email",)),
    ),
    ImportSpec(
        "genre.csv",
        Genre,
        (
            Field("id", "id", NUMBER),
            Field("title", "title", STRING),
            Field("slug", "slug", STRING),
        ),
        (("id",), ("slug",)),
    ),
    ImportSpec(
        "poster.csv",
        Poster,
        (
            Field("id", "id", NUMBER),
            Field("name", "name", STRING),
            Field("slug", "slug", STRING),
            Field("description", "description", STRING),
            Field("image", "image", STRING),
            Field("width", "width", NUMBER),
            Field("height", "height", NUMBER),
            Field("price", "price", NUMBER),
            Field("stock", "stock", NUMBER),
            Field("createdAt", "created_at", DATE),
        ),
        (("id",), ("slug",)),
    ),
    ImportSpec(
        "genrePosterRel.csv",
        GenrePosterRel,
        (
            Field("genreId", "genre_id", NUMBER),
            Field("posterId", "poster_id", NUMBER),
        ),
        (("genre_id", "poster_id"),),
    ),
    ImportSpec(
        "cartlines.csv",
        Cartline,
        (
            Field("id", "id", NUMBER),
            Field("userId", "user_id", NUMBER),
            Field("posterId", "poster_id", NUMBER),
            Field("quantity", "quantity", NUMBER),
        ),
        (("id",), ("user_id", "poster_id")),
    ),
    ImportSpec(
        "userRatings.csv",
        UserRating,
        (
            Field("id", "id", NUMBER),
            Field("userId", "user_id", NUMBER),
            Field("posterId", "poster_id", NUMBER),
            Field("numStars", "num_stars", NUMBER),
            Field("createdAt", "created_at", DATE),
        ),
        (("id",), ("user_id", "poster_id")),
    ),
)


def coerce_value(kind: str, raw: Optional[str]):
    value = (raw or "").strip()
    if kind == NUMBER:
        if not value:
            return None
        number = float(value)
        return int(number) if number.is_integer() else number
    if kind == BOOLEAN:
        return value.lower() not in FALSE_VALUES
    if kind == DATE:
        if not value:
            return None
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    return value or None


def coerce_row(spec: ImportSpec, row: Dict[str, str]) -> Dict[str, object]:
    values: Dict[str, object] = {}
    for field in spec.fields:
        if field.column not in row:
            continue
        value = coerce_value(field.kind, row.get(field.column))
        if field.column == "password" and value is not None:
            value = hash_password(str(value))
        elif field.column == "email" and value is not None:
            value = normalize_email(value)
        elif field.column == "role" and value is not None:
            value = str(value).upper()
            if value not in ALLOWED_ROLES:
                raise InvalidRow(f"unknown role {value!r}")
        if value is not None:
            values[field.attribute] = value
    return values


def is_duplicate(spec: ImportSpec, values: Dict[str, object], seen: Set[Tuple]) -> bool:
    markers = []
    for key in spec.unique_keys:
        if any(values.get(attribute) is None for attribute in key):
            continue
        marker = (key, tuple(values[attribute] for attribute in key))
        if marker in seen:
            return True
        criteria = {attribute: values[attribute] for attribute in key}
        if spec.model.query.filter_by(**criteria).first() is not None:
            return True
        markers.append(marker)
    seen.update(markers)
    return False


def import_file(spec: ImportSpec, path: str) -> int:
    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        rows = [
            row
            for row in reader
            if row and any((value or "").strip() for value in row.values() if isinstance(value, str))
        ]

    seen: Set[Tuple] = set()
    records: List[db.Model] = []
    for row_number, row in enumerate(rows, start=1):
        try:
            values = coerce_row(spec, row)
        except InvalidRow as exc:
            current_app.logger.warning(
                "Skipping row %d of %s: %s", row_number, spec.filename, exc
            )
            continue
        if is_duplicate(spec, values, seen):
            continue
        records.append(spec.model(**values))

    db.session.add_all(records)
    db.session.commit()
    return len(records)


def import_directory(directory: str) -> Dict[str, int]:
    """Import every known CSV file found in ``directory``.

    Returns the number of inserted rows per file. A file that fails is rolled
    back and reported; the remaining files are still processed.
    """
    summary: Dict[str, int] = {}
    known_files = {spec.filename for spec in IMPORT_PLAN}

    if os.path.isdir(directory):
        for filename in sorted(os.listdir(directory)):
            if filename.endswith(".csv") and filename not in known_files:
                current_app.logger.info("Skipping unknown file: %s", filename)

    for spec in IMPORT_PLAN:
        path = os.path.join(directory, spec.filename)
        if not os.path.isfile(path):
            current_app.logger.info("Skipping %s: file not found", spec.filename)
            continue

        current_app.logger.info(
            "Processing %s for %s", spec.filename, spec.model.__tablename__
        )
        try:
            inserted = import_file(spec, path)
        except (OSError, ValueError, TypeError, csv.Error, SQLAlchemyError) as exc:
            db.session.rollback()
            current_app.logger.error("Error seeding %s: %s", spec.filename, exc)
            continue

        summary[spec.filename] = inserted
        current_app.logger.info("Created %d records from %s", inserted, spec.filename)

    return summary


@click.command("seed-csv")
@click.argument("directory", required=False)
@with_appcontext
def seed_csv_command(directory):
    """Seed the database from CSV files."""
    directory = directory or current_app.config["CSV_SEED_DIR"]
    click.echo(f"Seeding database from {directory}...")

    summary = import_directory(directory)
    for filename, inserted in summary.items():
        click.echo(f"  {filename}: {inserted} rows inserted")

    click.echo("Seed completed.")

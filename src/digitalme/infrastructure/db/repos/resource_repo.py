from __future__ import annotations

import json
import math
import sqlite3
from dataclasses import dataclass
from pathlib import Path

from digitalme.core.time import now_utc_iso
from digitalme.domain.models.resource import Resource, ResourceFile
from digitalme.infrastructure.db.sqlite import connect

_UPDATABLE_COLUMNS = {
    "title",
    "resource_type",
    "creation_date",
    "producer",
    "owner_id",
    "is_public",
    "description",
    "tags_json",
    "custom_fields_json",
}
_FILTER_OPERATORS = {"=", ">=", "<=", ">", "<"}


@dataclass(frozen=True, slots=True)
class CustomFieldFilter:
    key: str
    op: str
    value: str | float


class ResourceRepo:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def insert(self, resource: Resource) -> None:
        now = now_utc_iso()
        created_at = resource.created_at or now
        updated_at = resource.updated_at or now
        with connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO resources (
                    id,
                    title,
                    resource_type,
                    creation_date,
                    submission_date,
                    producer,
                    owner_id,
                    is_public,
                    description,
                    tags_json,
                    custom_fields_json,
                    created_at,
                    updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    resource.id,
                    resource.title,
                    resource.resource_type,
                    resource.creation_date,
                    resource.submission_date,
                    resource.producer,
                    resource.owner_id,
                    1 if resource.is_public else 0,
                    resource.description,
                    json.dumps(resource.tags, ensure_ascii=False),
                    json.dumps(resource.custom_fields, ensure_ascii=False),
                    created_at,
                    updated_at,
                ),
            )
            conn.executemany(
                """
                INSERT INTO resource_files (
                    resource_id,
                    position,
                    original_name,
                    storage_name,
                    path,
                    mimetype,
                    size_bytes,
                    checksum_sha256
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        resource.id,
                        position,
                        f.original_name,
                        f.storage_name,
                        f.path,
                        f.mimetype,
                        f.size,
                        f.checksum,
                    )
                    for position, f in enumerate(resource.files)
                ],
            )
        resource.created_at = created_at
        resource.updated_at = updated_at

    def get_by_id(self, resource_id: str) -> Resource | None:
        with connect(self.db_path) as conn:
            row = conn.execute(
                """
                SELECT r.*, u.username AS owner_username
                FROM resources r
                LEFT JOIN users u ON u.id = r.owner_id
                WHERE r.id = ?
                """,
                (resource_id,),
            ).fetchone()
            if row is None:
                return None
            files = self._load_files(conn, [resource_id])
        return self._to_model(row, files.get(resource_id, []))

    def list(
        self,
        *,
        owner_id: str | None = None,
        public_only: bool = False,
        resource_type: str | None = None,
        custom_filters: list[CustomFieldFilter] | None = None,
        limit: int = 100,
    ) -> list[Resource]:
        clauses: list[str] = []
        params: list[object] = []
        if owner_id is not None:
            clauses.append("r.owner_id = ?")
            params.append(owner_id)
        if public_only:
            clauses.append("r.is_public = 1")
        if resource_type:
            clauses.append("r.resource_type = ?")
            params.append(resource_type)
        for flt in custom_filters or []:
            if flt.op not in _FILTER_OPERATORS:
                raise ValueError(f"Unsupported custom field operator: {flt.op}")
            json_path = '$."' + flt.key.replace('"', "") + '"'
            if flt.op == "=":
                clause, clause_params = _equality_clause(json_path, str(flt.value))
                clauses.append(clause)
                params.extend(clause_params)
            else:
                clauses.append(f"CAST(json_extract(r.custom_fields_json, ?) AS REAL) {flt.op} ?")
                params.extend([json_path, float(flt.value)])

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)
        with connect(self.db_path) as conn:
            rows = conn.execute(
                f"""
                SELECT r.*, u.username AS owner_username
                FROM resources r
                LEFT JOIN users u ON u.id = r.owner_id
                {where}
                ORDER BY r.submission_date DESC
                LIMIT ?
                """,
                params,
            ).fetchall()
            files = self._load_files(conn, [row["id"] for row in rows])
        return [self._to_model(row, files.get(row["id"], [])) for row in rows]

    def update_fields(self, resource_id: str, fields: dict[str, object]) -> None:
        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update resource columns: {sorted(unknown)}")
        if not fields:
            return
        assignments = ", ".join(f"{column} = ?" for column in fields)
        with connect(self.db_path) as conn:
            conn.execute(
                f"UPDATE resources SET {assignments}, updated_at = ? WHERE id = ?",
                (*fields.values(), now_utc_iso(), resource_id),
            )

    def delete(self, resource_id: str) -> bool:
        with connect(self.db_path) as conn:
            cur = conn.execute("DELETE FROM resources WHERE id = ?", (resource_id,))
        return cur.rowcount > 0

    def count_by_visibility(self) -> tuple[int, int]:
        """(public, private) resource counts."""
        with connect(self.db_path) as conn:
            row = conn.execute(
                """
                SELECT
                    COALESCE(SUM(is_public), 0) AS public_count,
                    COUNT(*) - COALESCE(SUM(is_public), 0) AS private_count
                FROM resources
                """
            ).fetchone()
        return int(row["public_count"]), int(row["private_count"])

    def count_by_type(self) -> dict[str, int]:
        with connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT resource_type, COUNT(*) AS n FROM resources GROUP BY resource_type ORDER BY resource_type"
            ).fetchall()
        return {row["resource_type"]: int(row["n"]) for row in rows}

    @staticmethod
    def _load_files(conn: sqlite3.Connection, resource_ids: list[str]) -> dict[str, list[ResourceFile]]:
        if not resource_ids:
            return {}
        placeholders = ", ".join("?" for _ in resource_ids)
        rows = conn.execute(
            f"""
            SELECT * FROM resource_files
            WHERE resource_id IN ({placeholders})
            ORDER BY resource_id, position
            """,
            resource_ids,
        ).fetchall()
        grouped: dict[str, list[ResourceFile]] = {}
        for row in rows:
            grouped.setdefault(row["resource_id"], []).append(
                ResourceFile(
                    original_name=row["original_name"],
                    storage_name=row["storage_name"],
                    path=row["path"],
                    mimetype=row["mimetype"],
                    size=row["size_bytes"],
                    checksum=row["checksum_sha256"],
                )
            )
        return grouped

    @staticmethod
    def _to_model(row, files: list[ResourceFile]) -> Resource:
        return Resource(
            id=row["id"],
            title=row["title"],
            resource_type=row["resource_type"],
            creation_date=row["creation_date"],
            submission_date=row["submission_date"],
            producer=row["producer"],
            owner_id=row["owner_id"],
            is_public=bool(row["is_public"]),
            description=row["description"],
            tags=json.loads(row["tags_json"] or "[]"),
            custom_fields=json.loads(row["custom_fields_json"] or "{}"),
            files=files,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            owner_username=row["owner_username"],
        )


def _equality_clause(json_path: str, text: str) -> tuple[str, list[object]]:
    """Match a query string against a stored custom field.

    Text matches the stored value cast to TEXT. "true"/"false" also match JSON booleans and
    numeric strings also match stored numbers by value, so "17" finds 17 and 17.0.
    """
    alternatives = ["CAST(json_extract(r.custom_fields_json, ?) AS TEXT) = ?"]
    params: list[object] = [json_path, text]
    lowered = text.strip().lower()
    if lowered in {"true", "false"}:
        alternatives.append("json_type(r.custom_fields_json, ?) = ?")
        params.extend([json_path, lowered])
    else:
        try:
            number = float(text)
        except ValueError:
            number = None
        if number is not None and math.isfinite(number):
            alternatives.append(
                "(json_type(r.custom_fields_json, ?) IN ('integer', 'real')"
                " AND json_extract(r.custom_fields_json, ?) = ?)"
            )
            params.extend([json_path, json_path, number])
    return "(" + " OR ".join(alternatives) + ")", params

"""Repository implementations for PillSight medication storage."""

from __future__ import annotations

import json
import math
import sqlite3
from collections import Counter
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from threading import RLock
from typing import Protocol
from uuid import uuid4

from pillsight.models import Medication, MedicationInput, SearchMode
from pillsight.service import embedding_text, similarity_percent, text_percent
from pillsight.vector import cosine_similarity, encode, tokenize

_TEXT_FIELD_WEIGHTS = (("drug", 10.0), ("gpt4_form", 5.0), ("description", 1.0))


@dataclass(slots=True)
class MedicationRecord:
    medication_id: str
    drug: str
    gpt4_form: str
    description: str
    category: str | None
    common_uses: str | None
    country: str | None
    created_at: datetime
    embedding: list[float] | None = None
    vector_updated_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ScoredMedication:
    record: MedicationRecord
    similarity_score: float
    mode: SearchMode


class MedicationRepository(Protocol):
    def initialize(self) -> bool: ...

    def ping(self) -> bool: ...

    def add(self, items: list[MedicationInput], embed: bool = True) -> list[str]: ...

    def get(self, medication_id: str) -> Medication | None: ...

    def count(self) -> int: ...

    def count_embedded(self) -> int: ...

    def missing_embeddings(self) -> list[MedicationRecord]: ...

    def set_embedding(self, medication_id: str, vector: list[float]) -> bool: ...

    def semantic_search(
        self, query_vector: list[float], limit: int, min_similarity: float = 0.0
    ) -> list[ScoredMedication]: ...

    def text_search(self, query: str, limit: int) -> list[ScoredMedication]: ...

    def contains_search(self, text: str, limit: int = 5) -> list[Medication]: ...

    def find_equivalent(self, drug_name: str, form: str, country: str) -> Medication | None: ...

    def form_distribution(self, limit: int = 10) -> list[tuple[str, int]]: ...

    def count_description_matches(self, phrase: str) -> int: ...

    def sample(self, limit: int = 5) -> list[Medication]: ...

    def indexes(self) -> list[str]: ...

    def close(self) -> None: ...


def _new_record(item: MedicationInput, now: datetime, embed: bool) -> MedicationRecord:
    record = MedicationRecord(
        medication_id=f"med_{uuid4().hex[:10]}",
        drug=item.drug.strip(),
        gpt4_form=item.gpt4_form.strip(),
        description=item.description.strip(),
        category=item.category,
        common_uses=item.common_uses,
        country=item.country,
        created_at=now,
    )
    if embed:
        record.embedding = encode(embedding_text(record))
        record.vector_updated_at = now
    return record


def to_medication(record: MedicationRecord) -> Medication:
    return Medication(
        medication_id=record.medication_id,
        drug=record.drug,
        gpt4_form=record.gpt4_form,
        description=record.description,
        category=record.category,
        common_uses=record.common_uses,
        country=record.country,
        has_embedding=record.embedding is not None,
    )


def _rank_semantic(
    query_vector: list[float],
    records: list[MedicationRecord],
    limit: int,
    min_similarity: float,
) -> list[ScoredMedication]:
    scored: list[tuple[float, int, MedicationRecord]] = []
    for order, record in enumerate(records):
        if record.embedding is None:
            continue
        similarity = cosine_similarity(query_vector, record.embedding)
        if not math.isfinite(similarity) or similarity <= min_similarity:
            continue
        scored.append((similarity, order, record))
    scored.sort(key=lambda item: (-item[0], item[1]))
    return [
        ScoredMedication(
            record=record,
            similarity_score=similarity_percent(similarity),
            mode=SearchMode.SEMANTIC,
        )
        for similarity, _, record in scored[:limit]
    ]


def text_score(query_tokens: set[str], record: MedicationRecord) -> float:
    if not query_tokens:
        return 0.0
    score = 0.0
    for field, weight in _TEXT_FIELD_WEIGHTS:
        field_tokens = set(tokenize(getattr(record, field)))
        score += weight * len(query_tokens.intersection(field_tokens)) / len(query_tokens)
    return score


def _rank_text(query: str, records: list[MedicationRecord], limit: int) -> list[ScoredMedication]:
    query_tokens = set(tokenize(query))
    scored: list[tuple[float, int, MedicationRecord]] = []
    for order, record in enumerate(records):
        score = text_score(query_tokens, record)
        if score > 0.0:
            scored.append((score, order, record))
    scored.sort(key=lambda item: (-item[0], item[1]))
    return [
        ScoredMedication(
            record=record,
            similarity_score=text_percent(score),
            mode=SearchMode.TEXT,
        )
        for score, _, record in scored[:limit]
    ]


def _py_lower(value: str | None) -> str | None:
    return value.lower() if value is not None else None


def _contains(haystack: str | None, needle: str) -> bool:
    return haystack is not None and needle.lower() in haystack.lower()


class InMemoryRepository:
    def __init__(self) -> None:
        self._lock = RLock()
        self._records: dict[str, MedicationRecord] = {}

    def initialize(self) -> bool:
        return True

    def ping(self) -> bool:
        return True

    def add(self, items: list[MedicationInput], embed: bool = True) -> list[str]:
        now = datetime.now(UTC)
        with self._lock:
            medication_ids: list[str] = []
            for item in items:
                record = _new_record(item, now, embed)
                self._records[record.medication_id] = record
                medication_ids.append(record.medication_id)
            return medication_ids

    def get(self, medication_id: str) -> Medication | None:
        with self._lock:
            record = self._records.get(medication_id)
            return to_medication(record) if record is not None else None

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def count_embedded(self) -> int:
        with self._lock:
            return sum(1 for record in self._records.values() if record.embedding is not None)

    def missing_embeddings(self) -> list[MedicationRecord]:
        with self._lock:
            return [record for record in self._records.values() if record.embedding is None]

    def set_embedding(self, medication_id: str, vector: list[float]) -> bool:
        with self._lock:
            record = self._records.get(medication_id)
            if record is None:
                return False
            record.embedding = list(vector)
            record.vector_updated_at = datetime.now(UTC)
            return True

    def semantic_search(
        self, query_vector: list[float], limit: int, min_similarity: float = 0.0
    ) -> list[ScoredMedication]:
        with self._lock:
            return _rank_semantic(
                query_vector, list(self._records.values()), limit, min_similarity
            )

    def text_search(self, query: str, limit: int) -> list[ScoredMedication]:
        with self._lock:
            return _rank_text(query, list(self._records.values()), limit)

    def contains_search(self, text: str, limit: int = 5) -> list[Medication]:
        with self._lock:
            matches = [
                record
                for record in self._records.values()
                if _contains(record.description, text)
                or _contains(record.drug, text)
                or _contains(record.gpt4_form, text)
            ]
            return [to_medication(record) for record in matches[:limit]]

    def find_equivalent(self, drug_name: str, form: str, country: str) -> Medication | None:
        with self._lock:
            candidates = [
                record
                for record in self._records.values()
                if _contains(record.drug, drug_name)
                and _contains(record.gpt4_form, form)
                and _contains(record.country, country)
            ]
            if not candidates:
                return None
            exact = [record for record in candidates if record.drug.lower() == drug_name.lower()]
            return to_medication(exact[0] if exact else candidates[0])

    def form_distribution(self, limit: int = 10) -> list[tuple[str, int]]:
        with self._lock:
            counts = Counter(record.gpt4_form for record in self._records.values())
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return ranked[:limit]

    def count_description_matches(self, phrase: str) -> int:
        with self._lock:
            return sum(
                1 for record in self._records.values() if _contains(record.description, phrase)
            )

    def sample(self, limit: int = 5) -> list[Medication]:
        with self._lock:
            return [to_medication(record) for record in list(self._records.values())[:limit]]

    def indexes(self) -> list[str]:
        return []

    def close(self) -> None:
        return None


class SQLiteRepository:
    def __init__(self, sqlite_path: str) -> None:
        self._lock = RLock()
        db_path = Path(sqlite_path)
        if db_path.parent != Path("."):
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = sqlite3.connect(str(db_path), check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        # SQLite's lower() only folds ASCII; match str.lower() used by the in-memory store.
        self._connection.create_function("py_lower", 1, _py_lower, deterministic=True)
        self.initialize()

    def initialize(self) -> bool:
        with self._lock, self._connection:
            self._connection.executescript(
                """
                CREATE TABLE IF NOT EXISTS medications (
                    medication_id TEXT PRIMARY KEY,
                    drug TEXT NOT NULL,
                    gpt4_form TEXT NOT NULL DEFAULT '',
                    description TEXT NOT NULL DEFAULT '',
                    category TEXT,
                    common_uses TEXT,
                    country TEXT,
                    created_at TEXT NOT NULL,
                    embedding TEXT,
                    vector_updated_at TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_medications_drug
                    ON medications (drug);

                CREATE INDEX IF NOT EXISTS idx_medications_form
                    ON medications (gpt4_form);

                CREATE INDEX IF NOT EXISTS idx_medications_description
                    ON medications (description);
                """
            )
        return True

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> MedicationRecord:
        return MedicationRecord(
            medication_id=str(row["medication_id"]),
            drug=str(row["drug"]),
            gpt4_form=str(row["gpt4_form"]),
            description=str(row["description"]),
            category=str(row["category"]) if row["category"] is not None else None,
            common_uses=str(row["common_uses"]) if row["common_uses"] is not None else None,
            country=str(row["country"]) if row["country"] is not None else None,
            created_at=datetime.fromisoformat(str(row["created_at"])),
            embedding=(
                [float(value) for value in json.loads(str(row["embedding"]))]
                if row["embedding"] is not None
                else None
            ),
            vector_updated_at=(
                datetime.fromisoformat(str(row["vector_updated_at"]))
                if row["vector_updated_at"] is not None
                else None
            ),
        )

    def _all_records(self) -> list[MedicationRecord]:
        rows = self._connection.execute("SELECT * FROM medications ORDER BY rowid").fetchall()
        return [self._row_to_record(row) for row in rows]

    def ping(self) -> bool:
        with self._lock:
            row = self._connection.execute("SELECT 1").fetchone()
            return row is not None and int(row[0]) == 1

    def add(self, items: list[MedicationInput], embed: bool = True) -> list[str]:
        now = datetime.now(UTC)
        with self._lock, self._connection:
            medication_ids: list[str] = []
            for item in items:
                record = _new_record(item, now, embed)
                self._connection.execute(
                    """
                    INSERT INTO medications (
                        medication_id, drug, gpt4_form, description, category,
                        common_uses, country, created_at, embedding, vector_updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.medication_id,
                        record.drug,
                        record.gpt4_form,
                        record.description,
                        record.category,
                        record.common_uses,
                        record.country,
                        record.created_at.isoformat(),
                        json.dumps(record.embedding) if record.embedding is not None else None,
                        record.vector_updated_at.isoformat()
                        if record.vector_updated_at is not None
                        else None,
                    ),
                )
                medication_ids.append(record.medication_id)
            return medication_ids

    def get(self, medication_id: str) -> Medication | None:
        with self._lock:
            row = self._connection.execute(
                "SELECT * FROM medications WHERE medication_id = ?",
                (medication_id,),
            ).fetchone()
            return to_medication(self._row_to_record(row)) if row is not None else None

    def count(self) -> int:
        with self._lock:
            row = self._connection.execute("SELECT COUNT(*) FROM medications").fetchone()
            return int(row[0])

    def count_embedded(self) -> int:
        with self._lock:
            row = self._connection.execute(
                "SELECT COUNT(*) FROM medications WHERE embedding IS NOT NULL"
            ).fetchone()
            return int(row[0])

    def missing_embeddings(self) -> list[MedicationRecord]:
        with self._lock:
            rows = self._connection.execute(
                "SELECT * FROM medications WHERE embedding IS NULL ORDER BY rowid"
            ).fetchall()
            return [self._row_to_record(row) for row in rows]

    def set_embedding(self, medication_id: str, vector: list[float]) -> bool:
        with self._lock, self._connection:
            cursor = self._connection.execute(
                """
                UPDATE medications
                SET embedding = ?, vector_updated_at = ?
                WHERE medication_id = ?
                """,
                (json.dumps(list(vector)), datetime.now(UTC).isoformat(), medication_id),
            )
            return cursor.rowcount > 0

    def semantic_search(
        self, query_vector: list[float], limit: int, min_similarity: float = 0.0
    ) -> list[ScoredMedication]:
        with self._lock:
            rows = self._connection.execute(
                "SELECT * FROM medications WHERE embedding IS NOT NULL ORDER BY rowid"
            ).fetchall()
            records = [self._row_to_record(row) for row in rows]
        return _rank_semantic(query_vector, records, limit, min_similarity)

    def text_search(self, query: str, limit: int) -> list[ScoredMedication]:
        with self._lock:
            records = self._all_records()
        return _rank_text(query, records, limit)

    def contains_search(self, text: str, limit: int = 5) -> list[Medication]:
        needle = text.lower()
        with self._lock:
            rows = self._connection.execute(
                """
                SELECT * FROM medications
                WHERE instr(py_lower(description), ?) > 0
                   OR instr(py_lower(drug), ?) > 0
                   OR instr(py_lower(gpt4_form), ?) > 0
                ORDER BY rowid
                LIMIT ?
                """,
                (needle, needle, needle, limit),
            ).fetchall()
            return [to_medication(self._row_to_record(row)) for row in rows]

    def find_equivalent(self, drug_name: str, form: str, country: str) -> Medication | None:
        drug_needle = drug_name.lower()
        with self._lock:
            row = self._connection.execute(
                """
                SELECT * FROM medications
                WHERE instr(py_lower(drug), ?) > 0
                  AND instr(py_lower(gpt4_form), ?) > 0
                  AND instr(py_lower(coalesce(country, '')), ?) > 0
                ORDER BY (py_lower(drug) = ?) DESC, rowid
                LIMIT 1
                """,
                (drug_needle, form.lower(), country.lower(), drug_needle),
            ).fetchone()
            return to_medication(self._row_to_record(row)) if row is not None else None

    def form_distribution(self, limit: int = 10) -> list[tuple[str, int]]:
        with self._lock:
            rows = self._connection.execute(
                """
                SELECT gpt4_form, COUNT(*) AS form_count
                FROM medications
                GROUP BY gpt4_form
                ORDER BY form_count DESC, gpt4_form
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
            return [(str(row["gpt4_form"]), int(row["form_count"])) for row in rows]

    def count_description_matches(self, phrase: str) -> int:
        with self._lock:
            row = self._connection.execute(
                "SELECT COUNT(*) FROM medications WHERE instr(py_lower(description), ?) > 0",
                (phrase.lower(),),
            ).fetchone()
            return int(row[0])

    def sample(self, limit: int = 5) -> list[Medication]:
        with self._lock:
            rows = self._connection.execute(
                "SELECT * FROM medications ORDER BY rowid LIMIT ?",
                (limit,),
            ).fetchall()
            return [to_medication(self._row_to_record(row)) for row in rows]

    def indexes(self) -> list[str]:
        with self._lock:
            rows = self._connection.execute(
                """
                SELECT name FROM sqlite_master
                WHERE type = 'index' AND tbl_name = 'medications'
                ORDER BY name
                """
            ).fetchall()
            return [str(row["name"]) for row in rows]

    def close(self) -> None:
        self._connection.close()

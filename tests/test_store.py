from __future__ import annotations

import pytest

from pillsight.models import MedicationInput, SearchMode
from pillsight.service import embedding_text
from pillsight.store import InMemoryRepository, text_score
from pillsight.vector import encode, tokenize


def _medications() -> list[MedicationInput]:
    return [
        MedicationInput(
            drug="Panadol Extra",
            gpt4_form="Tablet",
            description="Paracetamol with caffeine for headache and fever.",
            country="United Kingdom",
        ),
        MedicationInput(
            drug="Panadol",
            gpt4_form="Tablet",
            description="Paracetamol for mild pain relief and fever.",
            category="Analgesic",
            country="United Kingdom",
        ),
        MedicationInput(
            drug="Ibuprofen",
            gpt4_form="Oral Suspension",
            description="Anti-inflammatory used to reduce inflammation and pain.",
            country="United States",
        ),
        MedicationInput(
            drug="Cetirizine",
            gpt4_form="Tablet",
            description="Antihistamine for allergy symptoms.",
            common_uses="hay fever, hives",
        ),
    ]


def _seeded(embed: bool = True) -> tuple[InMemoryRepository, list[str]]:
    repo = InMemoryRepository()
    ids = repo.add(_medications(), embed=embed)
    return repo, ids


def test_add_computes_embeddings_at_ingestion() -> None:
    repo, ids = _seeded()
    assert repo.count() == 4
    assert repo.count_embedded() == 4
    assert all(medication_id.startswith("med_") for medication_id in ids)
    medication = repo.get(ids[1])
    assert medication is not None
    assert medication.drug == "Panadol"
    assert medication.has_embedding is True
    assert repo.get("med_missing") is None


def test_semantic_search_ranks_identical_text_first() -> None:
    repo, ids = _seeded()
    assert repo.missing_embeddings() == []

    target = _medications()[2]
    query = " ".join(
        part
        for part in (target.drug, target.gpt4_form, target.description)
        if part
    )
    results = repo.semantic_search(encode(query), limit=3)
    assert results[0].record.medication_id == ids[2]
    assert results[0].mode is SearchMode.SEMANTIC
    assert results[0].similarity_score == pytest.approx(100.0)
    assert len(results) <= 3
    scores = [item.similarity_score for item in results]
    assert scores == sorted(scores, reverse=True)


def test_semantic_search_respects_threshold() -> None:
    repo, _ = _seeded()
    assert repo.semantic_search(encode("fever"), limit=5, min_similarity=1.0) == []


def test_semantic_search_skips_documents_without_vectors() -> None:
    repo, _ = _seeded(embed=False)
    assert repo.semantic_search(encode("fever"), limit=5) == []


def test_text_search_weights_drug_over_description() -> None:
    repo, ids = _seeded(embed=False)
    by_drug = repo.text_search("ibuprofen", limit=5)
    assert [item.record.medication_id for item in by_drug] == [ids[2]]
    assert by_drug[0].similarity_score == 100.0
    assert by_drug[0].mode is SearchMode.TEXT

    by_description = repo.text_search("antihistamine", limit=5)
    assert [item.record.medication_id for item in by_description] == [ids[3]]
    assert by_description[0].similarity_score == 50.0

    assert repo.text_search("zzz", limit=5) == []


def test_text_score_formula() -> None:
    repo, ids = _seeded(embed=False)
    record = next(r for r in repo._records.values() if r.medication_id == ids[1])
    # "panadol" hits drug (10), "tablet" hits form (5), "fever" hits description (1)
    score = text_score(set(tokenize("panadol tablet fever")), record)
    assert score == pytest.approx((10.0 + 5.0 + 1.0) / 3)


def test_contains_search_matches_literal_text() -> None:
    repo, ids = _seeded(embed=False)
    matches = repo.contains_search("FEVER", limit=5)
    assert [item.medication_id for item in matches] == [ids[0], ids[1]]
    assert repo.contains_search("(", limit=5) == []
    assert len(repo.contains_search("tablet", limit=2)) == 2


def test_find_equivalent_prefers_exact_drug_name() -> None:
    repo, ids = _seeded(embed=False)
    match = repo.find_equivalent("panadol", "tablet", "kingdom")
    assert match is not None
    assert match.medication_id == ids[1]

    partial = repo.find_equivalent("ibu", "suspension", "states")
    assert partial is not None
    assert partial.drug == "Ibuprofen"

    assert repo.find_equivalent("cetirizine", "tablet", "France") is None


def test_form_distribution_and_description_counts() -> None:
    repo, _ = _seeded(embed=False)
    assert repo.form_distribution() == [("Tablet", 3), ("Oral Suspension", 1)]
    assert repo.form_distribution(limit=1) == [("Tablet", 3)]
    assert repo.count_description_matches("Fever") == 2
    assert repo.count_description_matches("blood pressure") == 0


def test_set_embedding_backfills_vectors() -> None:
    repo, ids = _seeded(embed=False)
    pending = repo.missing_embeddings()
    assert len(pending) == 4
    vector = encode(embedding_text(pending[0]))
    assert repo.set_embedding(ids[0], vector) is True
    assert repo.set_embedding("med_missing", vector) is False
    assert repo.count_embedded() == 1
    assert len(repo.missing_embeddings()) == 3


def test_embedding_text_skips_empty_fields() -> None:
    item = _medications()[3]
    assert embedding_text(item) == (
        "Cetirizine Tablet Antihistamine for allergy symptoms. hay fever, hives"
    )

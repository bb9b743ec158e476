"""Tests for shared utility functions."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from src.foundry_shared.utils import (
    atomic_write_json,
    count_specifics,
    ensure_dir,
    is_valid_target_name,
    load_json,
    normalize_key,
    slugify,
    tokenize,
)


class TestJsonPersistence:
    def test_atomic_write_and_load(self, tmp_path: Path):
        path = tmp_path / "nested" / "data.json"
        atomic_write_json(path, {"a": 1})
        assert json.loads(path.read_text()) == {"a": 1}
        assert load_json(path) == {"a": 1}
        assert not path.with_suffix(".json.tmp").exists()

    def test_non_serialisable_values_stringified(self, tmp_path: Path):
        path = tmp_path / "data.json"
        atomic_write_json(path, {"path": tmp_path})
        assert load_json(path) == {"path": str(tmp_path)}

    def test_load_missing_and_corrupt(self, tmp_path: Path):
        assert load_json(tmp_path / "missing.json") is None
        bad = tmp_path / "bad.json"
        bad.write_text("{", encoding="utf-8")
        assert load_json(bad) is None

    def test_ensure_dir(self, tmp_path: Path):
        target = ensure_dir(tmp_path / "a" / "b")
        assert target.is_dir()


class TestText:
    def test_tokenize_drops_stopwords(self):
        assert tokenize("Create an agent for Kubernetes troubleshooting") == {
            "kubernetes",
            "troubleshooting",
        }

    def test_tokenize_keeps_stopwords_on_request(self):
        assert "for" in tokenize("agent for dns", drop_stopwords=False)

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("Kubernetes Troubleshooting", "kubernetes-troubleshooting"),
            ("  payments / code-review!  ", "payments-code-review"),
            ("", ""),
        ],
    )
    def test_slugify(self, text, expected):
        assert slugify(text) == expected

    def test_slugify_truncates_on_word_boundary(self):
        slug = slugify("alpha beta gamma delta", max_length=14)
        assert slug == "alpha-beta"

    @pytest.mark.parametrize(
        "name, valid",
        [
            ("kubernetes-security", True),
            ("dns", True),
            ("qa", False),
            ("Upper-Case", False),
            ("double--hyphen", False),
            ("-leading", False),
            ("a" * 51, False),
        ],
    )
    def test_is_valid_target_name(self, name, valid):
        assert is_valid_target_name(name) is valid

    def test_normalize_key_is_order_insensitive(self):
        assert normalize_key("Pod restart loops") == normalize_key("restart loops of the pod")

    def test_count_specifics(self):
        text = "Run `kubectl get pods` with --watch; HPA scales at 70% after 5m on v1.28"
        assert count_specifics(text) >= 6
        assert count_specifics("general advice about being careful") == 0

    def test_count_specifics_deduplicates(self):
        assert count_specifics("`foo` and `foo`") == 1

"""Unit tests for AI request models.

Tests cover:
- Dialect detection from the backend URL
- BackendConfig resolution from env vars
- RequestEntry factories and defaults
- Request id generation
"""

import pytest
from pydantic import ValidationError

from writeassist.llm import models
from writeassist.llm.models import (
    BackendConfig,
    Dialect,
    RequestCategory,
    RequestEntry,
    dialect_for_url,
    next_request_id,
)


class TestDialectForUrl:
    """Tests for URL suffix based dialect detection."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("http://localhost:8080/v1/edits", Dialect.edits),
            ("http://localhost:8080/v1/edits/", Dialect.edits),
            ("http://localhost:8080/v1/chat/completions", Dialect.chat),
            ("http://localhost:8080/v1/chat/completions/", Dialect.chat),
            ("http://localhost:8080/v1/completions", Dialect.completions),
            ("http://localhost:11434/api/generate", Dialect.generate),
            ("http://localhost:8080/v1/anything", Dialect.chat),
        ],
    )
    def test_suffixes(self, url, expected):
        """Test each suffix maps to its dialect, Chat otherwise."""
        assert dialect_for_url(url) == expected

    def test_chat_completions_wins_over_completions(self):
        """Test the longer chat suffix is not mistaken for completions."""
        assert dialect_for_url("http://h/chat/completions") == Dialect.chat


class TestBackendConfig:
    """Tests for backend configuration."""

    def test_dialect_derived_from_url(self):
        """Test dialect is derived when not given."""
        config = BackendConfig(url="http://h/v1/completions", api_key="k", model="m")
        assert config.dialect == Dialect.completions

    def test_explicit_dialect_kept(self):
        """Test an explicit dialect is not overridden."""
        config = BackendConfig(url="http://h/v1/completions", dialect=Dialect.generate)
        assert config.dialect == Dialect.generate

    def test_frozen(self):
        """Test config cannot be changed after creation."""
        config = BackendConfig(url="http://h/v1/edits")
        with pytest.raises(ValidationError):
            config.url = "http://other"

    def test_from_env_defaults(self):
        """Test built-in defaults apply without env vars."""
        config = BackendConfig.from_env(RequestCategory.text)
        assert config.url == "http://localhost:8080/v1/chat/completions/"
        assert config.model == "gpt-4"
        assert config.dialect == Dialect.chat

    def test_from_env_reads_prefix(self, monkeypatch):
        """Test env vars use the category prefix."""
        monkeypatch.setenv("AI_IMG_URL", "http://img.test/gen")
        monkeypatch.setenv("AI_IMG_MODEL", "sd-xl")
        config = BackendConfig.from_env(RequestCategory.image)
        assert config.url == "http://img.test/gen"
        assert config.model == "sd-xl"

    def test_explicit_arguments_win(self, monkeypatch):
        """Test explicit arguments override env vars."""
        monkeypatch.setenv("AI_URL", "http://env.test/v1/edits")
        config = BackendConfig.from_env(RequestCategory.text, url="http://arg.test/api/generate")
        assert config.dialect == Dialect.generate


class TestRequestEntry:
    """Tests for request entry factories."""

    def test_text_defaults(self):
        """Test a fresh text entry has no id and default temperature."""
        entry = RequestEntry.for_text("Fix", "text")
        assert entry.category == RequestCategory.text
        assert entry.id == 0
        assert entry.temperature == 0.7
        assert entry.locale == "en"

    def test_empty_locale_falls_back(self):
        """Test an empty locale becomes English."""
        assert RequestEntry.for_text("Fix", "text", locale="").locale == "en"

    @pytest.mark.parametrize("size", [128, 256, 512])
    def test_image_allowed_sizes(self, size):
        """Test supported image sizes are kept."""
        entry = RequestEntry.for_image("a cat", size=size)
        assert (entry.width, entry.height) == (size, size)

    def test_image_invalid_size_falls_back(self):
        """Test unsupported sizes become 256."""
        entry = RequestEntry.for_image("a cat", size=300)
        assert (entry.width, entry.height) == (256, 256)

    def test_speech_entry(self):
        """Test speech entries carry text and filename."""
        entry = RequestEntry.for_speech("Hello", "/tmp/out")
        assert entry.category == RequestCategory.speech
        assert entry.filename == "/tmp/out"

    def test_negative_seed_rejected(self):
        """Test validation of numeric fields."""
        with pytest.raises(ValidationError):
            RequestEntry.for_text("Fix", "text", seed=-1)


class TestNextRequestId:
    """Tests for process-wide request ids."""

    def test_ids_are_unique_and_nonzero(self):
        """Test consecutive ids differ and are never 0."""
        ids = [next_request_id() for _ in range(100)]
        assert len(set(ids)) == 100
        assert 0 not in ids

    def test_wraps_to_one(self, monkeypatch):
        """Test the counter wraps to 1 at the ceiling."""
        import itertools

        monkeypatch.setattr(models, "_id_counter", itertools.count(models.MAX_REQUEST_ID))
        assert next_request_id() == 1
        assert next_request_id() == 2

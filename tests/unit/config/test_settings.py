"""Tests for configuration models."""

from pathlib import Path

import pytest
from pydantic import ValidationError as PydanticValidationError

from lance_context.config.defaults import (
    DEFAULT_EXCLUDE_PATTERNS,
    get_language_from_extension,
    get_model_dimensions,
)
from lance_context.config.settings import (
    ChunkingConfig,
    EmbeddingBackendType,
    ProjectConfig,
    SearchConfig,
)
from lance_context.core.exceptions import ConfigError

ENV_VARS = [
    "LANCE_CONTEXT_EMBEDDING_BACKEND",
    "LANCE_CONTEXT_EMBEDDING_MODEL",
    "JINA_API_KEY",
    "OLLAMA_URL",
    "LANCE_CONTEXT_CONCURRENCY",
    "LANCE_CONTEXT_BATCH_SIZE",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestChunkingConfig:
    def test_defaults(self):
        config = ChunkingConfig()
        assert config.max_lines == 100
        assert config.overlap == 20

    @pytest.mark.parametrize(
        ("max_lines", "overlap"), [(5, 0), (501, 20), (100, 51), (20, 20), (100, -1)]
    )
    def test_bounds(self, max_lines, overlap):
        with pytest.raises(PydanticValidationError):
            ChunkingConfig(max_lines=max_lines, overlap=overlap)


class TestSearchConfig:
    def test_defaults(self):
        config = SearchConfig()
        assert config.semantic_weight == 0.7
        assert config.keyword_weight == 0.3
        assert config.default_limit == 10

    def test_weights_need_not_sum_to_one(self):
        config = SearchConfig(semantic_weight=0.5, keyword_weight=0.2)
        assert config.semantic_weight + config.keyword_weight == pytest.approx(0.7)

    def test_weight_range(self):
        with pytest.raises(PydanticValidationError):
            SearchConfig(semantic_weight=1.5)


class TestProjectConfig:
    def test_index_dir(self, tmp_path: Path):
        config = ProjectConfig(project_root=tmp_path)
        assert config.index_dir == tmp_path / ".lance-context"
        assert config.exclude_patterns == DEFAULT_EXCLUDE_PATTERNS
        # Defaults are copied per instance
        config.exclude_patterns.append("extra/**")
        assert "extra/**" not in DEFAULT_EXCLUDE_PATTERNS

    def test_from_env_defaults(self, clean_env, tmp_path: Path):
        config = ProjectConfig.from_env(tmp_path)
        assert config.project_root == tmp_path.resolve()
        assert config.embedding.backend == EmbeddingBackendType.AUTO
        assert config.embedding.api_key is None

    def test_from_env_overrides(self, clean_env, tmp_path: Path):
        clean_env.setenv("LANCE_CONTEXT_EMBEDDING_BACKEND", "Ollama")
        clean_env.setenv("LANCE_CONTEXT_EMBEDDING_MODEL", "mxbai-embed-large")
        clean_env.setenv("JINA_API_KEY", "secret")
        clean_env.setenv("OLLAMA_URL", "http://gpu-box:11434")
        clean_env.setenv("LANCE_CONTEXT_CONCURRENCY", "8")
        clean_env.setenv("LANCE_CONTEXT_BATCH_SIZE", "16")

        embedding = ProjectConfig.from_env(tmp_path).embedding

        assert embedding.backend == EmbeddingBackendType.OLLAMA
        assert embedding.model == "mxbai-embed-large"
        assert embedding.api_key == "secret"
        assert embedding.ollama_url == "http://gpu-box:11434"
        assert embedding.concurrency == 8
        assert embedding.batch_size == 16

    def test_invalid_backend(self, clean_env, tmp_path: Path):
        clean_env.setenv("LANCE_CONTEXT_EMBEDDING_BACKEND", "word2vec")
        with pytest.raises(ConfigError, match="Unknown embedding backend 'word2vec'"):
            ProjectConfig.from_env(tmp_path)

    def test_invalid_number_ignored(self, clean_env, tmp_path: Path):
        clean_env.setenv("LANCE_CONTEXT_CONCURRENCY", "lots")
        assert ProjectConfig.from_env(tmp_path).embedding.concurrency == 4

    def test_api_key_hidden_from_repr(self, clean_env, tmp_path: Path):
        clean_env.setenv("JINA_API_KEY", "top-secret")
        assert "top-secret" not in repr(ProjectConfig.from_env(tmp_path))


class TestDefaults:
    @pytest.mark.parametrize(
        ("ext", "language"),
        [(".py", "python"), (".TSX", "typescript"), (".rs", "rust"), (".md", "text")],
    )
    def test_language_from_extension(self, ext, language):
        assert get_language_from_extension(ext) == language

    def test_model_dimensions(self):
        assert get_model_dimensions("nomic-embed-text") == 768
        assert get_model_dimensions("unknown-model") == 768
        assert get_model_dimensions("unknown-model", default=384) == 384

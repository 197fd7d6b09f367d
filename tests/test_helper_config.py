import pytest

from shared.models.errors import ConfigurationError


def test_string_value_and_default(helper_config, env):
    env.setenv("SYNC_SOURCE_DIR", "  /data/docs ")
    assert helper_config.get_string_val("sync_source_dir") == "/data/docs"
    assert helper_config.get_string_val("SYNC_SOURCE_NAME", default="fallback") == "fallback"


def test_missing_string_raises_configuration_error(helper_config):
    with pytest.raises(ConfigurationError) as exc_info:
        helper_config.get_string_val("SYNC_SOURCE_DIR")
    assert "SYNC_SOURCE_DIR" in exc_info.value.message
    assert exc_info.value.hint


def test_number_values(helper_config, env):
    env.setenv("RETRIEVAL_SAMPLE_SIZE", "50")
    env.setenv("RETRIEVAL_EXPANSION_DECAY", "0.1")
    assert helper_config.get_number_val("RETRIEVAL_SAMPLE_SIZE") == 50
    assert helper_config.get_number_val("RETRIEVAL_EXPANSION_DECAY") == pytest.approx(0.1)
    assert helper_config.get_number_val("RETRIEVAL_NEIGHBORS", default=2) == 2


def test_invalid_number_raises(helper_config, env):
    env.setenv("RETRIEVAL_SAMPLE_SIZE", "many")
    with pytest.raises(ConfigurationError):
        helper_config.get_number_val("RETRIEVAL_SAMPLE_SIZE")


def test_bool_values(helper_config, env):
    env.setenv("STORE_MEMORY_VECTOR_INDEX", "False")
    assert helper_config.get_bool_val("STORE_MEMORY_VECTOR_INDEX") is False
    env.setenv("STORE_MEMORY_VECTOR_INDEX", "yes")
    assert helper_config.get_bool_val("STORE_MEMORY_VECTOR_INDEX") is True


def test_list_values(helper_config, env):
    assert helper_config.get_list_val("EMBED_ENGINES", default=["ollama"]) == ["ollama"]
    env.setenv("EMBED_ENGINES", "[openai, ollama ,]")
    assert helper_config.get_list_val("EMBED_ENGINES") == ["openai", "ollama"]


def test_malformed_list_raises(helper_config, env):
    env.setenv("EMBED_ENGINES", "openai,ollama")
    with pytest.raises(ConfigurationError):
        helper_config.get_list_val("EMBED_ENGINES")

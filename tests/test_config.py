from src.dream_pipeline.config import DEFAULT_MODEL_CHAIN, PipelineSettings
from src.dream_pipeline.errors import DreamPipelineError, UnknownPersonaError


def test_from_env_defaults(monkeypatch):
    for name in (
        "DREAM_MODEL_CHAIN",
        "DREAM_MODEL_CHAIN_JUNG",
        "ENABLE_DEBATE",
        "ENABLE_QUALITY_CHECKS",
        "USE_FALLBACK_RESPONSE",
        "RETRIEVAL_TOP_K",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = PipelineSettings.from_env()

    assert settings.model_chain == DEFAULT_MODEL_CHAIN
    assert settings.retrieval_top_k == 10
    assert settings.enable_debate is False
    assert settings.enable_quality_checks is True
    assert settings.use_fallback_response is False


def test_from_env_overrides(monkeypatch):
    monkeypatch.setenv("DREAM_MODEL_CHAIN", "a, b ,c")
    monkeypatch.setenv("DREAM_MODEL_CHAIN_JUNG", "j1,j2")
    monkeypatch.setenv("ENABLE_DEBATE", "true")
    monkeypatch.setenv("USE_FALLBACK_RESPONSE", "1")
    monkeypatch.setenv("RETRIEVAL_THRESHOLD", "0.5")

    settings = PipelineSettings.from_env()

    assert settings.model_chain == ["a", "b", "c"]
    assert settings.model_chain_for("jung") == ["j1", "j2"]
    assert settings.model_chain_for("freud") == ["a", "b", "c"]
    assert settings.enable_debate is True
    assert settings.use_fallback_response is True
    assert settings.retrieval_threshold == 0.5


def test_error_to_dict():
    err = UnknownPersonaError("hillman", ["freud", "jung"])

    assert isinstance(err, DreamPipelineError)
    assert err.to_dict() == {
        "code": "UNKNOWN_PERSONA",
        "message": "Interpreter not found: hillman. Available interpreters: freud, jung",
        "details": {"persona": "hillman", "available": ["freud", "jung"]},
    }

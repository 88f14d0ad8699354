import pytest

from src.dream_pipeline.config import PipelineSettings
from src.dream_pipeline.models import InterpretationRequest, ThemeScore

from tests.helpers import make_fragment


@pytest.fixture
def settings():
    return PipelineSettings(
        model_chain=["model-a", "model-b", "model-c"],
        enable_debate=False,
        enable_quality_checks=True,
        use_fallback_response=False,
    )


@pytest.fixture
def owl_request():
    return InterpretationRequest(
        dream_id="dream-owl-1",
        user_id="user-1",
        dream_text="I was walking through a dark forest when a white owl landed on a branch and stared at me.",
        persona="jung",
        themes=[
            ThemeScore(code="forest", name="Forest", relevance=0.9),
            ThemeScore(code="owl", name="Owl", relevance=0.8),
        ],
    )


@pytest.fixture
def owl_fragments():
    return [
        make_fragment(
            "kb-owl",
            "The owl is a messenger of hidden wisdom that sees in the dark.",
            persona="jung",
            themes=["owl", "wisdom"],
        ),
        make_fragment(
            "kb-forest",
            "The forest symbolizes the unconscious, where one loses the familiar path.",
            themes=["forest"],
        ),
        make_fragment(
            "kb-freud",
            "Every dream is the fulfilment of a repressed wish.",
            persona="freud",
            themes=["wish"],
        ),
    ]

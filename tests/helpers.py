import json

from src.dream_pipeline.errors import GenerationError
from src.dream_pipeline.models import (
    ClassificationResult,
    Completion,
    ContentType,
    KnowledgeFragment,
    Usage,
)


class ScriptedBackend:
    """
    Fake generation backend that records calls and replays scripted replies.

    Each reply is either a string (returned as the completion content), an
    Exception (raised), or a callable taking the call dict and returning
    one of those.
    """

    def __init__(self, replies, model_name=None):
        self.replies = list(replies)
        self.calls = []
        self.model_name = model_name

    async def complete(self, messages, *, temperature, max_tokens, model=None, json_mode=False):
        call = {
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "model": model,
            "json_mode": json_mode,
        }
        self.calls.append(call)
        if not self.replies:
            raise GenerationError("No more scripted replies", model=model)
        reply = self.replies.pop(0)
        if callable(reply):
            reply = reply(call)
        if isinstance(reply, Exception):
            raise reply
        return Completion(
            content=reply,
            model=self.model_name or model or "scripted",
            usage=Usage(prompt_tokens=10, completion_tokens=5),
        )

    @property
    def prompts(self):
        return [c["messages"][-1]["content"] for c in self.calls]


def make_fragment(fid, content, persona=None, themes=(), embedding=None, content_type=ContentType.SYMBOL):
    return KnowledgeFragment(
        id=fid,
        source_id="test-source",
        content=content,
        persona=persona,
        content_type=content_type,
        classification=ClassificationResult(
            content_type=content_type,
            confidence=0.8,
            applicable_themes=list(themes),
        ),
        embedding=embedding,
    )


def relevance_json(fragments, themes=("Forest", "Owl")):
    return json.dumps(
        {
            "relevantThemes": list(themes),
            "relevantFragments": [
                {"id": f.id, "content": f.content, "relevance": 0.8, "reason": "archetypal image"}
                for f in fragments
            ],
            "focusAreas": ["wise old man", "descent into the unconscious"],
        }
    )


JUNG_INTERPRETATION = (
    "Standing in the dark forest, you meet the owl as a messenger from the deep. "
    "The forest represents the unconscious, the place where the familiar path disappears. "
    "The owl symbolizes the Wise Old Man archetype, a guide who sees what you cannot yet see. "
    "Its steady gaze is the compensatory function of the dream at work, balancing a waking "
    "attitude that trusts only daylight reasoning. On the path of individuation, this encounter "
    "invites you to honour the shadow of not-knowing and to let the Self speak through instinct."
)


def jung_formatted_json(dream_id="dream-owl-1", **overrides):
    data = {
        "dreamId": dream_id,
        "interpretation": JUNG_INTERPRETATION,
        "dreamTopic": "Meeting the wise owl in the forest",
        "quickTake": "Your psyche is sending a wise guide to lead you through the unknown.",
        "symbols": ["Owl", {"symbol": "Dark Forest"}, "branch"],
        "emotionalTone": {"primary": "awe", "secondary": "unease", "intensity": 0.7},
        "interpreterCore": {
            "type": "jungian",
            "primaryInsight": "The owl embodies the Wise Old Man archetype guiding you inward.",
            "keyPattern": "Descent into the unconscious",
            "personalGuidance": "Trust your instincts in the unknown",
            "archetypalDynamics": {
                "primaryArchetype": "Wise Old Man",
                "shadowElements": "Fear of the dark",
                "compensatoryFunction": "Balances over-reliance on reason",
            },
            "individuationInsights": {
                "currentStage": "Encounter with the guide",
                "developmentalTask": "Listening to intuition",
                "integrationOpportunity": "Befriending the unknown",
            },
            "complexesIdentified": ["control"],
        },
        "practicalGuidance": ["Draw the owl", "Journal about what you avoid seeing"],
        "selfReflection": "What is the owl asking you to notice?",
    }
    data.update(overrides)
    return json.dumps(data)

import asyncio

import pytest

from services.exploration.intent_classifier import IntentClassifier, result_from_arguments
from services.exploration.utterances import proposal_utterance, proposed_topic_in


def test_result_from_arguments_normalizes_values():
    result = result_from_arguments(
        {
            "selected_topic": "  teapot ",
            "confirmed_topic": "true",
            "wants_different_group": False,
            "wants_different_topics": None,
            "interests": ["tea", " ", "gardening "],
        }
    )
    assert result.selected_topic == "teapot"
    assert result.confirmed_topic is True
    assert result.wants_different_topics is False
    assert result.interests == ["tea", "gardening"]


@pytest.mark.parametrize("args", [{"selected_topic": 3}, {"interests": "tea"}])
def test_result_from_arguments_rejects_bad_shapes(args):
    with pytest.raises(ValueError):
        result_from_arguments(args)


def test_proposed_topic_is_read_back_from_ai_line():
    assert proposed_topic_in(proposal_utterance("teapot")) == "teapot"
    assert proposed_topic_in("Which would you like to draw: cup, bowl or spoon?") is None
    assert proposed_topic_in(None) is None


def test_naming_a_subject_is_never_a_confirmation(generative_client, model):
    model.intents["yes, the cup"] = {
        "selected_topic": "cup",
        "confirmed_topic": True,
        "wants_different_group": False,
        "wants_different_topics": False,
        "interests": [],
    }
    result = asyncio.run(
        IntentClassifier(generative_client).classify("yes, the cup", proposal_utterance("cup"), pending_topic="cup")
    )
    assert result.selected_topic == "cup"
    assert result.confirmed_topic is False


def test_plain_yes_is_passed_through(generative_client):
    result = asyncio.run(IntentClassifier(generative_client).classify("yes please"))
    assert result.confirmed_topic is True
    assert result.selected_topic is None


def test_prompt_carries_proposal_from_previous_line(generative_client, model):
    asyncio.run(IntentClassifier(generative_client).classify("yes", proposal_utterance("banana")))
    _, prompt = model.calls[-1]
    assert "awaiting a yes/no answer: banana" in prompt


def test_malformed_tool_output_is_flagged_unparsed(generative_client, model):
    model.intents["hmm"] = {"selected_topic": ["cup"], "interests": []}
    result = asyncio.run(IntentClassifier(generative_client).classify("hmm"))
    assert result.selected_topic is None
    assert not result.confirmed_topic
    assert not result.wants_different_group
    assert not result.wants_different_topics
    assert result.interests == []
    assert result.unparsed

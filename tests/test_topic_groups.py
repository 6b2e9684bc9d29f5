import asyncio
import json

import pytest

from services.exploration.topic_groups import (
    DEFAULT_TOPIC_GROUPS,
    MAX_GROUP_SIZE,
    TopicGroupGenerator,
    default_topic_groups,
    validate_topic_groups,
)


def test_validate_dedupes_and_truncates():
    raw = {
        "garden": ["rose", "rose ", "tulip", "daisy"],
        "sea": [f"shell {i}" for i in range(12)],
    }
    groups = validate_topic_groups(raw)

    assert groups["garden"] == ["rose", "tulip", "daisy"]
    assert len(groups["sea"]) == MAX_GROUP_SIZE


def test_validate_drops_small_groups():
    groups = validate_topic_groups({"tiny": ["cup", "cup", "bowl"], "ok": ["cat", "dog", "cow"]})
    assert list(groups) == ["ok"]


@pytest.mark.parametrize(
    "raw",
    [
        ["apple", "banana", "pear"],
        {"fruit": "apple, banana, pear"},
        {"fruit": ["apple", 3, "pear"]},
        {"tiny": ["cup", "bowl"]},
        {},
    ],
)
def test_validate_rejects_bad_shapes(raw):
    with pytest.raises(ValueError):
        validate_topic_groups(raw)


def test_default_groups_are_copies():
    groups = default_topic_groups()
    groups["easy"].append("kiwi")
    assert "kiwi" not in DEFAULT_TOPIC_GROUPS["easy"]


def test_generator_uses_model_groups(generative_client, model):
    model.groups_reply = "```json\n" + json.dumps({"birds": ["robin", "owl", "duck"]}) + "\n```"

    groups = asyncio.run(TopicGroupGenerator(generative_client).generate({"birdwatching"}))

    assert groups == {"birds": ["robin", "owl", "duck"]}
    _, prompt = model.calls[-1]
    assert "birdwatching" in prompt


def test_generator_falls_back_on_unusable_output(generative_client, model):
    model.groups_reply = '{"fruit": ["apple"]}'

    groups = asyncio.run(TopicGroupGenerator(generative_client).generate(set()))

    assert groups == DEFAULT_TOPIC_GROUPS

import asyncio
import random

import pytest

from services.exploration.topic_groups import DEFAULT_TOPIC_GROUPS
from services.exploration.topic_selector import (
    SAMPLING_FRONT_WEIGHTED,
    TopicSelector,
    interest_overlap,
    unseen,
)


@pytest.fixture
def selector(generative_client):
    return TopicSelector(generative_client, rng=random.Random(3))


def test_unseen_keeps_order():
    assert unseen(["a", "b", "c", "d"], ["c", "a"]) == ["b", "d"]


def test_interest_overlap_matches_names_and_topics():
    assert interest_overlap("fruit", ["apple", "pear"], ["Fruit", "apples", "boats"]) == 2
    assert interest_overlap("fruit", ["apple"], []) == 0


def test_sample_topics_never_repeats_excluded(selector, groups):
    excluded = ["apple", "banana", "pear"]
    for _ in range(20):
        picked = selector.sample_topics(groups["fruit"], excluded)
        assert len(picked) == 3
        assert len(set(picked)) == 3
        assert not set(picked) & set(excluded)


def test_sample_topics_falls_back_when_exhausted(selector, groups):
    picked = selector.sample_topics(groups["kitchen"], ["cup", "spoon"])
    assert sorted(picked) == sorted(DEFAULT_TOPIC_GROUPS["easy"])


def test_front_weighted_sampling_is_distinct_and_unseen(generative_client, groups):
    selector = TopicSelector(generative_client, strategy=SAMPLING_FRONT_WEIGHTED, rng=random.Random(1))
    picked = selector.sample_topics(groups["fruit"], ["apple"])
    assert len(set(picked)) == 3
    assert "apple" not in picked


def test_unknown_strategy_is_rejected(generative_client):
    with pytest.raises(ValueError):
        TopicSelector(generative_client, strategy="roulette")


def test_available_groups_require_k_unseen(selector, groups):
    excluded = ["cup", "spoon", "cat", "dog", "rabbit"]
    assert selector.available_groups(groups, excluded) == ["fruit"]


def test_select_group_uses_model_choice(selector, model, groups):
    model.group_choice = "Kitchen."
    chosen = asyncio.run(selector.select_group(groups, {"tea"}, excluded=[]))
    assert chosen == "kitchen"
    assert model.count("select_group") == 1


def test_select_group_unknown_reply_falls_back(selector, model, groups):
    model.group_choice = "spaceships"
    chosen = asyncio.run(selector.select_group(groups, set(), excluded=[], avoid="fruit"))
    assert chosen == "animals"


def test_select_group_single_candidate_skips_model(selector, model, groups):
    excluded = ["cup", "spoon", "cat", "dog", "rabbit"]
    chosen = asyncio.run(selector.select_group(groups, set(), excluded=excluded))
    assert chosen == "fruit"
    assert model.count("select_group") == 0


def test_select_group_when_everything_is_exhausted(selector, groups):
    excluded = [topic for topics in groups.values() for topic in topics]
    chosen = asyncio.run(selector.select_group(groups, set(), excluded=excluded))
    assert chosen == "fruit"


def test_recommend_across_groups_prefers_interest_overlap(selector, groups):
    name, topics = selector.recommend_across_groups(groups, ["pets", "cat"], excluded=["apple"])
    assert name == "animals"
    assert set(topics) <= set(groups["animals"])


def test_recommend_across_groups_pools_leftovers(selector, groups):
    excluded = ["apple", "banana", "pear", "grape", "cat", "dog", "rabbit", "cup", "spoon", "teapot"]
    name, topics = selector.recommend_across_groups(groups, [], excluded)
    assert name is None
    assert set(topics) <= {"peach", "melon", "duck", "fish", "bowl"}
    assert len(topics) == 3

import base64
import io
import json
import random
import re
from types import SimpleNamespace

import pytest
from PIL import Image

from dal.conversation_dal import ConversationDAL
from dal.session_dal import SessionDAL
from dal.topic_metadata_dal import TopicMetadataDAL
from services.exploration.intent_classifier import IntentClassifier
from services.exploration.interest_aggregator import InterestAggregator
from services.exploration.orchestrator import ExplorationOrchestrator
from services.exploration.session_store import SessionStore
from services.exploration.state_machine import ExplorationStateMachine
from services.exploration.topic_groups import TopicGroupGenerator
from services.exploration.topic_selector import TopicSelector
from services.image_store import MediaStorage
from services.metadata_cache import TopicMetadataCache
from services.openai.generative_client import GenerativeClient
from services.thumbnail_generator import ThumbnailGenerator
from utils.database_init import AsyncDatabaseInitializer

GROUPS = {
    "fruit": ["apple", "banana", "pear", "grape", "peach", "melon"],
    "animals": ["cat", "dog", "rabbit", "duck", "fish"],
    "kitchen": ["cup", "spoon", "teapot", "bowl"],
}

GUIDE = {
    "steps": [
        {"title": "Outline", "instruction": "Draw a big oval."},
        {"title": "Parts", "instruction": "Add the stem and leaf."},
        {"title": "Finish", "instruction": "Shade one side lightly."},
    ]
}


def png_bytes(size=(64, 64)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, "white").save(buf, format="PNG")
    return buf.getvalue()


def text_response(text):
    content = SimpleNamespace(type="output_text", text=text)
    return SimpleNamespace(
        output=[SimpleNamespace(type="message", content=[content])],
        output_text=text,
        usage=SimpleNamespace(input_tokens=10, output_tokens=5),
    )


def function_response(name, args):
    call = SimpleNamespace(type="function_call", name=name, arguments=json.dumps(args))
    return SimpleNamespace(output=[call], usage=None)


def _prompt_text(kwargs) -> str:
    parts = []
    for message in kwargs.get("input", []):
        for content in message.get("content", []):
            if content.get("type") == "input_text":
                parts.append(content["text"])
    return "\n".join(parts)


class ScriptedModel:
    """Stand-in for the OpenAI models that answers by looking at the prompt."""

    def __init__(self):
        self.groups_reply = json.dumps(GROUPS)
        self.group_choice = None
        self.guide_reply = json.dumps(GUIDE)
        self.encouragement = "Lovely choice, start with the round shape. Shall we begin?"
        self.intents = {}
        self.greeting = "Welcome back! It is lovely to see you again."
        self.welcome_reply = None
        self.calls = []

    def classify(self, prompt):
        reply = re.search(r"User reply: (.*)", prompt).group(1).strip()
        if reply in self.intents:
            return self.intents[reply]
        intent = {
            "selected_topic": None,
            "confirmed_topic": False,
            "wants_different_group": False,
            "wants_different_topics": False,
            "interests": [],
        }
        lowered = reply.lower()
        if lowered.startswith("yes"):
            intent["confirmed_topic"] = True
        elif "different kind" in lowered:
            intent["wants_different_group"] = True
        elif "something else" in lowered:
            intent["wants_different_topics"] = True
        else:
            intent["selected_topic"] = reply
        return intent

    def welcome(self, prompt):
        if self.welcome_reply is not None:
            return self.welcome_reply
        said = re.search(r"just said: (.*)", prompt).group(1).strip()
        return {"reply": "How nice. Tell me more!", "wants_to_draw": "draw" in said.lower(), "interests": []}

    def __call__(self, kwargs):
        prompt = _prompt_text(kwargs)
        if kwargs.get("tools"):
            tool_name = kwargs["tools"][0]["name"]
            if tool_name == "continue_welcome_chat":
                self.calls.append(("welcome", prompt))
                return function_response(tool_name, self.welcome(prompt))
            self.calls.append(("classify", prompt))
            return function_response(tool_name, self.classify(prompt))
        if "welcome greeting" in prompt:
            self.calls.append(("greeting", prompt))
            return text_response(self.greeting)
        if "named groups of drawing subjects" in prompt:
            self.calls.append(("groups", prompt))
            return text_response(self.groups_reply)
        if "Available groups:" in prompt:
            self.calls.append(("select_group", prompt))
            if self.group_choice is not None:
                return text_response(self.group_choice)
            line = re.search(r"Available groups: (.*)", prompt).group(1)
            return text_response(line.split(", ")[0])
        if "reference drawing of" in prompt:
            self.calls.append(("guide", prompt))
            return text_response(self.guide_reply)
        if "has just decided to draw" in prompt:
            self.calls.append(("encourage", prompt))
            return text_response(self.encouragement)
        self.calls.append(("text", prompt))
        return text_response("")

    def count(self, kind):
        return sum(1 for call_kind, _ in self.calls if call_kind == kind)


class FakeResponses:
    def __init__(self, model):
        self.model = model

    async def create(self, **kwargs):
        return self.model(kwargs)


class FakeImages:
    def __init__(self):
        self.calls = []
        self.payload = base64.b64encode(png_bytes()).decode("utf-8")

    async def generate(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(data=[SimpleNamespace(b64_json=self.payload)])


class FakeOpenAI:
    def __init__(self, model=None):
        self.model = model or ScriptedModel()
        self.responses = FakeResponses(self.model)
        self.images = FakeImages()


async def _no_sleep(_delay):
    return None


@pytest.fixture
def model():
    return ScriptedModel()


@pytest.fixture
def fake_openai(model):
    return FakeOpenAI(model)


@pytest.fixture
def generative_client(fake_openai):
    return GenerativeClient(fake_openai, timeout_seconds=5, max_attempts=2, backoff_seconds=0, sleep=_no_sleep)


@pytest.fixture
def db(tmp_path):
    return AsyncDatabaseInitializer(tmp_path / "db")


@pytest.fixture
def media(tmp_path):
    return MediaStorage(tmp_path / "media")


@pytest.fixture
def metadata_cache(db, generative_client, media):
    return TopicMetadataCache(TopicMetadataDAL(db), generative_client, media, ThumbnailGenerator())


@pytest.fixture
def engine(db, generative_client, metadata_cache):
    """Build a fully wired exploration engine on the fake collaborators."""

    def build(metadata_mode="inline", seed=7, confirm_wait_seconds=5):
        conversation_dal = ConversationDAL(db)
        store = SessionStore(SessionDAL(db))
        selector = TopicSelector(generative_client, rng=random.Random(seed))
        machine = ExplorationStateMachine(
            TopicGroupGenerator(generative_client),
            selector,
            InterestAggregator(conversation_dal),
            metadata_cache,
            generative_client,
            metadata_mode=metadata_mode,
            confirm_wait_seconds=confirm_wait_seconds,
        )
        orchestrator = ExplorationOrchestrator(store, conversation_dal, IntentClassifier(generative_client), machine)
        return SimpleNamespace(
            orchestrator=orchestrator,
            store=store,
            conversations=conversation_dal,
            cache=metadata_cache,
            machine=machine,
            selector=selector,
        )

    return build


@pytest.fixture
def groups():
    return {name: list(topics) for name, topics in GROUPS.items()}

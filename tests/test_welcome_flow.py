import asyncio

from dal.conversation_dal import ConversationDAL
from services.welcome_flow import FALLBACK_REPLY, WELCOME_LOG_TEXT, WelcomeRequest, WelcomeService


def _service(generative_client, db):
    conversations = ConversationDAL(db)
    return WelcomeService(generative_client, conversations), conversations


def _req(utterance, **kwargs):
    return WelcomeRequest(session_id="S1", user_name="Ann", user_utterance=utterance, **kwargs)


def test_first_visit_greets_and_logs_welcome_turn(generative_client, db, model):
    service, conversations = _service(generative_client, db)

    async def scenario():
        payload = await service.welcome(_req("first"))
        return payload, await conversations.recent_turns("S1")

    payload, turns = asyncio.run(scenario())

    assert payload == {"aiUtterance": model.greeting, "choice": False}
    assert len(turns) == 1
    assert turns[0].user_utterance == WELCOME_LOG_TEXT
    _, prompt = model.calls[-1]
    assert "first time" in prompt


def test_greeting_mentions_attendance_and_history(generative_client, db, model):
    service, _ = _service(generative_client, db)

    async def scenario():
        await service.welcome(_req("first"))
        await service.welcome(_req("first", attendance_total=12, attendance_streak=3))

    asyncio.run(scenario())

    _, prompt = model.calls[-1]
    assert "days attended in total: 12" in prompt
    assert "days attended in a row: 3" in prompt
    assert f"User: {WELCOME_LOG_TEXT}" in prompt


def test_chat_reports_wish_to_draw_and_keeps_interests(generative_client, db, model):
    service, conversations = _service(generative_client, db)
    model.welcome_reply = {"reply": "Roses are wonderful.", "wants_to_draw": False, "interests": ["roses"]}

    async def scenario():
        chatting = await service.welcome(_req("I grew roses for years"))
        model.welcome_reply = None
        ready = await service.welcome(_req("I'd like to draw now"))
        return chatting, ready, await conversations.recent_turns("S1")

    chatting, ready, turns = asyncio.run(scenario())

    assert chatting == {"aiUtterance": "Roses are wonderful.", "choice": False}
    assert ready["choice"] is True
    assert [t.order for t in turns] == [2, 1]
    assert turns[1].interests == ["roses"]


def test_unusable_chat_output_falls_back_to_template(generative_client, db, model):
    service, _ = _service(generative_client, db)
    model.welcome_reply = {"reply": "", "wants_to_draw": True, "interests": []}

    payload = asyncio.run(service.welcome(_req("can we draw a picture?")))

    assert payload == {"aiUtterance": FALLBACK_REPLY, "choice": True}


def test_unreachable_model_apologizes_without_logging(generative_client, db, fake_openai):
    service, conversations = _service(generative_client, db)

    async def failing_create(**kwargs):
        raise asyncio.TimeoutError()

    async def scenario():
        fake_openai.responses.create = failing_create
        payload = await service.welcome(_req("first"))
        return payload, await conversations.recent_turns("S1")

    payload, turns = asyncio.run(scenario())

    assert payload["status"] == "unavailable"
    assert payload["choice"] is False
    assert turns == []

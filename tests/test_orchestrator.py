import pytest

from app.chat.coordinator import CONVERSATIONS, direct_conversation_id
from app.core.errors import (
    CannotMessageSelf,
    HostCannotLeave,
    NotFound,
    NotHost,
    PartialFailure,
    ProfileIncomplete,
    WriteFailure,
)
from app.profiles.repository import USERS
from app.sessions.repository import CANCEL_STEPS, notify_step
from app.sessions.orchestrator import CANCELLATION_MESSAGE, REMOVAL_MESSAGE
from tests.helpers import add_user, draft


@pytest.mark.asyncio
async def test_create_requires_complete_profile(services):
    newbie = await add_user(services, "newbie", "New Player", complete=False)

    with pytest.raises(ProfileIncomplete):
        await services.orchestrator.create_session(newbie, draft())
    assert await services.sessions.list_sessions() == []


@pytest.mark.asyncio
async def test_create_refreshes_cached_profile(services, host):
    before = await services.orchestrator.current_profile(host)
    assert before.created_sessions == []

    session_id = await services.orchestrator.create_session(host, draft())
    after = await services.orchestrator.current_profile(host)
    assert after.created_sessions == [session_id]


@pytest.mark.asyncio
async def test_toggle_participation(services, host, u1):
    session_id = await services.orchestrator.create_session(host, draft())

    assert await services.orchestrator.toggle_participation(u1, session_id) is True
    assert "u1" in (await services.sessions.get_session(session_id)).current_participants

    assert await services.orchestrator.toggle_participation(u1, session_id) is False
    assert "u1" not in (await services.sessions.get_session(session_id)).current_participants

    with pytest.raises(HostCannotLeave):
        await services.orchestrator.toggle_participation(host, session_id)


@pytest.mark.asyncio
async def test_message_host(services, host, u1):
    session_id = await services.orchestrator.create_session(host, draft("Sunday doubles"))

    conversation, created = await services.orchestrator.message_host(u1, session_id)
    assert created
    assert conversation.participants == ["u1", "host"]
    assert conversation.messages[0].content == (
        "Hi! I'm interested in your pickleball session: Sunday doubles"
    )
    assert conversation.messages[0].receiver_id == "host"

    again, created = await services.orchestrator.message_host(u1, session_id)
    assert not created
    assert again.id == conversation.id
    assert len(again.messages) == 1


@pytest.mark.asyncio
async def test_host_cannot_message_self(services, host):
    session_id = await services.orchestrator.create_session(host, draft())
    with pytest.raises(CannotMessageSelf):
        await services.orchestrator.message_host(host, session_id)


@pytest.mark.asyncio
async def test_cancel_session_notifies_and_scrubs(services, host, u1):
    session_id = await services.orchestrator.create_session(host, draft("Sunday doubles"))
    await services.orchestrator.toggle_participation(u1, session_id)

    result = await services.orchestrator.cancel_session(host, session_id)
    assert not result.already_deleted
    assert result.notified == ["u1"]
    assert result.completed_steps == [notify_step("u1"), *CANCEL_STEPS]

    conversation = await services.conversations.get_conversation(
        direct_conversation_id("host", "u1"), "u1"
    )
    assert [m.content for m in conversation.messages] == [
        CANCELLATION_MESSAGE.format(title="Sunday doubles")
    ]
    assert conversation.messages[0].receiver_id == "u1"

    for user_id in ("host", "u1"):
        profile = await services.profiles.get_profile(user_id)
        assert session_id not in profile.session_history
        assert session_id not in profile.created_sessions

    with pytest.raises(NotFound):
        await services.sessions.get_session(session_id)

    # the host does not get a message
    assert [c.id for c in await services.conversations.list_conversations("host")] == [conversation.id]


@pytest.mark.asyncio
async def test_cancel_twice_is_idempotent(services, host, u1):
    session_id = await services.orchestrator.create_session(host, draft())
    await services.orchestrator.toggle_participation(u1, session_id)
    await services.orchestrator.cancel_session(host, session_id)

    result = await services.orchestrator.cancel_session(host, session_id)
    assert result.already_deleted
    assert result.notified == []

    conversation = await services.conversations.get_conversation("host_u1", "u1")
    assert len(conversation.messages) == 1


@pytest.mark.asyncio
async def test_only_host_can_cancel(services, host, u1):
    session_id = await services.orchestrator.create_session(host, draft())
    await services.orchestrator.toggle_participation(u1, session_id)

    with pytest.raises(NotHost):
        await services.orchestrator.cancel_session(u1, session_id)
    assert await services.sessions.get_session(session_id)


@pytest.mark.asyncio
async def test_cancel_partial_failure_then_retry(services, store, host, u1, u2):
    session_id = await services.orchestrator.create_session(host, draft())
    await services.orchestrator.toggle_participation(u1, session_id)
    await services.orchestrator.toggle_participation(u2, session_id)

    store.fail("update", USERS, "host")

    with pytest.raises(PartialFailure) as exc:
        await services.orchestrator.cancel_session(host, session_id)

    error = exc.value
    assert error.completed == (notify_step("u1"), notify_step("u2"))
    assert error.failed_step == "scrub_histories"
    assert error.remaining == ("scrub_histories", "scrub_created", "delete_session")
    assert await services.sessions.get_session(session_id)

    store.heal()
    result = await services.orchestrator.cancel_session(host, session_id, skip=error.completed)
    assert result.completed_steps == [notify_step("u1"), notify_step("u2"), *CANCEL_STEPS]
    assert result.notified == []

    # nobody was messaged twice
    for user_id in ("u1", "u2"):
        conversation = await services.conversations.get_conversation(
            direct_conversation_id("host", user_id), user_id
        )
        assert len(conversation.messages) == 1

    with pytest.raises(NotFound):
        await services.sessions.get_session(session_id)
    assert session_id not in (await services.profiles.get_profile("host")).created_sessions


@pytest.mark.asyncio
async def test_cancel_notification_failure_changes_nothing(services, store, host, u1):
    session_id = await services.orchestrator.create_session(host, draft())
    await services.orchestrator.toggle_participation(u1, session_id)
    store.fail("set", CONVERSATIONS)

    with pytest.raises(WriteFailure):
        await services.orchestrator.cancel_session(host, session_id)

    session = await services.sessions.get_session(session_id)
    assert "u1" in session.current_participants
    assert session_id in (await services.profiles.get_profile("u1")).session_history


@pytest.mark.asyncio
async def test_cancel_with_one_failed_notice_retries_only_that_one(services, store, host, u1, u2):
    session_id = await services.orchestrator.create_session(host, draft("Sunday doubles"))
    await services.orchestrator.toggle_participation(u1, session_id)
    await services.orchestrator.toggle_participation(u2, session_id)
    store.fail("set", CONVERSATIONS, "host_u2")

    with pytest.raises(PartialFailure) as exc:
        await services.orchestrator.cancel_session(host, session_id)

    error = exc.value
    assert error.completed == (notify_step("u1"),)
    assert error.failed_step == notify_step("u2")
    assert error.remaining == (notify_step("u2"), *CANCEL_STEPS)
    assert "u2" in (await services.sessions.get_session(session_id)).current_participants

    store.heal()
    result = await services.orchestrator.cancel_session(host, session_id, skip=error.completed)
    assert result.notified == ["u2"]

    for user_id in ("u1", "u2"):
        conversation = await services.conversations.get_conversation(
            direct_conversation_id("host", user_id), user_id
        )
        assert [m.content for m in conversation.messages] == [
            CANCELLATION_MESSAGE.format(title="Sunday doubles")
        ]

    with pytest.raises(NotFound):
        await services.sessions.get_session(session_id)


@pytest.mark.asyncio
async def test_remove_participant_sends_message(services, host, u1):
    session_id = await services.orchestrator.create_session(host, draft("Sunday doubles"))
    await services.orchestrator.toggle_participation(u1, session_id)

    session = await services.orchestrator.remove_participant(host, session_id, "u1")
    assert session.current_participants == ["host"]

    conversation = await services.conversations.get_conversation("host_u1", "u1")
    assert conversation.messages[-1].content == REMOVAL_MESSAGE.format(title="Sunday doubles")


@pytest.mark.asyncio
async def test_remove_participant_message_fails(services, store, host, u1):
    session_id = await services.orchestrator.create_session(host, draft())
    await services.orchestrator.toggle_participation(u1, session_id)
    store.fail("set", CONVERSATIONS)

    with pytest.raises(PartialFailure) as exc:
        await services.orchestrator.remove_participant(host, session_id, "u1")
    assert exc.value.failed_step == "notify_participant"
    assert "u1" not in (await services.sessions.get_session(session_id)).current_participants

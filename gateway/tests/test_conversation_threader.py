"""
Conversation Threader tests - one active thread per (agent, customer, channel).
"""

import threading
from datetime import datetime

import pytest

from gateway.models.database import build_engine, build_session_factory, init_db
from gateway.models.entities.base import new_id
from gateway.models.entities.conversation import Conversation, ConversationStatus
from gateway.models.schemas.messages import CanonicalMessage, MessageContent, Participant
from gateway.services.agent_runtime import AgentReply
from gateway.services.conversation_store import ConversationStore
from gateway.services.conversation_threader import ConversationThreader
from gateway.tests.conftest import AGENT, TENANT


def _inbound(store, sender: str = "cust-1", channel_type: str = "webchat", text: str = "hi") -> CanonicalMessage:
    message = CanonicalMessage(
        id=new_id(),
        channel_id="chan-1",
        channel_type=channel_type,
        direction="inbound",
        content=MessageContent(data=text),
        sender=Participant(id=sender, name="Customer"),
        recipient=Participant(id="chan-1"),
        timestamp=datetime.utcnow(),
        status="delivered",
    )
    store.insert_message(message)
    return message


class TestThreading:

    def test_same_customer_same_conversation(self, store, threader):
        first = threader.thread_inbound(AGENT, TENANT, _inbound(store, text="one"))
        second = threader.thread_inbound(AGENT, TENANT, _inbound(store, text="two"))

        assert first.id == second.id
        thread = store.list_conversation_messages(first.id)
        assert [m.content["data"] for m in thread] == ["one", "two"]

    def test_keyed_by_channel_and_customer(self, store, threader):
        web = threader.thread_inbound(AGENT, TENANT, _inbound(store, channel_type="webchat"))
        slack = threader.thread_inbound(AGENT, TENANT, _inbound(store, channel_type="slack"))
        other = threader.thread_inbound(AGENT, TENANT, _inbound(store, sender="cust-2"))

        assert len({web.id, slack.id, other.id}) == 3

    def test_new_conversation_after_close(self, store, threader):
        first = threader.thread_inbound(AGENT, TENANT, _inbound(store, text="one"))
        closed = threader.close(first.id)
        assert closed.status == ConversationStatus.CLOSED

        second = threader.thread_inbound(AGENT, TENANT, _inbound(store, text="two"))

        assert second.id != first.id
        assert second.status == ConversationStatus.ACTIVE

    def test_customer_name_kept_in_metadata(self, store, threader):
        conversation = threader.thread_inbound(AGENT, TENANT, _inbound(store))
        assert conversation.meta == {"customer_name": "Customer"}

    def test_message_gets_conversation_id(self, store, threader):
        message = _inbound(store)
        conversation = threader.thread_inbound(AGENT, TENANT, message)

        assert message.conversation_id == conversation.id
        assert store.get_message(message.id).conversation_id == conversation.id


class TestLifecycle:

    def test_escalate_records_reason(self, store, threader):
        conversation = threader.thread_inbound(AGENT, TENANT, _inbound(store))

        escalated = threader.escalate(conversation.id, "asked for a human")

        assert escalated.status == ConversationStatus.ESCALATED
        assert escalated.meta["escalation_reason"] == "asked for a human"

    def test_escalated_frees_the_active_slot(self, store, threader):
        conversation = threader.thread_inbound(AGENT, TENANT, _inbound(store))
        threader.escalate(conversation.id)

        fresh = threader.thread_inbound(AGENT, TENANT, _inbound(store, text="again"))
        assert fresh.id != conversation.id

    def test_closed_is_not_escalated(self, store, threader):
        conversation = threader.thread_inbound(AGENT, TENANT, _inbound(store))
        threader.close(conversation.id)

        assert threader.escalate(conversation.id).status == ConversationStatus.CLOSED

    def test_agent_reply_escalation_flag(self, store, threader):
        conversation = threader.thread_inbound(AGENT, TENANT, _inbound(store))

        unchanged = threader.apply_agent_reply(conversation.id, AgentReply(text="Sure!"))
        assert unchanged.status == ConversationStatus.ACTIVE

        escalated = threader.apply_agent_reply(
            conversation.id, AgentReply(text="Connecting you", escalate=True, reason="billing dispute"),
        )
        assert escalated.status == ConversationStatus.ESCALATED

    def test_unknown_conversation(self, threader):
        assert threader.close("nope") is None
        assert threader.escalate("nope") is None


class TestConcurrency:

    @pytest.fixture
    def file_store(self, tmp_path):
        engine = build_engine(f"sqlite:///{tmp_path / 'threads.db'}")
        init_db(engine)
        yield ConversationStore(build_session_factory(engine))
        engine.dispose()

    def test_concurrent_first_messages_share_one_conversation(self, file_store):
        threader = ConversationThreader(file_store)
        workers = 8
        barrier = threading.Barrier(workers)
        results, errors = [], []

        def deliver(n):
            try:
                message = _inbound(file_store, sender="15557654321", channel_type="whatsapp", text=f"m{n}")
                barrier.wait()
                results.append(threader.thread_inbound(AGENT, TENANT, message).id)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=deliver, args=(n,)) for n in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(set(results)) == 1
        with file_store.session() as db:
            active = db.query(Conversation).filter(Conversation.status == ConversationStatus.ACTIVE).count()
        assert active == 1
        assert len(file_store.list_conversation_messages(results[0])) == workers

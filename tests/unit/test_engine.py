"""Unit tests for the engine module."""

import threading
from unittest.mock import Mock

import pytest
from voicestudio.config import Settings
from voicestudio.engine import Engine, Synchronous
from voicestudio.exceptions import InvalidInputError, SessionNotFoundError
from voicestudio.llm import Echo
from voicestudio.models import (
    ASSISTANT_ROLE,
    DEFAULT_SESSION_TITLE,
    EMPTY_RESPONSE_FALLBACK,
    USER_ROLE,
    ChatMessage,
)
from voicestudio.sessions import SessionStore
from voicestudio.store import InMemory


class TestEngineBase:
    """Test the abstract Engine base class."""

    def test_engine_is_abstract(self):
        """Engine cannot be instantiated directly."""
        with pytest.raises(TypeError, match="Can't instantiate abstract class"):
            Engine()

    def test_engine_without_app_reference(self):
        """Engine can be initialized without app reference (for lazy binding)."""
        engine = Synchronous()
        assert engine.app is None

        mock_app = Mock()
        engine.app = mock_app
        assert engine.app is mock_app
        engine.shutdown()


class TestSynchronousEngine:
    """Test the Synchronous engine implementation."""

    @pytest.fixture
    def mock_app(self, mock_llm):
        """An app with a real session store and a mock LLM."""
        app = Mock()
        app.sessions = SessionStore(InMemory())
        app.llm = mock_llm
        app.settings = Settings(api_key=None)
        return app

    @pytest.fixture
    def engine(self, mock_app):
        engine = Synchronous(mock_app)
        yield engine
        engine.shutdown()

    # --- send ---

    def test_send_basic_flow(self, engine, mock_app):
        """A send appends the user message and one assistant reply."""
        result = engine.send("Hello")

        assert result.ok
        assert [m.role for m in result.messages] == [USER_ROLE, ASSISTANT_ROLE]
        assert result.messages[0].content == "Hello"
        assert result.reply.content == "Mock LLM response"
        stored = mock_app.sessions.get_session(result.session_id)
        assert stored.messages == result.messages

    def test_send_creates_session_when_none_exists(self, engine, mock_app):
        result = engine.send("Hello")
        assert len(mock_app.sessions) == 1
        assert mock_app.sessions.current_session_id == result.session_id

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_send_empty_is_rejected_without_mutation(self, engine, mock_app, text):
        """Blank input is a no-op: no session, no message, no request."""
        result = engine.send(text)

        assert result.accepted is False
        assert result.error == "Message cannot be empty"
        assert len(mock_app.sessions) == 0
        mock_app.llm.generate_response.assert_not_called()

    def test_send_keeps_input_as_typed_and_clears_draft(self, engine, mock_app):
        mock_app.sessions.draft = "  Hello  "
        result = engine.send("  Hello  ")
        assert result.messages[0].content == "  Hello  "
        assert mock_app.sessions.draft == ""

    def test_send_preserves_leading_indentation(self, engine, mock_app):
        snippet = "    def f():\n        return 1\n"
        result = engine.send(snippet)
        stored = mock_app.sessions.get_session(result.session_id)
        assert stored.messages[0].content == snippet
        assert mock_app.llm.generate_response.call_args.args[0][-1]["content"] == snippet

    def test_send_to_unknown_session_raises(self, engine):
        with pytest.raises(SessionNotFoundError):
            engine.send("Hello", session_id="missing")

    def test_send_to_explicit_session(self, engine, mock_app):
        target = mock_app.sessions.create_session()
        mock_app.sessions.create_session()
        result = engine.send("Hello", session_id=target)
        assert result.session_id == target
        assert len(mock_app.sessions.get_session(target).messages) == 2

    def test_request_uses_settings(self, engine, mock_app):
        mock_app.settings.chat_model = "llama-3.3-70b-versatile"
        mock_app.settings.temperature = 0.3
        engine.send("Hello")

        kwargs = mock_app.llm.generate_response.call_args.kwargs
        assert kwargs["model"] == "llama-3.3-70b-versatile"
        assert kwargs["temperature"] == 0.3

    def test_request_is_windowed(self, engine, mock_app, long_history):
        """Only the last ten messages are sent, even though all are stored."""
        sid = mock_app.sessions.create_session()
        mock_app.sessions.set_messages(sid, long_history)

        engine.send("next", session_id=sid)

        sent = mock_app.llm.generate_response.call_args.args[0]
        assert len(sent) == 10
        assert sent[0]["content"] == "a3"
        assert sent[-1] == {"role": "user", "content": "next"}
        assert len(mock_app.sessions.get_session(sid).messages) == 14

    def test_system_prompt_is_sent_but_not_stored(self, engine, mock_app):
        mock_app.settings.system_prompt = "Be brief."
        result = engine.send("Hello")

        sent = mock_app.llm.generate_response.call_args.args[0]
        assert sent[0] == {"role": "system", "content": "Be brief."}
        stored = mock_app.sessions.get_session(result.session_id).messages
        assert all(m.role != "system" for m in stored)

    def test_llm_error_keeps_user_message(self, engine, mock_app):
        """A failed completion leaves the optimistic user message in place."""
        mock_app.llm.generate_response.side_effect = RuntimeError("503 upstream")

        result = engine.send("Hello")

        assert result.error == "503 upstream"
        assert result.accepted is True
        assert result.reply is None
        stored = mock_app.sessions.get_session(result.session_id).messages
        assert [m.content for m in stored] == ["Hello"]
        assert not engine.is_busy

    def test_empty_reply_uses_fallback(self, engine, mock_app):
        mock_app.llm = Echo()
        mock_app.llm.extract_content = Mock(return_value="")
        result = engine.send("Hello")
        assert result.reply.content == EMPTY_RESPONSE_FALLBACK

    # --- title ---

    def test_first_message_generates_title(self, engine, mock_app):
        result = engine.send("Explain quantum computing")
        assert engine.wait_for_background_tasks(timeout=5)

        mock_app.llm.generate_title.assert_called_once_with(
            "Explain quantum computing", model=None
        )
        assert mock_app.sessions.get_session(result.session_id).title == "Mock Title"

    def test_later_messages_do_not_generate_title(self, engine, mock_app):
        result = engine.send("First")
        engine.send("Second", session_id=result.session_id)
        engine.wait_for_background_tasks(timeout=5)
        assert mock_app.llm.generate_title.call_count == 1

    def test_title_failure_is_swallowed(self, engine, mock_app):
        """A failed title request leaves the default title and the chat intact."""
        mock_app.llm.generate_title.side_effect = RuntimeError("boom")
        result = engine.send("Hello")
        assert engine.wait_for_background_tasks(timeout=5)

        session = mock_app.sessions.get_session(result.session_id)
        assert session.title == DEFAULT_SESSION_TITLE
        assert len(session.messages) == 2

    def test_send_after_shutdown_skips_title(self, engine, mock_app):
        """A closed title pool does not fail the send."""
        engine.shutdown()
        result = engine.send("Hello")

        assert result.ok
        session = mock_app.sessions.get_session(result.session_id)
        assert len(session.messages) == 2
        assert session.title == DEFAULT_SESSION_TITLE
        mock_app.llm.generate_title.assert_not_called()

    def test_blank_title_is_ignored(self, engine, mock_app):
        mock_app.llm.generate_title.return_value = "   "
        result = engine.send("Hello")
        engine.wait_for_background_tasks(timeout=5)
        assert mock_app.sessions.get_session(result.session_id).title == DEFAULT_SESSION_TITLE

    # --- edit ---

    def test_edit_truncates_and_replaces(self, engine, mock_app, sample_messages):
        sid = mock_app.sessions.create_session()
        mock_app.sessions.set_messages(sid, sample_messages)

        result = engine.edit(2, "Explain relativity instead")

        assert [m.content for m in result.messages] == [
            sample_messages[0].content,
            sample_messages[1].content,
            "Explain relativity instead",
            "Mock LLM response",
        ]

    def test_edit_first_message(self, engine, mock_app, sample_messages):
        sid = mock_app.sessions.create_session()
        mock_app.sessions.set_messages(sid, sample_messages)
        result = engine.edit(0, "Hi again")
        assert [m.content for m in result.messages] == ["Hi again", "Mock LLM response"]

    def test_edit_does_not_regenerate_title(self, engine, mock_app, sample_messages):
        sid = mock_app.sessions.create_session()
        mock_app.sessions.set_messages(sid, sample_messages)
        engine.edit(0, "Hi again")
        engine.wait_for_background_tasks(timeout=5)
        mock_app.llm.generate_title.assert_not_called()

    def test_edit_keeps_content_as_typed(self, engine, mock_app, sample_messages):
        sid = mock_app.sessions.create_session()
        mock_app.sessions.set_messages(sid, sample_messages)
        result = engine.edit(0, "\tindented\n")
        assert result.messages[0].content == "\tindented\n"
        assert mock_app.sessions.get_session(sid).messages[0].content == "\tindented\n"

    @pytest.mark.parametrize("index", [-1, 4, 99, True])
    def test_edit_out_of_range(self, engine, mock_app, sample_messages, index):
        sid = mock_app.sessions.create_session()
        mock_app.sessions.set_messages(sid, sample_messages)
        with pytest.raises(InvalidInputError):
            engine.edit(index, "text")
        assert mock_app.sessions.get_session(sid).messages == sample_messages

    def test_edit_empty_content_rejected(self, engine, mock_app, sample_messages):
        sid = mock_app.sessions.create_session()
        mock_app.sessions.set_messages(sid, sample_messages)
        with pytest.raises(InvalidInputError):
            engine.edit(0, "   ")
        mock_app.llm.generate_response.assert_not_called()

    def test_edit_without_session(self, engine):
        with pytest.raises(InvalidInputError):
            engine.edit(0, "text")

    # --- regenerate ---

    def test_regenerate_replaces_last_reply(self, engine, mock_app, sample_messages):
        sid = mock_app.sessions.create_session()
        mock_app.sessions.set_messages(sid, sample_messages)

        result = engine.regenerate()

        assert len(result.messages) == 4
        assert result.messages[:3] == sample_messages[:3]
        assert result.messages[-1].content == "Mock LLM response"
        sent = mock_app.llm.generate_response.call_args.args[0]
        assert sent[-1]["content"] == sample_messages[2].content

    def test_regenerate_requires_trailing_assistant(self, engine, mock_app, sample_messages):
        sid = mock_app.sessions.create_session()
        mock_app.sessions.set_messages(sid, sample_messages[:3])
        result = engine.regenerate()
        assert result.accepted is False
        mock_app.llm.generate_response.assert_not_called()

    def test_regenerate_requires_user_before_reply(self, engine, mock_app):
        sid = mock_app.sessions.create_session()
        mock_app.sessions.set_messages(
            sid, [ChatMessage(role=ASSISTANT_ROLE, content="Welcome!")]
        )
        result = engine.regenerate()
        assert result.accepted is False
        assert len(mock_app.sessions.get_session(sid).messages) == 1

    def test_regenerate_without_session(self, engine):
        assert engine.regenerate().accepted is False

    # --- hooks ---

    def test_hooks_called_in_order(self, mock_app):
        calls = []

        class Recording(Synchronous):
            def _before_llm_call(self, messages):
                calls.append(("before_llm", len(messages)))

            def _after_llm_call(self, llm_response):
                calls.append(("after_llm", llm_response))

            def _before_save(self, session_id, messages):
                calls.append(("before_save", len(messages)))

        engine = Recording(mock_app)
        engine.send("Hello")
        engine.shutdown()

        assert calls == [
            ("before_llm", 1),
            ("after_llm", {"content": "Mock LLM response"}),
            ("before_save", 2),
        ]

    # --- concurrency ---

    def test_busy_flag_during_completion(self, engine, mock_app):
        seen = []
        mock_app.llm.generate_response.side_effect = lambda *a, **k: seen.append(
            engine.is_busy
        ) or {"content": "ok"}

        engine.send("Hello")

        assert seen == [True]
        assert not engine.is_busy

    def test_reply_preserves_concurrent_rename(self, engine, mock_app):
        """A rename that lands while a reply is in flight is not overwritten."""
        sid = mock_app.sessions.create_session()

        def rename_mid_flight(*args, **kwargs):
            mock_app.sessions.rename_session(sid, "Renamed mid-flight")
            return {"content": "ok"}

        mock_app.llm.generate_response.side_effect = rename_mid_flight
        mock_app.llm.generate_title.side_effect = RuntimeError("no title")

        engine.send("Hello", session_id=sid)
        engine.wait_for_background_tasks(timeout=5)

        session = mock_app.sessions.get_session(sid)
        assert session.title == "Renamed mid-flight"
        assert len(session.messages) == 2

    def test_session_deleted_mid_flight(self, engine, mock_app):
        sid = mock_app.sessions.create_session()

        def delete_mid_flight(*args, **kwargs):
            mock_app.sessions.delete_session(sid)
            return {"content": "ok"}

        mock_app.llm.generate_response.side_effect = delete_mid_flight
        result = engine.send("Hello", session_id=sid)

        assert result.error == "Session was deleted"
        assert mock_app.sessions.get_session(sid) is None

    def test_session_deleted_while_reply_is_saved(self, engine, mock_app):
        """A delete racing the reply write yields an error result, not an exception."""

        class DeletingSessionStore(SessionStore):
            def append_message(self, session_id, message, before_save=None):
                self.delete_session(session_id)
                return super().append_message(session_id, message, before_save)

        mock_app.sessions = DeletingSessionStore(InMemory())
        sid = mock_app.sessions.create_session()

        result = engine.send("Hello", session_id=sid)

        assert result.error == "Session was deleted"
        assert result.reply.content == "Mock LLM response"
        assert [m.content for m in result.messages] == ["Hello"]
        assert mock_app.sessions.get_session(sid) is None
        assert not engine.is_busy

    def test_concurrent_sends_are_serialized(self, engine, mock_app):
        """Parallel sends on one session each land as a user/assistant pair."""
        mock_app.llm = Echo(delay=0.01)
        sid = mock_app.sessions.create_session()

        threads = [
            threading.Thread(target=engine.send, args=(f"msg {i}",), kwargs={"session_id": sid})
            for i in range(5)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        engine.wait_for_background_tasks(timeout=5)

        messages = mock_app.sessions.get_session(sid).messages
        assert len(messages) == 10
        assert [m.role for m in messages] == [USER_ROLE, ASSISTANT_ROLE] * 5
        for user, reply in zip(messages[::2], messages[1::2]):
            assert reply.content.endswith(user.content)

    def test_sessions_are_independent(self, engine, mock_app):
        a = mock_app.sessions.create_session()
        b = mock_app.sessions.create_session()
        engine.send("to a", session_id=a)
        engine.send("to b", session_id=b)
        assert mock_app.sessions.get_session(a).messages[0].content == "to a"
        assert mock_app.sessions.get_session(b).messages[0].content == "to b"

    def test_edit_at_assistant_index_drops_the_branch(self, engine, mock_app):
        """Editing at index 1 of a four-message chat keeps only the first message."""
        sid = mock_app.sessions.create_session()
        mock_app.sessions.set_messages(
            sid,
            [
                ChatMessage(role=USER_ROLE, content="a"),
                ChatMessage(role=ASSISTANT_ROLE, content="b"),
                ChatMessage(role=USER_ROLE, content="c"),
                ChatMessage(role=ASSISTANT_ROLE, content="d"),
            ],
        )
        sent_lists = []
        mock_app.llm.generate_response.side_effect = lambda msgs, **kw: sent_lists.append(
            msgs
        ) or {"content": "e"}

        result = engine.edit(1, "x")

        assert sent_lists == [
            [{"role": "user", "content": "a"}, {"role": "user", "content": "x"}]
        ]
        assert [(m.role, m.content) for m in result.messages] == [
            (USER_ROLE, "a"),
            (USER_ROLE, "x"),
            (ASSISTANT_ROLE, "Mock LLM response"),
        ]

    def test_regenerate_replaces_exactly_one_reply(self, engine, mock_app):
        sid = mock_app.sessions.create_session()
        mock_app.sessions.set_messages(
            sid,
            [
                ChatMessage(role=USER_ROLE, content="a"),
                ChatMessage(role=ASSISTANT_ROLE, content="b"),
            ],
        )
        mock_app.llm.create_assistant_message.return_value = ChatMessage(
            role=ASSISTANT_ROLE, content="c"
        )

        result = engine.regenerate()

        assert [(m.role, m.content) for m in result.messages] == [
            (USER_ROLE, "a"),
            (ASSISTANT_ROLE, "c"),
        ]

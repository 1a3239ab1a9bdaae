"""Tests for shared gateway types."""

from chat_gateway.types import BotReply, ChatMessage, ProviderKind, Role


class TestRole:
    def test_known_roles(self):
        assert Role.parse("system") is Role.SYSTEM
        assert Role.parse("assistant") is Role.ASSISTANT
        assert Role.parse("user") is Role.USER

    def test_unknown_role_defaults_to_user(self):
        assert Role.parse("tool") is Role.USER
        assert Role.parse("") is Role.USER

    def test_roles_are_case_sensitive(self):
        assert Role.parse("System") is Role.USER
        assert Role.parse("ASSISTANT") is Role.USER

    def test_role_passthrough(self):
        assert Role.parse(Role.ASSISTANT) is Role.ASSISTANT


class TestChatMessage:
    def test_coerce_mapping(self):
        msg = ChatMessage.coerce({"role": "assistant", "content": "hi"})
        assert msg == ChatMessage(Role.ASSISTANT, "hi")

    def test_coerce_unknown_role(self):
        msg = ChatMessage.coerce({"role": "function", "content": "x"})
        assert msg.role is Role.USER

    def test_coerce_existing(self):
        msg = ChatMessage(Role.SYSTEM, "be brief")
        assert ChatMessage.coerce(msg) is msg


class TestBotReply:
    def test_defaults(self):
        r = BotReply()
        assert r.message == ""
        assert r.reasoning is None
        assert r.total_token is None

    def test_to_dict_omits_unset(self):
        r = BotReply(message="hello", prompt_token=3, completion_token=4, total_token=7)
        assert r.to_dict() == {
            "type": "BotReply",
            "message": "hello",
            "promptToken": 3,
            "completionToken": 4,
            "totalToken": 7,
        }

    def test_to_dict_reasoning(self):
        r = BotReply(message="", reasoning="hmm")
        assert r.to_dict() == {"type": "BotReply", "message": "", "reasoning": "hmm"}


def test_provider_kind_tags():
    assert ProviderKind("ollama") is ProviderKind.LOCAL_CHAT
    assert ProviderKind("custom") is ProviderKind.COMPATIBLE_CHAT

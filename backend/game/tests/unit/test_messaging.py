import pytest
from pydantic import ValidationError

from game.logic.enums import ErrorCode, PresenceStatus
from game.messaging.types import (
    ClientMessageType,
    JoinMessage,
    LeaveGameMessage,
    PresenceMessageType,
    ServerMessageType,
    SetStatusMessage,
    parse_client_message,
)
from game.tests.conftest import create_match
from game.tests.mocks import MockConnection


class TestParseClientMessage:
    def test_discriminates_on_type(self):
        message = parse_client_message({"type": "leave_game", "match_id": "m1", "force_end": True})
        assert isinstance(message, LeaveGameMessage)
        assert message.force_end is True

    def test_leave_defaults_to_soft_leave(self):
        assert parse_client_message({"type": "leave_game", "match_id": "m1"}).force_end is False

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_client_message({"type": "teleport"})

    def test_match_id_pattern_enforced(self):
        with pytest.raises(ValidationError):
            JoinMessage(match_id="../etc")

    def test_client_cannot_claim_in_game(self):
        with pytest.raises(ValidationError):
            SetStatusMessage(status=PresenceStatus.IN_GAME)


class TestMessageRouter:
    @pytest.fixture
    async def alice(self, message_router):
        conn = MockConnection("alice")
        await message_router.handle_connect(conn)
        conn.clear()
        return conn

    async def test_malformed_message_answered_with_error(self, message_router, alice):
        await message_router.handle_message(alice, {"type": ClientMessageType.JOIN})

        assert alice.sent_messages == [
            {"type": ServerMessageType.ERROR, "code": ErrorCode.INVALID_MESSAGE, "message": "Invalid message"},
        ]

    async def test_ping_answered_with_server_time(self, message_router, alice):
        await message_router.handle_message(alice, {"type": "ping"})

        assert alice.sent_messages == [{"type": "pong", "server_time": 1_700_000_000_000}]

    async def test_get_online_users(self, message_router, alice):
        await message_router.handle_message(alice, {"type": "get_online_users"})

        reply = alice.messages_of_type(PresenceMessageType.ONLINE_USERS_UPDATE)
        assert reply[0]["count"] == 1
        assert reply[0]["users"][0]["user_id"] == "alice"

    async def test_set_status_reaches_other_users(self, message_router, alice):
        bob = MockConnection("bob")
        await message_router.handle_connect(bob)
        bob.clear()

        await message_router.handle_message(alice, {"type": "set_status", "status": "busy"})

        assert bob.messages_of_type(PresenceMessageType.USER_STATUS_UPDATE) == [
            {"type": "user_status_update", "user_id": "alice", "status": "busy"},
        ]

    async def test_join_routes_to_session_manager(self, message_router, alice, match_repository, session_manager):
        match_repository.seed(create_match())

        await message_router.handle_message(alice, {"type": "join", "match_id": "match1"})

        joined = alice.messages_of_type(ServerMessageType.JOINED)
        assert joined[0]["role"] == "player1"
        assert session_manager.attached_match(alice.connection_id) == "match1"

    async def test_rejection_becomes_error_event(self, message_router, alice):
        await message_router.handle_message(alice, {"type": "join", "match_id": "nope"})

        assert alice.sent_messages == [
            {"type": ServerMessageType.ERROR, "code": ErrorCode.NOT_FOUND, "message": "Match not found"},
        ]

    async def test_outsider_gets_forbidden(self, message_router, match_repository):
        match_repository.seed(create_match())
        mallory = MockConnection("mallory")

        await message_router.handle_message(mallory, {"type": "join", "match_id": "match1"})

        assert mallory.messages_of_type(ServerMessageType.ERROR)[0]["code"] == ErrorCode.FORBIDDEN

    async def test_click_outside_match_is_invalid_state(self, message_router, alice):
        await message_router.handle_message(alice, {"type": "click"})

        assert alice.messages_of_type(ServerMessageType.ERROR)[0]["code"] == ErrorCode.INVALID_STATE

    async def test_storage_failure_becomes_server_error(self, message_router, alice, match_repository):
        match_repository.fail_reads = True

        await message_router.handle_message(alice, {"type": "join", "match_id": "match1"})

        assert alice.sent_messages == [
            {"type": ServerMessageType.ERROR, "code": ErrorCode.SERVER_ERROR, "message": "Server error, please retry"},
        ]

    async def test_disconnect_drops_presence(self, message_router, alice, session_manager):
        await message_router.handle_disconnect(alice)
        assert not session_manager.registry.is_online("alice")

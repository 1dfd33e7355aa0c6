"""Unit tests for src/online/session_router.py"""

import asyncio
import json
from typing import Any

import pytest

from src.core.shared_types import ConnectionStatus, GameState
from src.online.match_registry import MatchRegistry
from src.online.messages import MessageType
from src.online.session_router import SessionRouter
from src.services.game_service import GameService


class FakeConnection:
    """Collects everything sent to it, decoded."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send_text(self, data: str) -> None:
        self.sent.append(json.loads(data))

    def types(self) -> list[str]:
        return [message["type"] for message in self.sent]

    def last(self, message_type: MessageType) -> dict[str, Any]:
        return next(m for m in reversed(self.sent) if m["type"] == message_type)


class BrokenConnection(FakeConnection):
    def __init__(self) -> None:
        super().__init__()
        self.broken = False

    async def send_text(self, data: str) -> None:
        if self.broken:
            raise ConnectionResetError("peer went away")
        await super().send_text(data)


@pytest.fixture
def registry(game_service: GameService) -> MatchRegistry:
    return MatchRegistry(game_service, grace_seconds=5)


@pytest.fixture
def router(registry: MatchRegistry, game_service: GameService) -> SessionRouter:
    return SessionRouter(registry, game_service)


async def send(router: SessionRouter, session_id: str, message_type: str, data: Any = None) -> None:
    await router.handle_message(session_id, json.dumps({"type": message_type, "data": data}))


async def join(router: SessionRouter, connection: FakeConnection, code: str, player_id: str) -> str:
    session_id = await router.connect(connection)
    await send(router, session_id, "JOIN_MATCH", {"matchId": code, "playerId": player_id})
    return session_id


async def started_match(
    router: SessionRouter, registry: MatchRegistry
) -> tuple[str, str, str, FakeConnection, FakeConnection]:
    """alice and bob both connected to a running match. Returns (code, alice session, bob session, connections)."""
    alice, bob = FakeConnection(), FakeConnection()
    code = registry.create_match("alice")
    alice_session = await join(router, alice, code, "alice")
    game = registry.join_match("bob", code)
    await router.broadcast_match_start(code, game)
    bob_session = await join(router, bob, code, "bob")
    return code, alice_session, bob_session, alice, bob


# --- CONNECTING ---
def test_connect_sends_session_id(router: SessionRouter) -> None:
    connection = FakeConnection()
    session_id = asyncio.run(router.connect(connection))

    assert connection.sent[0]["type"] == MessageType.CONNECTION_SUCCESS
    assert connection.sent[0]["data"] == {"sessionId": session_id}
    assert isinstance(connection.sent[0]["timestamp"], int)
    assert router.get_session(session_id).match_code is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("not json", "Invalid message format"),
        ('{"type": "DANCE"}', "Invalid message format"),
        ('{"type": "GAME_END", "data": {}}', "Unknown message type: GAME_END"),
        ('{"type": "JOIN_MATCH", "data": "ABC"}', "Message data must be an object."),
    ],
)
def test_bad_messages_get_an_error(router: SessionRouter, raw: str, expected: str) -> None:
    async def scenario() -> FakeConnection:
        connection = FakeConnection()
        session_id = await router.connect(connection)
        await router.handle_message(session_id, raw)
        return connection

    connection = asyncio.run(scenario())
    assert connection.sent[-1]["type"] == MessageType.ERROR
    assert connection.sent[-1]["data"]["message"] == expected


# --- JOINING ---
def test_join_waiting_match(router: SessionRouter, registry: MatchRegistry) -> None:
    async def scenario() -> FakeConnection:
        connection = FakeConnection()
        code = registry.create_match("alice")
        await join(router, connection, code, "alice")
        return connection

    connection = asyncio.run(scenario())
    assert connection.types() == ["CONNECTION_SUCCESS", "JOIN_SUCCESS"]
    assert connection.sent[-1]["data"]["playerCount"] == 1


def test_join_unknown_match(router: SessionRouter) -> None:
    connection = FakeConnection()
    asyncio.run(join(router, connection, "NOPE00", "alice"))
    assert connection.sent[-1]["type"] == MessageType.ERROR


def test_match_start_reaches_both_players(router: SessionRouter, registry: MatchRegistry) -> None:
    code, _, _, alice, bob = asyncio.run(started_match(router, registry))

    assert alice.types() == [
        "CONNECTION_SUCCESS",
        "JOIN_SUCCESS",
        "GAME_STATE_UPDATE",  # broadcast when bob joined over REST
        "PLAYER_JOINED",  # bob's socket joined
    ]
    assert bob.types() == ["CONNECTION_SUCCESS", "JOIN_SUCCESS", "GAME_STATE_UPDATE"]
    assert bob.last(MessageType.JOIN_SUCCESS)["data"]["playerCount"] == 2
    assert alice.last(MessageType.PLAYER_JOINED)["data"] == {"matchId": code, "playerId": "bob"}


def test_each_player_only_sees_their_own_hand(router: SessionRouter, registry: MatchRegistry) -> None:
    _, _, _, alice, bob = asyncio.run(started_match(router, registry))

    alice_view = alice.last(MessageType.GAME_STATE_UPDATE)["data"]
    bob_view = bob.last(MessageType.GAME_STATE_UPDATE)["data"]

    assert all(card["id"].startswith("deck-alice-") for card in alice_view["hand"])
    assert all(card["id"].startswith("deck-bob-original-") for card in bob_view["hand"])
    assert len(alice_view["hand"]) == len(bob_view["hand"]) == 4
    assert alice_view["currentPlayerId"] == bob_view["currentPlayerId"] == "alice"
    assert alice_view["cardOwnership"] == {"2,4": "alice", "2,0": "bob"}


# --- PLAYING ---
def test_game_action_is_broadcast(
    router: SessionRouter, registry: MatchRegistry, game_service: GameService
) -> None:
    async def scenario():
        code, alice_session, _, alice, bob = await started_match(router, registry)
        game = registry.get_match_state(code)
        card = game.players["alice"].hand[0]
        alice.sent.clear()
        bob.sent.clear()
        await send(
            router,
            alice_session,
            "GAME_ACTION",
            {
                "matchId": code,
                "action": {"type": "PLACE_CARD", "card": {"id": card.id}, "targetPosition": {"x": 1, "y": 4}},
            },
        )
        return code, card, alice, bob

    code, card, alice, bob = asyncio.run(scenario())

    assert alice.types() == ["GAME_STATE_UPDATE"]
    assert bob.types() == ["GAME_STATE_UPDATE"]
    for connection in (alice, bob):
        view = connection.sent[0]["data"]
        assert view["board"]["pieces"]["1,4"] == card.id
        assert view["currentPlayerId"] == "bob"


def test_rule_violation_only_reaches_the_sender(router: SessionRouter, registry: MatchRegistry) -> None:
    async def scenario():
        code, _, bob_session, alice, bob = await started_match(router, registry)
        alice.sent.clear()
        bob.sent.clear()
        await send(router, bob_session, "GAME_ACTION", {"matchId": code, "action": {"type": "PASS"}})
        return alice, bob

    alice, bob = asyncio.run(scenario())

    assert alice.sent == []
    assert bob.types() == ["ERROR"]
    assert bob.sent[0]["data"]["reason"] == "Not your turn"


def test_game_end_after_accepted_win_request(router: SessionRouter, registry: MatchRegistry) -> None:
    async def scenario():
        code, alice_session, bob_session, alice, bob = await started_match(router, registry)
        await send(router, alice_session, "GAME_ACTION", {"action": {"type": "REQUEST_WIN_CALCULATION"}})
        alice.sent.clear()
        bob.sent.clear()
        await send(
            router,
            bob_session,
            "GAME_ACTION",
            {"action": {"type": "RESPOND_TO_WIN_REQUEST", "accepted": True}},
        )
        return code, alice, bob

    code, alice, bob = asyncio.run(scenario())

    game = registry.get_match_state(code)
    assert game.state == GameState.COMPLETED
    for connection in (alice, bob):
        assert connection.types() == ["GAME_STATE_UPDATE", "GAME_END"]
        end = connection.sent[-1]["data"]
        assert end["winnerId"] == game.winner_id
        assert end["isTie"] == game.is_tie
        assert set(end["columnScores"]) == {"0", "1", "2"}


def test_action_before_joining(router: SessionRouter) -> None:
    async def scenario() -> FakeConnection:
        connection = FakeConnection()
        session_id = await router.connect(connection)
        await send(router, session_id, "GAME_ACTION", {"matchId": "ABC123", "action": {"type": "PASS"}})
        return connection

    connection = asyncio.run(scenario())
    assert connection.sent[-1]["type"] == MessageType.ERROR


def test_action_on_waiting_match(router: SessionRouter, registry: MatchRegistry) -> None:
    async def scenario() -> FakeConnection:
        connection = FakeConnection()
        code = registry.create_match("alice")
        session_id = await join(router, connection, code, "alice")
        await send(router, session_id, "GAME_ACTION", {"action": {"type": "PASS"}})
        return connection

    connection = asyncio.run(scenario())
    assert connection.sent[-1]["data"]["message"].endswith("has not started yet.")


# --- STATE REQUESTS ---
def test_state_request(router: SessionRouter, registry: MatchRegistry) -> None:
    async def scenario():
        waiting = FakeConnection()
        waiting_code = registry.create_match("carol")
        waiting_session = await router.connect(waiting)
        await send(router, waiting_session, "GAME_STATE_REQUEST", {"matchId": waiting_code})

        code, alice_session, _, alice, _ = await started_match(router, registry)
        alice.sent.clear()
        await send(router, alice_session, "GAME_STATE_REQUEST")
        await send(router, alice_session, "GAME_STATE_REQUEST", {"matchId": "NOPE00"})
        return waiting, alice

    waiting, alice = asyncio.run(scenario())

    assert waiting.sent[-1]["data"]["status"] == "WAITING"
    assert alice.types() == ["GAME_STATE_UPDATE", "ERROR"]
    assert alice.sent[0]["data"]["viewerId"] == "alice"


def test_state_request_never_shows_another_hand(router: SessionRouter, registry: MatchRegistry) -> None:
    """The view follows the session's player: a playerId in the request is ignored, an unbound session sees no hand."""

    async def scenario():
        code, alice_session, _, alice, _ = await started_match(router, registry)
        alice.sent.clear()
        await send(router, alice_session, "GAME_STATE_REQUEST", {"matchId": code, "playerId": "bob"})

        onlooker = FakeConnection()
        onlooker_session = await router.connect(onlooker)
        await send(router, onlooker_session, "GAME_STATE_REQUEST", {"matchId": code, "playerId": "bob"})
        return alice, onlooker

    alice, onlooker = asyncio.run(scenario())

    alice_view = alice.last(MessageType.GAME_STATE_UPDATE)["data"]
    assert alice_view["viewerId"] == "alice"
    assert all(card["id"].startswith("deck-alice-") for card in alice_view["hand"])
    onlooker_view = onlooker.last(MessageType.GAME_STATE_UPDATE)["data"]
    assert onlooker_view["viewerId"] is None
    assert onlooker_view["hand"] == []


def test_match_locks_are_not_kept(router: SessionRouter, registry: MatchRegistry) -> None:
    async def scenario():
        _, alice_session, bob_session, _, _ = await started_match(router, registry)
        await send(router, alice_session, "GAME_ACTION", {"action": {"type": "PASS"}})
        await router.disconnect(bob_session)

    asyncio.run(scenario())

    assert router._match_locks == {}


# --- LEAVING / DISCONNECTING ---
def test_disconnect_notifies_the_other_player(
    router: SessionRouter, registry: MatchRegistry, game_service: GameService
) -> None:
    async def scenario():
        code, _, bob_session, alice, _ = await started_match(router, registry)
        alice.sent.clear()
        await router.disconnect(bob_session)
        return code, alice

    code, alice = asyncio.run(scenario())

    assert alice.types() == ["PLAYER_DISCONNECTED"]
    assert alice.sent[0]["data"]["playerId"] == "bob"
    game = registry.get_match_state(code)
    assert game.player_connections["bob"] == ConnectionStatus.DISCONNECTED


def test_reconnect_is_announced(router: SessionRouter, registry: MatchRegistry) -> None:
    async def scenario():
        code, _, bob_session, alice, _ = await started_match(router, registry)
        await router.disconnect(bob_session)
        alice.sent.clear()
        again = FakeConnection()
        await join(router, again, code, "bob")
        return alice, again

    alice, again = asyncio.run(scenario())

    assert alice.types() == ["PLAYER_RECONNECTED"]
    assert again.types() == ["CONNECTION_SUCCESS", "JOIN_SUCCESS", "GAME_STATE_UPDATE"]


def test_leave_match(router: SessionRouter, registry: MatchRegistry) -> None:
    async def scenario():
        code, alice_session, _, alice, bob = await started_match(router, registry)
        alice.sent.clear()
        bob.sent.clear()
        await send(router, alice_session, "LEAVE_MATCH", {"matchId": code})
        return code, alice_session, alice, bob

    code, alice_session, alice, bob = asyncio.run(scenario())

    assert alice.types() == ["LEAVE_SUCCESS"]
    assert alice.sent[0]["data"] == {"matchId": code}
    assert bob.types() == ["PLAYER_DISCONNECTED"]
    assert router.get_session(alice_session).match_code is None
    assert [s.player_id for s in router.sessions_in_match(code)] == ["bob"]


def test_disconnect_from_waiting_match(router: SessionRouter, registry: MatchRegistry) -> None:
    """No game behind the match yet: the registry has nothing to record, nothing breaks."""

    async def scenario():
        code = registry.create_match("alice")
        session_id = await join(router, FakeConnection(), code, "alice")
        await router.disconnect(session_id)
        return code, session_id

    code, session_id = asyncio.run(scenario())
    assert router.get_session(session_id) is None
    assert registry.is_match_waiting(code)


def test_failed_send_drops_only_that_session(router: SessionRouter, registry: MatchRegistry) -> None:
    async def scenario():
        broken, healthy = BrokenConnection(), FakeConnection()
        code = registry.create_match("alice")
        broken_session = await join(router, broken, code, "alice")
        game = registry.join_match("bob", code)
        await join(router, healthy, code, "bob")
        broken.broken = True
        await router.broadcast_match_start(code, game)
        return code, broken_session, healthy

    code, broken_session, healthy = asyncio.run(scenario())

    assert router.get_session(broken_session) is None
    assert [s.player_id for s in router.sessions_in_match(code)] == ["bob"]
    assert healthy.types()[-1] == "GAME_STATE_UPDATE"
    assert registry.get_match_state(code).player_connections["alice"] == ConnectionStatus.DISCONNECTED


# --- RELEASING ---
def test_clearing_player_matches_unbinds_sessions(router: SessionRouter, registry: MatchRegistry) -> None:
    async def scenario():
        code = registry.create_match("alice")
        return code, await join(router, FakeConnection(), code, "alice")

    code, session_id = asyncio.run(scenario())
    registry.clear_player_matches("alice")

    assert router.get_session(session_id).match_code is None
    assert router.sessions_in_match(code) == []


def test_clear_all_sessions(router: SessionRouter, registry: MatchRegistry) -> None:
    code, alice_session, bob_session, _, _ = asyncio.run(started_match(router, registry))
    router.clear_all_sessions()

    assert router.sessions_in_match(code) == []
    assert router.get_session(alice_session) is not None
    assert router.get_session(bob_session).player_id is None

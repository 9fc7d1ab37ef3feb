import json
import time

import pytest
import websockets

from edgetag.core import GameSettings, Role
from edgetag.server import ConnectionUtils, GameServer


class FakeWebSocket:
    """Records everything the server sends."""

    def __init__(self, name="client"):
        self.remote_address = (name, 0)
        self.sent = []

    async def send(self, message):
        self.sent.append(json.loads(message))

    def of_type(self, message_type):
        return [message for message in self.sent if message["type"] == message_type]


class ClosedWebSocket(FakeWebSocket):
    async def send(self, message):
        raise websockets.exceptions.ConnectionClosed(None, None)


TWO_PLAYER = {"grid_size": 3, "mode": "twoPlayer", "initial_removals": 0}


async def send(server, websocket, **message):
    await server.handle_message(websocket, json.dumps(message))


@pytest.fixture
def server():
    return GameServer(GameSettings(grid_size=5, difficulty="easy"))


@pytest.mark.asyncio
async def test_join_creates_game_and_sends_state(server):
    ws = FakeWebSocket()

    await send(server, ws, type="join_as_viewer", game_id="g1")

    assert server.list_games() == ["g1"]
    assert [message["type"] for message in ws.sent] == ["viewer_connected", "game_state"]
    assert ws.sent[0]["settings"]["grid_size"] == 5
    assert ws.sent[1]["game_id"] == "g1"
    assert ws.sent[1]["board"]["size"] == 5


@pytest.mark.asyncio
async def test_create_game_with_settings(server):
    ws = FakeWebSocket()

    await send(server, ws, type="create_game", game_id="duel", settings=TWO_PLAYER)

    game = server.get_game("duel")
    assert game.settings.mode == "twoPlayer"
    assert ws.of_type("game_state")[0]["to_move"] == "pursuer"
    assert server.connection_to_game[ws] == "duel"


@pytest.mark.asyncio
async def test_create_game_twice_is_an_error(server):
    ws = FakeWebSocket()
    await send(server, ws, type="create_game", game_id="g1")

    await send(server, ws, type="create_game", game_id="g1")

    assert ws.sent[-1] == {"type": "error", "message": "Game g1 already exists"}


@pytest.mark.asyncio
@pytest.mark.parametrize("settings", [{"grid_size": 1}, {"mode": "coop"}, "big"])
async def test_invalid_settings_are_reported(server, settings):
    ws = FakeWebSocket()

    await send(server, ws, type="create_game", game_id="bad", settings=settings)

    assert ws.sent[-1]["type"] == "error"
    assert ws.sent[-1]["message"].startswith("Invalid settings")
    assert server.get_game("bad") is None


@pytest.mark.asyncio
async def test_malformed_messages(server):
    ws = FakeWebSocket()

    await server.handle_message(ws, "{not json")
    await server.handle_message(ws, "[1, 2]")
    await send(server, ws, type="dance")
    await send(server, ws, type="join_as_viewer")

    assert [message["message"] for message in ws.sent] == [
        "Invalid JSON format",
        "Message must be a JSON object",
        "Unknown message type: dance",
        "game_id is required",
    ]


@pytest.mark.asyncio
async def test_move_without_game(server):
    ws = FakeWebSocket()

    await send(server, ws, type="move", direction="up")
    await send(server, ws, type="reset")

    assert [message["message"] for message in ws.sent] == ["Not connected to any game"] * 2


@pytest.mark.asyncio
async def test_rejected_move_goes_to_sender_only(server):
    mover, watcher = FakeWebSocket("mover"), FakeWebSocket("watcher")
    await send(server, mover, type="create_game", game_id="duel", settings=TWO_PLAYER)
    await send(server, watcher, type="join_as_viewer", game_id="duel")
    watcher_count = len(watcher.sent)

    # The pursuer starts on the top row
    await send(server, mover, type="move", direction="up")

    assert mover.sent[-1] == {"type": "move_rejected", "game_id": "duel", "reason": "blocked"}
    assert len(watcher.sent) == watcher_count


@pytest.mark.asyncio
async def test_accepted_move_is_broadcast(server):
    mover, watcher = FakeWebSocket("mover"), FakeWebSocket("watcher")
    await send(server, mover, type="create_game", game_id="duel", settings=TWO_PLAYER)
    await send(server, watcher, type="join_as_viewer", game_id="duel")
    start = server.get_game("duel").engine.game_state.positions[Role.PURSUER]

    await send(server, mover, type="move", direction="down")

    for ws in (mover, watcher):
        state = ws.sent[-1]
        assert state["type"] == "game_state"
        assert state["turn"] == 1
        assert state["to_move"] == "evader"
        assert state["positions"]["pursuer"] == [start[0], 1]


@pytest.mark.asyncio
async def test_capture_broadcasts_game_over(server):
    ws = FakeWebSocket()
    await send(server, ws, type="create_game", game_id="duel", settings=TWO_PLAYER)
    state = server.get_game("duel").engine.game_state
    state.positions[Role.PURSUER] = (1, 1)
    state.positions[Role.EVADER] = (1, 2)

    await send(server, ws, type="move", direction="down")

    assert ws.sent[-1] == {
        "type": "game_over",
        "game_id": "duel",
        "turn": 1,
        "status": "won",
        "cause": "captured",
        "winner": "pursuer",
    }
    assert server.get_game("duel").is_over


@pytest.mark.asyncio
async def test_reset_notifies_viewers(server):
    ws = FakeWebSocket()
    await send(server, ws, type="create_game", game_id="duel", settings=TWO_PLAYER)
    await send(server, ws, type="move", direction="down")

    await send(server, ws, type="reset")

    assert ws.sent[-2]["type"] == "game_reset"
    assert ws.sent[-1]["type"] == "game_state"
    assert ws.sent[-1]["turn"] == 0


@pytest.mark.asyncio
async def test_reset_into_finished_game_announces_game_over(server, monkeypatch):
    ws = FakeWebSocket()
    await send(server, ws, type="create_game", game_id="duel", settings=TWO_PLAYER)
    engine = server.get_game("duel").engine
    fresh_reset = engine.reset

    def reset_onto_a_bare_board():
        snapshot = fresh_reset()
        state = engine.game_state
        for edge in state.board.active_edges():
            state.board.deactivate(edge)
        state.check_game_end()
        return snapshot

    monkeypatch.setattr(engine, "reset", reset_onto_a_bare_board)

    await send(server, ws, type="reset")

    assert [message["type"] for message in ws.sent[-3:]] == ["game_reset", "game_state", "game_over"]
    assert ws.sent[-1]["cause"] == "separated"


@pytest.mark.asyncio
async def test_reset_of_live_game_sends_no_game_over(server):
    ws = FakeWebSocket()
    await send(server, ws, type="create_game", game_id="duel", settings=TWO_PLAYER)

    await send(server, ws, type="reset")

    assert ws.of_type("game_over") == []


@pytest.mark.asyncio
async def test_joining_existing_game_reports_ignored_settings(server):
    first, second = FakeWebSocket("first"), FakeWebSocket("second")
    await send(server, first, type="join_as_viewer", game_id="a", settings={"grid_size": 3})

    await send(server, second, type="join_as_viewer", game_id="a", settings={"grid_size": 6})

    assert first.of_type("viewer_connected")[0]["settings_applied"] is True
    joined = second.of_type("viewer_connected")[0]
    assert joined["settings_applied"] is False
    assert joined["settings"]["grid_size"] == 3
    assert "not applied" in joined["message"]
    assert second in server.viewer_connections["a"]


@pytest.mark.asyncio
async def test_list_games(server):
    ws = FakeWebSocket()
    await send(server, ws, type="join_as_viewer", game_id="a")
    server.create_game("b")

    await send(server, ws, type="list_games")

    listing = ws.sent[-1]
    assert listing["type"] == "game_list"
    assert {game["game_id"]: game["viewers"] for game in listing["games"]} == {"a": 1, "b": 0}


@pytest.mark.asyncio
async def test_switching_games_leaves_the_previous_one(server):
    ws = FakeWebSocket()
    await send(server, ws, type="join_as_viewer", game_id="a")

    await send(server, ws, type="join_as_viewer", game_id="b")

    assert ws not in server.viewer_connections["a"]
    assert ws in server.viewer_connections["b"]


@pytest.mark.asyncio
async def test_cleanup_connection_forgets_viewer(server):
    ws = FakeWebSocket()
    await send(server, ws, type="join_as_viewer", game_id="a")

    await server.cleanup_connection(ws)

    assert ws not in server.connection_to_game
    assert server.viewer_connections["a"] == set()


@pytest.mark.asyncio
async def test_closed_connections_are_dropped_on_broadcast(server):
    ws, closed = FakeWebSocket(), ClosedWebSocket()
    await send(server, ws, type="join_as_viewer", game_id="a")
    await send(server, closed, type="join_as_viewer", game_id="a")

    await server.broadcast_game_state("a")

    assert server.viewer_connections["a"] == {ws}
    assert closed not in server.connection_to_game


@pytest.mark.asyncio
async def test_send_message_reports_closed_connection():
    assert await ConnectionUtils.send_message(FakeWebSocket(), {"type": "ping"})
    assert not await ConnectionUtils.send_message(ClosedWebSocket(), {"type": "ping"})


def test_idle_games_without_viewers_are_collected(server):
    idle = server.create_game("idle")
    server.create_game("fresh")
    idle.last_activity = time.time() - 120

    assert server.collect_idle_games(60.0) == ["idle"]
    assert server.list_games() == ["fresh"]


def test_watched_games_are_kept(server):
    game = server.create_game("watched")
    server.viewer_connections["watched"].add(FakeWebSocket())
    game.last_activity = time.time() - 120

    assert server.collect_idle_games(60.0) == []

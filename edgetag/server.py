"""
WebSocket Session Server for Vanishing-Edges Tag.

Renderers connect as viewers of a session, send directional commands and
receive a state snapshot after every accepted move.
"""

import asyncio
import json
import logging
import random
import time
from typing import Any, Dict, List, Optional, Set

import websockets
from websockets.asyncio.server import ServerConnection
from websockets.typing import Data

from edgetag.config import ServerConfig
from edgetag.core import ConfigurationError, GameEngine, GameSettings

# Set up logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


class ConnectionUtils:
    """Utility class for WebSocket communication."""

    @staticmethod
    async def send_message(websocket: ServerConnection, message: Dict[str, Any]) -> bool:
        """Send a message to a specific websocket connection."""
        try:
            await websocket.send(json.dumps(message))
            return True
        except websockets.exceptions.ConnectionClosed:
            return False
        except Exception as e:
            logger.error(f"Error sending message: {e}")
            return False

    @staticmethod
    async def send_error(websocket: ServerConnection, error_message: str) -> bool:
        """Send an error message to a client."""
        return await ConnectionUtils.send_message(websocket, {
            "type": "error",
            "message": error_message
        })

    @staticmethod
    async def broadcast_to_connections(connections: Set[ServerConnection],
                                       message: Dict[str, Any]) -> List[ServerConnection]:
        """
        Broadcast a message to multiple connections.
        Returns list of disconnected websockets.
        """
        if not connections:
            return []

        message_json = json.dumps(message)
        disconnected = []

        for websocket in connections.copy():
            try:
                await websocket.send(message_json)
            except websockets.exceptions.ConnectionClosed:
                disconnected.append(websocket)
            except Exception as e:
                logger.error(f"Error broadcasting to connection: {e}")
                disconnected.append(websocket)

        return disconnected


class GameInstance:
    """
    Single session with its own engine and random source.
    No direct WebSocket handling - all communication goes through GameServer.
    """

    def __init__(self, game_id: str, settings: Optional[GameSettings] = None,
                 rng: Optional[random.Random] = None):
        """Initialize the session and deal the first board."""
        self.game_id = game_id
        self.settings = settings or GameSettings()
        self.engine = GameEngine(self.settings, rng)
        self.last_activity = time.time()

        logger.info(f"Game instance {self.game_id} created: {self.settings.mode}, "
                    f"{self.settings.grid_size}x{self.settings.grid_size}, {self.settings.difficulty} bot")

    def handle_move(self, direction: Any, role: Any = None) -> Dict[str, Any]:
        """Apply a directional command and return the engine's move result."""
        self.last_activity = time.time()
        result = self.engine.process_move(direction, role)

        if result["accepted"]:
            logger.debug(f"Game {self.game_id}: {result['role']} moved {result['direction']}")
        else:
            logger.debug(f"Game {self.game_id}: move rejected ({result['reason']})")

        return result

    def reset_game(self) -> Dict[str, Any]:
        """Start over with a fresh board and start positions."""
        self.last_activity = time.time()
        logger.info(f"Game {self.game_id}: Resetting game state...")
        return self.engine.reset()

    @property
    def is_over(self) -> bool:
        return self.engine.game_state.is_terminal

    def should_be_cleaned_up(self, cleanup_delay_seconds: float = 60.0) -> bool:
        """Check if this session has been idle long enough to be dropped."""
        return time.time() - self.last_activity > cleanup_delay_seconds

    def get_game_state_dict(self) -> Dict[str, Any]:
        """Get the current game state as a dictionary."""
        game_state_dict = self.engine.game_state.to_dict()
        game_state_dict["game_id"] = self.game_id
        return game_state_dict

    def get_game_over_dict(self) -> Dict[str, Any]:
        state = self.engine.game_state
        return {
            "type": "game_over",
            "game_id": self.game_id,
            "turn": state.turn,
            "status": state.status.value,
            "cause": state.cause.value if state.cause else None,
            "winner": state.winner.value if state.winner else None,
        }


class GameServer:
    """
    Multi-session WebSocket server that manages GameInstance objects.
    Handles all WebSocket communication and routes messages to the right session.
    """

    def __init__(self, default_settings: Optional[GameSettings] = None):
        """Initialize the server."""
        self.games: Dict[str, GameInstance] = {}
        self.default_settings = default_settings or GameSettings()

        # Connection tracking
        self.viewer_connections: Dict[str, Set[ServerConnection]] = {}  # game_id -> set of websockets
        self.connection_to_game: Dict[ServerConnection, str] = {}  # websocket -> game_id

        # Server control
        self.shutdown_requested = False
        self.cleanup_task: Optional[asyncio.Task] = None

        logger.info("Session server initialized")

    def create_game(self, game_id: str, settings: Optional[GameSettings] = None) -> GameInstance:
        """
        Create a new session with the given ID.

        Raises:
            ValueError: If the ID is taken
            ConfigurationError: If the settings are invalid
        """
        if game_id in self.games:
            raise ValueError(f"Game {game_id} already exists")

        game = GameInstance(game_id, settings or self.default_settings)
        self.games[game_id] = game
        self.viewer_connections[game_id] = set()

        logger.info(f"Created game {game_id}")
        return game

    def get_game(self, game_id: str) -> Optional[GameInstance]:
        """Get a session by ID."""
        return self.games.get(game_id)

    def list_games(self) -> List[str]:
        """List all session IDs."""
        return list(self.games.keys())

    def remove_game(self, game_id: str) -> bool:
        """Remove a session and forget its connections."""
        if game_id not in self.games:
            return False

        connections_to_remove = [ws for ws, gid in self.connection_to_game.items() if gid == game_id]
        for ws in connections_to_remove:
            del self.connection_to_game[ws]

        self.viewer_connections.pop(game_id, None)
        del self.games[game_id]
        logger.info(f"Removed game {game_id}")
        return True

    async def handle_client(self, websocket: ServerConnection, path: str = "/") -> None:
        """Handle a new WebSocket client connection."""
        logger.info(f"New connection from {websocket.remote_address}")

        try:
            async for message in websocket:
                await self.handle_message(websocket, message)
        except websockets.exceptions.ConnectionClosed:
            logger.info(f"Connection closed: {websocket.remote_address}")
        except Exception as e:
            logger.error(f"Error handling client: {e}")
        finally:
            await self.cleanup_connection(websocket)

    async def handle_message(self, websocket: ServerConnection, message: Data) -> None:
        """Parse and route incoming messages to the appropriate session."""
        try:
            data = json.loads(message)
            if not isinstance(data, dict):
                await ConnectionUtils.send_error(websocket, "Message must be a JSON object")
                return

            message_type = data.get("type")

            if message_type == "join_as_viewer":
                await self.handle_viewer_join(websocket, data)

            elif message_type == "create_game":
                await self.handle_create_game(websocket, data)

            elif message_type == "move":
                await self.handle_move(websocket, data)

            elif message_type == "reset":
                await self.handle_reset(websocket)

            elif message_type == "list_games":
                await self.handle_list_games(websocket)

            else:
                await ConnectionUtils.send_error(websocket, f"Unknown message type: {message_type}")

        except json.JSONDecodeError:
            await ConnectionUtils.send_error(websocket, "Invalid JSON format")
        except Exception as e:
            logger.error(f"Error handling message: {e}")
            await ConnectionUtils.send_error(websocket, "Internal server error")

    def _settings_from(self, data: Dict[str, Any]) -> Optional[GameSettings]:
        raw = data.get("settings")
        if raw is None:
            return None
        if not isinstance(raw, dict):
            raise ConfigurationError("settings must be an object")
        return GameSettings.from_dict(raw)

    async def handle_create_game(self, websocket: ServerConnection, data: Dict[str, Any]) -> None:
        """Create a session on request and attach the requester as its viewer."""
        game_id = data.get("game_id")
        if not game_id:
            await ConnectionUtils.send_error(websocket, "game_id is required")
            return

        try:
            self.create_game(game_id, self._settings_from(data))
        except ConfigurationError as e:
            await ConnectionUtils.send_error(websocket, f"Invalid settings: {e}")
            return
        except ValueError as e:
            await ConnectionUtils.send_error(websocket, str(e))
            return

        await self.handle_viewer_join(websocket, {"game_id": game_id})

    async def handle_viewer_join(self, websocket: ServerConnection, data: Dict[str, Any]) -> None:
        """Handle a renderer joining a specific session."""
        game_id = data.get("game_id")

        if not game_id:
            await ConnectionUtils.send_error(websocket, "game_id is required")
            return

        # Get or create the game
        game = self.games.get(game_id)
        settings_applied = True
        if not game:
            try:
                game = self.create_game(game_id, self._settings_from(data))
            except ConfigurationError as e:
                await ConnectionUtils.send_error(websocket, f"Invalid settings: {e}")
                return
        elif data.get("settings") is not None:
            # An existing session keeps its own settings
            settings_applied = False
            logger.warning(f"Game {game_id} already exists, ignoring requested settings")

        # Leave any previous session
        previous = self.connection_to_game.get(websocket)
        if previous and previous != game_id and previous in self.viewer_connections:
            self.viewer_connections[previous].discard(websocket)

        self.viewer_connections[game_id].add(websocket)
        self.connection_to_game[websocket] = game_id

        logger.info(f"Viewer connected to game {game_id}. Total viewers: {len(self.viewer_connections[game_id])}")

        message = f"Connected as viewer to game {game_id}"
        if not settings_applied:
            message += " (game already exists, requested settings were not applied)"

        await ConnectionUtils.send_message(websocket, {
            "type": "viewer_connected",
            "game_id": game_id,
            "settings": game.settings.to_dict(),
            "settings_applied": settings_applied,
            "message": message
        })
        await ConnectionUtils.send_message(websocket, game.get_game_state_dict())

    async def handle_move(self, websocket: ServerConnection, data: Dict[str, Any]) -> None:
        """Handle a directional command from a viewer."""
        game = self._game_for(websocket)
        if not game:
            await ConnectionUtils.send_error(websocket, "Not connected to any game")
            return

        result = game.handle_move(data.get("direction"), data.get("role"))

        if not result["accepted"]:
            await ConnectionUtils.send_message(websocket, {
                "type": "move_rejected",
                "game_id": game.game_id,
                "reason": result["reason"]
            })
            return

        await self.broadcast_game_state(game.game_id)

        if result["game_over"]:
            logger.info(f"Game {game.game_id} finished: {game.engine.game_state.status.value}")
            await self.broadcast_to_viewers(game.game_id, game.get_game_over_dict())

    async def handle_reset(self, websocket: ServerConnection) -> None:
        """Reset the session this connection is viewing."""
        game = self._game_for(websocket)
        if not game:
            await ConnectionUtils.send_error(websocket, "Not connected to any game")
            return

        await self.reset_game(game.game_id)

    async def handle_list_games(self, websocket: ServerConnection) -> None:
        """Send the list of sessions."""
        games = []
        for game_id, game in self.games.items():
            games.append({
                "game_id": game_id,
                "mode": game.settings.mode,
                "grid_size": game.settings.grid_size,
                "status": game.engine.game_state.status.value,
                "viewers": len(self.viewer_connections.get(game_id, set()))
            })

        await ConnectionUtils.send_message(websocket, {
            "type": "game_list",
            "games": games
        })

    def _game_for(self, websocket: ServerConnection) -> Optional[GameInstance]:
        game_id = self.connection_to_game.get(websocket)
        if not game_id:
            return None
        return self.games.get(game_id)

    async def cleanup_connection(self, websocket: ServerConnection) -> None:
        """Clean up a disconnected client."""
        game_id = self.connection_to_game.pop(websocket, None)
        if not game_id:
            return

        if game_id in self.viewer_connections:
            self.viewer_connections[game_id].discard(websocket)
            logger.info(f"Viewer disconnected from game {game_id}. "
                        f"Total viewers: {len(self.viewer_connections[game_id])}")

    async def reset_game(self, game_id: str) -> bool:
        """Reset a specific session and push the fresh state."""
        game = self.games.get(game_id)
        if not game:
            return False

        game.reset_game()

        await self.broadcast_to_viewers(game_id, {
            "type": "game_reset",
            "game_id": game_id,
            "message": "Game has been reset."
        })
        await self.broadcast_game_state(game_id)

        if game.is_over:
            await self.broadcast_to_viewers(game_id, game.get_game_over_dict())

        return True

    async def broadcast_to_viewers(self, game_id: str, message: Dict[str, Any]) -> None:
        """Send a message to all viewer clients in a specific session."""
        if game_id not in self.viewer_connections or not self.viewer_connections[game_id]:
            return

        disconnected = await ConnectionUtils.broadcast_to_connections(self.viewer_connections[game_id], message)

        # Clean up disconnected clients
        for websocket in disconnected:
            await self.cleanup_connection(websocket)

    async def broadcast_game_state(self, game_id: str) -> None:
        """Broadcast the current state to all clients in a specific session."""
        game = self.games.get(game_id)
        if not game:
            return

        await self.broadcast_to_viewers(game_id, game.get_game_state_dict())

    def start_cleanup_task(self) -> None:
        """Start the automatic session cleanup task."""
        if self.cleanup_task is None or self.cleanup_task.done():
            self.cleanup_task = asyncio.create_task(self.cleanup_loop())

    def stop_cleanup_task(self) -> None:
        """Stop the automatic session cleanup task."""
        if self.cleanup_task and not self.cleanup_task.done():
            self.cleanup_task.cancel()

    def collect_idle_games(self, cleanup_delay_seconds: float = 60.0) -> List[str]:
        """Remove sessions nobody is watching that have been idle for too long."""
        games_to_remove = [
            game_id for game_id, game in self.games.items()
            if not self.viewer_connections.get(game_id) and game.should_be_cleaned_up(cleanup_delay_seconds)
        ]

        for game_id in games_to_remove:
            logger.info(f"Cleaning up game {game_id} (no viewers)")
            self.remove_game(game_id)

        return games_to_remove

    async def cleanup_loop(self, check_interval_seconds: float = 1.0,
                           cleanup_delay_seconds: float = 60.0) -> None:
        """Periodically check for and remove sessions that should be cleaned up."""
        try:
            while not self.shutdown_requested:
                await asyncio.sleep(check_interval_seconds)
                self.collect_idle_games(cleanup_delay_seconds)

        except asyncio.CancelledError:
            logger.info("Game cleanup loop cancelled")
            raise


async def keyboard_input_handler(server: GameServer) -> None:
    """Handle keyboard input for server commands."""
    logger.info("Keyboard command handler started. Type 'help' for available commands.")

    loop = asyncio.get_running_loop()

    try:
        while not server.shutdown_requested:
            try:
                command = await loop.run_in_executor(None, input, "Server> ")
                command = command.strip()

                if command in ("quit", "exit"):
                    logger.info("Shutdown requested by user")
                    server.shutdown_requested = True
                    break

                elif command == "games":
                    games = server.list_games()
                    if not games:
                        logger.info("No active games")
                    else:
                        logger.info(f"=== Active Games ({len(games)}) ===")
                        for game_id in games:
                            game = server.get_game(game_id)
                            state = game.engine.game_state
                            viewer_count = len(server.viewer_connections.get(game_id, set()))
                            logger.info(f"  {game_id}: {game.settings.mode}, {state.status.value}, "
                                        f"turn {state.turn}, {viewer_count} viewers")

                elif command.startswith("reset "):
                    game_id = command.split(" ", 1)[1].strip()
                    if await server.reset_game(game_id):
                        logger.info(f"Game {game_id} reset complete")
                    else:
                        logger.warning(f"Game {game_id} does not exist")

                elif command == "status":
                    logger.info("=== Session Server Status ===")
                    logger.info(f"Active Games: {len(server.games)}")
                    logger.info(f"Total Connections: {len(server.connection_to_game)}")

                elif command == "help":
                    logger.info("=== Available Commands ===")
                    logger.info("  'quit' or 'exit' - Stop the server")
                    logger.info("  'games' - List all sessions")
                    logger.info("  'reset <game_id>' - Reset a specific session")
                    logger.info("  'status' - Show current server status")
                    logger.info("  'help' - Show this help message")

                elif command == "":
                    continue

                else:
                    logger.warning(f"Unknown command: '{command}'. Type 'help' for available commands.")

            except EOFError:
                logger.info("EOF received, shutting down server")
                server.shutdown_requested = True
                break

    finally:
        logger.info("Keyboard command handler shutting down")


async def run_server(host: Optional[str] = None, port: Optional[int] = None,
                     default_settings: Optional[GameSettings] = None) -> None:
    """Run the session server with keyboard command support."""
    host = host or ServerConfig.HOST
    port = port or ServerConfig.PORT

    server = GameServer(default_settings)

    logger.info(f"Starting session server on {host}:{port}")
    logger.info(f"Default settings: {server.default_settings.to_dict()}")

    # Start the WebSocket server
    websocket_server = await websockets.serve(server.handle_client, host, port)

    # Start the cleanup task
    server.start_cleanup_task()

    # Start the keyboard input handler
    keyboard_task = asyncio.create_task(keyboard_input_handler(server))

    try:
        await keyboard_task

    finally:
        logger.info("Shutting down server...")

        server.stop_cleanup_task()

        websocket_server.close()
        await websocket_server.wait_closed()

        if not keyboard_task.done():
            keyboard_task.cancel()

        logger.info("Server shutdown complete")


def main() -> None:
    try:
        asyncio.run(run_server())
    except KeyboardInterrupt:
        logger.info("Server shutting down...")


if __name__ == "__main__":
    main()

"""
FastAPI web server for StagePass.

Provides the REST API for stages, song requests and live-room playback, and
serves the live-room page that hosts the embeddable player.
"""

import logging
import uuid
from dataclasses import asdict
from pathlib import Path
from typing import Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel
from starlette.middleware.sessions import SessionMiddleware

from ..config_manager import ConfigManager
from ..errors import PersistenceError, StagePassError, ValidationError
from ..models import User
from ..player import PlayerState
from ..room import LiveRoom, RoomManager
from ..share import build_join_url, generate_qr_png
from ..songs import SongStore
from ..stage import StageManager
from ..user import UserManager
from ..youtube import YouTubeResolver, split_title

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"


# Request models
class SignInRequest(BaseModel):
    display_name: str


class CreateStageRequest(BaseModel):
    name: str
    max_capacity: Optional[int] = None
    privacy: Literal["public", "private"] = "public"


class JoinStageRequest(BaseModel):
    join_code: str
    display_name: Optional[str] = None


class AddSongRequest(BaseModel):
    title: str
    artist: Optional[str] = None
    video_id: Optional[str] = None


class PickSearchResultRequest(BaseModel):
    """Add a song straight from a search hit; title/artist are parsed from the video title."""

    video_id: str
    video_title: str


class OpenRoomRequest(BaseModel):
    stage_id: str


class PlayerEventRequest(BaseModel):
    event: Literal["ready", "state_changed", "error"]
    state: Optional[str] = None
    code: Optional[int] = None
    video_id: Optional[str] = None


# Dependency to get components
def get_config_manager(request: Request) -> ConfigManager:
    """Get ConfigManager from app state."""
    return request.app.state.config_manager


def get_user_manager(request: Request) -> UserManager:
    """Get UserManager from app state."""
    return request.app.state.user_manager


def get_stage_manager(request: Request) -> StageManager:
    """Get StageManager from app state."""
    return request.app.state.stage_manager


def get_song_store(request: Request) -> SongStore:
    """Get SongStore from app state."""
    return request.app.state.song_store


def get_resolver(request: Request) -> YouTubeResolver:
    """Get YouTubeResolver from app state."""
    return request.app.state.resolver


def get_room_manager(request: Request) -> RoomManager:
    """Get RoomManager from app state."""
    return request.app.state.room_manager


def require_user(request: Request) -> User:
    """Signed-in user from the session; 401 when signed out."""
    user_id = request.session.get("user_id")
    user = request.app.state.user_manager.get_user(user_id) if user_id else None
    if not user:
        raise HTTPException(status_code=401, detail="Please sign in.")
    return user


def get_room(room_id: str, request: Request) -> LiveRoom:
    room = request.app.state.room_manager.get_room(room_id)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    return room


def _song_dict(record) -> dict:
    song = asdict(record)
    song["created_at"] = record.created_at.isoformat() if record.created_at else None
    return song


def create_app(
    config_manager: ConfigManager,
    user_manager: UserManager,
    stage_manager: StageManager,
    song_store: SongStore,
    resolver: YouTubeResolver,
    room_manager: RoomManager,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        config_manager: ConfigManager instance
        user_manager: UserManager instance
        stage_manager: StageManager instance
        song_store: SongStore instance
        resolver: YouTubeResolver instance
        room_manager: RoomManager instance

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(title="StagePass", version="1.0.0")

    app.add_middleware(SessionMiddleware, secret_key=config_manager.get("session_secret"))

    # Store components in app state
    app.state.config_manager = config_manager
    app.state.user_manager = user_manager
    app.state.stage_manager = stage_manager
    app.state.song_store = song_store
    app.state.resolver = resolver
    app.state.room_manager = room_manager

    templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error("Storage failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": "Storage operation failed"})

    # Authentication endpoints
    @app.post("/api/auth/sign-in")
    async def sign_in(
        request: Request,
        request_data: SignInRequest,
        user_mgr: UserManager = Depends(get_user_manager),
    ):
        """Sign in with a display name; the identity lives in the session cookie."""
        user_id = request.session.get("user_id") or str(uuid.uuid4())
        user = user_mgr.get_or_create_user(user_id, request_data.display_name)
        request.session["user_id"] = user.id
        return {"id": user.id, "display_name": user.display_name, "stage_id": user.stage_id}

    @app.post("/api/auth/sign-out")
    async def sign_out(request: Request):
        request.session.pop("user_id", None)
        return {"status": "signed_out"}

    @app.get("/api/auth/me")
    async def me(request: Request, user_mgr: UserManager = Depends(get_user_manager)):
        """Current user, or signed_in false."""
        user_id = request.session.get("user_id")
        user = user_mgr.get_user(user_id) if user_id else None
        if not user:
            return {"signed_in": False}
        return {
            "signed_in": True,
            "id": user.id,
            "display_name": user.display_name,
            "stage_id": user.stage_id,
        }

    # Stage endpoints
    @app.post("/api/stages")
    async def create_stage(
        request_data: CreateStageRequest,
        user: User = Depends(require_user),
        stages: StageManager = Depends(get_stage_manager),
        user_mgr: UserManager = Depends(get_user_manager),
        config: ConfigManager = Depends(get_config_manager),
    ):
        """Create a stage; the host joins it right away."""
        capacity = request_data.max_capacity
        if capacity is None:
            capacity = config.get_int("default_max_capacity", 10)
        stage = stages.create_stage(request_data.name, capacity, request_data.privacy)
        user_mgr.assign_to_stage(user.id, stage.id)
        return {
            "id": stage.id,
            "name": stage.name,
            "join_code": stage.join_code,
            "max_capacity": stage.max_capacity,
            "is_private": stage.is_private,
        }

    @app.get("/api/stages/lookup/{join_code}")
    async def lookup_stage(join_code: str, stages: StageManager = Depends(get_stage_manager)):
        """Resolve a join code to a stage id."""
        stage_id = stages.lookup_stage_id(join_code)
        if not stage_id:
            raise HTTPException(status_code=404, detail="No active stage with that join code")
        return {"stage_id": stage_id}

    @app.post("/api/stages/join")
    async def join_stage(
        request: Request,
        request_data: JoinStageRequest,
        stages: StageManager = Depends(get_stage_manager),
        user_mgr: UserManager = Depends(get_user_manager),
    ):
        """Join a stage by code, signing in with display_name when needed."""
        user_id = request.session.get("user_id")
        user = user_mgr.get_user(user_id) if user_id else None
        if request_data.display_name:
            user = user_mgr.get_or_create_user(user_id or str(uuid.uuid4()), request_data.display_name)
            request.session["user_id"] = user.id
        if not user:
            raise HTTPException(status_code=401, detail="Please sign in.")

        stage = stages.join_stage(user, request_data.join_code)
        return {"stage_id": stage.id, "name": stage.name, "join_code": stage.join_code}

    @app.get("/api/stages/{stage_id}")
    async def get_stage_info(stage_id: str, stages: StageManager = Depends(get_stage_manager)):
        """Join code and name of a stage."""
        info = stages.get_stage_info(stage_id)
        if not info:
            raise HTTPException(status_code=404, detail="Stage not found")
        return info

    @app.delete("/api/stages/{stage_id}")
    async def terminate_stage(
        stage_id: str,
        user: User = Depends(require_user),
        stages: StageManager = Depends(get_stage_manager),
        rooms: RoomManager = Depends(get_room_manager),
    ):
        """Terminate a stage; its songs are deleted and open rooms closed."""
        if not stages.terminate_stage(stage_id):
            raise HTTPException(status_code=404, detail="Stage not found")
        closed = rooms.close_stage(stage_id)
        logger.info("Stage %s terminated by %s, %s rooms closed", stage_id, user.display_name, closed)
        return {"status": "terminated", "rooms_closed": closed}

    @app.get("/api/stages/{stage_id}/participants")
    async def list_participants(stage_id: str, user_mgr: UserManager = Depends(get_user_manager)):
        participants = user_mgr.list_participants(stage_id)
        return {"participants": [{"id": p.id, "name": p.display_name} for p in participants]}

    @app.get("/api/stages/{stage_id}/share.png")
    async def share_qr_code(
        stage_id: str,
        request: Request,
        stages: StageManager = Depends(get_stage_manager),
        config: ConfigManager = Depends(get_config_manager),
    ):
        """QR code linking to the stage's live room."""
        info = stages.get_stage_info(stage_id)
        if not info:
            raise HTTPException(status_code=404, detail="Stage not found")
        base_url = config.get("external_url") or str(request.base_url)
        png = generate_qr_png(build_join_url(base_url, info["join_code"]))
        return Response(content=png, media_type="image/png")

    # Song request endpoints
    @app.get("/api/stages/{stage_id}/songs")
    async def list_songs(stage_id: str, store: SongStore = Depends(get_song_store)):
        """Stored song requests, oldest first."""
        return {"songs": [_song_dict(record) for record in store.list_songs(stage_id)]}

    @app.post("/api/stages/{stage_id}/songs")
    async def add_song(
        stage_id: str,
        request_data: AddSongRequest,
        user: User = Depends(require_user),
        store: SongStore = Depends(get_song_store),
    ):
        record = store.add_song(stage_id, request_data.title, request_data.artist, request_data.video_id)
        return {"id": record.id, "status": "added"}

    @app.delete("/api/stages/{stage_id}/songs/{song_id}")
    async def remove_song(
        stage_id: str,
        song_id: str,
        user: User = Depends(require_user),
        store: SongStore = Depends(get_song_store),
    ):
        if not store.remove_song(song_id, stage_id):
            raise HTTPException(status_code=404, detail="Song not found")
        return {"status": "removed"}

    # Search
    @app.get("/api/search")
    async def search(
        q: str,
        max_results: Optional[int] = None,
        resolver: YouTubeResolver = Depends(get_resolver),
        config: ConfigManager = Depends(get_config_manager),
    ):
        """Song suggestions for the add-song sheet."""
        if len(q.strip()) < 3:
            return {"results": []}
        if max_results is None:
            max_results = config.get_int("search_max_results", 5)
        results = resolver.search_general(f"{q} karaoke", max_results=max_results)
        return {"results": [asdict(result) for result in results]}

    # Live room endpoints
    @app.post("/api/rooms")
    async def open_room(
        request_data: OpenRoomRequest,
        user: User = Depends(require_user),
        stages: StageManager = Depends(get_stage_manager),
        rooms: RoomManager = Depends(get_room_manager),
    ):
        """Open a live-room session for a stage."""
        stage = stages.get_stage(request_data.stage_id)
        if not stage or stage.is_terminated:
            raise HTTPException(status_code=404, detail="Stage not found")
        room = rooms.open_room(stage.id, user.id)
        return room.state()

    @app.get("/api/rooms/{room_id}")
    async def room_state(room: LiveRoom = Depends(get_room)):
        """Queue, cursor, intent, pending player commands and notifications."""
        return room.state()

    @app.delete("/api/rooms/{room_id}")
    async def close_room(room_id: str, rooms: RoomManager = Depends(get_room_manager)):
        if not rooms.close_room(room_id):
            raise HTTPException(status_code=404, detail="Room not found")
        return {"status": "closed"}

    @app.post("/api/rooms/{room_id}/player/events")
    async def player_event(request_data: PlayerEventRequest, room: LiveRoom = Depends(get_room)):
        """Lifecycle events reported by the page's embeddable player."""
        controller = room.controller
        if request_data.event == "ready":
            room.player.record_ready()
            controller.on_player_ready()
        elif request_data.event == "error":
            room.player.record_error(request_data.code)
            controller.on_player_error(request_data.code, video_id=request_data.video_id)
        else:
            try:
                state = PlayerState(request_data.state)
            except ValueError:
                raise HTTPException(status_code=400, detail=f"Unknown player state: {request_data.state}")
            room.player.record_state(state)
            controller.on_player_state(state, video_id=request_data.video_id)
        return room.state()

    @app.post("/api/rooms/{room_id}/play-pause")
    async def play_pause(room: LiveRoom = Depends(get_room)):
        action = room.controller.toggle_play_pause()
        return {"action": action, "state": room.state()}

    @app.post("/api/rooms/{room_id}/skip")
    async def skip(room: LiveRoom = Depends(get_room)):
        if room.controller.skip():
            return {"status": "skipped", "state": room.state()}
        # Return 200 with warning instead of error - nothing skippable right now
        return {"status": "not_skipped", "message": "Nothing to skip or still loading", "state": room.state()}

    @app.post("/api/rooms/{room_id}/queue")
    async def add_to_queue(
        request_data: AddSongRequest,
        user: User = Depends(require_user),
        room: LiveRoom = Depends(get_room),
        store: SongStore = Depends(get_song_store),
    ):
        """Persist a song request, then queue it once storage confirmed."""
        try:
            record = store.add_song(room.stage_id, request_data.title, request_data.artist, request_data.video_id)
            entry = room.controller.add_entry(
                record.title,
                artist=record.artist,
                video_id=record.video_id,
                entry_id=record.id,
                requested_by=user.display_name,
            )
            return {"id": entry.id, "status": "added", "state": room.state()}
        except (HTTPException, StagePassError):
            raise  # Let HTTP and domain errors reach their handlers
        except Exception as e:
            logger.error("Error adding song: %s", e, exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))

    @app.post("/api/rooms/{room_id}/queue/from-search")
    async def add_search_result(
        request_data: PickSearchResultRequest,
        user: User = Depends(require_user),
        room: LiveRoom = Depends(get_room),
        store: SongStore = Depends(get_song_store),
    ):
        """Queue a picked search hit, parsing title and artist from the video title."""
        title, artist = split_title(request_data.video_title)
        record = store.add_song(room.stage_id, title, artist, request_data.video_id)
        entry = room.controller.add_entry(
            record.title,
            artist=record.artist,
            video_id=record.video_id,
            entry_id=record.id,
            requested_by=user.display_name,
        )
        return {"id": entry.id, "title": entry.title, "artist": entry.artist, "state": room.state()}

    @app.delete("/api/rooms/{room_id}/queue/{index}")
    async def remove_from_queue(index: int, user: User = Depends(require_user), room: LiveRoom = Depends(get_room)):
        try:
            entry = room.controller.remove_at(index)
        except IndexError:
            raise HTTPException(status_code=404, detail="Queue entry not found")
        return {"status": "removed", "id": entry.id, "state": room.state()}

    @app.post("/api/rooms/{room_id}/queue/{index}/play-now")
    async def play_now(index: int, room: LiveRoom = Depends(get_room)):
        if room.controller.play_now(index):
            return {"status": "playing", "state": room.state()}
        return {"status": "ignored", "state": room.state()}

    @app.post("/api/rooms/{room_id}/queue/{index}/move-up")
    async def move_up(index: int, room: LiveRoom = Depends(get_room)):
        if room.controller.move_up(index):
            return {"status": "moved", "state": room.state()}
        raise HTTPException(status_code=400, detail="Only entries after the next one can be moved up")

    # Configuration
    @app.get("/api/config")
    async def get_config(user: User = Depends(require_user), config: ConfigManager = Depends(get_config_manager)):
        return {"values": config.get_all()}

    # Web UI
    @app.get("/live-room", response_class=HTMLResponse)
    async def live_room_page(
        request: Request,
        joinCode: str,
        stages: StageManager = Depends(get_stage_manager),
    ):
        """Serve the live-room page hosting the embeddable player."""
        stage_id = stages.lookup_stage_id(joinCode)
        if not stage_id:
            raise HTTPException(status_code=404, detail="No active stage with that join code")
        info = stages.get_stage_info(stage_id)
        return templates.TemplateResponse(
            request,
            "live_room.html",
            {"stage_id": stage_id, "stage_name": info["name"], "join_code": info["join_code"]},
        )

    return app

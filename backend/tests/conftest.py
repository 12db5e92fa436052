import json
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import jwt as pyjwt
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from triviaops.core.config import settings
from triviaops.core.database import Base, get_db, get_session_factory, import_models
from triviaops.models.edition import Edition, EditionItem
from triviaops.models.event import Event
from triviaops.models.event_round import EventRound, EventRoundItem
from triviaops.models.game import Game, GameType
from triviaops.models.location import Location
from triviaops.models.team import Team

EVENT_CODE = "4821"
PLACEHOLDER_TEAM_CODE = "0193"
NAMED_TEAM_CODE = "0555"
HOST_ID = "host-1"


@dataclass
class SeededEvent:
    event_id: int
    trivia_round_id: int
    music_round_id: int
    choice_item_id: int
    text_item_id: int
    audio_item_id: int
    placeholder_team_id: int
    named_team_id: int


# ============================================================================
# DATABASE
# ============================================================================

@pytest.fixture
def session_factory():
    """每个测试一个全新的内存数据库"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    import_models()
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
async def client(session_factory):
    """Create test client"""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ============================================================================
# SEED DATA
# ============================================================================

def seed_event(db: Session, public_code: str = EVENT_CODE, status: str = "live") -> SeededEvent:
    """活动：一轮选择题（进行中）+ 一轮音乐抢答（未开始），一个预置队伍和一个已命名队伍"""
    trivia_type = GameType(code="trivia", name="Trivia")
    music_type = GameType(code="music", name="Music")
    db.add_all([trivia_type, music_type])
    db.flush()

    location = Location(name="The Crown & Anchor")
    trivia_game = Game(name="Pub Trivia", game_type_id=trivia_type.id)
    music_game = Game(name="Name That Tune", game_type_id=music_type.id, allow_participant_audio_stop=True)
    db.add_all([location, trivia_game, music_game])
    db.flush()

    trivia_edition = Edition(game_id=trivia_game.id, title="General Knowledge", timer_seconds=30)
    music_edition = Edition(game_id=music_game.id, title="Seventies", timer_seconds=30)
    db.add_all([trivia_edition, music_edition])
    db.flush()

    choice_item = EditionItem(
        edition_id=trivia_edition.id,
        question_type="multiple_choice",
        choices_json=json.dumps(["Red", "Green", "Blue"]),
        prompt="What colour is the sky?",
        answer="Blue",
        fun_fact="Rayleigh scattering.",
        ordinal=1,
    )
    text_item = EditionItem(
        edition_id=trivia_edition.id,
        prompt="Name the largest ocean.",
        answer="Pacific",
        ordinal=2,
    )
    audio_item = EditionItem(
        edition_id=music_edition.id,
        question_type="text",
        prompt="Name the artist and the song.",
        answer="Queen - Bohemian Rhapsody",
        answer_parts_json=json.dumps([
            {"label": "Artist", "answer": "Queen"},
            {"label": "Song", "answer": "Bohemian Rhapsody"},
        ]),
        media_type="audio",
        media_key="audio/bohemian.mp3",
        ordinal=1,
    )
    db.add_all([choice_item, text_item, audio_item])
    db.flush()

    event = Event(
        title="Tuesday Trivia",
        public_code=public_code,
        status=status,
        location_id=location.id,
        host_user_id=HOST_ID,
    )
    db.add(event)
    db.flush()

    trivia_round = EventRound(
        event_id=event.id, round_number=1, label="General", status="live", edition_id=trivia_edition.id
    )
    music_round = EventRound(
        event_id=event.id, round_number=2, label="Music", status="planned", edition_id=music_edition.id
    )
    db.add_all([trivia_round, music_round])
    db.flush()

    db.add_all([
        EventRoundItem(event_round_id=trivia_round.id, edition_item_id=choice_item.id, ordinal=1),
        EventRoundItem(event_round_id=trivia_round.id, edition_item_id=text_item.id, ordinal=2),
        EventRoundItem(event_round_id=music_round.id, edition_item_id=audio_item.id, ordinal=1),
    ])

    placeholder = Team(event_id=event.id, name="Team 01", team_code=PLACEHOLDER_TEAM_CODE, team_placeholder=True)
    named = Team(event_id=event.id, name="Quizzly Bears", team_code=NAMED_TEAM_CODE)
    db.add_all([placeholder, named])
    db.commit()

    return SeededEvent(
        event_id=event.id,
        trivia_round_id=trivia_round.id,
        music_round_id=music_round.id,
        choice_item_id=choice_item.id,
        text_item_id=text_item.id,
        audio_item_id=audio_item.id,
        placeholder_team_id=placeholder.id,
        named_team_id=named.id,
    )


@pytest.fixture
def seeded(db) -> SeededEvent:
    return seed_event(db)


# ============================================================================
# HELPERS
# ============================================================================

def make_token(user_type: str = "host", sub: str = HOST_ID, secret: Optional[str] = None) -> str:
    return pyjwt.encode({"sub": sub, "user_type": user_type}, secret or settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(user_type: str = "host", sub: str = HOST_ID) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_type, sub)}"}


async def join_team(client: AsyncClient, team_code: str, team_name: Optional[str] = None, code: str = EVENT_CODE) -> Tuple[int, str]:
    body = {"team_code": team_code}
    if team_name is not None:
        body["team_name"] = team_name
    response = await client.post(f"/api/public/event/{code}/join", json=body)
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    return data["team"]["id"], data["session_token"]

import json
from datetime import datetime, timedelta, timezone

import pytest

from triviaops.core.errors import ApiError
from triviaops.models.edition import Edition, EditionItem
from triviaops.models.event_round import EventRound, EventRoundItem
from triviaops.models.game import Game
from triviaops.models.response import EventItemResponse
from triviaops.models.round_score import EventRoundScore
from triviaops.services.live_state_service import LiveStateService
from triviaops.services.public_event_service import PublicEventService

from conftest import EVENT_CODE

T0 = datetime(2024, 5, 1, 20, 0, 0, tzinfo=timezone.utc)
ANSWER_KEYS = {"answer", "answer_a", "answer_b", "answer_a_label", "answer_b_label", "answer_parts_json", "audio_answer_key"}


def go_live(db, seeded, **changes):
    values = {"active_round_id": seeded.trivia_round_id, "current_item_ordinal": 1}
    values.update(changes)
    return LiveStateService(db).upsert(seeded.event_id, values, start_timer=True, now=T0)


# ============================================================================
# REDACTION
# ============================================================================

def test_answers_hidden_until_revealed(db, seeded):
    go_live(db, seeded)
    payload = PublicEventService(db).build(EVENT_CODE)
    item = payload["current_item"]
    assert item["prompt"] == "What colour is the sky?"
    assert ANSWER_KEYS.isdisjoint(item)
    assert "fun_fact" not in item

    LiveStateService(db).upsert(seeded.event_id, {"reveal_answer": True})
    item = PublicEventService(db).build(EVENT_CODE)["current_item"]
    assert item["answer"] == "Blue"
    assert "fun_fact" not in item

    LiveStateService(db).upsert(seeded.event_id, {"reveal_fun_fact": True})
    item = PublicEventService(db).build(EVENT_CODE)["current_item"]
    assert item["fun_fact"] == "Rayleigh scattering."


def test_round_item_overrides_apply(db, seeded):
    round_item = db.query(EventRoundItem).filter_by(event_round_id=seeded.trivia_round_id, ordinal=1).one()
    round_item.overridden_prompt = "What colour is a clear daytime sky?"
    db.commit()
    go_live(db, seeded)
    item = PublicEventService(db).build(EVENT_CODE)["current_item"]
    assert item["prompt"] == "What colour is a clear daytime sky?"


def test_no_live_state(db, seeded):
    payload = PublicEventService(db).build(EVENT_CODE)
    assert payload["live"] is None
    assert payload["current_item"] is None
    assert payload["response_counts"] is None
    assert [team["name"] for team in payload["teams"]] == ["Team 01", "Quizzly Bears"]


def test_event_code_is_case_and_space_insensitive(db, seeded):
    payload = PublicEventService(db).build(f"  {EVENT_CODE} ")
    assert payload["event"]["public_code"] == EVENT_CODE
    assert payload["event"]["location_name"] == "The Crown & Anchor"


def test_unknown_event(db, seeded):
    with pytest.raises(ApiError) as exc_info:
        PublicEventService(db).build("0000")
    assert exc_info.value.status_code == 404


def test_current_item_shown_after_round_locked(db, seeded):
    go_live(db, seeded, reveal_answer=True)
    db.get(EventRound, seeded.trivia_round_id).status = "locked"
    db.commit()
    payload = PublicEventService(db).build(EVENT_CODE)
    assert payload["live"]["current_item_ordinal"] == 1
    assert payload["current_item"]["id"] == seeded.choice_item_id
    assert payload["current_item"]["answer"] == "Blue"


# ============================================================================
# VIEWS
# ============================================================================

def add_scores(db, seeded):
    db.add_all([
        EventRoundScore(event_round_id=seeded.trivia_round_id, team_id=seeded.placeholder_team_id, score=4),
        EventRoundScore(event_round_id=seeded.trivia_round_id, team_id=seeded.named_team_id, score=7),
        EventRoundScore(event_round_id=seeded.music_round_id, team_id=seeded.placeholder_team_id, score=5),
    ])
    db.commit()


def test_leaderboard_view(db, seeded):
    add_scores(db, seeded)
    go_live(db, seeded)
    payload = PublicEventService(db).build(EVENT_CODE, "leaderboard")
    assert payload["teams"] == []
    assert payload["current_item"] is None
    assert payload["visual_round"] is False
    assert payload["visual_items"] == []
    assert payload["response_counts"] is None
    assert [(row["name"], row["total"]) for row in payload["leaderboard"]] == [("Team 01", 9), ("Quizzly Bears", 7)]
    assert len(payload["round_scores"]) == 3


def test_play_view_leaderboard_only_when_waiting(db, seeded):
    add_scores(db, seeded)
    go_live(db, seeded)
    payload = PublicEventService(db).build(EVENT_CODE, "play")
    assert payload["leaderboard"] == []
    assert payload["round_scores"] == []

    LiveStateService(db).upsert(seeded.event_id, {"waiting_show_leaderboard": True})
    payload = PublicEventService(db).build(EVENT_CODE)
    assert payload["leaderboard"][0]["team_id"] == seeded.placeholder_team_id
    assert payload["round_scores"] == []


def test_unknown_view_falls_back_to_play(db, seeded):
    go_live(db, seeded)
    payload = PublicEventService(db).build(EVENT_CODE, "scoreboard")
    assert payload["current_item"] is not None
    assert len(payload["teams"]) == 2


def test_hidden_theme_uses_game_name(db, seeded):
    music_round = db.get(EventRound, seeded.music_round_id)
    db.get(Game, music_round.edition.game_id).show_theme = False
    db.commit()
    rounds = PublicEventService(db).build(EVENT_CODE)["rounds"]
    assert [r["label"] for r in rounds] == ["General", "Name That Tune"]
    assert rounds[0]["timer_seconds"] == 30


# ============================================================================
# VISUAL ROUNDS
# ============================================================================

def add_picture_round(db, seeded):
    trivia_round = db.get(EventRound, seeded.trivia_round_id)
    edition = Edition(game_id=trivia_round.edition.game_id, title="Picture Round", timer_seconds=20)
    db.add(edition)
    db.flush()
    items = [
        EditionItem(edition_id=edition.id, prompt=f"Who is this? #{n}", answer=f"Person {n}",
                    media_type="image", media_key=f"images/{n}.jpg", ordinal=n)
        for n in (1, 2)
    ]
    db.add_all(items)
    db.flush()
    picture_round = EventRound(event_id=seeded.event_id, round_number=3, label="Pictures",
                               status="live", edition_id=edition.id)
    db.add(picture_round)
    db.flush()
    db.add_all([
        EventRoundItem(event_round_id=picture_round.id, edition_item_id=items[0].id, ordinal=10),
        EventRoundItem(event_round_id=picture_round.id, edition_item_id=items[1].id, ordinal=20),
    ])
    db.commit()
    return picture_round.id


def test_visual_round(db, seeded):
    round_id = add_picture_round(db, seeded)
    LiveStateService(db).upsert(seeded.event_id, {"active_round_id": round_id, "current_item_ordinal": 20})
    payload = PublicEventService(db).build(EVENT_CODE)
    assert payload["visual_round"] is True
    assert [item["ordinal"] for item in payload["visual_items"]] == [10, 20]
    assert all("answer" not in item for item in payload["visual_items"])
    assert payload["current_item"]["ordinal"] == 20


def test_locked_picture_round_is_not_visual(db, seeded):
    round_id = add_picture_round(db, seeded)
    db.get(EventRound, round_id).status = "locked"
    db.commit()
    LiveStateService(db).upsert(seeded.event_id, {"active_round_id": round_id, "current_item_ordinal": 10})
    payload = PublicEventService(db).build(EVENT_CODE)
    assert payload["visual_round"] is False
    assert payload["visual_items"] == []
    assert payload["current_item"]["ordinal"] == 10


def test_mixed_round_is_not_visual(db, seeded):
    go_live(db, seeded)
    payload = PublicEventService(db).build(EVENT_CODE)
    assert payload["visual_round"] is False
    assert payload["visual_items"] == []


# ============================================================================
# RESPONSE COUNTS
# ============================================================================

def test_response_counts_after_timer_and_grace(db, seeded):
    go_live(db, seeded)
    for team_id, choice in ((seeded.placeholder_team_id, 2), (seeded.named_team_id, 2)):
        db.add(EventItemResponse(
            event_id=seeded.event_id,
            event_round_id=seeded.trivia_round_id,
            edition_item_id=seeded.choice_item_id,
            team_id=team_id,
            choice_index=choice,
            choice_text="Blue",
            submitted_at=T0,
        ))
    db.commit()

    service = PublicEventService(db)
    assert service.build(EVENT_CODE, now=T0 + timedelta(seconds=20))["response_counts"] is None
    assert service.build(EVENT_CODE, now=T0 + timedelta(seconds=35))["response_counts"] is None

    counts = service.build(EVENT_CODE, now=T0 + timedelta(seconds=36))["response_counts"]
    assert counts == {"total": 2, "counts": [0, 0, 2]}


def test_deleted_responses_not_counted(db, seeded):
    go_live(db, seeded)
    db.add(EventItemResponse(
        event_id=seeded.event_id,
        event_round_id=seeded.trivia_round_id,
        edition_item_id=seeded.choice_item_id,
        team_id=seeded.named_team_id,
        choice_index=0,
        choice_text="Red",
        deleted=True,
    ))
    db.commit()
    counts = PublicEventService(db).build(EVENT_CODE, now=T0 + timedelta(minutes=5))["response_counts"]
    assert counts == {"total": 0, "counts": [0, 0, 0]}


def test_text_item_has_no_counts(db, seeded):
    go_live(db, seeded, current_item_ordinal=2)
    payload = PublicEventService(db).build(EVENT_CODE, now=T0 + timedelta(minutes=5))
    assert payload["current_item"]["question_type"] == "text"
    assert payload["response_counts"] is None


# ============================================================================
# ENDPOINT
# ============================================================================

@pytest.mark.asyncio
async def test_public_event_endpoint(client, seeded, db):
    go_live(db, seeded)
    response = await client.get(f"/api/public/event/{EVENT_CODE}")
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["data"]["live"]["timer_started_at"] == "2024-05-01T20:00:00Z"
    assert json.loads(body["data"]["current_item"]["choices_json"]) == ["Red", "Green", "Blue"]
    assert response.headers["x-request-id"]


@pytest.mark.asyncio
async def test_public_event_not_found(client, seeded):
    response = await client.get("/api/public/event/0000", headers={"x-request-id": "req-12345678"})
    assert response.status_code == 404
    assert response.json() == {"ok": False, "error": {"code": "not_found", "message": "活动不存在"}}
    assert response.headers["x-request-id"] == "req-12345678"

"""
轮次题目查询（题面覆盖在模板题目之上）
"""

from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Row
from sqlalchemy.orm import Session

from triviaops.models.edition import EditionItem
from triviaops.models.event_round import EventRoundItem


def _round_item_select():
    return (
        select(
            EditionItem.id,
            EditionItem.question_type,
            EditionItem.choices_json,
            func.coalesce(EventRoundItem.overridden_prompt, EditionItem.prompt).label("prompt"),
            func.coalesce(EventRoundItem.overridden_answer, EditionItem.answer).label("answer"),
            EditionItem.answer_a,
            EditionItem.answer_b,
            EditionItem.answer_a_label,
            EditionItem.answer_b_label,
            EditionItem.answer_parts_json,
            func.coalesce(EventRoundItem.overridden_fun_fact, EditionItem.fun_fact).label("fun_fact"),
            EditionItem.media_type,
            EditionItem.media_key,
            EditionItem.media_caption,
            EditionItem.audio_answer_key,
            EventRoundItem.ordinal,
        )
        .join(EditionItem, EditionItem.id == EventRoundItem.edition_item_id)
        .where(EventRoundItem.deleted.is_(False))
    )


def round_items(db: Session, round_id: int) -> List[Row]:
    """某轮全部题目，按序号排列"""
    query = _round_item_select().where(EventRoundItem.event_round_id == round_id).order_by(EventRoundItem.ordinal)
    return list(db.execute(query).all())


def item_at(db: Session, round_id: int, ordinal: int) -> Optional[Row]:
    """按精确序号定位题目（序号可能不连续）"""
    query = _round_item_select().where(
        EventRoundItem.event_round_id == round_id,
        EventRoundItem.ordinal == ordinal,
    )
    return db.execute(query.limit(1)).first()

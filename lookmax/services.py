"""Операции над хранилищем: снимок для фронтенда и шесть типов POST-запросов."""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas
from .config import get_settings
from .errors import ApiError
from .security import AdminPolicy

logger = logging.getLogger(__name__)

BAD_REQUEST = "Bad request"
BOOST_SCORE = 5


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 в UTC с миллисекундами: 2026-10-18T09:55:00.123Z"""
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any) -> Optional[datetime]:
    try:
        moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _validate(schema, data: dict, message: str):
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        logger.warning(
            "Rejected %s payload: %s",
            data.get("type"),
            exc.errors(include_url=False, include_input=False),
        )
        raise ApiError(code="bad_request", message=message, status=400)


def _score(value: float):
    # целые оценки отдаём как 5, а не 5.0
    return int(value) if float(value).is_integer() else value


def _merge_with_retry(db: Session, instance) -> None:
    try:
        db.merge(instance)
        db.commit()
    except IntegrityError:
        # параллельный запрос успел вставить ту же строку, обновляем её
        db.rollback()
        db.merge(instance)
        db.commit()


# --- Чтение ---


def get_snapshot(db: Session) -> schemas.Snapshot:
    candidates = (
        db.query(models.Candidate)
        .filter(models.Candidate.approved == models.APPROVED)
        .all()
    )
    votes = db.query(models.Vote).order_by(models.Vote.id).all()
    comments = db.query(models.Comment).order_by(models.Comment.id).all()
    nicknames = {user.email: user.nickname for user in db.query(models.User).all()}

    return schemas.Snapshot(
        candidates=[schemas.CandidateOut.model_validate(c) for c in candidates],
        votes=[(v.candidate_id, _score(v.score), v.date, v.email) for v in votes],
        comments=[
            (
                c.candidate_id,
                nicknames.get(c.email) or c.author,
                c.text,
                c.date,
                c.email,
            )
            for c in comments
        ],
    )


# --- Запись ---


def cast_vote(db: Session, data: dict) -> str:
    vote = _validate(schemas.VoteIn, data, BAD_REQUEST)
    now = format_timestamp(utcnow())

    existing = (
        db.query(models.Vote)
        .filter(
            models.Vote.candidate_id == vote.target_id,
            models.Vote.email == vote.user_email,
        )
        .first()
    )
    if existing:
        existing.score = vote.rating
        existing.date = now
        db.commit()
        logger.info("Vote updated: candidate=%s score=%s", vote.target_id, vote.rating)
        return "Vote updated"

    db.add(
        models.Vote(
            candidate_id=vote.target_id,
            score=vote.rating,
            date=now,
            email=vote.user_email,
        )
    )
    db.commit()
    logger.info("Vote saved: candidate=%s score=%s", vote.target_id, vote.rating)
    return "Vote saved"


def post_comment(db: Session, data: dict) -> str:
    comment = _validate(schemas.CommentIn, data, BAD_REQUEST)
    cooldown_ms = get_settings().comment_cooldown_ms
    now = utcnow()

    last = (
        db.query(models.Comment.date)
        .filter(models.Comment.email == comment.user_email)
        .order_by(models.Comment.id.desc())
        .first()
    )
    if last:
        last_at = parse_timestamp(last.date)
        if last_at is not None and (now - last_at).total_seconds() * 1000 < cooldown_ms:
            raise ApiError(
                code="rate_limited", message="Wait before commenting", status=429
            )

    db.add(
        models.Comment(
            candidate_id=comment.target_id,
            text=comment.text,
            author=comment.user_name,
            date=format_timestamp(now),
            email=comment.user_email,
        )
    )
    db.commit()
    logger.info("Comment saved: candidate=%s", comment.target_id)
    return "Comment saved"


def upsert_candidate(db: Session, data: dict) -> str:
    candidate = _validate(schemas.CandidateIn, data, BAD_REQUEST)
    # любое изменение снова требует одобрения
    _merge_with_retry(
        db,
        models.Candidate(
            id=candidate.id,
            name=candidate.name,
            photo=candidate.photo,
            description=candidate.description,
            tg=candidate.tg,
            music=candidate.music,
            approved=models.NOT_APPROVED,
        ),
    )
    logger.info("Candidate upserted: id=%s", candidate.id)
    return "Success"


def boost_votes(db: Session, data: dict) -> str:
    boost = _validate(schemas.BoostIn, data, "Invalid parameters")
    now = format_timestamp(utcnow())

    # одна транзакция: либо все строки, либо ни одной
    db.add_all(
        [
            models.Vote(
                candidate_id=boost.target_id,
                score=BOOST_SCORE,
                date=now,
                email=models.ADMIN_IDENTITY,
            )
            for _ in range(boost.count)
        ]
    )
    db.commit()
    logger.info("Boost applied: candidate=%s count=%d", boost.target_id, boost.count)
    return f"Boost applied: {boost.count} votes"


def register_user(db: Session, data: dict) -> str:
    user = _validate(schemas.UserIn, data, "Missing email or nickname")

    existing = db.get(models.User, user.email)
    if existing:
        existing.nickname = user.nickname
        db.commit()
        logger.info("User updated")
        return "User updated"

    db.add(models.User(email=user.email, nickname=user.nickname))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        db.merge(models.User(email=user.email, nickname=user.nickname))
        db.commit()
        logger.info("User updated")
        return "User updated"
    logger.info("User saved")
    return "User saved"


Operation = Callable[[Session, dict], str]

# type -> (операция, требуется ли ключ администратора)
OPERATIONS: dict[str, tuple[Operation, bool]] = {
    "vote": (cast_vote, False),
    "comment": (post_comment, False),
    "add_candidate": (upsert_candidate, True),
    "admin_boost": (boost_votes, True),
    "user": (register_user, False),
    "user_register": (register_user, False),
}


def dispatch(db: Session, data: Any, policy: AdminPolicy) -> str:
    kind = data.get("type") if isinstance(data, dict) else None
    entry = OPERATIONS.get(kind) if isinstance(kind, str) else None
    if entry is None:
        raise ApiError(code="unknown_type", message="Unknown type", status=400)

    operation, admin_only = entry
    if admin_only and not policy.allows(data.get("auth")):
        raise ApiError(
            code="forbidden", message="Forbidden: Wrong Auth Key", status=403
        )
    return operation(db, data)

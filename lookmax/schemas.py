import math
import re
from typing import Optional, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StringConstraints,
    model_validator,
)
from typing_extensions import Annotated

from .models import GUEST

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)", re.ASCII)


def guest_if_empty(value):
    return str(value) if value else GUEST


def empty_if_missing(value):
    return str(value) if value else ""


def parse_target_id(value) -> str:
    """Идентификатор кандидата: непустая строка или ненулевое число."""
    if value is None or isinstance(value, bool):
        raise ValueError("identifier is required")
    if isinstance(value, float):
        if not math.isfinite(value) or value == 0:
            raise ValueError("identifier is required")
        return str(int(value)) if value.is_integer() else str(value)
    if isinstance(value, int):
        if value == 0:
            raise ValueError("identifier is required")
        return str(value)
    if isinstance(value, str) and value:
        return value
    raise ValueError("identifier is required")


def encodable(value: str) -> str:
    """Отсекает строки с одиночными суррогатами: их нельзя записать в UTF-8."""
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        raise ValueError("text is not valid UTF-8")
    return value


def parse_rating(value) -> float:
    if value is None or isinstance(value, bool):
        raise ValueError("rating must be a number")
    if isinstance(value, str):
        value = value.strip()
        # только ASCII-запись числа, без "_" и цифр других алфавитов
        if not value or not value.isascii() or "_" in value:
            raise ValueError("rating must be a number")
    elif not isinstance(value, (int, float)):
        raise ValueError("rating must be a number")
    try:
        number = float(value)
    except OverflowError:
        # целое вне диапазона float: в JS это Infinity
        raise ValueError("rating must be finite")
    if not math.isfinite(number):
        raise ValueError("rating must be finite")
    return number


def parse_count(value) -> int:
    """Целое по ведущим цифрам ("3 votes" -> 3), иначе 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        return int(match.group(1)) if match else 0
    return 0


NonEmptyStr = Annotated[
    str, StringConstraints(min_length=1), AfterValidator(encodable)
]
GuestStr = Annotated[str, BeforeValidator(guest_if_empty), AfterValidator(encodable)]
OptionalText = Annotated[
    str, BeforeValidator(empty_if_missing), AfterValidator(encodable)
]
TargetId = Annotated[str, BeforeValidator(parse_target_id), AfterValidator(encodable)]
Rating = Annotated[float, BeforeValidator(parse_rating)]
Count = Annotated[int, BeforeValidator(parse_count)]


class Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class VoteIn(Payload):
    user_email: GuestStr = Field(GUEST, alias="userEmail")
    target_id: TargetId = Field(alias="targetId")
    rating: Rating


class CommentIn(Payload):
    user_email: GuestStr = Field(GUEST, alias="userEmail")
    target_id: TargetId = Field(alias="targetId")
    text: NonEmptyStr
    user_name: GuestStr = Field(GUEST, alias="userName")


class CandidateIn(Payload):
    id: TargetId
    name: NonEmptyStr
    photo: OptionalText = ""
    description: OptionalText = ""
    tg: OptionalText = ""
    music: OptionalText = ""


class BoostIn(Payload):
    target_id: TargetId = Field(alias="targetId")
    count: Count = Field(gt=0)


class UserIn(Payload):
    email: NonEmptyStr
    nickname: NonEmptyStr

    @model_validator(mode="before")
    @classmethod
    def merge_field_names(cls, data):
        # Клиенты присылают либо userEmail/nickname, либо email/userName
        if isinstance(data, dict):
            return {
                "email": data.get("userEmail") or data.get("email") or "",
                "nickname": data.get("nickname") or data.get("userName") or "",
            }
        return data


class CandidateOut(BaseModel):
    id: str
    name: str
    photo: OptionalText = ""
    description: OptionalText = ""
    tg: OptionalText = ""
    music: OptionalText = ""

    model_config = {"from_attributes": True}


Score = Union[int, float]


class Snapshot(BaseModel):
    candidates: list[CandidateOut]
    # [candidate_id, score, date, email]
    votes: list[tuple[str, Score, str, str]]
    # [candidate_id, displayName, text, date, email]
    comments: list[tuple[str, Optional[str], str, str, str]]

from sqlalchemy import Column, Float, Integer, String, Text

from .database import Base

APPROVED = "ДА"
NOT_APPROVED = "НЕТ"

GUEST = "Гость"
ADMIN_IDENTITY = "Admin"


class Candidate(Base):
    __tablename__ = "candidates"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    photo = Column(Text)
    description = Column(Text)
    tg = Column(String)
    approved = Column(String, nullable=False, default=NOT_APPROVED)  # "ДА" / "НЕТ"
    music = Column(Text)


class Vote(Base):
    __tablename__ = "votes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Ссылка на кандидата не проверяется на уровне БД
    candidate_id = Column(String, index=True, nullable=False)
    score = Column(Float, nullable=False)
    date = Column(String, nullable=False)
    # Без ограничения уникальности: admin_boost пишет много строк от "Admin"
    email = Column(String, index=True, nullable=False, default=GUEST)


class Comment(Base):
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    candidate_id = Column(String, index=True, nullable=False)
    text = Column(Text, nullable=False)
    author = Column(String)
    date = Column(String, nullable=False)
    email = Column(String, index=True, nullable=False, default=GUEST)


class User(Base):
    __tablename__ = "users"

    email = Column(String, primary_key=True)
    nickname = Column(String, nullable=False)

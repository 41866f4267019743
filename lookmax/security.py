"""Проверка прав администратора.

Операции add_candidate и admin_boost принимают поле ``auth``. Решение о
доступе принимает политика ``AdminPolicy``, поэтому способ проверки можно
заменить, не трогая сами операции.
"""

import secrets
from typing import Any, Protocol

import bcrypt

from .config import get_settings


class AdminPolicy(Protocol):
    def allows(self, credential: Any) -> bool: ...


class SharedKeyPolicy:
    """Точное совпадение с общим ключом. Пустой ключ запрещает всё."""

    def __init__(self, key: str):
        self._key = key.encode("utf-8")

    def allows(self, credential: Any) -> bool:
        if not self._key or not isinstance(credential, str):
            return False
        try:
            candidate = credential.encode("utf-8")
        except UnicodeEncodeError:
            return False
        return secrets.compare_digest(candidate, self._key)


class HashedKeyPolicy:
    """Ключ хранится только в виде bcrypt-хеша (ADMIN_KEY_HASH)."""

    def __init__(self, key_hash: str):
        self._key_hash = key_hash.encode("utf-8")

    def allows(self, credential: Any) -> bool:
        if not isinstance(credential, str) or not credential:
            return False
        try:
            candidate = credential.encode("utf-8")
        except UnicodeEncodeError:
            return False
        try:
            return bcrypt.checkpw(candidate, self._key_hash)
        except ValueError:
            # некорректный хеш в настройках
            return False


def hash_admin_key(key: str) -> str:
    return bcrypt.hashpw(key.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def get_admin_policy() -> AdminPolicy:
    settings = get_settings()
    if settings.admin_key_hash:
        return HashedKeyPolicy(settings.admin_key_hash)
    return SharedKeyPolicy(settings.admin_key)


if __name__ == "__main__":
    import sys

    if len(sys.argv) != 2:
        sys.exit("usage: python -m lookmax.security <admin-key>")
    print(hash_admin_key(sys.argv[1]))

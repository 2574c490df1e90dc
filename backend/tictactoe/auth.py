"""
Проверка Telegram Web App initData.
https://core.telegram.org/bots/webapps#validating-data-received-via-the-mini-app
"""
import hashlib
import hmac
import json
import time
from urllib.parse import parse_qsl

from .config import get_config


def validate_init_data(init_data: str, now: float | None = None) -> dict | None:
    """
    Проверяет подпись и свежесть initData, возвращает данные пользователя или None.
    init_data — строка в формате query string из Telegram.WebApp.initData.
    """
    if not init_data:
        return None
    config = get_config()
    token = config.telegram_bot_token
    if not token:
        if config.debug:
            # В режиме отладки без токена принимаем тестовые данные
            return _parse_init_data_unsafe(init_data)
        return None

    try:
        parsed = dict(parse_qsl(init_data, strict_parsing=True))
    except ValueError:
        return None

    hash_from_tg = parsed.pop("hash", None)
    if not hash_from_tg:
        return None

    if not hmac.compare_digest(sign_data_check_string(parsed, token), hash_from_tg):
        return None

    auth_date = parsed.get("auth_date")
    if auth_date:
        try:
            age = (now if now is not None else time.time()) - int(auth_date)
        except ValueError:
            return None
        if age > config.auth_max_age_seconds:
            return None

    user = _parse_user_from_parsed(parsed)
    if not user or not is_allowed_user(user):
        return None
    return user


def sign_data_check_string(fields: dict, token: str) -> str:
    """HMAC-SHA256 от отсортированных пар key=value (без hash)."""
    data_check_string = "\n".join(
        f"{k}={v}" for k, v in sorted(fields.items())
    )
    secret_key = hmac.new(
        b"WebAppData",
        token.encode(),
        hashlib.sha256
    ).digest()
    return hmac.new(
        secret_key,
        data_check_string.encode(),
        hashlib.sha256
    ).hexdigest()


def is_allowed_user(user: dict) -> bool:
    """Положительный id и непустое имя; ботов не пускаем."""
    uid = user.get("id")
    if not isinstance(uid, int) or uid <= 0:
        return False
    first_name = (user.get("first_name") or "").strip()
    if not first_name:
        return False
    return "bot" not in first_name.lower()


def _parse_init_data_unsafe(init_data: str) -> dict | None:
    """Парсит init_data без проверки подписи (только для debug)."""
    try:
        parsed = dict(parse_qsl(init_data))
    except ValueError:
        return None
    return _parse_user_from_parsed(parsed)


def _parse_user_from_parsed(parsed: dict) -> dict | None:
    """Извлекает user из parsed (user — JSON строка)."""
    user_str = parsed.get("user")
    if not user_str:
        return None
    try:
        user = json.loads(user_str)
        return {
            "id": user.get("id"),
            "first_name": user.get("first_name", ""),
            "last_name": user.get("last_name", ""),
            "username": user.get("username", ""),
        }
    except (json.JSONDecodeError, TypeError, AttributeError):
        return None

"""
Marketing attribution: UTM-метки и click id с входного URL.

Параметры снимаются один раз на landing и сохраняются под ключом
quiz_utms. Дальше они:
- возвращаются на URL без query string при навигации (ensure_attribution)
- дописываются к outbound checkout URL (build_checkout_url)

Инвариант: метки, присутствовавшие на входе в сессию, присутствуют
в итоговой ссылке на оплату.
"""

from typing import Dict, Iterable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from src.feature_flags import flags
from src.logger import logger
from src.settings import settings
from src.storage import KeyValueStorage


STORAGE_KEY = "quiz_utms"


def tracked_params(config=None) -> tuple:
    """utm_* в порядке настроек, затем click id"""
    config = config or settings.attribution
    return tuple(config.get("utm_params", [])) + tuple(config.get("click_ids", []))


def extract_attribution(url: str, keys: Optional[Iterable[str]] = None) -> Dict[str, str]:
    """Непустые отслеживаемые параметры из query string url"""
    keys = tuple(keys) if keys is not None else tracked_params()
    query = dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))
    return {key: query[key] for key in keys if query.get(key)}


def capture_attribution(url: str, storage: KeyValueStorage) -> Dict[str, str]:
    """
    Снять метки с входного URL и сохранить их.

    Сохраняет только если найден хотя бы один параметр: заход без меток
    не затирает ранее сохранённую атрибуцию.

    Returns:
        Найденные параметры (пустой dict, если меток нет)
    """
    if not flags.attribution_capture:
        return {}
    utms = extract_attribution(url)
    if utms:
        storage.set_json(STORAGE_KEY, utms)
        logger.info("Attribution captured", params=sorted(utms))
    else:
        logger.debug("No attribution params in entry URL")
    return utms


def load_attribution(storage: KeyValueStorage) -> Dict[str, str]:
    data = storage.get_json(STORAGE_KEY, default={})
    if not isinstance(data, dict):
        logger.warning("Stored attribution is not a mapping, ignoring")
        return {}
    return {str(k): str(v) for k, v in data.items() if v is not None}


def ensure_attribution(url: str, storage: KeyValueStorage) -> str:
    """
    Вернуть сохранённые метки на URL без query string.

    URL с любым query остаётся как есть.
    """
    utms = load_attribution(storage)
    parts = urlsplit(url)
    if not utms or parts.query:
        return url
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(utms), parts.fragment))


def build_checkout_url(base_url: str, attribution: Dict[str, str]) -> str:
    """Checkout URL с атрибуцией; метки перезаписывают одноимённые параметры base_url"""
    if not attribution:
        return base_url
    parts = urlsplit(base_url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query.update(attribution)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))

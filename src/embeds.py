"""
Медиа-эффекты: идемпотентные видео-эмбеды и звук клавиш.

Phase2 и оффер просят смонтировать по одному media id. Реестр
гарантирует, что id монтируется не больше одного раза за сессию,
сколько бы ни было перерисовок и повторных входов.
"""

from typing import Callable, List, Optional

from src.feature_flags import feature_flag, flags
from src.logger import logger


MountCallback = Callable[[str], None]


class VideoEmbedRegistry:
    """Учёт смонтированных media id, первый запрос уходит в mount"""

    def __init__(self, mount: Optional[MountCallback] = None):
        self._mount = mount
        self._mounted: List[str] = []

    @property
    def mounted(self) -> List[str]:
        return list(self._mounted)

    def is_mounted(self, media_id: str) -> bool:
        return media_id in self._mounted

    def request_mount(self, media_id: str) -> bool:
        """
        Смонтировать media_id, если он ещё не монтировался.

        True только для запроса, который действительно смонтировал.
        Ошибка mount логируется, но id всё равно считается смонтированным:
        плеер не вставляется дважды.
        """
        if not flags.video_embeds:
            return False
        if media_id in self._mounted:
            logger.debug("Embed already mounted", media_id=media_id)
            return False

        self._mounted.append(media_id)
        if self._mount is not None:
            try:
                self._mount(media_id)
            except Exception as exc:
                logger.warning("Video embed failed", media_id=media_id, error=str(exc))
                return False
        logger.info("Video embed mounted", media_id=media_id)
        return True


@feature_flag("sound_effects", default_return=False)
def play_key_sound(sound: Optional[Callable[[], None]] = None) -> bool:
    """Звук клика по кнопке, только при включённом sound_effects"""
    if sound is None:
        return False
    try:
        sound()
    except Exception as exc:
        logger.debug("Key sound failed", error=str(exc))
        return False
    return True

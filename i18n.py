import json
import locale
import os
from typing import Any, Dict, List

_current_lang = None
_translations: Dict[str, Dict[str, str]] = {}
_fallback_lang = "en"

LOCALES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "locales")


def detect_system_language() -> str:
    # ('ko_KR', 'UTF-8') -> 'ko'
    lang = None
    try:
        lang = locale.getlocale()[0]
    except ValueError:
        pass
    if not lang:
        lang = os.environ.get("LANG", "")
    if not lang or lang in ("C", "POSIX") or lang.startswith("C."):
        return _fallback_lang
    return lang.split("_")[0].split(".")[0].lower()


def set_language(lang: str):
    global _current_lang
    _current_lang = lang


def get_language() -> str:
    return _current_lang or detect_system_language()


def available_languages() -> List[str]:
    """locales/ 에서 읽어 들인 언어 코드 목록"""
    return sorted(_translations)


def load_locales(locales_dir: str = LOCALES_DIR):
    global _translations
    _translations.clear()
    if not os.path.isdir(locales_dir):
        return
    for fname in os.listdir(locales_dir):
        if not fname.endswith('.json'):
            continue
        lang = os.path.splitext(fname)[0]
        path = os.path.join(locales_dir, fname)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                _translations[lang] = json.load(f)
        except (OSError, json.JSONDecodeError):
            _translations[lang] = {}


def translate(key: str, **vars: Any) -> str:
    lang = get_language()
    entry = None

    if lang in _translations:
        entry = _translations[lang].get(key)
    if entry is None and _fallback_lang in _translations:
        entry = _translations[_fallback_lang].get(key)

    if entry is None:
        # 번역이 없으면 키를 그대로 사용
        entry = key

    try:
        return entry.format(**vars)
    except (KeyError, IndexError, ValueError):
        # 변수가 부족해 포맷에 실패하면 원문 반환
        return entry


# Convenience alias
_ = translate
t = translate

load_locales()

"""
공용 테스트 설정 - 프로젝트 루트의 모듈들을 import 할 수 있게 합니다.
"""
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

import i18n


@pytest.fixture(autouse=True)
def english_messages():
    """메시지 언어를 영어로 고정하고 테스트 후 원래대로 돌립니다."""
    previous = i18n._current_lang
    i18n.set_language("en")
    yield
    i18n.set_language(previous)

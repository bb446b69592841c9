"""ドメイン定数のテスト"""

from prompt_optimizer_core.domain.constants import (
    DEFAULT_COMPARE_TYPES,
    DEFAULT_TEST_MODELS,
    DOCUMENT_TYPE_HINTS,
    DROPDOWN_FIELD_TYPES,
    FIELD_TYPE_ALIASES,
    NOT_PRESENT_VALUE,
    PROMPT_GENERATION_MODELS,
)
from prompt_optimizer_core.domain.value_objects import CompareType


def test_default_test_models_non_empty():
    """DEFAULT_TEST_MODELSが空でないリストであること"""
    assert isinstance(DEFAULT_TEST_MODELS, list)
    assert len(DEFAULT_TEST_MODELS) > 0


def test_prompt_generation_models_non_empty():
    """PROMPT_GENERATION_MODELSが空でないリストであること"""
    assert len(PROMPT_GENERATION_MODELS) > 0


def test_not_present_value():
    """NOT_PRESENT_VALUEが正しい値であること"""
    assert NOT_PRESENT_VALUE == "Not Present"


def test_compare_types_are_valid():
    """DEFAULT_COMPARE_TYPESの各値がCompareTypeとして有効であること"""
    for field_type, compare_type in DEFAULT_COMPARE_TYPES.items():
        assert CompareType(compare_type), f"{field_type} has invalid compare type"


def test_aliases_point_to_known_types():
    """FIELD_TYPE_ALIASESの変換先がDEFAULT_COMPARE_TYPESに存在すること"""
    for alias, field_type in FIELD_TYPE_ALIASES.items():
        assert field_type in DEFAULT_COMPARE_TYPES, f"{alias} -> {field_type} has no compare type"


def test_document_type_hints_have_keywords():
    """DOCUMENT_TYPE_HINTSの各エントリが小文字のキーワードを持つこと"""
    for keywords, label in DOCUMENT_TYPE_HINTS:
        assert keywords, f"{label} has no keywords"
        assert all(k == k.lower() for k in keywords)


def test_dropdown_field_types():
    """DROPDOWN_FIELD_TYPESにenumとmultiSelectが含まれること"""
    assert "enum" in DROPDOWN_FIELD_TYPES
    assert "multiSelect" in DROPDOWN_FIELD_TYPES

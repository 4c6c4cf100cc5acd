"""
Utility functions for recordserver.

Includes:
- Case conversion (camelCase <-> dash-case, PascalCase)
- English pluralization rules used by the schema inflection tables
- Deep merge of configuration dicts
"""

from __future__ import annotations

import re
from typing import Any


# =============================================================================
# Case conversion utilities
# =============================================================================

_ACRONYM_BOUNDARY_PATTERN = re.compile(r'([A-Z]+)([A-Z][a-z])')
_CAMEL_BOUNDARY_PATTERN = re.compile(r'(?<=[a-z0-9])(?=[A-Z])')
_DASH_TO_CAMEL_PATTERN = re.compile(r'[-_]([a-z0-9])')


def dasherize(name: str) -> str:
    """
    Convert camelCase to dash-case.

    Examples:
        createdAt -> created-at
        typedModels -> typed-models
        someHTTPValue -> some-http-value
    """
    result = _ACRONYM_BOUNDARY_PATTERN.sub(r'\1-\2', name)
    result = _CAMEL_BOUNDARY_PATTERN.sub('-', result)
    return result.replace('_', '-').lower()


def camelize(name: str) -> str:
    """
    Convert dash-case (or snake_case) to camelCase.

    Examples:
        created-at -> createdAt
        typed-models -> typedModels
    """
    return _DASH_TO_CAMEL_PATTERN.sub(lambda match: match.group(1).upper(), name)


def classify(name: str) -> str:
    """
    Convert a record type to a class-style name.

    Examples:
        planet -> Planet
        typedModel -> TypedModel
        typed-model -> TypedModel
    """
    camel = camelize(name)
    return camel[0].upper() + camel[1:] if camel else camel


def underscore(name: str) -> str:
    """Convert camelCase or dash-case to snake_case (SQL identifiers)."""
    return dasherize(name).replace('-', '_')


# =============================================================================
# Inflection
# =============================================================================

_IRREGULAR_PLURALS = {
    "person": "people",
    "child": "children",
    "man": "men",
    "woman": "women",
    "mouse": "mice",
    "goose": "geese",
}
_IRREGULAR_SINGULARS = {plural: singular for singular, plural in _IRREGULAR_PLURALS.items()}
_UNCOUNTABLE = {"equipment", "information", "series", "species", "news", "data"}


def _split_last_word(word: str) -> tuple[str, str]:
    # Inflect only the trailing word of a camelCase name.
    match = re.search(r'([A-Z]?[a-z0-9]*)$', word)
    start = match.start() if match and match.group(0) else 0
    return word[:start], word[start:]


def _keep_case(template: str, replacement: str) -> str:
    if template[:1].isupper():
        return replacement[:1].upper() + replacement[1:]
    return replacement


def pluralize(word: str) -> str:
    """
    Pluralize an English noun.

    Examples:
        planet -> planets
        category -> categories
        typedModel -> typedModels
        address -> addresses
    """
    prefix, last = _split_last_word(word)
    lower = last.lower()
    if not lower or lower in _UNCOUNTABLE:
        return word
    if lower in _IRREGULAR_PLURALS:
        return prefix + _keep_case(last, _IRREGULAR_PLURALS[lower])
    if lower.endswith('y') and lower[-2:-1] not in ('a', 'e', 'i', 'o', 'u'):
        return prefix + last[:-1] + 'ies'
    if lower.endswith(('s', 'x', 'z', 'ch', 'sh')):
        return prefix + last + 'es'
    return prefix + last + 's'


def singularize(word: str) -> str:
    """
    Singularize an English noun.

    Examples:
        planets -> planet
        categories -> category
        typedModels -> typedModel
        addresses -> address
    """
    prefix, last = _split_last_word(word)
    lower = last.lower()
    if not lower or lower in _UNCOUNTABLE:
        return word
    if lower in _IRREGULAR_SINGULARS:
        return prefix + _keep_case(last, _IRREGULAR_SINGULARS[lower])
    if lower.endswith('ies') and len(lower) > 3:
        return prefix + last[:-3] + 'y'
    if lower.endswith(('sses', 'xes', 'zes', 'ches', 'shes')):
        return prefix + last[:-2]
    if lower.endswith('s') and not lower.endswith('ss'):
        return prefix + last[:-1]
    return word


# =============================================================================
# Dict helpers
# =============================================================================


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Recursively merge two dicts, values from `override` win.

    Neither input is modified.
    """
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result

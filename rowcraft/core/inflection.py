"""Naming conventions — case conversion and English pluralisation for table names.

Invariants:
    - Pure string functions; no IO, no state
    - class_to_table_name("BlogPost") == "blog_posts"
    - Rules are tried top to bottom, first match wins
"""

import re


_PLURAL_RULES: list[tuple[str, str]] = [
    (r"(?i)person$", "people"),
    (r"(?i)child$", "children"),
    (r"(?i)(quiz)$", r"\1zes"),
    (r"(?i)^(ox)$", r"\1en"),
    (r"(?i)([ml])ouse$", r"\1ice"),
    (r"(?i)(matr|vert|ind)(?:ix|ex)$", r"\1ices"),
    (r"(?i)(x|ch|ss|sh)$", r"\1es"),
    (r"(?i)([^aeiouy]|qu)y$", r"\1ies"),
    (r"(?i)(hive)$", r"\1s"),
    (r"(?i)(?:([^f])fe|([lr])f)$", r"\1\2ves"),
    (r"(?i)sis$", "ses"),
    (r"(?i)([ti])um$", r"\1a"),
    (r"(?i)(buffal|tomat)o$", r"\1oes"),
    (r"(?i)(bu)s$", r"\1ses"),
    (r"(?i)(alias|status)$", r"\1es"),
    (r"(?i)(octop|vir)us$", r"\1i"),
    (r"(?i)(ax|test)is$", r"\1es"),
    (r"(?i)s$", "s"),
]

_SINGULAR_RULES: list[tuple[str, str]] = [
    (r"(?i)people$", "person"),
    (r"(?i)children$", "child"),
    (r"(?i)(quiz)zes$", r"\1"),
    (r"(?i)(matr)ices$", r"\1ix"),
    (r"(?i)(vert|ind)ices$", r"\1ex"),
    (r"(?i)^(ox)en", r"\1"),
    (r"(?i)(alias|status)es$", r"\1"),
    (r"(?i)(octop|vir)i$", r"\1us"),
    (r"(?i)(cris|ax|test)es$", r"\1is"),
    (r"(?i)(shoe)s$", r"\1"),
    (r"(?i)(o)es$", r"\1"),
    (r"(?i)(bus)es$", r"\1"),
    (r"(?i)([ml])ice$", r"\1ouse"),
    (r"(?i)(x|ch|ss|sh)es$", r"\1"),
    (r"(?i)(m)ovies$", r"\1ovie"),
    (r"(?i)(s)eries$", r"\1eries"),
    (r"(?i)([^aeiouy]|qu)ies$", r"\1y"),
    (r"(?i)([lr])ves$", r"\1f"),
    (r"(?i)(tive)s$", r"\1"),
    (r"(?i)(hive)s$", r"\1"),
    (r"(?i)([^f])ves$", r"\1fe"),
    (r"(?i)(^analy)ses$", r"\1sis"),
    (r"(?i)((a)naly|(b)a|(d)iagno|(p)arenthe|(p)rogno|(s)ynop|(t)he)ses$", r"\1sis"),
    (r"(?i)([ti])a$", r"\1um"),
    (r"(?i)(n)ews$", r"\1ews"),
    (r"(?i)s$", ""),
]


def to_snake_case(name: str) -> str:
    """camelCase / PascalCase -> snake_case. Already-snake names pass through."""
    return re.sub(r"([A-Z])", r"_\1", name).lower().lstrip("_")


def to_camel_case(name: str) -> str:
    """snake_case -> camelCase."""
    return re.sub(r"_([a-z])", lambda m: m.group(1).upper(), name)


def _apply_rules(word: str, rules: list[tuple[str, str]]) -> str | None:
    for pattern, replacement in rules:
        if re.search(pattern, word):
            # Unmatched optional groups substitute as empty strings
            return re.sub(pattern, replacement, word, count=1)
    return None


def pluralize(word: str) -> str:
    result = _apply_rules(word, _PLURAL_RULES)
    return result if result is not None else word + "s"


def singularize(word: str) -> str:
    result = _apply_rules(word, _SINGULAR_RULES)
    return result if result is not None else word


def class_to_table_name(class_name: str) -> str:
    """User -> users, BlogPost -> blog_posts, Person -> people."""
    return pluralize(to_snake_case(class_name))

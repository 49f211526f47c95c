"""
Highlighting themes.

A theme is a lookup table from a closed set of token categories to a style.
Themes come from three places:
- the two Catppuccin flavours shipped here as TextMate-style data
- every Pygments style, by name
- an external TextMate theme file (.tmTheme property list, or JSON with
  `tokenColors` / `settings`)
"""

from __future__ import annotations

import json
import logging
import pathlib
import plistlib
import re
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Any, Dict, List, Mapping, Tuple
from xml.parsers.expat import ExpatError

from pygments.styles import get_all_styles, get_style_by_name
from pygments.token import Comment, Keyword, Name, Number, Operator, Punctuation, String, Token

from .errors import ThemeNotFound, ThemeParseError

logger = logging.getLogger(__name__)

DEFAULT_THEME = "Catppuccin-Latte"
THEME_FILE_SUFFIXES = {".tmtheme", ".json", ".plist"}

_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{4}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


class TokenCategory(str, Enum):
    DEFAULT = "default"
    KEYWORD = "keyword"
    STRING = "string"
    COMMENT = "comment"
    NUMBER = "number"
    FUNCTION = "function"
    TYPE = "type"
    CONSTANT = "constant"
    VARIABLE = "variable"
    OPERATOR = "operator"
    PUNCTUATION = "punctuation"

    @property
    def css_class(self) -> str:
        return f"tok-{self.value}"


@dataclass(frozen=True)
class StyleRule:
    color: str | None = None
    background: str | None = None
    bold: bool = False
    italic: bool = False
    underline: bool = False

    def css(self) -> str:
        parts = []
        if self.color:
            parts.append(f"color: {self.color}")
        if self.background:
            parts.append(f"background-color: {self.background}")
        if self.bold:
            parts.append("font-weight: bold")
        if self.italic:
            parts.append("font-style: italic")
        if self.underline:
            parts.append("text-decoration: underline")
        return "; ".join(parts)


@dataclass(frozen=True)
class Theme:
    name: str
    foreground: str
    background: str
    rules: Mapping[TokenCategory, StyleRule] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if TokenCategory.DEFAULT not in self.rules:
            rules = dict(self.rules)
            rules[TokenCategory.DEFAULT] = StyleRule(color=self.foreground)
            object.__setattr__(self, "rules", rules)

    def style_for(self, category: TokenCategory) -> StyleRule:
        return self.rules.get(category, self.rules[TokenCategory.DEFAULT])

    @property
    def slug(self) -> str:
        return slugify(self.name)

    @cached_property
    def css(self) -> str:
        """Stylesheet for highlighted code, computed once per theme."""
        lines = [
            f":root {{ --code-fg: {self.foreground}; --code-bg: {self.background}; }}",
            f".highlight {{ color: {self.foreground}; background-color: {self.background}; }}",
        ]
        for category in TokenCategory:
            rule = self.rules.get(category)
            if rule is None:
                continue
            body = rule.css()
            if body:
                lines.append(f".highlight .{category.css_class} {{ {body}; }}")
        return "\n".join(lines) + "\n"


def slugify(name: str) -> str:
    # keep alnum, dash, underscore; replace others with '-'
    out = []
    for ch in name:
        if ch.isalnum() or ch in {"-", "_"}:
            out.append(ch)
        else:
            out.append("-")
    return "".join(out) or "theme"


# -- TextMate themes ---------------------------------------------------------

# scope prefix -> category; the longest matching prefix wins
SCOPE_CATEGORIES: Dict[str, TokenCategory] = {
    "comment": TokenCategory.COMMENT,
    "punctuation.definition.comment": TokenCategory.COMMENT,
    "string": TokenCategory.STRING,
    "punctuation.definition.string": TokenCategory.STRING,
    "constant": TokenCategory.CONSTANT,
    "constant.numeric": TokenCategory.NUMBER,
    "keyword": TokenCategory.KEYWORD,
    "storage": TokenCategory.KEYWORD,
    "keyword.operator": TokenCategory.OPERATOR,
    "storage.type": TokenCategory.TYPE,
    "entity.name.type": TokenCategory.TYPE,
    "entity.name.class": TokenCategory.TYPE,
    "support.type": TokenCategory.TYPE,
    "support.class": TokenCategory.TYPE,
    "entity.name.function": TokenCategory.FUNCTION,
    "support.function": TokenCategory.FUNCTION,
    "variable": TokenCategory.VARIABLE,
    "variable.function": TokenCategory.FUNCTION,
    "punctuation": TokenCategory.PUNCTUATION,
}


def categorize_scope(scope: str) -> Tuple[TokenCategory, int] | None:
    """Category for a single scope name and how many segments the match spans."""
    best = None
    for prefix, category in SCOPE_CATEGORIES.items():
        if scope == prefix or scope.startswith(prefix + "."):
            depth = prefix.count(".") + 1
            if best is None or depth > best[1]:
                best = (category, depth)
    return best


def _scopes(raw: Any) -> List[str]:
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, list):
        return []
    scopes = []
    for selector in raw:
        if isinstance(selector, str) and selector.strip():
            # descendant selectors ("meta.x string") style their last scope
            scopes.append(selector.split()[-1])
    return scopes


def _color(value: Any, source: str, what: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str) or not _COLOR_RE.match(value.strip()):
        raise ThemeParseError(source, f"invalid color {value!r} for {what}")
    return value.strip().lower()


def _rule(settings: Mapping[str, Any], source: str, what: str) -> StyleRule:
    font_style = settings.get("fontStyle") or ""
    if not isinstance(font_style, str):
        raise ThemeParseError(source, f"fontStyle for {what} must be a string")
    return StyleRule(
        color=_color(settings.get("foreground"), source, what),
        background=_color(settings.get("background"), source, what),
        bold="bold" in font_style.split(),
        italic="italic" in font_style.split(),
        underline="underline" in font_style.split(),
    )


def theme_from_textmate(data: Any, source: str, fallback_name: str = "theme") -> Theme:
    """Normalizes a parsed TextMate / VS Code theme document. Unknown scopes are ignored."""
    if not isinstance(data, dict):
        raise ThemeParseError(source, "top level must be a dictionary")
    entries = data.get("tokenColors", data.get("settings"))
    if not isinstance(entries, list):
        raise ThemeParseError(source, "missing 'settings' or 'tokenColors' list")

    colors = data.get("colors") if isinstance(data.get("colors"), dict) else {}
    foreground = _color(colors.get("editor.foreground"), source, "editor.foreground")
    background = _color(colors.get("editor.background"), source, "editor.background")

    # category -> (match depth, -scope depth, position, rule)
    best: Dict[TokenCategory, Tuple[int, int, int, StyleRule]] = {}
    for position, entry in enumerate(entries):
        if not isinstance(entry, dict) or not isinstance(entry.get("settings"), dict):
            raise ThemeParseError(source, f"settings entry {position} is not a dictionary")
        settings = entry["settings"]
        if "scope" not in entry:
            foreground = _color(settings.get("foreground"), source, "global foreground") or foreground
            background = _color(settings.get("background"), source, "global background") or background
            continue
        rule = _rule(settings, source, f"entry {position}")
        for scope in _scopes(entry["scope"]):
            match = categorize_scope(scope)
            if match is None:
                continue
            category, depth = match
            rank = (depth, -(scope.count(".") + 1), position, rule)
            current = best.get(category)
            if current is None or rank[:3] >= current[:3]:
                best[category] = rank

    if foreground is None:
        raise ThemeParseError(source, "no default foreground color")
    if background is None:
        raise ThemeParseError(source, "no default background color")

    rules: Dict[TokenCategory, StyleRule] = {TokenCategory.DEFAULT: StyleRule(color=foreground)}
    for category in TokenCategory:
        if category in best:
            rules[category] = best[category][3]
    name = data.get("name") if isinstance(data.get("name"), str) and data.get("name") else fallback_name
    return Theme(name=name, foreground=foreground, background=background, rules=rules)


def load_theme_file(path: pathlib.Path) -> Theme:
    source = str(path)
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise ThemeParseError(source, f"cannot read file: {e}") from e
    if path.suffix.lower() == ".json":
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ThemeParseError(source, f"invalid JSON: {e}") from e
    else:
        try:
            data = plistlib.loads(raw)
        except (plistlib.InvalidFileException, ExpatError, ValueError) as e:
            raise ThemeParseError(source, f"invalid property list: {e}") from e
    return theme_from_textmate(data, source, fallback_name=path.stem)


# -- built-in themes ---------------------------------------------------------

def _catppuccin(name: str, base: str, text: str, overlay: str, mauve: str, green: str,
                peach: str, blue: str, yellow: str, sky: str, red: str) -> Dict[str, Any]:
    return {
        "name": name,
        "settings": [
            {"settings": {"foreground": text, "background": base}},
            {"scope": "comment", "settings": {"foreground": overlay, "fontStyle": "italic"}},
            {"scope": "string", "settings": {"foreground": green}},
            {"scope": "constant.numeric", "settings": {"foreground": peach}},
            {"scope": "constant", "settings": {"foreground": peach}},
            {"scope": "keyword", "settings": {"foreground": mauve}},
            {"scope": "keyword.operator", "settings": {"foreground": sky}},
            {"scope": "entity.name.type, support.type", "settings": {"foreground": yellow, "fontStyle": "italic"}},
            {"scope": "entity.name.function, support.function", "settings": {"foreground": blue}},
            {"scope": "variable", "settings": {"foreground": red}},
            {"scope": "punctuation", "settings": {"foreground": overlay}},
        ],
    }


CATPPUCCIN_THEMES: Dict[str, Dict[str, Any]] = {
    "Catppuccin-Latte": _catppuccin(
        "Catppuccin-Latte", base="#eff1f5", text="#4c4f69", overlay="#7c7f93", mauve="#8839ef",
        green="#40a02b", peach="#fe640b", blue="#1e66f5", yellow="#df8e1d", sky="#04a5e5", red="#d20f39",
    ),
    "Catppuccin-Mocha": _catppuccin(
        "Catppuccin-Mocha", base="#1e1e2e", text="#cdd6f4", overlay="#9399b2", mauve="#cba6f7",
        green="#a6e3a1", peach="#fab387", blue="#89b4fa", yellow="#f9e2af", sky="#89dceb", red="#f38ba8",
    ),
}

# representative Pygments token per category
PYGMENTS_CATEGORY_TOKENS = {
    TokenCategory.KEYWORD: Keyword,
    TokenCategory.STRING: String,
    TokenCategory.COMMENT: Comment,
    TokenCategory.NUMBER: Number,
    TokenCategory.FUNCTION: Name.Function,
    TokenCategory.TYPE: Keyword.Type,
    TokenCategory.CONSTANT: Keyword.Constant,
    TokenCategory.VARIABLE: Name.Variable,
    TokenCategory.OPERATOR: Operator,
    TokenCategory.PUNCTUATION: Punctuation,
}


def _hex(value: str | None) -> str | None:
    if not value:
        return None
    value = value if value.startswith("#") else f"#{value}"
    return value.lower() if _COLOR_RE.match(value) else None


def _is_dark(color: str) -> bool:
    digits = color.lstrip("#")
    if len(digits) in (3, 4):
        digits = "".join(ch * 2 for ch in digits[:3])
    r, g, b = (int(digits[i:i + 2], 16) for i in (0, 2, 4))
    return (0.299 * r + 0.587 * g + 0.114 * b) < 128


def theme_from_pygments(name: str) -> Theme:
    style = get_style_by_name(name)
    background = _hex(style.background_color) or "#ffffff"
    base = style.style_for_token(Token)
    foreground = _hex(base.get("color")) or ("#f8f8f2" if _is_dark(background) else "#000000")
    rules: Dict[TokenCategory, StyleRule] = {TokenCategory.DEFAULT: StyleRule(color=foreground)}
    for category, token in PYGMENTS_CATEGORY_TOKENS.items():
        token_style = style.style_for_token(token)
        rule = StyleRule(
            color=_hex(token_style.get("color")),
            background=_hex(token_style.get("bgcolor")),
            bold=bool(token_style.get("bold")),
            italic=bool(token_style.get("italic")),
            underline=bool(token_style.get("underline")),
        )
        if rule.css():
            rules[category] = rule
    return Theme(name=name, foreground=foreground, background=background, rules=rules)


def builtin_theme_names() -> List[str]:
    return list(CATPPUCCIN_THEMES) + sorted(get_all_styles())


def load_builtin_theme(name: str) -> Theme:
    """Case-sensitive lookup in the built-in registry."""
    if name in CATPPUCCIN_THEMES:
        return theme_from_textmate(CATPPUCCIN_THEMES[name], f"built-in theme {name}", name)
    if name in set(get_all_styles()):
        return theme_from_pygments(name)
    raise ThemeNotFound(name, builtin_theme_names())


def _looks_like_path(selector: str) -> bool:
    return "/" in selector or "\\" in selector or pathlib.Path(selector).suffix.lower() in THEME_FILE_SUFFIXES


class ThemeResolver:
    """Resolves a theme selector once; later calls return the same Theme."""

    def __init__(self, selector: str | None = None):
        self.selector = selector
        self._theme: Theme | None = None

    def resolve(self) -> Theme:
        if self._theme is None:
            self._theme = self._load()
            logger.info(f"Using theme {self._theme.name}")
        return self._theme

    def stylesheet(self) -> str:
        return self.resolve().css

    def _load(self) -> Theme:
        selector = self.selector
        if not selector:
            return load_builtin_theme(DEFAULT_THEME)
        if not _looks_like_path(selector):
            return load_builtin_theme(selector)
        path = pathlib.Path(selector).expanduser()
        if not path.is_file():
            raise ThemeNotFound(selector, builtin_theme_names())
        return load_theme_file(path)

"""
Tokenizing highlighter.

Pygments picks the lexer from the file name and tokenizes; each Pygments token
type is folded into a TokenCategory, and the active Theme supplies the style
for that category. Output is a list of lines, each a list of spans, and
joining every span's text gives back the input exactly.
"""

from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, List, Sequence, Tuple

from pygments.lexer import Lexer
from pygments.lexers import get_lexer_for_filename
from pygments.token import (
    Comment, Keyword, Literal, Name, Number, Operator, Punctuation, String, _TokenType,
)
from pygments.util import ClassNotFound

from .themes import StyleRule, Theme, TokenCategory

logger = logging.getLogger(__name__)

BOM = "\ufeff"
_LINE_END = re.compile(r"(?<=\n)|(?<=\r)(?!\n)")  # LF, CRLF or a lone CR

TOKEN_CATEGORIES = {
    Keyword: TokenCategory.KEYWORD,
    Keyword.Type: TokenCategory.TYPE,
    Keyword.Constant: TokenCategory.CONSTANT,
    Name.Function: TokenCategory.FUNCTION,
    Name.Builtin: TokenCategory.FUNCTION,
    Name.Decorator: TokenCategory.FUNCTION,
    Name.Class: TokenCategory.TYPE,
    Name.Exception: TokenCategory.TYPE,
    Name.Builtin.Pseudo: TokenCategory.VARIABLE,
    Name.Variable: TokenCategory.VARIABLE,
    Name.Attribute: TokenCategory.VARIABLE,
    Name.Constant: TokenCategory.CONSTANT,
    Name.Tag: TokenCategory.KEYWORD,
    Literal: TokenCategory.CONSTANT,
    String: TokenCategory.STRING,
    Number: TokenCategory.NUMBER,
    Comment: TokenCategory.COMMENT,
    Comment.Preproc: TokenCategory.KEYWORD,
    Comment.PreprocFile: TokenCategory.STRING,
    Operator: TokenCategory.OPERATOR,
    Operator.Word: TokenCategory.KEYWORD,
    Punctuation: TokenCategory.PUNCTUATION,
}


@lru_cache(maxsize=None)
def category_for(ttype: _TokenType) -> TokenCategory:
    while ttype is not None:
        if ttype in TOKEN_CATEGORIES:
            return TOKEN_CATEGORIES[ttype]
        ttype = ttype.parent
    return TokenCategory.DEFAULT


@dataclass(frozen=True)
class Span:
    category: TokenCategory
    text: str


Line = List[Span]


class _Misaligned(Exception):
    pass


def lexer_for(filename: str) -> Lexer | None:
    """Lexer picked from the file name, or None for unknown kinds of file."""
    try:
        return get_lexer_for_filename(filename, stripnl=False, stripall=False, ensurenl=False)
    except ClassNotFound:
        return None


def plain_text(lines: Iterable[Sequence[Span]]) -> str:
    return "".join(span.text for line in lines for span in line)


def _align(source: str, tokens: Iterable[Tuple[_TokenType, str]]) -> List[Span]:
    """
    Maps token values back onto `source`. Pygments turns CRLF and lone CR into
    LF before lexing, so a token's "\\n" may stand for "\\r\\n" or "\\r" here.
    """
    spans: List[Span] = []
    pos = 0
    for ttype, value in tokens:
        start = pos
        for ch in value:
            if ch == "\n" and source.startswith("\r\n", pos):
                pos += 2
            elif ch == "\n" and source.startswith("\r", pos):
                pos += 1
            elif source.startswith(ch, pos):
                pos += 1
            else:
                raise _Misaligned(f"token {value!r} does not match input at offset {start}")
        if pos > start:
            spans.append(Span(category_for(ttype), source[start:pos]))
    if pos < len(source):
        spans.append(Span(TokenCategory.DEFAULT, source[pos:]))
    return spans


def _ends_line(text: str) -> bool:
    return text.endswith(("\n", "\r"))


def _split_lines(spans: Iterable[Span]) -> List[Line]:
    lines: List[Line] = [[]]
    for span in spans:
        for piece in _LINE_END.split(span.text):
            if not piece:
                continue
            line = lines[-1]
            if line and line[-1].category == span.category and not _ends_line(line[-1].text):
                line[-1] = Span(span.category, line[-1].text + piece)
            else:
                line.append(Span(span.category, piece))
            if _ends_line(piece):
                lines.append([])
    if not lines[-1]:
        lines.pop()
    return lines


class Highlighter:
    def __init__(self, theme: Theme):
        self.theme = theme

    def language(self, filename: str) -> str | None:
        lexer = lexer_for(filename)
        return lexer.name if lexer is not None else None

    def highlight(self, text: str, filename: str) -> List[Line]:
        lexer = lexer_for(filename)
        if lexer is None:
            return self.plain(text)

        prefix = BOM if text.startswith(BOM) else ""
        body = text[len(prefix):]
        try:
            spans = _align(body, lexer.get_tokens(body))
        except _Misaligned as e:
            logger.warning(f"Highlighting {filename} as plain text: {e}")
            return self.plain(text)
        except Exception as e:
            logger.warning(f"{lexer.name} lexer failed on {filename}, using plain text: {e}")
            return self.plain(text)
        if prefix:
            spans.insert(0, Span(TokenCategory.DEFAULT, prefix))
        return _split_lines(spans)

    def plain(self, text: str) -> List[Line]:
        return _split_lines([Span(TokenCategory.DEFAULT, text)])

    def style(self, span: Span) -> StyleRule:
        return self.theme.style_for(span.category)

    def is_styled(self, span: Span) -> bool:
        """False when the theme has no rule for the span and it falls back to default."""
        return span.category is not TokenCategory.DEFAULT and span.category in self.theme.rules

    def render_line(self, line: Sequence[Span]) -> str:
        """HTML for one line, without its line terminator."""
        out = []
        for span in line:
            text = span.text.rstrip("\r\n") if span is line[-1] else span.text
            if not text:
                continue
            escaped = html.escape(text, quote=False)
            if not self.is_styled(span):
                out.append(escaped)
            else:
                out.append(f'<span class="{span.category.css_class}">{escaped}</span>')
        return "".join(out)


def is_plain(lines: Iterable[Sequence[Span]]) -> bool:
    return all(span.category is TokenCategory.DEFAULT for line in lines for span in line)

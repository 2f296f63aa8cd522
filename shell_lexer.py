# ============================================================================
# SHELL HISTORY LEXER
# ============================================================================

from __future__ import annotations

import re

from pygments.lexer import RegexLexer, include
from pygments.token import (
    Comment,
    Generic,
    Keyword,
    Name,
    Number,
    Operator,
    Punctuation,
    String,
    Text,
    Token,
)
from rich.style import Style
from rich.syntax import Syntax, SyntaxTheme

# Define custom token types so Rich and Pygments know about them
Name.Argument = Token.Name.Argument
Name.Variable.Magic = Token.Name.Variable.Magic

# Placeholders left behind by redaction, and words that get a command flagged
REDACTED_RE = r"\b(?:XXX|xxx)\b"
SENSITIVE_RE = r"\b(?:password|ssh|secret|base64|jasypt)\b"


class ShellLexer(RegexLexer):
    """
    Lexer for single history entries (bash or zsh), used when showing flagged commands.

    On top of ordinary shell highlighting it marks redaction placeholders as
    `Generic.Deleted` and sensitive words as `Generic.Strong`, so a reviewer can
    see at a glance why a command was flagged and what was already scrubbed.
    Use like so:
    ```python
    syntax = Syntax(command, ShellLexer(), theme=FlaggedCommandTheme())
    console.print(syntax)
    ```
    """

    name = "Shell history"
    aliases = ["shellhistory"]
    filenames = [".bash_history", ".zsh_history", "shrunk_history"]

    flags = re.MULTILINE

    tokens = {
        # Checked before everything else, including inside strings
        "_secrets": [
            (REDACTED_RE, Generic.Deleted),
            (SENSITIVE_RE, Generic.Strong),
        ],
        "_base": [
            (r"\\\n", String.Escape),  # zsh multi-line continuation
            (r"\\.", String.Escape),
            (r"\$\(", String.Interpol, "command_substitution"),
            (
                r"\b(if|fi|else|elif|then|for|in|while|do|done|case|esac|function)\b",
                Keyword.Reserved,
            ),
            (r"\$\{", Name.Variable.Magic, "parameter_expansion"),
            (r"\$[a-zA-Z0-9_@*#?$!~-]+", Name.Variable),
            (r"'", String.Single, "string_single"),
            (r'"', String.Double, "string_double"),
        ],
        "root": [
            (r"\s+", Text),
            (r"#.*$", Comment),
            (SENSITIVE_RE, Generic.Strong, "cmdtail"),
            include("_secrets"),
            (r"(>>?|<<?<?|[0-9]*>&[0-9]*)", Operator),
            (r"\|\|?|&&|&", Operator),
            (r"[;()\[\]{}]", Punctuation),
            (r"\b[0-9]+\b", Number.Integer),
            include("_base"),
            (r"[a-zA-Z0-9_./~:-]+", Name.Function, "cmdtail"),
            (r".", Text),
        ],
        "cmdtail": [
            (r"\n", Text, "#pop"),
            (r"[|]", Operator, "#pop"),
            (r"[;&]", Punctuation, "#pop"),
            (r"[ \t]+", Text),
            include("_secrets"),
            (r"(?:--?|\+)[a-zA-Z0-9][\w-]*", Name.Attribute),
            (r"=", Operator),
            (r"(>>?|<<?<?|[0-9]*>&[0-9]*)", Operator),
            (r"\b[0-9]+\b", Number.Integer),
            include("_base"),
            (r"[^=\s;&|(){}<>\[\]'\"$\\]+", Name.Argument),
            (r".", Text),
        ],
        "string_single": [
            (r"'", String.Single, "#pop"),
            include("_secrets"),
            (r"[^'Xxpsbj]+", String.Single),
            (r".", String.Single),
        ],
        "string_double": [
            (r'"', String.Double, "#pop"),
            (r'\\(["$`\\])', String.Escape),
            include("_secrets"),
            include("_base"),
            (r'[^"\\$Xxpsbj]+', String.Double),
            (r".", String.Double),
        ],
        "command_substitution": [
            (r"\)", String.Interpol, "#pop"),
            include("root"),
        ],
        "parameter_expansion": [
            (r"\}", Name.Variable.Magic, "#pop"),
            (r"\$\{", Name.Variable.Magic, "#push"),
            (r"[a-zA-Z_][a-zA-Z0-9_]*", Name.Variable),
            (r"[#%/:|~^]+", Operator),
            (r"[^}$]+", Text),
            (r"\$", Text),
        ],
    }


class FlaggedCommandTheme(SyntaxTheme):
    """
    Dark theme for flagged commands: redaction placeholders and sensitive words
    stand out, the rest of the command stays readable but quiet.

    Only the token types `ShellLexer` emits are listed; anything else, including
    plain text and punctuation, falls back to a parent style or the default.
    """

    _BACKGROUND = "#2d2a2e"
    _FOREGROUND = "#fcfcfa"
    _ALERT = "#ff6188"
    _HIGHLIGHT = "#ffd866"
    _COMMAND = "#a9dc76"
    _OPTION = "#fc9867"
    _VALUE = "#ab9df2"
    _MUTED = "#727072"

    background_color = _BACKGROUND
    default_style = Style(color=_FOREGROUND)

    styles = {
        Generic.Deleted: Style(color=_BACKGROUND, bgcolor=_ALERT, bold=True),  # XXX
        Generic.Strong: Style(color=_HIGHLIGHT, bold=True, underline=True),  # password, ssh
        Name.Function: Style(color=_COMMAND, bold=True),
        Name.Attribute: Style(color=_OPTION),
        Name.Argument: Style(color=_VALUE),
        Name.Variable.Magic: Style(color=_VALUE),
        Keyword: Style(color=_ALERT, bold=True),
        Operator: Style(color=_ALERT),
        Number: Style(color=_VALUE),
        Comment: Style(color=_MUTED, italic=True),
        String: Style(color=_HIGHLIGHT),
        String.Escape: Style(color=_MUTED),  # continuation backslashes
        String.Interpol: Style(color=_VALUE, bold=True),
    }

    @classmethod
    def get_style_for_token(cls, token_type):
        # Fall back to the closest styled ancestor (String.Single -> String)
        while token_type is not None:
            if token_type in cls.styles:
                return cls.styles[token_type]
            token_type = token_type.parent
        return cls.default_style

    @classmethod
    def get_background_style(cls):
        return Style(bgcolor=cls._BACKGROUND)


def command_syntax(command: str) -> Syntax:
    """→ Highlighted, theme-aware renderable for one history command"""
    return Syntax(command.rstrip("\n"), ShellLexer(), theme=FlaggedCommandTheme(), line_numbers=False, word_wrap=True)

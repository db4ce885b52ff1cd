"""Quote-aware command line tokenizer."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

_QUOTES = frozenset({'"', "'"})


class TokenizeResult(BaseModel):
    """Tokens split from one command line."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    tokens: tuple[str, ...] = ()
    unterminated_quote: bool = False


def tokenize(line: str) -> TokenizeResult:
    """Split a command line into tokens honouring single and double quotes.

    Unquoted whitespace separates tokens. Quotes may open mid-token
    (``--msg="hello world"`` yields ``--msg=hello world``); their content is
    taken literally and backslashes are not escapes. An unterminated quote
    closes the token at end of input and flags the result.

    Args:
        line: Raw command line.

    Returns:
        Token tuple plus unterminated-quote marker.
    """
    tokens: list[str] = []
    current: list[str] = []
    in_token = False
    quote: str | None = None

    for char in line:
        if quote is not None:
            if char == quote:
                quote = None
            else:
                current.append(char)
            continue
        if char in _QUOTES:
            quote = char
            in_token = True
            continue
        if char.isspace():
            if in_token:
                tokens.append("".join(current))
                current = []
                in_token = False
            continue
        current.append(char)
        in_token = True

    if in_token:
        tokens.append("".join(current))
    return TokenizeResult(tokens=tuple(tokens), unterminated_quote=quote is not None)

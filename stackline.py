# stackline.py

"""
Core of the stackline line interpreter: tokenizer, stack evaluator and the
per-line session that ties them together.

A line is scanned into typed tokens by `Lexer`, loaded into a double-ended
stack and drained by `Runner`:

- a Plus token folds operands taken from the front of the stack into a sum,
  writes the sum and pushes the result token back onto the front;
- a Keyword token dispatches a command (`puts` writes the next token's text);
- every other token only does work when an addition or a command consumes it.

`Session.evaluate_line` runs one line and reports success or failure as an
`Outcome` instead of terminating, so the caller decides whether an error ends
the whole session.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


# --------------------------
# Errors
# --------------------------

class StacklineError(Exception):
    """Base class for errors raised while tokenizing or evaluating a line."""

    name = "Error"

    def __init__(self, description: str):
        super().__init__(description)
        self.description = description

    def __str__(self) -> str:
        return f"{self.name}: {self.description}"


class IllegalCharError(StacklineError):
    """Raised when a numeric literal contains a second decimal point."""
    name = "IllegalCharError"


class UnknownKeywordError(StacklineError):
    """Raised for a keyword that names no command."""
    name = "Unknown keyword error"

    def __init__(self, keyword: str):
        super().__init__(f"No such keyword: {keyword}")
        self.keyword = keyword


class MismatchedTypesError(StacklineError):
    name = "Mismatched types"

    def __init__(self, first: TokenKind, second: TokenKind):
        super().__init__("Cannot add on 2 values of different types")
        self.kinds = (first, second)


class StackUnderflowError(StacklineError):
    """Raised when a command or an addition needs a token and the stack is empty."""
    name = "Stack underflow"


class InvalidNumberError(StacklineError):
    """Raised when an addition operand's text does not parse as a number."""
    name = "Invalid number"


# --------------------------
# Tokens
# --------------------------

class TokenKind(Enum):
    INTEGER = "Integer"
    FLOAT = "Float"
    STRING = "String"
    KEYWORD = "Keyword"
    PLUS = "Plus"
    MULTIPLY = "Multiply"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Token:
    """A classified lexeme. `text` is empty for operator tokens."""
    kind: TokenKind
    text: str = ""

    def __str__(self) -> str:
        return f"{self.kind}:{self.text}"


def format_tokens(tokens: List[Token]) -> str:
    """Render a token list the way `--show-tokens` prints it."""
    return " ".join(str(token) for token in tokens)


# --------------------------
# Lexer
# --------------------------

END = "\0"  # returned by peek() past the end of the source


def _is_digit(ch: str) -> bool:
    return ch != END and ch.isdigit()


def _is_printable_ascii(ch: str) -> bool:
    return " " <= ch <= "~"


class Lexer:
    """Tokenizer for one line of source.

    Each scan step runs the character checks in order and without `elif`:
    after a number has been matched the cursor rests on the character that
    ended it, and the operator, string and keyword checks of the same step
    still apply to that character. Consequently `3+4` yields three tokens and
    `*` yields a Multiply token followed by a keyword starting with `*`.
    """

    def __init__(self, source: str):
        self.src = source
        self.pos = 0
        self.current = self.peek(0)

    def peek(self, offset: int = 1) -> str:
        i = self.pos + offset
        return self.src[i] if i < len(self.src) else END

    def advance(self) -> None:
        self.pos += 1
        self.current = self.peek(0)

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        while self.current != END:
            if _is_digit(self.current):
                tokens.append(self._match_number())
            if self.current == "+":
                tokens.append(Token(TokenKind.PLUS))
            if self.current == "*":
                tokens.append(Token(TokenKind.MULTIPLY))
            if self.current == '"':
                tokens.append(self._match_string())
            if (
                self.current not in ('+', '"', END)
                and not _is_digit(self.current)
                and not self.current.isspace()
            ):
                tokens.append(self._match_keyword())
            self.advance()
        logger.debug(f"Tokenized {self.src!r} into {len(tokens)} tokens")
        return tokens

    def _match_number(self) -> Token:
        has_dot = False
        number = self.current
        while _is_digit(self.peek()) or self.peek() == ".":
            self.advance()
            if self.current == ".":
                if has_dot:
                    raise IllegalCharError("Found an extra dot")
                has_dot = True
            number += self.current
        # Step off the last digit; the terminator is checked by the caller.
        self.advance()
        return Token(TokenKind.FLOAT if has_dot else TokenKind.INTEGER, number)

    def _match_string(self) -> Token:
        chars = []
        while _is_printable_ascii(self.peek()) and self.peek() != '"':
            self.advance()
            chars.append(self.current)
        # Onto the closing quote (or whatever cut an unterminated string short).
        self.advance()
        return Token(TokenKind.STRING, "".join(chars))

    def _match_keyword(self) -> Token:
        keyword = self.current
        while self.peek() != END and not self.peek().isspace():
            self.advance()
            keyword += self.current
        return Token(TokenKind.KEYWORD, keyword)


def tokenize(source: str) -> List[Token]:
    """Tokenize `source` with a fresh `Lexer`."""
    return Lexer(source).tokenize()


# --------------------------
# Runner (stack evaluator)
# --------------------------

Number = Union[int, float]


def _parse_operand(token: Token) -> Number:
    text = token.text
    if token.kind is TokenKind.FLOAT:
        try:
            return float(text)
        except ValueError:
            raise InvalidNumberError(f"Cannot read {text!r} as a float")
    if not (text.isascii() and text.isdigit()):
        raise InvalidNumberError(f"Cannot read {text!r} as a non-negative integer")
    return int(text)


def _format_number(value: Number) -> str:
    if not isinstance(value, float):
        return str(value)
    if not math.isfinite(value):
        raise InvalidNumberError(f"Sum {value!r} is out of range")
    # Fixed notation, never an exponent: 1e+20 is written 100000000000000000000.0
    text = format(Decimal(repr(value)), "f")
    return text if "." in text else text + ".0"


class Runner:
    """Drains a token stack, writing results through `write`.

    Tokens are taken from the tail. Reduced addition results go back on the
    front, so the order of every token not involved in a step is preserved.
    """

    def __init__(self, stack: Deque[Token], write: Callable[[str], None] = print):
        self.stack = stack
        self.write = write
        self.commands: Dict[str, Callable[[], None]] = {
            "puts": self.puts,
        }

    def run(self) -> None:
        while self.stack:
            token = self.stack.pop()
            if token.kind is TokenKind.PLUS:
                self.stack.appendleft(self.add())
            elif token.kind is TokenKind.KEYWORD:
                self.handle_keyword(token)
            elif self._addition_short_of_operands():
                # The addition at the front needs this operand.
                self.stack.appendleft(token)
            else:
                logger.debug(f"Dropping unused token {token}")

    def _addition_short_of_operands(self) -> bool:
        """True when a Plus sits in one of the two front slots of the stack."""
        return any(
            self.stack[i].kind is TokenKind.PLUS for i in range(min(2, len(self.stack)))
        )

    def handle_keyword(self, token: Token) -> None:
        command = self.commands.get(token.text)
        if command is None:
            raise UnknownKeywordError(token.text)
        command()

    def puts(self) -> None:
        if not self.stack:
            raise StackUnderflowError("puts needs a value to print")
        self.write(self.stack.pop().text)

    def _pop_front(self) -> Token:
        if not self.stack:
            raise StackUnderflowError("addition needs two operands")
        return self.stack.popleft()

    def add(self) -> Token:
        """Reduce an addition whose operands sit at the front of the stack.

        A Plus in second position stands for a nested addition, so chains are
        collected left to right and summed innermost first.
        """
        firsts: List[Token] = []
        first, second = self._pop_front(), self._pop_front()
        while second.kind is TokenKind.PLUS:
            firsts.append(first)
            first, second = self._pop_front(), self._pop_front()
        result = self._add_pair(first, second)
        while firsts:
            result = self._add_pair(firsts.pop(), result)
        return result

    def _add_pair(self, first: Token, second: Token) -> Token:
        if first.kind is not second.kind:
            raise MismatchedTypesError(first.kind, second.kind)
        total = _parse_operand(first) + _parse_operand(second)
        text = _format_number(total)
        self.write(text)
        return Token(first.kind, text)


# --------------------------
# Session
# --------------------------

@dataclass
class Outcome:
    """Result of evaluating one line."""
    ok: bool
    output: List[str] = field(default_factory=list)
    error: Optional[StacklineError] = None


class Session:
    """Evaluates lines one at a time; each line gets its own lexer and stack."""

    def __init__(self, show_tokens: bool = False):
        self.show_tokens = show_tokens

    def evaluate_line(self, line: str) -> Outcome:
        output: List[str] = []
        try:
            tokens = tokenize(line)
            if self.show_tokens:
                output.append(format_tokens(tokens))
            Runner(deque(tokens), write=output.append).run()
        except StacklineError as e:
            logger.debug(f"Line {line!r} failed: {e}")
            return Outcome(False, output, e)
        return Outcome(True, output)

# main.py

"""
Overview of Implementation Approach
-----------------------------------
This file implements a step-tracing arithmetic evaluator. An expression made of numbers, the operators
`+ - * / ^` and the bracket pairs `()` / `{}` is validated, then reduced bracket by bracket: the innermost
bracket pair is evaluated with a two-stack operator-precedence pass, its formatted result is spliced back into
the expression text, and the rewritten text is recorded as a step. Every binary reduction is recorded as a
`"a op b = result"` line. When no brackets remain, whatever is left is reduced the same way.

Intermediate results are spliced back in their formatted (two-decimal) form, so precision beyond the formatter
is intentionally lost between bracket levels.

Modules, Classes, and Functions Implemented
-------------------------------------------
- Error classes: CalculatorError, ValidationError, EvalError and one subclass per failure kind
- Configuration: CalculatorSettings, load_settings, configure_logging, operator and bracket tables
- Character classification and scanning: TokenKind, Token, iter_tokens, classify_tokens
- Validator: validate_expression
- Arithmetic core: get_precedence, apply_operator
- Formatter: format_number
- Step recorder: StepRecorder, EvaluationResult
- Evaluator and driver: Calculator (evaluate_flat, evaluate)
- HelpHandler, CLIHandler (REPL), main()
"""

import argparse
import logging
import math
import operator
import os
import sys
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

# Try to import readline for line editing in the REPL.
try:
    import readline
except ImportError:
    readline = None  # On Windows, readline may not be available.

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# ---------------------------
# Error Classes
# ---------------------------

class CalculatorError(Exception):
    """
    Base class for calculator errors.

    Every subclass has a fixed `kind` name and a short message. An optional detail
    (usually a position) is appended after a colon.
    """
    kind = 'CalculatorError'
    message = 'Calculator error'

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail
        text = f"{self.message}: {detail}" if detail else self.message
        super().__init__(text)


class ConfigurationError(CalculatorError):
    """Raised when settings cannot be loaded."""
    kind = 'Configuration'
    message = 'Invalid configuration'


class ValidationError(CalculatorError):
    """Raised when an expression is rejected before evaluation."""
    kind = 'Validation'
    message = 'Invalid expression'


class InvalidFormatError(ValidationError):
    kind = 'InvalidFormat'
    message = 'Invalid expression format'


class MismatchedBracketsError(ValidationError):
    kind = 'MismatchedBrackets'
    message = 'Mismatched brackets'


class UnclosedBracketsError(ValidationError):
    kind = 'UnclosedBrackets'
    message = 'Unclosed brackets'


class EvalError(CalculatorError):
    """Raised when evaluation fails."""
    kind = 'Eval'
    message = 'Evaluation failed'


class MismatchedParenthesesError(EvalError):
    kind = 'MismatchedParentheses'
    message = 'Mismatched parentheses'


class DivisionByZeroError(EvalError):
    kind = 'DivisionByZero'
    message = 'Division by zero'


class InvalidOperatorError(EvalError):
    kind = 'InvalidOperator'
    message = 'Invalid operator'


class MalformedExpressionError(EvalError):
    kind = 'MalformedExpression'
    message = 'Malformed expression'


class NumericRangeError(EvalError):
    kind = 'NumericRange'
    message = 'Result is not a finite real number'


# ---------------------------
# Configuration
# ---------------------------

@dataclass(frozen=True)
class OperatorSpec:
    """Precedence and implementation of one binary operator."""
    symbol: str
    precedence: int
    function: Callable[[float, float], float]


OPERATORS = MappingProxyType({
    '^': OperatorSpec('^', 3, math.pow),
    '*': OperatorSpec('*', 2, operator.mul),
    '/': OperatorSpec('/', 2, operator.truediv),
    '+': OperatorSpec('+', 1, operator.add),
    '-': OperatorSpec('-', 1, operator.sub),
})

BRACKET_PAIRS = MappingProxyType({'(': ')', '{': '}'})
CLOSING_BRACKETS = frozenset(BRACKET_PAIRS.values())

DIGITS = frozenset('0123456789')

_LOG_LEVELS = ('CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG', 'NOTSET')

# Settings field -> environment variable
_ENV_VARS = {
    'precision': 'STEPCALC_PRECISION',
    'log_level': 'STEPCALC_LOG_LEVEL',
    'prompt': 'STEPCALC_PROMPT',
    'show_steps': 'STEPCALC_SHOW_STEPS',
}


class CalculatorSettings(BaseModel):
    """Runtime settings for the calculator and its shell."""
    precision: int = Field(2, ge=0, le=10, description="Fractional digits kept by the number formatter")
    log_level: str = Field('WARNING', description="Standard logging level name")
    prompt: str = "Enter an expression (or 'q' to quit): "
    show_steps: bool = True

    @field_validator('log_level')
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level '{v}'")
        return level


def load_settings(**overrides: Any) -> CalculatorSettings:
    """
    Build settings from the environment (and a `.env` file, if present).

    Keyword overrides that are not None take priority over environment values.

    Raises:
        ConfigurationError: If any value fails validation.
    """
    load_dotenv()
    values: Dict[str, Any] = {}
    for field_name, env_name in _ENV_VARS.items():
        raw = os.getenv(env_name)
        if raw is not None:
            values[field_name] = raw
    values.update({key: value for key, value in overrides.items() if value is not None})
    try:
        return CalculatorSettings(**values)
    except PydanticValidationError as e:
        raise ConfigurationError(str(e)) from e


def configure_logging(level: str = 'WARNING') -> None:
    """Sends log records to stderr at the given level, using the shared format."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.WARNING), format=LOG_FORMAT)


# ---------------------------
# Character Classification and Scanning
# ---------------------------

def is_digit(ch: str) -> bool:
    return ch in DIGITS


def is_operator(ch: str) -> bool:
    return ch in OPERATORS


def is_open_bracket(ch: str) -> bool:
    return ch in BRACKET_PAIRS


def is_close_bracket(ch: str) -> bool:
    return ch in CLOSING_BRACKETS


def is_whitespace(ch: str) -> bool:
    return ch.isspace()


class TokenKind:
    """Enumeration of token kinds."""
    NUMBER = 'NUMBER'
    OPERATOR = 'OPERATOR'
    OPEN_BRACKET = 'OPEN_BRACKET'
    CLOSE_BRACKET = 'CLOSE_BRACKET'


@dataclass(frozen=True)
class Token:
    """A lexical unit and the position of its first character in the scanned text."""
    kind: str
    text: str
    pos: int

    @property
    def value(self) -> float:
        if self.kind != TokenKind.NUMBER:
            raise ValueError(f"{self.kind} token has no numeric value")
        value = float(self.text)
        if not math.isfinite(value):
            raise NumericRangeError(f"number at position {self.pos} is too large")
        return value


def scan_number(text: str, start: int) -> int:
    """
    Scans an unsigned number literal (`digits` or `digits.digits`) beginning at `start`.

    Returns the index just past the literal.

    Raises:
        InvalidFormatError: If there is no digit at `start` or a decimal point is not followed by a digit.
    """
    end = start
    while end < len(text) and is_digit(text[end]):
        end += 1
    if end == start:
        raise InvalidFormatError(f"expected a digit at position {start}")
    if end < len(text) and text[end] == '.':
        fraction = end + 1
        while fraction < len(text) and is_digit(text[fraction]):
            fraction += 1
        if fraction == end + 1:
            raise InvalidFormatError(f"malformed number at position {start}")
        end = fraction
    return end


def _starts_signed_literal(text: str, pos: int, previous: Optional[Token]) -> bool:
    # A '-' in operand position directly followed by a digit is the sign of a spliced-back negative result.
    if text[pos] != '-' or pos + 1 >= len(text) or not is_digit(text[pos + 1]):
        return False
    return previous is None or previous.kind in (TokenKind.OPERATOR, TokenKind.OPEN_BRACKET)


def iter_tokens(text: str, signed: bool = True) -> Iterator[Token]:
    """
    Lazily splits expression text into tokens, skipping whitespace.

    With `signed`, a `-` in operand position directly followed by a digit is read as
    part of the number. Rewritten text needs this for spliced-back negative results;
    raw input is scanned with `signed=False`.

    Raises:
        InvalidFormatError: On any character outside the expression alphabet or a malformed number.
    """
    pos = 0
    previous: Optional[Token] = None
    while pos < len(text):
        ch = text[pos]
        if is_whitespace(ch):
            pos += 1
            continue
        if is_digit(ch):
            end = scan_number(text, pos)
            token = Token(TokenKind.NUMBER, text[pos:end], pos)
        elif signed and _starts_signed_literal(text, pos, previous):
            end = scan_number(text, pos + 1)
            token = Token(TokenKind.NUMBER, text[pos:end], pos)
        elif is_operator(ch):
            end = pos + 1
            token = Token(TokenKind.OPERATOR, ch, pos)
        elif is_open_bracket(ch):
            end = pos + 1
            token = Token(TokenKind.OPEN_BRACKET, ch, pos)
        elif is_close_bracket(ch):
            end = pos + 1
            token = Token(TokenKind.CLOSE_BRACKET, ch, pos)
        else:
            raise InvalidFormatError(f"unexpected character {ch!r} at position {pos}")
        yield token
        previous = token
        pos = end


def classify_tokens(expression: str) -> Dict[str, List[str]]:
    """Lists the number, operator and bracket substrings of an expression, in order of appearance."""
    groups: Dict[str, List[str]] = {'numbers': [], 'operators': [], 'brackets': []}
    for token in iter_tokens(expression, signed=False):
        if token.kind == TokenKind.NUMBER:
            groups['numbers'].append(token.text)
        elif token.kind == TokenKind.OPERATOR:
            groups['operators'].append(token.text)
        else:
            groups['brackets'].append(token.text)
    return groups


# ---------------------------
# Validator
# ---------------------------

def validate_expression(expression: str) -> None:
    """
    Checks the grammar and the bracket structure of an expression.

    The expression must contain at least one token and nothing but numbers, operators,
    brackets and whitespace. Brackets must nest properly and each closer must match
    the type of the most recent open bracket.

    Raises:
        InvalidFormatError: On characters or numbers outside the grammar, or an empty expression.
            A minus sign where an operand is expected is rejected too, as unary minus is not supported.
        MismatchedBracketsError: On a closer without an open bracket, or of the wrong type.
        UnclosedBracketsError: If an open bracket is never closed.
    """
    tokens = list(iter_tokens(expression, signed=False))
    if not tokens:
        raise InvalidFormatError("empty expression")
    previous: Optional[Token] = None
    for token in tokens:
        if token.text == '-' and (previous is None or previous.kind in (TokenKind.OPERATOR, TokenKind.OPEN_BRACKET)):
            raise InvalidFormatError(f"unary minus at position {token.pos} is not supported")
        previous = token

    open_brackets: List[str] = []
    for pos, ch in enumerate(expression):
        if is_open_bracket(ch):
            open_brackets.append(ch)
        elif is_close_bracket(ch):
            if not open_brackets or BRACKET_PAIRS[open_brackets[-1]] != ch:
                raise MismatchedBracketsError(f"unexpected '{ch}' at position {pos}")
            open_brackets.pop()
    if open_brackets:
        raise UnclosedBracketsError(f"{len(open_brackets)} bracket(s) left open")
    logger.debug(f"Validated expression {expression!r}")


# ---------------------------
# Arithmetic Core
# ---------------------------

def get_precedence(op: str) -> int:
    """Returns the precedence of an operator symbol, or 0 if it is not an operator."""
    spec = OPERATORS.get(op)
    return spec.precedence if spec else 0


def apply_operator(a: float, b: float, op: str) -> float:
    """
    Applies a binary operator to two operands.

    Raises:
        InvalidOperatorError: If `op` is not one of `+ - * / ^`.
        DivisionByZeroError: If `op` is `/` and `b` is zero.
        NumericRangeError: If the result is not a finite real number.
    """
    spec = OPERATORS.get(op)
    if spec is None:
        raise InvalidOperatorError(repr(op))
    if op == '/' and b == 0:
        raise DivisionByZeroError()
    try:
        result = spec.function(a, b)
    except (ValueError, OverflowError, ZeroDivisionError) as e:
        raise NumericRangeError(f"{a} {op} {b}") from e
    if not math.isfinite(result):
        raise NumericRangeError(f"{a} {op} {b}")
    return result


# ---------------------------
# Formatter
# ---------------------------

def format_number(value: float, precision: int = 2) -> str:
    """
    Formats a number with fixed precision, then trims trailing zeros and a trailing
    decimal point: 4.0 -> '4', 4.5 -> '4.5', 1/3 -> '0.33'.
    """
    text = f"{value:.{precision}f}"
    if '.' in text:
        text = text.rstrip('0').rstrip('.')
    if text == '-0':
        text = '0'
    return text


# ---------------------------
# Step Recorder
# ---------------------------

class StepRecorder:
    """
    Ordered log of evaluation steps.

    A step equal to the immediately preceding one is dropped; earlier duplicates are kept.
    """
    def __init__(self):
        self._steps: List[str] = []

    def record(self, step: str) -> bool:
        """Appends a step unless it repeats the last one. Returns True if it was appended."""
        if self._steps and self._steps[-1] == step:
            logger.debug(f"Skipped repeated step {step!r}")
            return False
        self._steps.append(step)
        return True

    @property
    def last(self) -> Optional[str]:
        return self._steps[-1] if self._steps else None

    @property
    def steps(self) -> List[str]:
        return list(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self) -> Iterator[str]:
        return iter(self._steps)


class EvaluationResult(BaseModel):
    """Result of one evaluation: the numeric value and the ordered trace."""
    expression: str
    value: float
    steps: List[str] = Field(default_factory=list)

    def numbered_steps(self) -> List[str]:
        return [f"{index}. {step}" for index, step in enumerate(self.steps, start=1)]


# ---------------------------
# Evaluator
# ---------------------------

class Calculator:
    """
    Validates and evaluates expressions, recording every step.

    Brackets are resolved innermost first: the right-most open bracket has no other
    open bracket after it, so once the whole expression is known to be balanced the
    nearest closer that follows it must be its own partner and the span between them
    contains no brackets. That span is evaluated with `evaluate_flat` and replaced by
    its formatted result, which keeps the text balanced for the next round.
    """
    def __init__(self, settings: Optional[CalculatorSettings] = None):
        self.settings = settings or CalculatorSettings()

    def format_number(self, value: float) -> str:
        return format_number(value, self.settings.precision)

    def validate(self, expression: str) -> None:
        validate_expression(expression)

    def classify_tokens(self, expression: str) -> Dict[str, List[str]]:
        return classify_tokens(expression)

    def evaluate(self, expression: str) -> EvaluationResult:
        """
        Evaluates an expression and returns its value with the full step trace.

        Raises:
            CalculatorError: Any validation or evaluation failure. No partial result is returned.
        """
        try:
            result = self._evaluate(expression)
        except CalculatorError as e:
            logger.warning(f"Rejected expression {expression!r}: {e}")
            raise
        logger.info(f"Evaluated {expression!r} = {result.value}")
        return result

    def _evaluate(self, expression: str) -> EvaluationResult:
        self.validate(expression)
        recorder = StepRecorder()
        recorder.record(expression)

        current = expression
        while True:
            open_pos = self._find_last_open_bracket(current)
            if open_pos < 0:
                break
            close_pos = self._find_next_close_bracket(current, open_pos)
            if close_pos < 0 or BRACKET_PAIRS[current[open_pos]] != current[close_pos]:
                raise MismatchedParenthesesError(f"no partner for '{current[open_pos]}' at position {open_pos}")
            self._check_splice_neighbours(current, open_pos, close_pos)

            inner = current[open_pos + 1:close_pos]
            replacement = self.evaluate_flat(inner, recorder)
            current = current[:open_pos] + replacement + current[close_pos + 1:]
            logger.debug(f"Resolved brackets at {open_pos}..{close_pos}: {current!r}")
            recorder.record(current)

        if any(is_operator(ch) for ch in current):
            recorder.record(self.evaluate_flat(current, recorder))
            value = float(recorder.last)
        else:
            tokens = list(iter_tokens(current))
            if len(tokens) != 1 or tokens[0].kind != TokenKind.NUMBER:
                raise MalformedExpressionError(f"expected a single number, got {current.strip()!r}")
            value = tokens[0].value

        return EvaluationResult(expression=expression, value=value, steps=recorder.steps)

    def evaluate_flat(self, span: str, recorder: Optional[StepRecorder] = None) -> str:
        """
        Reduces a bracket-free span to a single formatted number using an operand
        stack and an operator stack.

        An incoming operator first reduces every stacked operator of equal or higher
        precedence, so operators of the same precedence (including `^`) are applied
        left to right. Each reduction is recorded as `"a op b = result"`.

        Raises:
            MalformedExpressionError: If the span holds a bracket or does not reduce to exactly one number.
        """
        if recorder is None:
            recorder = StepRecorder()
        values: List[float] = []
        operators: List[str] = []

        for token in iter_tokens(span):
            if token.kind == TokenKind.NUMBER:
                values.append(token.value)
            elif token.kind == TokenKind.OPERATOR:
                while operators and get_precedence(operators[-1]) >= get_precedence(token.text):
                    self._reduce(values, operators, recorder)
                operators.append(token.text)
            else:
                raise MalformedExpressionError(f"unexpected '{token.text}' at position {token.pos}")

        while operators:
            self._reduce(values, operators, recorder)

        if len(values) != 1:
            raise MalformedExpressionError(f"{len(values)} operands left in {span.strip()!r}")
        return self.format_number(values[0])

    def _reduce(self, values: List[float], operators: List[str], recorder: StepRecorder) -> None:
        op = operators.pop()
        if len(values) < 2:
            raise MalformedExpressionError(f"operator '{op}' is missing an operand")
        b = values.pop()
        a = values.pop()
        result = apply_operator(a, b, op)
        values.append(result)
        step = f"{self.format_number(a)} {op} {self.format_number(b)} = {self.format_number(result)}"
        logger.debug(f"Reduced {step}")
        recorder.record(step)

    @staticmethod
    def _find_last_open_bracket(text: str) -> int:
        return max(text.rfind(bracket) for bracket in BRACKET_PAIRS)

    @staticmethod
    def _find_next_close_bracket(text: str, start: int) -> int:
        for pos in range(start + 1, len(text)):
            if is_close_bracket(text[pos]):
                return pos
        return -1

    @staticmethod
    def _check_splice_neighbours(text: str, open_pos: int, close_pos: int) -> None:
        # A bracket touching a number on either side would merge into one literal after splicing.
        before = text[:open_pos].rstrip()
        after = text[close_pos + 1:].lstrip()
        if before and not (is_operator(before[-1]) or is_open_bracket(before[-1])):
            raise MalformedExpressionError(f"missing operator before position {open_pos}")
        if after and not (is_operator(after[0]) or is_close_bracket(after[0])):
            raise MalformedExpressionError(f"missing operator after position {close_pos}")


def evaluate(expression: str) -> EvaluationResult:
    """Evaluates an expression with default settings."""
    return Calculator().evaluate(expression)


# ---------------------------
# Help Handler
# ---------------------------

class HelpHandler:
    """
    Prints usage instructions for the calculator.
    """
    HELP_TEXT = """
Step-by-Step Calculator Help
----------------------------
Supported operations:
  - Addition:           1 + 2
  - Subtraction:        3 - 4
  - Multiplication:     5 * 6
  - Division:           7 / 8
  - Power:              2 ^ 10
  - Brackets:           (1 + 2) * {3 + 4}
  - Decimals:           3.14 * 2

Operators of equal precedence, including ^, are applied left to right.
Intermediate results are rounded to the configured precision.

Special commands:
  - help         : Show this help message
  - tokens EXPR  : List the numbers, operators and brackets in EXPR
  - q/quit/exit  : Exit the calculator

Examples:
  > (2 + 3) * 4
  Result: 20
  > 2 ^ 3 ^ 2
  Result: 64
  > 1 / 0
  Error: Division by zero
"""

    @staticmethod
    def print_help():
        print(HelpHandler.HELP_TEXT.strip())


# ---------------------------
# CLI Handler (REPL)
# ---------------------------

class CLIHandler:
    """
    Handles the REPL loop and user interaction.
    """
    QUIT_COMMANDS = ('q', 'quit', 'exit')

    def __init__(self, calculator: Optional[Calculator] = None, settings: Optional[CalculatorSettings] = None):
        self.settings = settings or (calculator.settings if calculator else CalculatorSettings())
        self.calculator = calculator or Calculator(self.settings)
        self.running = True
        self._setup_history()

    def _setup_history(self):
        """
        Enables line editing with readline, if available.
        """
        if readline is not None:
            readline.parse_and_bind('set editing-mode emacs')
        else:
            print("Warning: Line editing is not available on this platform.", file=sys.stderr)

    def run(self):
        """
        Main REPL loop.
        """
        while self.running:
            try:
                line = input(self.settings.prompt)
            except (EOFError, KeyboardInterrupt):
                print()  # Newline for clean exit
                break

            line = line.strip()
            if not line:
                continue

            command = line.lower()
            if command in self.QUIT_COMMANDS:
                self.running = False
                print("Goodbye!")
                break
            elif command == 'help':
                HelpHandler.print_help()
                continue
            elif command.startswith('tokens '):
                self.print_tokens(line[len('tokens '):])
                continue

            try:
                self.evaluate_line(line)
            except Exception as e:
                # Catch-all for unexpected errors
                print(f"Unexpected error: {e}")

    def evaluate_line(self, line: str) -> bool:
        """
        Evaluates one expression and prints the result and steps, or the error.
        Returns True on success.
        """
        try:
            result = self.calculator.evaluate(line)
        except CalculatorError as e:
            print(f"Error: {e}")
            return False
        self.print_result(result)
        return True

    def print_result(self, result: EvaluationResult):
        print(f"Result: {self.calculator.format_number(result.value)}")
        if self.settings.show_steps:
            print("Steps:")
            for line in result.numbered_steps():
                print(f"  {line}")

    def print_tokens(self, expression: str) -> bool:
        try:
            groups = self.calculator.classify_tokens(expression)
        except CalculatorError as e:
            print(f"Error: {e}")
            return False
        print(f"Numbers:   {' '.join(groups['numbers'])}")
        print(f"Operators: {' '.join(groups['operators'])}")
        print(f"Brackets:  {' '.join(groups['brackets'])}")
        return True


# ---------------------------
# Main Entry Point
# ---------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """
    Entry point for the calculator application.

    With an expression argument, evaluates it once and returns 0 on success or 1 on
    failure. Without one, starts the interactive loop.
    """
    parser = argparse.ArgumentParser(description="Evaluate arithmetic expressions and show every step.")
    parser.add_argument(
        "expression",
        nargs="?",
        help="Expression to evaluate once (starts the interactive loop when omitted)",
    )
    parser.add_argument(
        "--precision",
        type=int,
        default=None,
        help="Fractional digits kept for intermediate and final results (default: 2)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level name, e.g. DEBUG or INFO (default: WARNING)",
    )
    parser.add_argument(
        "--no-steps",
        action="store_true",
        help="Print only the result",
    )
    parser.add_argument(
        "--tokens",
        action="store_true",
        help="Also list the numbers, operators and brackets of the expression",
    )
    args = parser.parse_args(argv)

    try:
        settings = load_settings(
            precision=args.precision,
            log_level=args.log_level,
            show_steps=False if args.no_steps else None,
        )
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    configure_logging(settings.log_level)

    cli = CLIHandler(Calculator(settings), settings)
    if args.expression is not None:
        if args.tokens and not cli.print_tokens(args.expression):
            return 1
        return 0 if cli.evaluate_line(args.expression) else 1

    print("Welcome to the Step-by-Step Calculator!")
    print("Type 'help' for instructions, or 'q' to quit.")
    cli.run()
    return 0


if __name__ == '__main__':
    sys.exit(main())

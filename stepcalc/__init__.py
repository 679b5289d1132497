"""Step-by-step arithmetic expression evaluator."""

from stepcalc.main import (
    Calculator,
    CalculatorError,
    CalculatorSettings,
    EvaluationResult,
    evaluate,
    validate_expression,
)

__all__ = [
    "Calculator",
    "CalculatorError",
    "CalculatorSettings",
    "EvaluationResult",
    "evaluate",
    "validate_expression",
]

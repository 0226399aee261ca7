"""Calculation tracing for transparent audit trails.

This module provides runtime tracing of calculations, capturing the
actual values used in each formula for debugging and auditing. Tracing
is off unless a ``TraceContext`` is active, so the calculation functions
stay pure when nobody is listening.
"""

from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .formula_registry import FormulaRegistry, FormulaDefinition


@dataclass
class TracedValue:
    """A single traced calculation.

    Captures the formula definition, actual input values,
    computed result, and formatted formula string.
    """
    field_path: str
    value: float
    formula_def: Optional[FormulaDefinition]
    input_values: Dict[str, float]
    computed_formula: str  # Formula with values substituted
    timestamp: datetime = field(default_factory=datetime.now)
    period: Optional[int] = None
    notes: str = ""


_current_context: ContextVar[Optional["TraceContext"]] = ContextVar(
    "feasly_trace_context", default=None
)


class TraceContext:
    """Context manager for capturing calculation traces.

    Usage:
        with TraceContext() as ctx:
            kpis = compute_kpis(net_cashflow, 0.01)
            # ctx.traces now contains returns.npv, returns.profit, ...

    The active context lives in a ``ContextVar``, so threads and tasks
    each see their own context and nested contexts restore the outer one.
    """

    def __init__(self, enabled: bool = True):
        """Initialize trace context.

        Args:
            enabled: If False, trace() calls are no-ops.
        """
        self.enabled = enabled
        self.traces: Dict[str, TracedValue] = {}
        self._start_time = datetime.now()
        self._token = None

    def __enter__(self) -> "TraceContext":
        self._token = _current_context.set(self)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        _current_context.reset(self._token)
        self._token = None

    def trace(
        self,
        field_path: str,
        value: float,
        input_values: Dict[str, float],
        period: Optional[int] = None,
        notes: str = "",
    ) -> None:
        """Record a traced calculation.

        Args:
            field_path: The formula field path (e.g., "returns.npv")
            value: The calculated result
            input_values: Dict of input name -> value used in calculation
            period: Optional period number for period-specific values
            notes: Optional notes about this specific calculation
        """
        if not self.enabled:
            return

        formula_def = FormulaRegistry.get(field_path)
        computed_formula = self._substitute_values(
            formula_def.formula if formula_def else field_path,
            input_values,
            value,
        )

        trace_key = f"{field_path}:{period}" if period is not None else field_path
        self.traces[trace_key] = TracedValue(
            field_path=field_path,
            value=value,
            formula_def=formula_def,
            input_values=input_values,
            computed_formula=computed_formula,
            period=period,
            notes=notes,
        )

    def _substitute_values(
        self,
        formula: str,
        input_values: Dict[str, float],
        result: float,
    ) -> str:
        """Render "formula = input values = result"."""
        result_str = self._format_value(result)
        if not input_values:
            return f"{formula} = {result_str}"

        values_str = ", ".join(
            f"{name.split('.')[-1]}={self._format_value(val)}"
            for name, val in input_values.items()
        )
        return f"{formula} = [{values_str}] = {result_str}"

    @staticmethod
    def _format_value(value: float) -> str:
        """Format a value for display."""
        value = float(value)
        if abs(value) >= 1_000_000:
            return f"${value/1_000_000:,.2f}M"
        elif abs(value) >= 1_000:
            return f"${value/1_000:,.1f}K"
        elif abs(value) < 1 and value != 0:
            return f"{value:.2%}"
        elif value == 0:
            return "$0"
        return f"${value:,.2f}"

    def get_trace(self, field_path: str, period: Optional[int] = None) -> Optional[TracedValue]:
        """Get a specific trace by field path and optional period."""
        trace_key = f"{field_path}:{period}" if period is not None else field_path
        return self.traces.get(trace_key)

    def get_traces_by_category(self, category: str) -> Dict[str, TracedValue]:
        """Get all traces in a specific category."""
        return {
            k: v for k, v in self.traces.items()
            if v.formula_def and v.formula_def.category.value == category
        }

    def summary(self) -> str:
        """Generate a summary of all traces."""
        lines = [
            f"Trace Summary ({len(self.traces)} calculations traced)",
            f"Duration: {datetime.now() - self._start_time}",
            "",
        ]

        by_category: Dict[str, List[TracedValue]] = {}
        for traced in self.traces.values():
            cat = traced.formula_def.category.value if traced.formula_def else "Unknown"
            by_category.setdefault(cat, []).append(traced)

        for category, traces in sorted(by_category.items()):
            lines.append(f"=== {category} ({len(traces)} traces) ===")
            for traced in traces[:5]:
                lines.append(f"  {traced.field_path}: {traced.computed_formula}")
            if len(traces) > 5:
                lines.append(f"  ... and {len(traces) - 5} more")
            lines.append("")

        return "\n".join(lines)

    @staticmethod
    def current() -> Optional["TraceContext"]:
        """Get the current active trace context."""
        return _current_context.get()


def trace(
    field_path: str,
    value: float,
    input_values: Dict[str, float],
    period: Optional[int] = None,
    notes: str = "",
):
    """Trace a calculation and return the value unchanged.

    This can be used inline in calculations:
        npv = trace("returns.npv", npv, {"discount_rate": rate})

    Values are stored as floats; the returned value keeps its type.
    """
    ctx = TraceContext.current()
    if ctx:
        ctx.trace(
            field_path,
            float(value),
            {k: float(v) for k, v in input_values.items()},
            period,
            notes,
        )
    return value

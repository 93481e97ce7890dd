import logging
import math
from dataclasses import dataclass
from typing import Callable, Protocol, Sequence, Tuple, runtime_checkable

import numpy as np
from scipy.integrate import quad

from kety.errors import (
    ConvergenceError,
    DegenerateFlowError,
    InvalidFitError,
    KetySchmidtError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_TOL = 1e-4
DEFAULT_MAX_DECADES = 20


@runtime_checkable
class CurveModel(Protocol):
    """
    A fitted smooth curve with four coefficients (a, b, c, d):
    amplitude, rate, offset and time-origin shift.
    """
    coefficients: Tuple[float, float, float, float]

    def coefficient(self, i: int) -> float: ...

    def value_at(self, t: float) -> float: ...

    def integrate(self, lo: float, hi: float) -> float: ...


class _FourCoefficientCurve:

    def __init__(self, coefficients: Sequence[float]):
        coeffs = tuple(float(x) for x in coefficients)
        if len(coeffs) != 4:
            raise ValidationError(f"curve needs exactly 4 coefficients, got {len(coeffs)}", step="curve")
        self.coefficients = coeffs

    def coefficient(self, i: int) -> float:
        """1-based, as in a, b, c, d."""
        if i not in (1, 2, 3, 4):
            raise ValidationError(f"coefficient index must be 1..4, got {i}", step="curve")
        return self.coefficients[i - 1]

    @property
    def a(self):
        return self.coefficients[0]

    @property
    def b(self):
        return self.coefficients[1]

    @property
    def c(self):
        return self.coefficients[2]

    @property
    def d(self):
        return self.coefficients[3]

    def __repr__(self):
        return (f"{type(self).__name__}(a={self.a:.6g}, b={self.b:.6g}, "
                f"c={self.c:.6g}, d={self.d:.6g})")


class ExponentialRiseCurve(_FourCoefficientCurve):
    """
    f(t) = a*(1 - exp(-b*(t - d))) + c

    Saturating rise towards the plateau a + c (b > 0). Its zero crossing is
    t0 = d - ln(c/a + 1)/b.
    """

    def __init__(self, a: float, b: float, c: float, d: float):
        super().__init__((a, b, c, d))

    def value_at(self, t):
        with np.errstate(over="ignore", invalid="ignore"):
            val = self.a * (1.0 - np.exp(-self.b * (np.asarray(t, dtype=float) - self.d))) + self.c
        return float(val) if np.ndim(val) == 0 else val

    def integrate(self, lo: float, hi: float) -> float:
        a, b, c, d = self.coefficients
        if b == 0:
            return c * (hi - lo)
        # closed form of the integral of a*(1 - exp(-b(t-d))) + c
        return (a + c) * (hi - lo) + (a / b) * (math.exp(-b * (hi - d)) - math.exp(-b * (lo - d)))


class CallableCurve(_FourCoefficientCurve):
    """
    Adapts a curve produced by an external fitting tool: any callable of time
    plus its four coefficients. Integrals are evaluated numerically.
    """

    def __init__(self, func: Callable[[float], float], coefficients: Sequence[float]):
        super().__init__(coefficients)
        self.func = func

    def value_at(self, t):
        return float(self.func(t))

    def integrate(self, lo: float, hi: float) -> float:
        val, _err = quad(self.func, lo, hi, limit=200)
        return val


def t0(curve: CurveModel, line: str = None) -> float:
    """
    Back-extrapolated onset of the exponential rise, d - ln(c/a + 1)/b.
    """
    a, b, c, d = (curve.coefficient(i) for i in (1, 2, 3, 4))
    if a == 0 or b == 0:
        raise InvalidFitError(f"t0 undefined for a={a}, b={b}", line=line, step="t0")
    arg = c / a + 1.0
    if not np.isfinite(arg) or arg <= 0:
        raise InvalidFitError(f"t0 undefined: c/a + 1 = {arg:.6g} is not positive",
                              line=line, step="t0")
    return d - math.log(arg) / b


def t_inf(curve: CurveModel, tol: float = DEFAULT_TOL, max_decades: int = DEFAULT_MAX_DECADES,
          line: str = None) -> float:
    """
    First power of ten t (1, 10, 100, ...) with f(inf) - f(t) <= tol.
    The search gives up after `max_decades` trials.
    """
    plateau = curve.value_at(math.inf)
    if not np.isfinite(plateau):
        raise ConvergenceError(f"curve has no finite plateau ({plateau})", line=line, step="t_inf")

    t = 1.0
    for _ in range(max_decades):
        gap = plateau - curve.value_at(t)
        logger.debug("t_inf search: t=%g gap=%g", t, gap)
        if gap <= tol:
            return t
        t *= 10.0

    raise ConvergenceError(
        f"curve not within {tol:g} of its plateau after {max_decades} decades (t={t / 10.0:g})",
        line=line, step="t_inf")


@dataclass(frozen=True)
class FlowResult:
    """Flow per unit volume of distribution, with the terms it was built from."""
    flow: float
    plateau: float
    partition_coefficient: float
    t0_arterial: float
    t0_venous: float
    t_inf: float
    integral_arterial: float
    integral_venous: float

    @property
    def av_difference(self) -> float:
        return self.integral_arterial - self.integral_venous


class KetySchmidtModel:
    """
    Fick-principle flow from fitted arterial and venous tracer curves:

        F = (Cv(inf) / lambda) / (int_{t0a}^{tinf} Ca dt - int_{t0v}^{tinf} Cv dt)

    The fits are held read-only.
    """

    def __init__(self, art_fit: CurveModel, ven_fit: CurveModel, partition_coefficient: float = 1.0,
                 tol: float = DEFAULT_TOL, max_decades: int = DEFAULT_MAX_DECADES,
                 atol: float = 1e-12, rtol: float = 1e-9):
        if not np.isfinite(partition_coefficient) or partition_coefficient <= 0:
            raise ValidationError(f"partition coefficient must be positive, got {partition_coefficient}",
                                  step="flow")
        self.art_fit = art_fit
        self.ven_fit = ven_fit
        self.lam = float(partition_coefficient)
        self.tol = tol
        self.max_decades = max_decades
        self.atol = atol
        self.rtol = rtol

    def curve(self, vasc: str = "v") -> CurveModel:
        return self.art_fit if vasc.lower().startswith("a") else self.ven_fit

    @staticmethod
    def _line(vasc: str) -> str:
        return "arterial" if vasc.lower().startswith("a") else "venous"

    def a(self, vasc: str = "v") -> float:
        return self.curve(vasc).coefficient(1)

    def b(self, vasc: str = "v") -> float:
        return self.curve(vasc).coefficient(2)

    def c(self, vasc: str = "v") -> float:
        return self.curve(vasc).coefficient(3)

    def d(self, vasc: str = "v") -> float:
        return self.curve(vasc).coefficient(4)

    def t0(self, vasc: str = "v") -> float:
        return t0(self.curve(vasc), line=self._line(vasc))

    def tinf(self, tol: float = None) -> float:
        # venous convergence sets the common upper bound
        return t_inf(self.ven_fit, self.tol if tol is None else tol, self.max_decades, line="venous")

    def solve(self) -> FlowResult:
        # t0 is checked before the plateau search
        t0_a = self.t0("a")
        t0_v = self.t0("v")
        upper = self.tinf()

        plateau = self.ven_fit.value_at(math.inf)
        num = plateau / self.lam

        int_a = self.art_fit.integrate(t0_a, upper)
        int_v = self.ven_fit.integrate(t0_v, upper)

        diff = int_a - int_v
        if not np.isfinite(diff) or abs(diff) <= self.atol + self.rtol * max(abs(int_a), abs(int_v)):
            raise DegenerateFlowError(
                f"arteriovenous integral difference is {diff:.6g} "
                f"(arterial={int_a:.6g}, venous={int_v:.6g}); flow undefined",
                step="flow")

        flow = num / diff
        logger.info("Flow: %.6g (plateau=%.6g, lambda=%g, t_inf=%g, dInt=%.6g)",
                    flow, plateau, self.lam, upper, diff)

        return FlowResult(
            flow=flow,
            plateau=plateau,
            partition_coefficient=self.lam,
            t0_arterial=t0_a,
            t0_venous=t0_v,
            t_inf=upper,
            integral_arterial=int_a,
            integral_venous=int_v,
        )

    def F(self) -> float:
        return self.solve().flow


def estimate_flow(arterial_curve: CurveModel, venous_curve: CurveModel,
                  partition_coefficient: float = 1.0, run: str = None, **kwargs) -> float:
    """Kety-Schmidt flow estimate from a fitted arterial/venous curve pair."""
    try:
        return KetySchmidtModel(arterial_curve, venous_curve, partition_coefficient, **kwargs).F()
    except KetySchmidtError as e:
        raise e.with_context(run=run)

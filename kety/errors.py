from typing import Optional


class KetySchmidtError(Exception):
    """
    Base class for every failure raised by the Kety-Schmidt core.

    Carries the run name, blood line ("arterial"/"venous") and processing step
    so that a failure deep inside one run of a batch can be diagnosed.
    """

    def __init__(self, message: str, run: Optional[str] = None,
                 line: Optional[str] = None, step: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.run = run
        self.line = line
        self.step = step

    def with_context(self, run: Optional[str] = None, line: Optional[str] = None,
                     step: Optional[str] = None) -> "KetySchmidtError":
        # Only fill in what the raiser did not know
        if self.run is None:
            self.run = run
        if self.line is None:
            self.line = line
        if self.step is None:
            self.step = step
        return self

    def __str__(self):
        ctx = []
        if self.run is not None:
            ctx.append(f"run={self.run}")
        if self.line is not None:
            ctx.append(f"line={self.line}")
        if self.step is not None:
            ctx.append(f"step={self.step}")
        if not ctx:
            return self.message
        return f"{self.message} [{', '.join(ctx)}]"


class ValidationError(KetySchmidtError, ValueError):
    """Malformed input: mismatched lengths, too few samples, bad configuration."""


class UnsupportedUnitError(ValidationError):
    """Unit label not in the conversion tables, or not permitted for a step."""


class NumericDomainError(KetySchmidtError, ArithmeticError):
    pass


class InvalidFitError(NumericDomainError):
    """Fitted coefficients put t0 outside the domain of the logarithm."""


class DegenerateFlowError(NumericDomainError):
    """Arteriovenous integral difference is (near) zero; flow is undefined."""


class ConvergenceError(KetySchmidtError, RuntimeError):
    """The plateau search ran out of its iteration budget."""

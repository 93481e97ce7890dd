import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from kety.errors import KetySchmidtError, ValidationError
from kety.numerics import carry_over_fraction_jit, dead_space_recurrence_jit
from kety.units import PhysicalConstants, VolumeUnit, chamber_moles, conc_to_torr, to_base

logger = logging.getLogger(__name__)

MIN_SAMPLES = 3


def _frozen(values) -> np.ndarray:
    arr = np.array(values, dtype=float).ravel()
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class SampleSeries:
    """
    Timed blood draws for one blood line of one run.

    time:        elapsed minutes since the start of the run
    draw_volume: blood withdrawn per sample, in `volume_unit` (stored in L)
    ppm:         tracer gas in the sample headspace, parts per million

    Arrays are copied and made read-only; corrected pressures are cached
    on the instance, keyed by the constants they were computed with.
    """
    time: np.ndarray
    draw_volume: np.ndarray
    ppm: np.ndarray
    label: str = ""
    run: Optional[str] = None
    volume_unit: VolumeUnit = VolumeUnit.LITER
    _corrected: dict = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self):
        unit = VolumeUnit.from_label(self.volume_unit)
        time = _frozen(self.time)
        vol = np.array(self.draw_volume, dtype=float).ravel()
        ppm = _frozen(self.ppm)

        if not (len(time) == len(vol) == len(ppm)):
            raise ValidationError(
                f"time/volume/ppm lengths differ: {len(time)}/{len(vol)}/{len(ppm)}",
                run=self.run, line=self.label, step="validate")
        if len(time) < MIN_SAMPLES:
            raise ValidationError(
                f"need at least {MIN_SAMPLES} samples, got {len(time)}",
                run=self.run, line=self.label, step="validate")
        if not (np.all(np.isfinite(time)) and np.all(np.isfinite(vol)) and np.all(np.isfinite(ppm))):
            raise ValidationError("samples must be finite",
                                  run=self.run, line=self.label, step="validate")
        if np.any(np.diff(time) <= 0):
            raise ValidationError("sample times must be strictly increasing",
                                  run=self.run, line=self.label, step="validate")
        if np.any(ppm < 0):
            raise ValidationError("ppm readings must be non-negative",
                                  run=self.run, line=self.label, step="validate")

        object.__setattr__(self, "time", time)
        object.__setattr__(self, "draw_volume", _frozen(to_base(vol, unit)))
        object.__setattr__(self, "ppm", ppm)
        object.__setattr__(self, "volume_unit", VolumeUnit.LITER)

    def __len__(self):
        return len(self.time)

    def corrected(self, constants: Optional[PhysicalConstants] = None) -> "CorrectedSeries":
        return correct(self, constants)


@dataclass(frozen=True, eq=False)
class CorrectedSeries:
    """Dead-space corrected in vivo partial pressures, one per input sample."""
    time: np.ndarray
    pressure: np.ndarray       # Torr
    concentration: np.ndarray  # M
    label: str = ""
    run: Optional[str] = None

    def __len__(self):
        return len(self.pressure)


@dataclass
class KetySchmidtRun:
    """Paired arterial and venous series sampled during one run."""
    name: str
    arterial: SampleSeries
    venous: SampleSeries


class DeadSpaceCorrector:
    """
    Corrects serial blood-gas samples for residual gas left in the
    sampling-line dead space by the previous draw.
    cf. Lee et al., AJNR 2010
    """

    def __init__(self, constants: Optional[PhysicalConstants] = None):
        self.constants = constants if constants is not None else PhysicalConstants()

    def syringe_volumes(self, series: SampleSeries) -> np.ndarray:
        """Effective syringe volume Vsyr = draw - rinse, in L."""
        v_syr = series.draw_volume - self.constants.rinse_volume
        if np.any(v_syr <= 0):
            # a zero effective draw leaves the in vivo concentration undefined
            raise ValidationError("effective syringe volume must be positive after rinse offset",
                                  run=series.run, line=series.label, step="syringe_volume")
        return v_syr

    def g(self, v_syr) -> np.ndarray:
        """
        Volume fraction of the draw made of blood left behind in the dead
        space: g(v) = mod(v, Vd) / Vd.
        """
        v = np.asarray(v_syr, dtype=float)
        return carry_over_fraction_jit(np.atleast_1d(v), self.constants.dead_space_volume).reshape(v.shape)

    def n_chamber(self) -> float:
        return chamber_moles(self.constants)

    def n_syringe(self, series: SampleSeries) -> np.ndarray:
        """Moles of tracer delivered to the detector by each sample."""
        return (series.ppm / 1e6) * self.n_chamber()

    def c_invivo(self, series: SampleSeries) -> np.ndarray:
        """Molar concentration if every draw were fresh blood."""
        return self.n_syringe(series) / self.syringe_volumes(series)

    def correct(self, series: SampleSeries) -> CorrectedSeries:
        cached = series._corrected.get(self.constants)
        if cached is not None:
            logger.debug("dead-space correction cache hit: run=%s line=%s", series.run, series.label)
            return cached

        try:
            v_syr = self.syringe_volumes(series)
            n_syr = self.n_syringe(series)
            g = carry_over_fraction_jit(v_syr, self.constants.dead_space_volume)
            conc = dead_space_recurrence_jit(n_syr, v_syr, g, self.constants.dead_space_volume)
            torr = conc_to_torr(conc, self.constants)
        except KetySchmidtError as e:
            raise e.with_context(run=series.run, line=series.label, step="dead_space_correction")

        result = CorrectedSeries(
            time=series.time,
            pressure=_frozen(torr),
            concentration=_frozen(conc),
            label=series.label,
            run=series.run,
        )
        series._corrected[self.constants] = result
        logger.debug("dead-space corrected %d samples: run=%s line=%s",
                     len(series), series.run, series.label)
        return result


def correct(series: SampleSeries, constants: Optional[PhysicalConstants] = None) -> CorrectedSeries:
    """Dead-space corrected partial pressures (Torr) for `series`, memoized per constants."""
    return DeadSpaceCorrector(constants).correct(series)

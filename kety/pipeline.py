import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

import pandas as pd

from kety.core import CorrectedSeries, KetySchmidtRun, correct
from kety.errors import KetySchmidtError
from kety.flow import CurveModel, FlowResult, KetySchmidtModel
from kety.units import PhysicalConstants, VolumeUnit, from_base

logger = logging.getLogger(__name__)


def correct_run(run: KetySchmidtRun,
                constants: Optional[PhysicalConstants] = None) -> Tuple[CorrectedSeries, CorrectedSeries]:
    """Dead-space corrected (arterial, venous) partial pressures for one run."""
    try:
        return correct(run.arterial, constants), correct(run.venous, constants)
    except KetySchmidtError as e:
        logger.error("Dead-space correction failed: %s", e.with_context(run=run.name), exc_info=True)
        raise


def correct_runs(runs: List[KetySchmidtRun], constants: Optional[PhysicalConstants] = None,
                 max_workers: Optional[int] = None) -> List[Tuple[CorrectedSeries, CorrectedSeries]]:
    """
    Corrects independent runs concurrently. Results keep the order of `runs`;
    the first failing run raises.
    """
    logger.info("Correcting %d runs", len(runs))
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(lambda r: correct_run(r, constants), runs))


def flow_for_run(arterial_fit: CurveModel, venous_fit: CurveModel, partition_coefficient: float = 1.0,
                 run: Optional[str] = None, **kwargs) -> FlowResult:
    try:
        return KetySchmidtModel(arterial_fit, venous_fit, partition_coefficient, **kwargs).solve()
    except KetySchmidtError as e:
        logger.error("Flow estimate failed: %s", e.with_context(run=run), exc_info=True)
        raise


def summary_frame(corrected: CorrectedSeries) -> pd.DataFrame:
    """Tabulates a corrected series for reporting."""
    return pd.DataFrame({
        "Time (min)": corrected.time,
        "Concentration (M)": corrected.concentration,
        "Partial Pressure (Torr)": corrected.pressure,
    })


def run_frame(run: KetySchmidtRun, constants: Optional[PhysicalConstants] = None) -> pd.DataFrame:
    """Raw samples and corrected pressures of both lines in one long table."""
    frames = []
    art, ven = correct_run(run, constants)
    for series, corrected in ((run.arterial, art), (run.venous, ven)):
        df = summary_frame(corrected)
        df.insert(0, "Line", series.label)
        df.insert(2, "Draw Volume (mL)", from_base(series.draw_volume, VolumeUnit.MILLILITER))
        df.insert(3, "ppm", series.ppm)
        frames.append(df)
    out = pd.concat(frames, ignore_index=True)
    out.insert(0, "Run", run.name)
    return out

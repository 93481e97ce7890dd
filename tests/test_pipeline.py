import logging

import pytest

from kety.core import KetySchmidtRun, SampleSeries, correct
from kety.errors import DegenerateFlowError, ValidationError
from kety.flow import ExponentialRiseCurve
from kety.pipeline import correct_run, correct_runs, flow_for_run, run_frame, summary_frame
from kety.units import PhysicalConstants


def _run(name):
    return KetySchmidtRun(
        name=name,
        arterial=SampleSeries([1.0, 3.0, 5.0], [0.28, 0.28, 0.28], [5.0, 12.0, 14.0],
                              label="arterial", run=name, volume_unit="mL"),
        venous=SampleSeries([2.0, 4.0, 6.0], [0.28, 0.28, 0.28], [1.0, 6.0, 10.0],
                            label="venous", run=name, volume_unit="mL"),
    )


def test_correct_runs_keeps_order():
    runs = [_run(f"run {i}") for i in range(5)]
    k = PhysicalConstants()
    results = correct_runs(runs, k, max_workers=3)
    assert len(results) == 5
    for run, (art, ven) in zip(runs, results):
        assert art.run == run.name and ven.run == run.name
        assert art is correct(run.arterial, k)
        assert ven is correct(run.venous, k)


def test_correct_run_failure_names_run():
    run = _run("bad")
    with pytest.raises(ValidationError) as exc:
        correct_run(run, PhysicalConstants(rinse_volume=0.0005))
    assert exc.value.run == "bad"
    assert exc.value.line == "arterial"


def test_frames():
    run = _run("r1")
    art, _ = correct_run(run)
    df = summary_frame(art)
    assert list(df.columns) == ["Time (min)", "Concentration (M)", "Partial Pressure (Torr)"]
    assert len(df) == 3

    full = run_frame(run)
    assert len(full) == 6
    assert list(full["Line"].unique()) == ["arterial", "venous"]
    assert set(full["Run"]) == {"r1"}
    assert full["Draw Volume (mL)"].iloc[0] == pytest.approx(0.28)


def test_flow_for_run():
    result = flow_for_run(ExponentialRiseCurve(50.0, 1.0, -10.0, 0.0),
                          ExponentialRiseCurve(50.0, 0.5, -10.0, 0.0), 1.0, run="r1")
    assert result.flow > 0

    curve = ExponentialRiseCurve(50.0, 1.0, -10.0, 0.0)
    with pytest.raises(DegenerateFlowError) as exc:
        flow_for_run(curve, curve, run="r2")
    assert exc.value.run == "r2"


def test_failures_are_logged_with_traceback(caplog):
    caplog.set_level(logging.ERROR, logger="kety.pipeline")
    with pytest.raises(ValidationError):
        correct_run(_run("bad"), PhysicalConstants(rinse_volume=0.0005))
    curve = ExponentialRiseCurve(50.0, 1.0, -10.0, 0.0)
    with pytest.raises(DegenerateFlowError):
        flow_for_run(curve, curve, run="r2")

    records = [r for r in caplog.records if r.name == "kety.pipeline"]
    assert len(records) == 2
    assert all(r.exc_info is not None for r in records)
    assert "run=bad" in records[0].getMessage()
    assert "run=r2" in records[1].getMessage()

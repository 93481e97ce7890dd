import json
import logging
import re
from dataclasses import fields
from io import StringIO
from typing import List

import numpy as np
import pandas as pd

from kety.core import KetySchmidtRun, SampleSeries
from kety.errors import ValidationError
from kety.units import PhysicalConstants, VolumeUnit

logger = logging.getLogger(__name__)

NOTEBOOK_COLUMNS = ("sample", "V", "hr", "min", "sec", "ppm")
_LABEL_RE = re.compile(r"^\s*(arterial|venous)\s*(\d*)\s*$", re.IGNORECASE)


class KetyIO:
    @staticmethod
    def parse_notebook(content: str, name: str = "run") -> List[KetySchmidtRun]:
        """
        Parses a tab-delimited lab notebook such as 2006mar1.txt.

        Format:
          sampleId  Vsyr  hr  min  sec  ppm
          arterial1
          a01       0.28  0   6    41   12
          ...
          venous1
          v01       0.28  0   7    15   1
          ...
          arterial2
          ...

        Vsyr is in mL. Every arterial block must have a venous partner;
        blocks are paired in order of appearance.
        """
        try:
            df = pd.read_csv(StringIO(content), sep="\t", dtype=str, skip_blank_lines=True)
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise ValidationError(f"unreadable notebook: {e}", step="parse_notebook") from e

        cols = [str(c).strip() for c in df.columns]
        if len(cols) < len(NOTEBOOK_COLUMNS):
            raise ValidationError(f"notebook header needs {len(NOTEBOOK_COLUMNS)} columns, got {cols}",
                                  step="parse_notebook")
        for col, pattern in zip(cols, NOTEBOOK_COLUMNS):
            if pattern not in col:
                raise ValidationError(f"notebook header column '{col}' should contain '{pattern}'",
                                      step="parse_notebook")
        df = df.iloc[:, :len(NOTEBOOK_COLUMNS)]
        df.columns = ["sample_id", "vsyr", "hr", "min", "sec", "ppm"]

        # Split rows into labelled blocks
        blocks = {"arterial": [], "venous": []}
        current = None
        for _, row in df.iterrows():
            sid = str(row["sample_id"]).strip()
            match = _LABEL_RE.match(sid)
            if match:
                current = {"suffix": match.group(2), "rows": []}
                blocks[match.group(1).lower()].append(current)
                continue
            if current is None:
                raise ValidationError(f"sample '{sid}' precedes any arterial/venous label line",
                                      step="parse_notebook")
            current["rows"].append(row)

        if not blocks["arterial"] or not blocks["venous"]:
            raise ValidationError("notebook needs arterial and venous label lines", step="parse_notebook")
        if len(blocks["arterial"]) != len(blocks["venous"]):
            raise ValidationError(
                f"every arterial run needs a venous run: {len(blocks['arterial'])} arterial, "
                f"{len(blocks['venous'])} venous", step="parse_notebook")

        runs = []
        for r, (art, ven) in enumerate(zip(blocks["arterial"], blocks["venous"])):
            run_name = f"{name} - Run {art['suffix'] or r + 1}"
            runs.append(KetySchmidtRun(
                name=run_name,
                arterial=KetyIO._series_from_rows(art["rows"], "arterial", run_name),
                venous=KetyIO._series_from_rows(ven["rows"], "venous", run_name),
            ))

        logger.info("Parsed %d runs from notebook '%s'", len(runs), name)
        return runs

    @staticmethod
    def _series_from_rows(rows, line: str, run: str) -> SampleSeries:
        if not rows:
            raise ValidationError("label line with no samples", run=run, line=line, step="parse_notebook")
        block = pd.DataFrame(rows)
        try:
            values = block[["vsyr", "hr", "min", "sec", "ppm"]].apply(pd.to_numeric, errors="raise")
        except (ValueError, TypeError) as e:
            raise ValidationError(f"non-numeric sample field: {e}", run=run, line=line,
                                  step="parse_notebook") from e

        minutes = 60.0 * values["hr"] + values["min"] + values["sec"] / 60.0
        return SampleSeries(
            time=minutes.to_numpy(),
            draw_volume=values["vsyr"].to_numpy(),
            ppm=values["ppm"].to_numpy(),
            label=line,
            run=run,
            volume_unit=VolumeUnit.MILLILITER,
        )

    @staticmethod
    def parse_csv(content: str) -> List[KetySchmidtRun]:
        """
        Parses a CSV file with modern headers.
        Expected columns: run_id, line, time, draw_volume_ml, ppm
        (line is 'arterial' or 'venous', time in minutes).
        """
        try:
            df = pd.read_csv(StringIO(content))
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise ValidationError(f"unreadable CSV: {e}", step="parse_csv") from e

        required = {"run_id", "line", "time", "draw_volume_ml", "ppm"}
        missing = required - set(df.columns)
        if missing:
            raise ValidationError(f"CSV missing columns: {sorted(missing)}", step="parse_csv")

        results = []
        for rid, sub_df in df.groupby("run_id", sort=False):
            run = str(rid)
            kinds = sub_df["line"].astype(str).str.strip().str.lower()
            unknown = sorted(set(kinds[~kinds.str.startswith(("a", "v"))]))
            if unknown:
                raise ValidationError(f"line must be arterial or venous, got {unknown}",
                                      run=run, step="parse_csv")
            try:
                values = sub_df[["time", "draw_volume_ml", "ppm"]].apply(pd.to_numeric, errors="raise")
            except (ValueError, TypeError) as e:
                raise ValidationError(f"non-numeric sample field: {e}", run=run, step="parse_csv") from e
            series = {}
            for line in ("arterial", "venous"):
                part = values[kinds.str.startswith(line[0])].sort_values("time")
                if part.empty:
                    raise ValidationError(f"no {line} samples", run=run, line=line, step="parse_csv")
                series[line] = SampleSeries(
                    time=part["time"].to_numpy(dtype=float),
                    draw_volume=part["draw_volume_ml"].to_numpy(dtype=float),
                    ppm=part["ppm"].to_numpy(dtype=float),
                    label=line,
                    run=run,
                    volume_unit=VolumeUnit.MILLILITER,
                )
            results.append(KetySchmidtRun(name=run, arterial=series["arterial"], venous=series["venous"]))

        return results

    @staticmethod
    def load_constants(content: str) -> PhysicalConstants:
        """
        Reads apparatus constants from a JSON object, e.g.
        {"dead_space_volume": 0.0012, "detector_volume": 0.333}.
        Volumes in L; omitted fields keep their defaults.
        """
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ValidationError(f"constants are not valid JSON: {e}", step="load_constants") from e
        if not isinstance(data, dict):
            raise ValidationError("constants must be a JSON object", step="load_constants")

        known = {f.name for f in fields(PhysicalConstants)}
        unknown = set(data) - known
        if unknown:
            raise ValidationError(f"unknown constants: {sorted(unknown)}", step="load_constants")

        for key, val in data.items():
            if key.endswith("_unit"):
                continue
            if not isinstance(val, (int, float)) or isinstance(val, bool) or not np.isfinite(val):
                raise ValidationError(f"constant '{key}' must be a number, got {val!r}",
                                      step="load_constants")
        return PhysicalConstants(**data)

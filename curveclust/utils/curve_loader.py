"""Curve loader utility for curveclust.

Loads long-format CSV files (one observation per row) into raw curves keyed by
group:

    group,x,y
    P1,0,0.12
    P1,1,0.35
    P2,0,0.08
    ...

A group observed at a single x value cannot form a curve. Such groups are kept
out of the loaded curves and reported as InsufficientDataError so the caller's
abort/exclude policy decides what happens to them.
"""

import csv
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from curveclust.errors import InsufficientDataError
from curveclust.models.schemas import RawCurve

logger = logging.getLogger(__name__)

# Distinct x values a RawCurve needs
MIN_DISTINCT_X = 2


@dataclass
class CurveFile:
    """Curves read from one file plus the groups too short to build."""

    curves: dict[str, RawCurve]
    insufficient: dict[str, InsufficientDataError] = field(default_factory=dict)


def read_curves_csv(
    path: str | Path,
    group_col: str = "group",
    x_col: str = "x",
    y_col: str = "y",
) -> CurveFile:
    """Read raw curves from a long-format CSV file.

    Rows whose group, x and y cells are all blank are skipped.

    Args:
        path: Path to the CSV file.
        group_col: Column holding the group key.
        x_col: Column holding the independent variable.
        y_col: Column holding the response.

    Returns:
        CurveFile with curves ordered by key (observations keep file order)
        and the groups with fewer than 2 distinct x values.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If a column is missing, a cell is not numeric, or a group
            holds invalid observations.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Curve file not found: {path}")

    observations: dict[str, tuple[list[float], list[float]]] = defaultdict(lambda: ([], []))

    with open(path, encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        columns = reader.fieldnames or []
        missing = [col for col in (group_col, x_col, y_col) if col not in columns]
        if missing:
            raise ValueError(f"{path.name}: missing column(s) {', '.join(missing)}")

        # Header is line 1
        for line_no, row in enumerate(reader, start=2):
            key = (row.get(group_col) or "").strip()
            x_cell = (row.get(x_col) or "").strip()
            y_cell = (row.get(y_col) or "").strip()
            if not (key or x_cell or y_cell):
                continue
            if not key:
                raise ValueError(f"{path.name}, line {line_no}: empty group key")
            try:
                x, y = float(x_cell), float(y_cell)
            except ValueError:
                raise ValueError(
                    f"{path.name}, line {line_no}: non-numeric value "
                    f"({x_col}={x_cell!r}, {y_col}={y_cell!r})"
                ) from None
            xs, ys = observations[key]
            xs.append(x)
            ys.append(y)

    curves: dict[str, RawCurve] = {}
    insufficient: dict[str, InsufficientDataError] = {}
    for key in sorted(observations):
        xs, ys = observations[key]
        n_distinct = len(set(xs))
        if n_distinct < MIN_DISTINCT_X:
            insufficient[key] = InsufficientDataError(key, n_distinct, MIN_DISTINCT_X)
            logger.debug(f"Group '{key}' observed at a single x value")
            continue
        try:
            curves[key] = RawCurve(key=key, x=tuple(xs), y=tuple(ys))
        except ValidationError as e:
            raise ValueError(f"{path.name}: invalid curve for group '{key}': {e}") from e

    logger.info(
        f"Loaded {len(curves)} groups ({sum(len(c.x) for c in curves.values())} observations) "
        f"from {path.name}"
    )
    if insufficient:
        logger.warning(
            f"{len(insufficient)} group(s) in {path.name} have a single x value: "
            f"{', '.join(insufficient)}"
        )
    return CurveFile(curves=curves, insufficient=insufficient)

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from cogbox.data.models import Series
from cogbox.errors import InputFileError

logger = logging.getLogger(__name__)


@dataclass
class LoadReport:
    rows_read: int = 0
    rows_dropped: int = 0
    values_masked: int = 0
    owners: Dict[str, int] = field(default_factory=dict)


class SeriesLoader:
    """
    Reads the raw tabular series and splits it into one Series per owner.

    Rows with an unusable owner id or timestamp, and repeated (owner, t) pairs,
    are dropped. Channel values that are non-numeric or outside their plausible
    range are kept as missing (NaN) so the sample grid stays intact and the
    feature windows apply their fill policy.
    """

    def __init__(
        self,
        channels: List[str],
        owner_column: str = "surgeon_id",
        time_column: str = "timestamp",
        label_column: Optional[str] = "cognitive_state",
        channel_ranges: Optional[Dict[str, Tuple[float, float]]] = None,
    ):
        self.channels = list(channels)
        self.owner_column = owner_column
        self.time_column = time_column
        self.label_column = label_column
        self.channel_ranges = dict(channel_ranges or {})
        self.report = LoadReport()

    def load_csv(self, path: str) -> Dict[str, Series]:
        if not os.path.exists(path):
            raise InputFileError(f"Input file not found: {path}")
        try:
            df = pd.read_csv(path)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise InputFileError(f"Could not parse {path}: {e}") from e
        logger.info(f"[LOADER] Read {len(df)} rows from {path}")
        return self.from_frame(df)

    def from_frame(self, df: pd.DataFrame) -> Dict[str, Series]:
        required = [self.owner_column, self.time_column] + self.channels
        missing = [c for c in required if c not in df.columns]
        if missing:
            raise InputFileError(f"Input is missing required columns: {missing}")

        self.report = LoadReport(rows_read=len(df))
        df = df.copy()

        # Row-level validity: owner and an integral timestamp are mandatory
        owner = df[self.owner_column]
        t = pd.to_numeric(df[self.time_column], errors="coerce")
        valid = owner.notna() & t.notna() & np.isfinite(t)
        valid &= (t.round() == t)
        df = df[valid].copy()
        owner = df[self.owner_column]
        if pd.api.types.is_float_dtype(owner) and (owner == owner.round()).all():
            # ids read as 1.0, 2.0 when the column had gaps
            owner = owner.astype(np.int64)
        df[self.owner_column] = owner.astype(str)
        df[self.time_column] = t[valid].astype(np.int64)

        df = df.sort_values([self.owner_column, self.time_column], kind="stable")
        dupes = df.duplicated([self.owner_column, self.time_column], keep="first")
        if dupes.any():
            logger.warning(f"[LOADER] Dropping {int(dupes.sum())} duplicate (owner, t) rows")
        df = df[~dupes]
        self.report.rows_dropped = self.report.rows_read - len(df)
        if self.report.rows_dropped:
            logger.warning(f"[LOADER] Dropped {self.report.rows_dropped} malformed rows")

        # Value-level validity: coerce, then mask out-of-range readings
        for channel in self.channels:
            values = pd.to_numeric(df[channel], errors="coerce").astype(float)
            values[~np.isfinite(values)] = np.nan
            bounds = self.channel_ranges.get(channel)
            if bounds is not None:
                low, high = bounds
                values[(values < low) | (values > high)] = np.nan
            masked = int(values.isna().sum())
            if masked:
                logger.warning(f"[LOADER] {masked} missing/out-of-range values in '{channel}'")
            self.report.values_masked += masked
            df[channel] = values

        has_labels = self.label_column is not None and self.label_column in df.columns

        series: Dict[str, Series] = {}
        for owner_id, group in df.groupby(self.owner_column, sort=True):
            series[owner_id] = Series(
                owner_id=owner_id,
                t=group[self.time_column].to_numpy(),
                channels={c: group[c].to_numpy() for c in self.channels},
                labels=group[self.label_column].to_numpy() if has_labels else None,
            )
            self.report.owners[owner_id] = len(group)

        if not series:
            raise InputFileError("Input contains no usable rows")

        logger.info(
            f"[LOADER] {len(series)} owners: "
            + ", ".join(f"{o}={n}" for o, n in self.report.owners.items())
        )
        return series

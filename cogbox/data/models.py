from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
from pydantic import BaseModel


@dataclass(frozen=True)
class Series:
    """
    Ordered samples for one owner.

    Positions are 1-based: position p is the p-th sample (t[p-1]). Arrays are
    made read-only on construction so nothing downstream can mutate raw values.
    """
    owner_id: str
    t: np.ndarray = field(repr=False)
    channels: Dict[str, np.ndarray] = field(repr=False)
    labels: Optional[np.ndarray] = field(default=None, repr=False)

    def __post_init__(self):
        t = np.asarray(self.t, dtype=np.int64)
        if t.ndim != 1:
            raise ValueError(f"`t` must be 1D, got shape {t.shape}")
        if t.size > 1 and np.any(np.diff(t) <= 0):
            raise ValueError(f"`t` must be strictly increasing for owner {self.owner_id}")

        frozen = {}
        for name, values in self.channels.items():
            v = np.array(values, dtype=float)
            if v.shape != t.shape:
                raise ValueError(
                    f"Channel '{name}' has {v.size} values but series has {t.size} samples"
                )
            v.setflags(write=False)
            frozen[name] = v
        t = t.copy()
        t.setflags(write=False)

        labels = self.labels
        if labels is not None:
            labels = np.array(labels, dtype=object)
            if labels.shape != t.shape:
                raise ValueError("`labels` must align with `t`")
            labels.setflags(write=False)

        object.__setattr__(self, "t", t)
        object.__setattr__(self, "channels", frozen)
        object.__setattr__(self, "labels", labels)

    def __len__(self) -> int:
        return int(self.t.size)

    @property
    def channel_names(self) -> List[str]:
        return list(self.channels)

    def raw_at(self, position: int) -> Dict[str, float]:
        idx = position - 1
        return {name: float(values[idx]) for name, values in self.channels.items()}

    def label_at(self, position: int) -> Optional[str]:
        if self.labels is None:
            return None
        label = self.labels[position - 1]
        if label is None or (isinstance(label, float) and np.isnan(label)):
            return None
        return str(label)

    def head(self, n: int) -> "Series":
        """First n samples as a new Series."""
        return Series(
            owner_id=self.owner_id,
            t=self.t[:n],
            channels={name: values[:n] for name, values in self.channels.items()},
            labels=None if self.labels is None else self.labels[:n],
        )


class Sample(BaseModel):
    owner_id: str
    position: int
    t: int
    values: Dict[str, Optional[float]]
    label: Optional[str] = None


class OwnerInfo(BaseModel):
    owner_id: str
    n_samples: int
    t_start: int
    t_end: int
    channels: List[str]
    has_labels: bool

"""Fixed-shape layout tables shared by every phase.

All six matrices are indexed [entity][effective time slice] and always share
one shape. Phases receive the container by reference and fill their own
table in place.
"""

from dataclasses import dataclass, fields

import numpy as np
from numpy.typing import NDArray

ABSENT = -1  # height / align sentinel


@dataclass
class Tables:
    session: NDArray[np.int64]
    presence: NDArray[np.int64]
    order: NDArray[np.int64]
    align: NDArray[np.int64]
    height: NDArray[np.int64]
    crossing: NDArray[np.int64]

    @classmethod
    def empty(cls, num_entities: int, num_timestamps: int) -> "Tables":
        shape = (num_entities, num_timestamps)
        return cls(
            session=np.zeros(shape, dtype=np.int64),
            presence=np.zeros(shape, dtype=np.int64),
            order=np.zeros(shape, dtype=np.int64),
            align=np.full(shape, ABSENT, dtype=np.int64),
            height=np.full(shape, ABSENT, dtype=np.int64),
            crossing=np.zeros(shape, dtype=np.int64),
        )

    @classmethod
    def from_sessions(cls, session: NDArray[np.int64], idle_ids: set[int]) -> "Tables":
        """Build the table set from a session-id matrix; presence is derived."""
        tables = cls.empty(*session.shape)
        tables.session[:] = session
        if idle_ids:
            idle = np.isin(session, sorted(idle_ids))
        else:
            idle = np.zeros(session.shape, dtype=bool)
        tables.presence[(session != 0) & ~idle] = 1
        tables.presence[idle] = -1
        return tables

    @property
    def span(self) -> tuple[int, int]:
        return self.session.shape  # type: ignore[return-value]

    def copy(self) -> "Tables":
        return Tables(**{f.name: getattr(self, f.name).copy() for f in fields(self)})


@dataclass
class IdAllocator:
    """Hands out session ids; contact and idle sessions share one sequence."""

    next_id: int = 1

    def allocate(self) -> int:
        value = self.next_id
        self.next_id += 1
        return value


def sparse_argsort(column: NDArray[np.int64]) -> list[int]:
    """Indices of the non-zero entries of `column`, ordered by value."""
    nonzero = np.flatnonzero(column)
    return nonzero[np.argsort(column[nonzero], kind="stable")].tolist()

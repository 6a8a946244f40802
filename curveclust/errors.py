"""Exception hierarchy for curveclust.

Every stage reports failures with the offending group key, pair or set of
pairs attached, so callers can decide whether to abort or exclude.

Note that an empty overlap between two curves is not an exception: it is the
``None`` marker stored in a ``DistanceMatrix`` cell.
"""


class CurveClustError(Exception):
    """Base exception for curveclust errors."""

    pass


class InsufficientDataError(CurveClustError):
    """Raised when a group's samples cannot support the regression degree."""

    def __init__(self, group_key: str, n_distinct: int, required: int) -> None:
        self.group_key = group_key
        self.n_distinct = n_distinct
        self.required = required
        super().__init__(
            f"Group '{group_key}' has {n_distinct} distinct x values, "
            f"at least {required} required"
        )


class UndefinedDistanceError(CurveClustError):
    """Raised when clustering is asked to use a matrix with undefined entries."""

    def __init__(self, pairs: list[tuple[str, str]]) -> None:
        self.pairs = list(pairs)
        shown = ", ".join(f"({a}, {b})" for a, b in self.pairs[:10])
        more = f" and {len(self.pairs) - 10} more" if len(self.pairs) > 10 else ""
        super().__init__(
            f"Distance matrix has {len(self.pairs)} undefined pair(s): {shown}{more}"
        )


class DegenerateIntervalError(CurveClustError):
    """Raised when an overlap is too narrow to normalize by its width.

    ``pair`` and ``width`` describe the first degenerate pair in key order;
    ``pairs`` lists every degenerate pair found in the same matrix.
    """

    def __init__(
        self,
        pair: tuple[str, str],
        width: float,
        epsilon: float,
        pairs: list[tuple[str, str]] | None = None,
    ) -> None:
        self.pair = pair
        self.width = width
        self.epsilon = epsilon
        self.pairs = list(pairs) if pairs else [pair]
        others = ""
        if len(self.pairs) > 1:
            shown = ", ".join(f"({a}, {b})" for a, b in self.pairs[:10])
            more = f" and {len(self.pairs) - 10} more" if len(self.pairs) > 10 else ""
            others = f"; {len(self.pairs)} degenerate pairs: {shown}{more}"
        super().__init__(
            f"Overlap of ({pair[0]}, {pair[1]}) has width {width!r}, "
            f"below the minimum of {epsilon!r}{others}"
        )

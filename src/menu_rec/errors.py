"""Exception types raised by the recommendation engine."""


class RecommenderError(Exception):
    """Base class for engine errors."""


class DimensionMismatchError(RecommenderError, ValueError):
    """Two vectors of different length were compared."""

    def __init__(self, left: int, right: int):
        super().__init__(f"Vectors must be of equal length. Got {left} and {right}")
        self.left = left
        self.right = right


class InvalidAttributeError(RecommenderError, ValueError):
    """An item or preference attribute is outside the declared catalog bounds."""

    def __init__(self, attribute: str, value, valid_range: tuple[int, int]):
        low, high = valid_range
        super().__init__(f"{attribute}={value!r} is outside the valid range {low}..{high}")
        self.attribute = attribute
        self.value = value
        self.valid_range = valid_range


class InvalidRatingError(RecommenderError, ValueError):
    """A rating outside the accepted scale."""

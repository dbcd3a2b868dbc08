"""Errors raised by the recommender core."""


class RecommenderError(Exception):
    """Base class for recommender errors."""


class UnknownEntity(RecommenderError, LookupError):
    """A user or item id (or index) is not in the rating matrix."""

    def __init__(self, kind, key):
        self.kind = kind
        self.key = key
        super().__init__(f"Unknown {kind}: {key!r}")


class InsufficientHistory(RecommenderError, ValueError):
    """A user has fewer observed ratings than the operation needs."""


class InvalidTrainerState(RecommenderError, RuntimeError):
    """The latent factor model was used before (or while) training."""


class ShapeMismatch(RecommenderError, ValueError):
    """Evaluator inputs are empty or of unequal length."""


class DuplicateRating(RecommenderError, ValueError):
    """The same (user, item) pair was rated more than once."""

    def __init__(self, user_id, item_id, count):
        self.user_id = user_id
        self.item_id = item_id
        self.count = count
        super().__init__(
            f"Duplicate rating for user {user_id!r}, item {item_id!r} "
            f"({count} records) and averaging is disabled"
        )


class DegenerateScoreRange(RuntimeWarning):
    """All raw scores were equal; the midpoint rating was used instead."""

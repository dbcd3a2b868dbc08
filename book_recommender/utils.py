# Utility Functions
# Rating loaders and record helpers shared by the recommender modules

import os

import numpy as np
import pandas as pd

from .config import (
    RATINGS_FILE, USER_COL, ITEM_COL, RATING_COL, IMPLICIT_RATING,
    TEST_SIZE, MIN_USER_RATINGS, RANDOM_STATE,
)

CANONICAL_COLUMNS = [USER_COL, ITEM_COL, RATING_COL]


def load_ratings(path=RATINGS_FILE, user_col=USER_COL, item_col=ITEM_COL,
                 rating_col=RATING_COL, sep=','):
    """
    Loads the clean ratings table from CSV.

    Args:
        path: Location of the CSV file
        user_col: Name of the user column in the file
        item_col: Name of the item column in the file
        rating_col: Name of the rating column in the file
        sep: Field separator

    Returns:
        pd.DataFrame: Ratings with user_id, item_id and rating columns.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Ratings file not found at {path}")

    df = pd.read_csv(path, sep=sep)
    missing = [c for c in (user_col, item_col, rating_col) if c not in df.columns]
    if missing:
        raise ValueError(f"Ratings file {path} is missing columns: {missing}")

    df = df.rename(columns={user_col: USER_COL, item_col: ITEM_COL, rating_col: RATING_COL})
    return df[CANONICAL_COLUMNS]


def ratings_to_frame(records):
    """
    Converts rating records into a DataFrame with the canonical columns.

    Accepts a DataFrame, an iterable of mappings with user_id/item_id/rating
    keys, or an iterable of (user_id, item_id, rating) tuples.

    Returns:
        pd.DataFrame: Copy of the records, in input order.
    """
    if isinstance(records, pd.DataFrame):
        missing = [c for c in CANONICAL_COLUMNS if c not in records.columns]
        if missing:
            raise ValueError(f"Ratings frame is missing columns: {missing}")
        df = records[CANONICAL_COLUMNS].copy()
    else:
        records = list(records)
        if records and isinstance(records[0], dict):
            df = pd.DataFrame.from_records(records, columns=CANONICAL_COLUMNS)
        else:
            df = pd.DataFrame(records, columns=CANONICAL_COLUMNS)

    if df[RATING_COL].isna().any():
        raise ValueError("Ratings must be numeric; found missing values")
    df[RATING_COL] = df[RATING_COL].astype(float)
    return df.reset_index(drop=True)


def drop_implicit_ratings(df, implicit_value=IMPLICIT_RATING):
    """Removes implicit ("no opinion") ratings before building the matrix."""
    return df[df[RATING_COL] != implicit_value].reset_index(drop=True)


def train_test_split_by_user(df, test_size=TEST_SIZE, min_ratings=MIN_USER_RATINGS,
                             random_state=RANDOM_STATE):
    """
    Holds out a share of each user's ratings for evaluation.

    Users with fewer than min_ratings ratings stay entirely in the training
    set. Every split user keeps at least one training and one test rating.

    Args:
        df: Ratings DataFrame
        test_size: Share of each user's ratings moved to the test set
        min_ratings: Minimum ratings a user needs to be split
        random_state: Seed for the per-user sampling

    Returns:
        tuple: (df_train, df_test)
    """
    if not 0 < test_size < 1:
        raise ValueError(f"test_size must be in (0, 1), got {test_size}")

    rng = np.random.RandomState(random_state)
    test_index = []

    for _, group in df.groupby(USER_COL, sort=False):
        n_ratings = len(group)
        if n_ratings < max(2, min_ratings):
            continue
        n_test = min(max(1, int(round(n_ratings * test_size))), n_ratings - 1)
        chosen = rng.choice(group.index.values, size=n_test, replace=False)
        test_index.extend(chosen.tolist())

    df_test = df.loc[sorted(test_index)]
    df_train = df.drop(index=test_index)
    return df_train.reset_index(drop=True), df_test.reset_index(drop=True)

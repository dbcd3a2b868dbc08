import numpy as np
import pandas as pd
import pytest

from book_recommender.matrix_factorization import FactorizationConfig
from book_recommender.rating_matrix import create_user_item_matrix


@pytest.fixture
def small_records():
    """3 users x 3 items, two ratings per user."""
    return [
        ('u1', 'A', 5), ('u1', 'B', 3),
        ('u2', 'A', 4), ('u2', 'C', 5),
        ('u3', 'B', 4), ('u3', 'C', 2),
    ]


@pytest.fixture
def small_matrix(small_records):
    return create_user_item_matrix(small_records)


@pytest.fixture
def random_ratings():
    """40 users x 25 items, ~30% observed, ratings 1-10."""
    rng = np.random.RandomState(0)
    rows = []
    for u in range(40):
        for i in range(25):
            if rng.rand() < 0.3:
                rows.append((f"user{u}", f"book{i}", int(rng.randint(1, 11))))
    # Guarantee every user has at least one rating
    for u in range(40):
        rows.append((f"user{u}", f"book{u % 25}", int(rng.randint(1, 11))))
    return pd.DataFrame(rows, columns=['user_id', 'item_id', 'rating'])


@pytest.fixture
def random_matrix(random_ratings):
    return create_user_item_matrix(random_ratings)


@pytest.fixture
def dense_ratings():
    """6 users who rated all 6 items, generated from two latent tastes."""
    users = [f"user{u}" for u in range(6)]
    items = [f"book{i}" for i in range(6)]
    taste = np.array([[2.0, 0.5], [1.8, 0.7], [0.4, 2.2], [0.6, 2.0], [1.2, 1.2], [2.1, 0.3]])
    genre = np.array([[2.0, 0.2], [1.8, 0.5], [0.3, 2.0], [0.5, 1.9], [1.0, 1.0], [2.2, 0.4]])
    values = np.clip(np.rint(taste @ genre.T), 1, 10)
    rows = [(users[u], items[i], float(values[u, i])) for u in range(6) for i in range(6)]
    return pd.DataFrame(rows, columns=['user_id', 'item_id', 'rating'])


@pytest.fixture
def small_config():
    return FactorizationConfig(
        param_grid={
            'rank': [2, 3],
            'learning_rate': [0.05, 0.1],
            'l2_user': [0.01],
            'l2_item': [0.01],
        },
        tune_iterations=10,
        train_iterations=60,
        validation_size=0.25,
        n_threads=1,
    )

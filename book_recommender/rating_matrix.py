"""
Rating Matrix Builder
=====================
Builds the dense User-Item rating matrix used by every recommender:
- Stable id -> index mappings (first-appearance order)
- Duplicate (user, item) ratings merged by their mean
- Fill value for unobserved cells, plus an explicit observed mask
"""

import numpy as np
from scipy.sparse import csr_matrix

from .config import FILL_VALUE, USER_COL, ITEM_COL, RATING_COL
from .exceptions import DuplicateRating, UnknownEntity
from .utils import ratings_to_frame


def create_user_item_matrix(ratings, fill_value=FILL_VALUE, average_duplicates=True,
                            show_progress=False):
    """
    Create User-Item rating matrix.
    Returns dense matrix, observed mask, sparse copy and mappings.
    """
    df_ratings = ratings_to_frame(ratings)

    if show_progress:
        print("\n" + "=" * 60)
        print("CREATING USER-ITEM MATRIX")
        print("=" * 60)

    # Create mappings
    users = df_ratings[USER_COL].unique()
    items = df_ratings[ITEM_COL].unique()

    user_to_idx = {user: idx for idx, user in enumerate(users)}
    idx_to_user = {idx: user for idx, user in enumerate(users)}
    item_to_idx = {item: idx for idx, item in enumerate(items)}
    idx_to_item = {idx: item for idx, item in enumerate(items)}

    n_users = len(users)
    n_items = len(items)

    row_indices = df_ratings[USER_COL].map(user_to_idx).values.astype(np.int64)
    col_indices = df_ratings[ITEM_COL].map(item_to_idx).values.astype(np.int64)
    ratings_values = df_ratings[RATING_COL].values.astype(np.float64)

    # Duplicate entries are summed on conversion; counts give the mean
    sums = csr_matrix((ratings_values, (row_indices, col_indices)),
                      shape=(n_users, n_items)).toarray()
    counts = csr_matrix((np.ones_like(ratings_values), (row_indices, col_indices)),
                        shape=(n_users, n_items)).toarray()

    n_duplicates = int(np.sum(counts > 1))
    if n_duplicates and not average_duplicates:
        u_idx, i_idx = np.argwhere(counts > 1)[0]
        raise DuplicateRating(idx_to_user[u_idx], idx_to_item[i_idx], int(counts[u_idx, i_idx]))

    observed = counts > 0
    matrix = np.full((n_users, n_items), fill_value, dtype=np.float64)
    matrix[observed] = sums[observed] / counts[observed]

    sparse = csr_matrix(np.where(observed, matrix, 0.0))

    if show_progress:
        print(f"[DONE] Matrix shape: {matrix.shape}")
        print(f"       Observed entries: {int(observed.sum()):,}")
        if n_duplicates:
            print(f"       Averaged duplicate pairs: {n_duplicates:,}")

    matrix_data = {
        'matrix': matrix,
        'observed': observed,
        'sparse': sparse,
        'user_to_idx': user_to_idx,
        'idx_to_user': idx_to_user,
        'item_to_idx': item_to_idx,
        'idx_to_item': idx_to_item,
        'n_users': n_users,
        'n_items': n_items,
        'fill_value': fill_value,
    }
    if show_progress:
        print(f"       Sparsity: {matrix_sparsity(matrix_data):.4%}")
    return matrix_data


def get_user_index(matrix_data, user_id):
    """Row index of user_id; raises UnknownEntity if absent."""
    try:
        return matrix_data['user_to_idx'][user_id]
    except KeyError:
        raise UnknownEntity("user", user_id) from None


def get_item_index(matrix_data, item_id):
    """Column index of item_id; raises UnknownEntity if absent."""
    try:
        return matrix_data['item_to_idx'][item_id]
    except KeyError:
        raise UnknownEntity("item", item_id) from None


def observed_ratings(matrix_data):
    """Dense ratings with every unobserved cell set to 0."""
    return np.where(matrix_data['observed'], matrix_data['matrix'], 0.0)


def rated_items(matrix_data, user_id):
    """Item ids the user has rated, in column order."""
    user_idx = get_user_index(matrix_data, user_id)
    idx_to_item = matrix_data['idx_to_item']
    return [idx_to_item[i] for i in np.flatnonzero(matrix_data['observed'][user_idx])]


def matrix_sparsity(matrix_data):
    """Fraction of user-item cells with no observed rating."""
    n_cells = matrix_data['n_users'] * matrix_data['n_items']
    if n_cells == 0:
        return 1.0
    return 1 - matrix_data['observed'].sum() / n_cells


def to_index_triples(ratings, matrix_data):
    """
    Map rating records to contiguous (user_idx, item_idx, rating) arrays.

    Records whose user or item is not in the matrix are dropped.

    Returns:
        tuple: (user_indices, item_indices, ratings) as numpy arrays
    """
    df_ratings = ratings_to_frame(ratings)
    user_indices = df_ratings[USER_COL].map(matrix_data['user_to_idx'])
    item_indices = df_ratings[ITEM_COL].map(matrix_data['item_to_idx'])
    known = user_indices.notna() & item_indices.notna()

    return (
        user_indices[known].values.astype(np.int64),
        item_indices[known].values.astype(np.int64),
        df_ratings.loc[known, RATING_COL].values.astype(np.float64),
    )

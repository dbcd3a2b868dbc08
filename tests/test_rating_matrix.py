import numpy as np
import pandas as pd
import pytest

from book_recommender.exceptions import DuplicateRating, UnknownEntity
from book_recommender.rating_matrix import (
    create_user_item_matrix, get_item_index, get_user_index, matrix_sparsity,
    observed_ratings, rated_items, to_index_triples,
)


def test_duplicates_are_averaged():
    matrix_data = create_user_item_matrix([('u1', 'A', 6), ('u1', 'A', 8), ('u2', 'B', 3)])

    assert matrix_data['matrix'][0, 0] == 7
    assert matrix_data['observed'].sum() == 2
    assert matrix_data['n_users'] == 2
    assert matrix_data['n_items'] == 2


def test_duplicates_raise_when_averaging_disabled():
    with pytest.raises(DuplicateRating) as excinfo:
        create_user_item_matrix([('u1', 'A', 6), ('u1', 'A', 8)], average_duplicates=False)

    assert excinfo.value.user_id == 'u1'
    assert excinfo.value.item_id == 'A'
    assert "'u1'" in str(excinfo.value) and "'A'" in str(excinfo.value)


def test_index_order_follows_first_appearance(small_matrix):
    assert small_matrix['user_to_idx'] == {'u1': 0, 'u2': 1, 'u3': 2}
    assert small_matrix['item_to_idx'] == {'A': 0, 'B': 1, 'C': 2}
    assert small_matrix['idx_to_item'] == {0: 'A', 1: 'B', 2: 'C'}


def test_dense_matrix_uses_fill_value(small_records):
    matrix_data = create_user_item_matrix(small_records, fill_value=-1)

    expected = np.array([[5, 3, -1], [4, -1, 5], [-1, 4, 2]], dtype=float)
    np.testing.assert_array_equal(matrix_data['matrix'], expected)
    np.testing.assert_array_equal(matrix_data['observed'], expected != -1)
    np.testing.assert_array_equal(observed_ratings(matrix_data), np.where(expected == -1, 0, expected))
    assert matrix_data['sparse'].nnz == 6


def test_accepts_mappings_and_frames(small_records):
    as_dicts = [{'user_id': u, 'item_id': i, 'rating': r} for u, i, r in small_records]
    as_frame = pd.DataFrame(small_records, columns=['user_id', 'item_id', 'rating'])

    np.testing.assert_array_equal(
        create_user_item_matrix(as_dicts)['matrix'],
        create_user_item_matrix(as_frame)['matrix'],
    )


def test_lookups(small_matrix):
    assert get_user_index(small_matrix, 'u2') == 1
    assert get_item_index(small_matrix, 'C') == 2
    assert rated_items(small_matrix, 'u3') == ['B', 'C']

    with pytest.raises(UnknownEntity):
        get_user_index(small_matrix, 'nobody')
    with pytest.raises(LookupError):
        get_item_index(small_matrix, 'Z')


def test_sparsity(small_matrix):
    assert matrix_sparsity(small_matrix) == pytest.approx(1 / 3)


def test_progress_reports_sparsity(small_records, capsys):
    create_user_item_matrix(small_records, show_progress=True)

    assert "Sparsity: 33.3333%" in capsys.readouterr().out


def test_to_index_triples_drops_unknown_ids(small_matrix):
    users, items, ratings = to_index_triples(
        [('u1', 'C', 7), ('ghost', 'A', 3), ('u3', 'Z', 1), ('u2', 'B', 2)],
        small_matrix,
    )

    np.testing.assert_array_equal(users, [0, 1])
    np.testing.assert_array_equal(items, [2, 1])
    np.testing.assert_array_equal(ratings, [7.0, 2.0])

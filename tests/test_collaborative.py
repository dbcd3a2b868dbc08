import numpy as np
import pytest

from book_recommender.collaborative import (
    item_based_recommend, normalize_scores, top_n_recommendations, user_based_recommend,
)
from book_recommender.exceptions import DegenerateScoreRange, InsufficientHistory, UnknownEntity
from book_recommender.rating_matrix import create_user_item_matrix
from book_recommender.similarity import compute_item_similarity, compute_user_similarity


def _scores(recommendations):
    return {r['item_id']: r['score'] for r in recommendations}


def test_user_based_hand_computed_scenario(small_matrix):
    s13 = 12 / np.sqrt(34 * 20)
    s23 = 10 / np.sqrt(41 * 20)
    raw = {'A': s13 * 5 + s23 * 4, 'B': s13 * 3, 'C': s23 * 5}
    low, high = raw['B'], raw['A']

    recommendations = user_based_recommend('u3', small_matrix, compute_user_similarity(small_matrix))

    assert [r['item_id'] for r in recommendations] == ['A', 'C', 'B']
    scores = _scores(recommendations)
    assert scores['A'] == pytest.approx(10)
    assert scores['B'] == pytest.approx(1)
    assert scores['C'] == pytest.approx(1 + 9 * (raw['C'] - low) / (high - low))

    top = top_n_recommendations(recommendations, n=1)
    assert top[0]['item_id'] == 'A'
    assert top[0]['already_rated'] is False
    assert {r['item_id'] for r in recommendations if r['already_rated']} == {'B', 'C'}


def test_user_based_computes_similarity_lazily(small_matrix):
    lazy = user_based_recommend('u1', small_matrix)
    eager = user_based_recommend('u1', small_matrix, compute_user_similarity(small_matrix))

    assert lazy == eager


def test_item_based_hand_computed_scenario(small_matrix):
    recommendations = item_based_recommend('u3', small_matrix, compute_item_similarity(small_matrix))

    # B and C tie at sim(B, C); the tie keeps column order
    assert [r['item_id'] for r in recommendations] == ['A', 'B', 'C']
    scores = _scores(recommendations)
    assert scores['A'] == pytest.approx(10)
    assert scores['B'] == pytest.approx(1)
    assert scores['C'] == pytest.approx(1)


def test_item_based_single_rated_item_follows_similarity_column():
    records = [
        ('solo', 'A', 7),
        ('u2', 'A', 5), ('u2', 'B', 4), ('u2', 'C', 1),
        ('u3', 'A', 2), ('u3', 'C', 5), ('u3', 'D', 3),
    ]
    matrix_data = create_user_item_matrix(records)
    item_similarity = compute_item_similarity(matrix_data)

    recommendations = item_based_recommend('solo', matrix_data, item_similarity)

    expected = normalize_scores(item_similarity[:, 0])
    scores = _scores(recommendations)
    for item_id, idx in matrix_data['item_to_idx'].items():
        assert scores[item_id] == pytest.approx(expected[idx])


@pytest.mark.parametrize('recommend', [user_based_recommend, item_based_recommend])
def test_scores_within_rating_bounds(random_matrix, recommend):
    for user_id in list(random_matrix['user_to_idx'])[:10]:
        scores = np.array([r['score'] for r in recommend(user_id, random_matrix, min_rating=1, max_rating=5)])

        assert len(scores) == random_matrix['n_items']
        assert np.all(scores >= 1) and np.all(scores <= 5)
        assert np.all(np.diff(scores) <= 0)


@pytest.mark.parametrize('recommend', [user_based_recommend, item_based_recommend])
def test_degenerate_scores_fall_back_to_midpoint(recommend):
    # No overlap: every similarity is 0, so every raw score is 0
    matrix_data = create_user_item_matrix([('u1', 'A', 5), ('u2', 'B', 3), ('u3', 'C', 8)])

    with pytest.warns(DegenerateScoreRange):
        recommendations = recommend('u1', matrix_data, min_rating=1, max_rating=10)

    assert [r['item_id'] for r in recommendations] == ['A', 'B', 'C']
    assert all(r['score'] == 5.5 for r in recommendations)


def test_unknown_user(small_matrix):
    with pytest.raises(UnknownEntity):
        user_based_recommend('nobody', small_matrix)
    with pytest.raises(UnknownEntity):
        item_based_recommend('nobody', small_matrix)


def test_item_based_without_history(small_matrix):
    matrix_data = dict(small_matrix)
    observed = small_matrix['observed'].copy()
    observed[2] = False
    matrix_data['observed'] = observed

    with pytest.raises(InsufficientHistory):
        item_based_recommend('u3', matrix_data)


def test_normalize_scores():
    np.testing.assert_allclose(normalize_scores([0, 5, 10], 1, 5), [1, 3, 5])
    assert normalize_scores([], 1, 5).size == 0
    with pytest.raises(ValueError):
        normalize_scores([1, 2], 5, 1)
    with pytest.raises(ValueError):
        normalize_scores([1, np.nan], 1, 5)


def test_top_n_keeps_rated_when_asked(small_matrix):
    recommendations = user_based_recommend('u3', small_matrix)

    assert len(top_n_recommendations(recommendations, n=10)) == 1
    assert len(top_n_recommendations(recommendations, n=2, exclude_rated=False)) == 2


@pytest.mark.parametrize('recommend', [user_based_recommend, item_based_recommend])
def test_result_fields(small_matrix, recommend):
    for recommendation in recommend('u1', small_matrix):
        assert set(recommendation) == {'item_id', 'score', 'already_rated'}
        assert isinstance(recommendation['already_rated'], bool)

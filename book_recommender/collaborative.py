"""
Collaborative Filtering Recommenders
====================================
Implements the two similarity-based recommenders:
- User-Based CF: similarity-weighted sum of other users' ratings
- Item-Based CF: sum of similarities to the items the user already rated

Both min-max normalize raw scores into the rating scale and fall back to
the midpoint rating when every raw score is equal.
"""

import warnings

import numpy as np

from .config import MIN_RATING, MAX_RATING, TOP_N
from .exceptions import DegenerateScoreRange, InsufficientHistory
from .rating_matrix import get_user_index, observed_ratings
from .similarity import compute_user_similarity, compute_item_similarity


# ============================================================================
# PART 1: SCORE NORMALIZATION
# ============================================================================

def normalize_scores(raw_scores, min_rating=MIN_RATING, max_rating=MAX_RATING):
    """
    Min-max normalize raw scores into [min_rating, max_rating].

    If all raw scores are equal the range is undefined; every item then gets
    the midpoint rating and a DegenerateScoreRange warning is emitted.
    """
    if max_rating < min_rating:
        raise ValueError(f"max_rating ({max_rating}) must be >= min_rating ({min_rating})")

    raw_scores = np.asarray(raw_scores, dtype=np.float64)
    if raw_scores.size == 0:
        return raw_scores.copy()
    if not np.all(np.isfinite(raw_scores)):
        raise ValueError("Raw scores contain NaN or infinite values")

    min_score = raw_scores.min()
    max_score = raw_scores.max()

    if max_score == min_score:
        midpoint = (min_rating + max_rating) / 2
        warnings.warn(
            f"All {raw_scores.size} raw scores equal {min_score:.4f}; using midpoint rating {midpoint}",
            DegenerateScoreRange,
            stacklevel=3,
        )
        return np.full(raw_scores.shape, midpoint, dtype=np.float64)

    scaled = (raw_scores - min_score) / (max_score - min_score)
    return np.clip(min_rating + scaled * (max_rating - min_rating), min_rating, max_rating)


# ============================================================================
# PART 2: RESULT FORMATTING
# ============================================================================

def build_recommendations(scores, rated_mask, idx_to_item, item_indices=None):
    """
    Convert per-item scores into a ranked recommendation list.

    Each entry is {item_id, score, already_rated}; already_rated is the
    "already interacted" flag (the user has a rating for the item).
    Sorted by score descending; Python's stable sort keeps column order
    for ties.
    """
    if item_indices is None:
        item_indices = range(len(scores))

    recommendations = [
        {
            'item_id': idx_to_item[item_idx],
            'score': float(score),
            'already_rated': bool(rated_mask[item_idx]),
        }
        for item_idx, score in zip(item_indices, scores)
    ]
    recommendations.sort(key=lambda x: x['score'], reverse=True)
    return recommendations


def top_n_recommendations(recommendations, n=TOP_N, exclude_rated=True):
    """Top-n of a ranked list, optionally dropping already rated items."""
    if exclude_rated:
        recommendations = [r for r in recommendations if not r['already_rated']]
    return recommendations[:n]


# ============================================================================
# PART 3: USER-BASED CF
# ============================================================================

def user_based_scores(user_idx, ratings, user_similarity):
    """Raw score per item: target's similarity row times the rating matrix."""
    return user_similarity[user_idx] @ ratings


def user_based_recommend(user_id, matrix_data, user_similarity=None,
                         min_rating=MIN_RATING, max_rating=MAX_RATING):
    """
    Score every item for a user with user-based CF.

    raw(item) = sum_u sim(target, u) * rating(u, item); the self term is
    zero because the similarity diagonal is zero.
    """
    user_idx = get_user_index(matrix_data, user_id)
    if user_similarity is None:
        user_similarity = compute_user_similarity(matrix_data)

    ratings = observed_ratings(matrix_data)
    raw_scores = user_based_scores(user_idx, ratings, user_similarity)
    scores = normalize_scores(raw_scores, min_rating, max_rating)

    return build_recommendations(scores, matrix_data['observed'][user_idx], matrix_data['idx_to_item'])


# ============================================================================
# PART 4: ITEM-BASED CF
# ============================================================================

def item_based_scores(rated_mask, item_similarity):
    """Raw score per item: sum of its similarities to every rated item."""
    return item_similarity[:, rated_mask].sum(axis=1)


def item_based_recommend(user_id, matrix_data, item_similarity=None,
                         min_rating=MIN_RATING, max_rating=MAX_RATING):
    """
    Score every item for a user with item-based CF.

    A user with a single rated item is the one-term case of the same sum.
    """
    user_idx = get_user_index(matrix_data, user_id)
    rated_mask = matrix_data['observed'][user_idx]
    if not rated_mask.any():
        raise InsufficientHistory(f"User {user_id!r} has no rated items")

    if item_similarity is None:
        item_similarity = compute_item_similarity(matrix_data)

    raw_scores = item_based_scores(rated_mask, item_similarity)
    scores = normalize_scores(raw_scores, min_rating, max_rating)

    return build_recommendations(scores, rated_mask, matrix_data['idx_to_item'])

"""
Ensemble Recommender
====================
Averages the three recommenders for one user:
- User-Based CF score
- Item-Based CF score
- Latent factor (NMF) score

Rows are inner-joined on item_id. An item missing from any of the three
sources is dropped, not imputed, so coverage is limited to items every
recommender scored.
"""

import numpy as np
import pandas as pd

from .collaborative import user_based_recommend, item_based_recommend
from .config import MIN_RATING, MAX_RATING
from .rating_matrix import get_user_index
from .similarity import SimilarityCache

SCORE_COLUMNS = ['user_cf_score', 'item_cf_score', 'mf_score']


def _scores_frame(recommendations, column):
    frame = pd.DataFrame(
        [(r['item_id'], r['score']) for r in recommendations],
        columns=['item_id', column],
    )
    return frame.drop_duplicates(subset='item_id', keep='first')


def combine_recommendations(user_cf, item_cf, mf, show_progress=False):
    """
    Inner-join three recommendation lists and average their scores.

    Returns:
        pd.DataFrame: item_id, the three component scores, mean_score and
        ensemble_score = round(mean_score). Ordered as in user_cf.
    """
    combined = (
        _scores_frame(user_cf, 'user_cf_score')
        .merge(_scores_frame(item_cf, 'item_cf_score'), on='item_id', how='inner')
        .merge(_scores_frame(mf, 'mf_score'), on='item_id', how='inner')
    )

    combined['mean_score'] = combined[SCORE_COLUMNS].astype(float).mean(axis=1)
    combined['ensemble_score'] = np.round(combined['mean_score'])

    if show_progress:
        all_items = {r['item_id'] for r in user_cf} | {r['item_id'] for r in item_cf} | {r['item_id'] for r in mf}
        print(f"[INFO] Ensemble rows: {len(combined):,} "
              f"(user-CF {len(user_cf):,}, item-CF {len(item_cf):,}, MF {len(mf):,})")
        if len(all_items) > len(combined):
            print(f"[SKIP] {len(all_items) - len(combined):,} items not scored by all three recommenders")

    return combined.reset_index(drop=True)


def ensemble_recommend(user_id, test_items, matrix_data, model, similarity_cache=None,
                       min_rating=MIN_RATING, max_rating=MAX_RATING, show_progress=False):
    """
    Run all three recommenders for one user and combine them.

    The latent factor predictions are restricted to test_items (the user's
    held-out items); test items missing from the matrix are skipped.
    """
    user_idx = get_user_index(matrix_data, user_id)
    test_items = list(test_items)
    if similarity_cache is None:
        similarity_cache = SimilarityCache(matrix_data)

    user_cf = user_based_recommend(
        user_id, matrix_data, similarity_cache.user_similarity,
        min_rating=min_rating, max_rating=max_rating,
    )
    item_cf = item_based_recommend(
        user_id, matrix_data, similarity_cache.item_similarity,
        min_rating=min_rating, max_rating=max_rating,
    )

    item_to_idx = matrix_data['item_to_idx']
    test_indices = [item_to_idx[item] for item in test_items if item in item_to_idx]
    mf = model.recommend_for_user(
        user_idx, test_indices, matrix_data['idx_to_item'], matrix_data['observed'][user_idx]
    )

    if show_progress:
        print("\n" + "=" * 60)
        print(f"ENSEMBLE FOR USER {user_id}")
        print("=" * 60)
        print(f"       Test items in matrix: {len(test_indices):,} of {len(test_items):,}")

    return combine_recommendations(user_cf, item_cf, mf, show_progress=show_progress)

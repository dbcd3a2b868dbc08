"""
Book Recommender Pipeline
=========================
Single entry point for the ensemble recommender:
1. Load clean ratings and drop implicit (0) ratings
2. Hold out part of each user's ratings
3. Build the rating matrix and similarity cache
4. Tune and train the latent factor model
5. Ensemble the three recommenders for one target user and compare errors

Usage: python -m book_recommender.main [ratings.csv] [user_id]
"""

import sys
import warnings

from .collaborative import top_n_recommendations, user_based_recommend
from .config import RATINGS_FILE, USER_COL, ITEM_COL, RATING_COL, TOP_N
from .evaluation import compare_models, format_comparison_table
from .exceptions import DegenerateScoreRange
from .hybrid import ensemble_recommend
from .matrix_factorization import LatentFactorModel
from .rating_matrix import create_user_item_matrix, to_index_triples
from .similarity import SimilarityCache
from .utils import load_ratings, drop_implicit_ratings, train_test_split_by_user


def _coerce_user_id(user_id, known_users):
    """Command-line ids arrive as strings; match integer ids when needed."""
    if user_id is None or user_id in known_users:
        return user_id
    try:
        as_int = int(user_id)
    except (TypeError, ValueError):
        return user_id
    return as_int if as_int in known_users else user_id


def select_target_user(df_test, matrix_data, user_id=None):
    """Given user, else the first held-out user present in the matrix."""
    if user_id is not None:
        return user_id
    for candidate in df_test[USER_COL].unique():
        if candidate in matrix_data['user_to_idx']:
            return candidate
    return None


def main(ratings_file=RATINGS_FILE, user_id=None, config=None):
    """Main ensemble pipeline."""
    print("\n" + "=" * 60)
    print("BOOK RECOMMENDER ENSEMBLE")
    print("=" * 60)

    # Load data
    df_ratings = load_ratings(ratings_file)
    print(f"[LOADED] Ratings: {len(df_ratings):,}")
    print(f"         Users: {df_ratings[USER_COL].nunique():,}")
    print(f"         Items: {df_ratings[ITEM_COL].nunique():,}")

    df_ratings = drop_implicit_ratings(df_ratings)
    print(f"[INFO] Explicit ratings: {len(df_ratings):,}")

    df_train, df_test = train_test_split_by_user(df_ratings)
    print(f"[INFO] Train: {len(df_train):,}  Test: {len(df_test):,}")

    # Build matrix and similarities
    matrix_data = create_user_item_matrix(df_train, show_progress=True)
    similarity_cache = SimilarityCache(matrix_data, show_progress=True)

    # Latent factor model
    user_idx, item_idx, ratings = to_index_triples(df_train, matrix_data)
    model = LatentFactorModel(config)
    model.tune_and_fit(user_idx, item_idx, ratings,
                       n_users=matrix_data['n_users'], n_items=matrix_data['n_items'],
                       verbose=True)

    # Target user
    user_id = _coerce_user_id(user_id, matrix_data['user_to_idx'])
    target_user = select_target_user(df_test, matrix_data, user_id)
    if target_user is None:
        print("[WARNING] No held-out user available for evaluation.")
        return None

    user_test = (
        df_test[df_test[USER_COL] == target_user]
        .groupby(ITEM_COL, sort=False)[RATING_COL].mean()
    )

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", DegenerateScoreRange)
        ensemble = ensemble_recommend(
            target_user, user_test.index, matrix_data, model, similarity_cache,
            show_progress=True,
        )
        novel = top_n_recommendations(
            user_based_recommend(target_user, matrix_data, similarity_cache.user_similarity),
            n=TOP_N,
        )
    for warning in caught:
        print(f"[WARNING] {warning.message}")

    print(f"\nTop {TOP_N} unread items (User-Based CF) for user {target_user}:")
    for i, rec in enumerate(novel, 1):
        print(f"  {i}. {rec['item_id']} (score: {rec['score']:.2f})")

    if ensemble.empty:
        print("[WARNING] No held-out item was scored by all three recommenders.")
        return {'ensemble': ensemble, 'metrics': None, 'model': model}

    ensemble['true_rating'] = ensemble['item_id'].map(user_test)

    print("\n" + "=" * 60)
    print(f"EVALUATION ON {len(ensemble):,} HELD-OUT ITEMS")
    print("=" * 60)
    metrics = compare_models({
        'User-Based CF': (ensemble['true_rating'], ensemble['user_cf_score']),
        'Item-Based CF': (ensemble['true_rating'], ensemble['item_cf_score']),
        'NMF': (ensemble['true_rating'], ensemble['mf_score']),
        'Ensemble': (ensemble['true_rating'], ensemble['ensemble_score']),
    })
    print(format_comparison_table(metrics))

    print("\n" + "=" * 60)
    print("[DONE] Ensemble pipeline complete!")
    print("=" * 60 + "\n")

    return {
        'target_user': target_user,
        'ensemble': ensemble,
        'metrics': metrics,
        'model': model,
        'matrix_data': matrix_data,
    }


if __name__ == "__main__":
    args = sys.argv[1:]
    main(
        ratings_file=args[0] if args else RATINGS_FILE,
        user_id=args[1] if len(args) > 1 else None,
    )

import pandas as pd

from book_recommender.main import main


def test_pipeline_runs_end_to_end(tmp_path, dense_ratings, small_config, capsys):
    path = tmp_path / "ratings.csv"
    implicit = pd.DataFrame({'user_id': ['user0', 'user1'], 'item_id': ['unread-book'] * 2, 'rating': [0, 0]})
    pd.concat([dense_ratings, implicit], ignore_index=True).to_csv(path, index=False)

    result = main(ratings_file=path, user_id='user2', config=small_config)

    assert result['target_user'] == 'user2'
    assert 'unread-book' not in result['matrix_data']['item_to_idx']
    assert len(result['ensemble']) >= 1
    assert result['metrics'].index.tolist() == ['User-Based CF', 'Item-Based CF', 'NMF', 'Ensemble']
    assert "Ensemble pipeline complete" in capsys.readouterr().out

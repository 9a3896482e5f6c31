"""Tests for the cosine helpers used by exact search and snippet selection."""
import pytest

from nitisetu.utils.similarity import cosine_score, cosine_scores, cosine_similarities, cosine_similarity


class TestCosine:

    def test_identical_orthogonal_and_opposite(self):
        assert cosine_similarity([1.0, 2.0], [2.0, 4.0]) == pytest.approx(1.0)
        assert cosine_similarity([1.0, 0.0], [0.0, 3.0]) == pytest.approx(0.0)
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_zero_vector_scores_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])

    def test_one_query_against_many_rows(self):
        similarities = cosine_similarities([1.0, 0.0], [[0.0, 1.0], [1.0, 0.0], [1.0, 1.0]])

        assert similarities.tolist() == pytest.approx([0.0, 1.0, 2 ** -0.5])
        assert int(similarities.argmax()) == 1

    def test_no_rows(self):
        assert cosine_similarities([1.0, 0.0], []).size == 0


class TestScore:

    def test_scores_follow_atlas_convention(self):
        assert cosine_score([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
        assert cosine_score([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.5)
        assert cosine_score([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(0.0)

    def test_scores_stay_in_unit_interval(self):
        scores = cosine_scores([3.0, 4.0], [[3.0, 4.0], [-3.0, -4.0], [0.0, 0.0]])

        assert all(0.0 <= score <= 1.0 for score in scores)

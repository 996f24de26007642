"""Grade calculator behaviour: capping, missing data and final grades."""

from __future__ import annotations

import sys
import unittest
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from gradebook.grading import (
    DEFAULT_GRADING_CONFIG,
    GradingConfig,
    accumulated_total,
    default_level_grades,
    format_score,
    is_passing,
    level_final_grade,
    normalize_grading_config,
    partial_total,
    summarize_level,
    validate_grading_config_payload,
    validate_partial_payload,
)


def _partial(scores, exam):
    return {
        "accumulated_activities": [{"name": None, "score": score} for score in scores],
        "exam": {"name": "Examen", "score": exam},
    }


FULL_LEVEL = {
    "partial1": _partial([10, 10, 10, 10, 10], 30),
    "partial2": _partial([8, 8, 8, 8, 8], 30),
    "partial3": _partial([10, 10, 10, 10, 10], 40),
    "certificate_code": "CERT-1",
}


class AccumulatedTotalTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.config = GradingConfig()

    def test_missing_or_empty_activities_have_no_total(self) -> None:
        self.assertIsNone(accumulated_total(None, self.config))
        self.assertIsNone(accumulated_total([], self.config))

    def test_activities_without_numeric_scores_have_no_total(self) -> None:
        activities = [{"score": None}, {"score": "8"}, {"score": True}, {}]
        self.assertIsNone(accumulated_total(activities, self.config))

    def test_sums_numeric_scores_and_skips_the_rest(self) -> None:
        activities = [{"score": 8}, {"score": 9.5}, {"score": None}, {"score": "7"}]
        self.assertEqual(17.5, accumulated_total(activities, self.config))

    def test_total_is_capped_at_accumulated_maximum(self) -> None:
        activities = [{"score": 10} for _ in range(6)]
        self.assertEqual(50, accumulated_total(activities, self.config))


class PartialTotalTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.config = GradingConfig()

    def test_missing_partial_has_no_total(self) -> None:
        self.assertIsNone(partial_total(None, self.config))
        self.assertIsNone(partial_total({}, self.config))

    def test_unscored_partial_has_no_total(self) -> None:
        self.assertIsNone(partial_total(_partial([None, None], None), self.config))

    def test_exam_only_counts_missing_activities_as_zero(self) -> None:
        self.assertEqual(40, partial_total(_partial([], 40), self.config))

    def test_activities_only_counts_missing_exam_as_zero(self) -> None:
        self.assertEqual(25, partial_total(_partial([10, 10, 5], None), self.config))

    def test_sums_accumulated_and_exam(self) -> None:
        self.assertEqual(75, partial_total(_partial([10, 10, 10], 45), self.config))

    def test_each_component_is_capped_before_summing(self) -> None:
        partial = _partial([10] * 8, 70)
        self.assertEqual(100, partial_total(partial, self.config))

        partial = _partial([5], 70)
        self.assertEqual(55, partial_total(partial, self.config))


class LevelFinalGradeTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.config = GradingConfig()

    def test_final_grade_is_mean_of_all_partials(self) -> None:
        self.assertEqual(80, level_final_grade(FULL_LEVEL, self.config))

    def test_missing_partial_makes_final_grade_missing(self) -> None:
        level = dict(FULL_LEVEL)
        del level["partial3"]
        self.assertIsNone(level_final_grade(level, self.config))

    def test_unscored_partial_is_not_averaged_away(self) -> None:
        level = dict(FULL_LEVEL, partial2=_partial([], None))
        self.assertIsNone(level_final_grade(level, self.config))

    def test_partials_beyond_configured_count_are_ignored(self) -> None:
        config = GradingConfig(number_of_partials=2)
        level = dict(FULL_LEVEL, partial3=None)
        self.assertEqual(75, level_final_grade(level, config))

    def test_missing_level_has_no_final_grade(self) -> None:
        self.assertIsNone(level_final_grade(None, self.config))

    def test_summary_reports_totals_and_passing_flag(self) -> None:
        summary = summarize_level(FULL_LEVEL, self.config)
        self.assertEqual([50, 40, 50], summary.accumulated_totals)
        self.assertEqual([80, 70, 90], summary.partial_totals)
        self.assertEqual(80, summary.final_grade)
        self.assertTrue(summary.passed)
        self.assertEqual(
            {
                "accumulated_totals": [50, 40, 50],
                "partial_totals": [80, 70, 90],
                "final_grade": 80,
                "passed": True,
            },
            summary.to_dict(),
        )

    def test_summary_of_incomplete_level(self) -> None:
        summary = summarize_level({"partial1": _partial([9], None)}, self.config)
        self.assertEqual([9, None, None], summary.partial_totals)
        self.assertIsNone(summary.final_grade)
        self.assertIsNone(summary.passed)


class PassingAndFormattingTestCase(unittest.TestCase):
    def test_is_passing_uses_threshold_inclusively(self) -> None:
        config = GradingConfig(passing_grade=70)
        self.assertTrue(is_passing(70, config))
        self.assertFalse(is_passing(69.99, config))
        self.assertIsNone(is_passing(None, config))

    def test_format_score(self) -> None:
        self.assertEqual("N/A", format_score(None))
        self.assertEqual("N/A", format_score(True))
        self.assertEqual("8", format_score(8))
        self.assertEqual("72", format_score(72, "total"))
        self.assertEqual("72.5", format_score(72.5, "total"))
        self.assertEqual("80.00", format_score(80, "final"))
        self.assertEqual("76.67", format_score(230 / 3, "final"))

    def test_format_score_rounds_ties_up(self) -> None:
        self.assertEqual("9", format_score(8.5))
        self.assertEqual("72.3", format_score(72.25, "total"))
        self.assertEqual("72.0", format_score(72, "summary"))
        self.assertEqual("80.13", format_score(80.125, "final"))
        self.assertEqual("13", format_score(12.5, "percent"))

    def test_oversized_integers_are_not_scores(self) -> None:
        self.assertEqual("N/A", format_score(10**400))
        self.assertEqual(4, accumulated_total([{"score": 10**400}, {"score": 4}], GradingConfig()))


class GradingConfigTestCase(unittest.TestCase):
    def test_missing_document_uses_defaults(self) -> None:
        self.assertEqual(DEFAULT_GRADING_CONFIG, normalize_grading_config(None))
        self.assertEqual(DEFAULT_GRADING_CONFIG, normalize_grading_config({}))

    def test_invalid_fields_fall_back_individually(self) -> None:
        config = normalize_grading_config(
            {
                "number_of_partials": 5,
                "passing_grade": "60",
                "max_exam_score": 40,
                "max_individual_activity_score": True,
            }
        )
        self.assertEqual(3, config.number_of_partials)
        self.assertEqual(70, config.passing_grade)
        self.assertEqual(40, config.max_exam_score)
        self.assertEqual(10, config.max_individual_activity_score)

    def test_valid_partials_count_is_kept(self) -> None:
        self.assertEqual(4, normalize_grading_config({"number_of_partials": 4}).number_of_partials)

    def test_to_dict_includes_partial_maximum(self) -> None:
        payload = GradingConfig(max_total_accumulated_score=40, max_exam_score=60).to_dict()
        self.assertEqual(100, payload["max_partial_score"])
        self.assertEqual(3, payload["number_of_partials"])

    def test_update_merges_onto_current_config(self) -> None:
        current = GradingConfig(passing_grade=65)
        config, errors = validate_grading_config_payload(
            {"number_of_partials": "4"}, current=current
        )
        self.assertEqual({}, errors)
        self.assertEqual(4, config.number_of_partials)
        self.assertEqual(65, config.passing_grade)

    def test_update_rejects_invalid_values(self) -> None:
        config, errors = validate_grading_config_payload(
            {"number_of_partials": 0, "max_exam_score": -1, "passing_grade": "abc"}
        )
        self.assertIsNone(config)
        self.assertEqual(
            {"number_of_partials", "max_exam_score", "passing_grade"}, set(errors)
        )

    def test_update_rejects_fractional_partials(self) -> None:
        _, errors = validate_grading_config_payload({"number_of_partials": 2.5})
        self.assertIn("number_of_partials", errors)

    def test_passing_grade_cannot_exceed_partial_maximum(self) -> None:
        config, errors = validate_grading_config_payload({"passing_grade": 150})
        self.assertIsNone(config)
        self.assertIn("passing_grade", errors)

    def test_accumulated_maximum_cannot_be_below_activity_maximum(self) -> None:
        _, errors = validate_grading_config_payload(
            {"max_individual_activity_score": 20, "max_total_accumulated_score": 10}
        )
        self.assertIn("max_total_accumulated_score", errors)

    def test_update_rejects_non_object_body(self) -> None:
        for payload in ([], ["passing_grade"], "x"):
            config, errors = validate_grading_config_payload(payload)
            self.assertIsNone(config)
            self.assertEqual({"_global": "Request body must be a JSON object."}, errors)

    def test_update_rejects_oversized_integer(self) -> None:
        config, errors = validate_grading_config_payload({"passing_grade": 10**400})
        self.assertIsNone(config)
        self.assertEqual({"passing_grade": "Value must be numeric."}, errors)

    def test_stored_oversized_integer_falls_back_to_default(self) -> None:
        self.assertEqual(70, normalize_grading_config({"passing_grade": 10**400}).passing_grade)

    def test_update_requires_a_body(self) -> None:
        config, errors = validate_grading_config_payload(None)
        self.assertIsNone(config)
        self.assertEqual({"_global": "Request body must be JSON."}, errors)

    def test_default_level_structure_follows_partial_count(self) -> None:
        level = default_level_grades(GradingConfig(number_of_partials=2))
        self.assertEqual({"partial1", "partial2", "certificate_code"}, set(level))
        self.assertEqual(
            {"accumulated_activities": [], "exam": {"name": None, "score": None}},
            level["partial1"],
        )
        self.assertIsNone(level_final_grade(level, GradingConfig(number_of_partials=2)))


class PartialPayloadValidationTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.config = GradingConfig()

    def test_valid_payload_is_cleaned(self) -> None:
        cleaned, errors = validate_partial_payload(
            {
                "accumulated_activities": [
                    {"name": "  Quiz 1 ", "score": "9.5"},
                    {"name": "", "score": ""},
                ],
                "exam": {"name": "Final", "score": 42},
            },
            self.config,
        )
        self.assertEqual({}, errors)
        self.assertEqual(
            {
                "accumulated_activities": [
                    {"name": "Quiz 1", "score": 9.5},
                    {"name": None, "score": None},
                ],
                "exam": {"name": "Final", "score": 42.0},
            },
            cleaned,
        )

    def test_missing_parts_default_to_empty(self) -> None:
        cleaned, errors = validate_partial_payload({}, self.config)
        self.assertEqual({}, errors)
        self.assertEqual(
            {"accumulated_activities": [], "exam": {"name": None, "score": None}},
            cleaned,
        )

    def test_scores_out_of_range_are_rejected(self) -> None:
        _, errors = validate_partial_payload(
            {
                "accumulated_activities": [{"score": 11}, {"score": "abc"}, {"score": -1}],
                "exam": {"score": 51},
            },
            self.config,
        )
        self.assertEqual("Score must be between 0 and 10.", errors["accumulated_activities[0]"])
        self.assertEqual("Scores must be numeric.", errors["accumulated_activities[1]"])
        self.assertIn("accumulated_activities[2]", errors)
        self.assertEqual("Score must be between 0 and 50.", errors["exam"])

    def test_too_many_activities_are_rejected(self) -> None:
        _, errors = validate_partial_payload(
            {"accumulated_activities": [{"score": 1}] * 6}, self.config
        )
        self.assertIn("accumulated_activities", errors)

    def test_boolean_scores_are_rejected(self) -> None:
        _, errors = validate_partial_payload({"exam": {"score": True}}, self.config)
        self.assertEqual("Scores must be numeric.", errors["exam"])

    def test_wrong_shapes_are_rejected(self) -> None:
        _, errors = validate_partial_payload(
            {"accumulated_activities": "10,9", "exam": 40}, self.config
        )
        self.assertIn("accumulated_activities", errors)
        self.assertIn("exam", errors)

    def test_missing_body(self) -> None:
        _, errors = validate_partial_payload(None, self.config)
        self.assertEqual({"_global": "Request body must be JSON."}, errors)

    def test_non_object_body(self) -> None:
        _, errors = validate_partial_payload([], self.config)
        self.assertEqual({"_global": "Request body must be a JSON object."}, errors)

    def test_oversized_integer_score(self) -> None:
        _, errors = validate_partial_payload({"exam": {"score": 10**400}}, self.config)
        self.assertEqual({"exam": "Scores must be numeric."}, errors)


if __name__ == "__main__":
    unittest.main()

# Tests for core/phq4.py (PHQ-4 scoring)
#
# Items 1-2 are the depression subscale, items 3-4 the anxiety subscale.

import unittest

from core.errors import ValidationError
from core.phq4 import build_record, calculate_scores, needs_referral, severity_for, validate_answer
from database.models import Severity


class TestSeverityBands(unittest.TestCase):
    def test_band_edges(self):
        expected = {
            0: Severity.MINIMAL, 2: Severity.MINIMAL,
            3: Severity.MILD, 5: Severity.MILD,
            6: Severity.MODERATE, 8: Severity.MODERATE,
            9: Severity.SEVERE, 12: Severity.SEVERE,
        }
        for total, severity in expected.items():
            with self.subTest(total=total):
                self.assertEqual(severity_for(total), severity)

    def test_monotonic(self):
        order = [Severity.MINIMAL, Severity.MILD, Severity.MODERATE, Severity.SEVERE]
        ranks = [order.index(severity_for(total)) for total in range(13)]
        self.assertEqual(ranks, sorted(ranks))


class TestCalculateScores(unittest.TestCase):
    def test_moderate_example(self):
        score = calculate_scores([2, 1, 2, 2])
        self.assertEqual(score.depression, 3)
        self.assertEqual(score.anxiety, 4)
        self.assertEqual(score.total, 7)
        self.assertEqual(score.severity, Severity.MODERATE)

    def test_total_is_sum(self):
        for answers in ([0, 0, 0, 0], [3, 3, 3, 3], [0, 3, 1, 2], [1, 1, 0, 0]):
            with self.subTest(answers=answers):
                self.assertEqual(calculate_scores(answers).total, sum(answers))

    def test_wrong_length_rejected(self):
        with self.assertRaises(ValidationError):
            calculate_scores([1, 2, 3])

    def test_out_of_range_rejected(self):
        with self.assertRaises(ValidationError):
            calculate_scores([1, 2, 4, 0])
        with self.assertRaises(ValidationError):
            validate_answer(-1)
        self.assertEqual(validate_answer(3), 3)


class TestRecord(unittest.TestCase):
    def test_build_record(self):
        record = build_record('user-1', [2, 1, 2, 2], 'zh')
        self.assertEqual(record.total_score, 7)
        self.assertEqual(record.severity_level, Severity.MODERATE)
        self.assertEqual(record.language, 'zh')
        self.assertEqual(record.answers, [2, 1, 2, 2])

    def test_record_is_immutable(self):
        record = build_record('user-1', [0, 0, 0, 0])
        with self.assertRaises(Exception):
            record.total_score = 12

    def test_referral_threshold(self):
        self.assertFalse(needs_referral(5))
        self.assertTrue(needs_referral(6))
        self.assertTrue(needs_referral(12))


if __name__ == '__main__':
    unittest.main()

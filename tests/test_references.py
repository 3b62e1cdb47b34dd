import unittest

from paygate.errors import ValidationError
from paygate.references import (
    FAILED,
    SUCCEEDED,
    UNKNOWN,
    TransferReferenceGenerator,
    is_valid_reference,
    resume_attempt,
)


class TransferReferenceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.generator = TransferReferenceGenerator(prefix="PGT")

    def test_references_are_unique(self):
        refs = {self.generator.new_reference() for _ in range(1000)}
        self.assertEqual(len(refs), 1000)

    def test_reference_format(self):
        ref = self.generator.new_reference()
        self.assertTrue(ref.startswith("PGT-"))
        self.assertTrue(is_valid_reference(ref))

    def test_unknown_outcome_keeps_reference(self):
        attempt = self.generator.new_attempt()
        attempt.mark(UNKNOWN)
        self.assertIs(attempt.for_retry(self.generator), attempt)

    def test_confirmed_failure_gets_new_reference(self):
        attempt = self.generator.new_attempt()
        attempt.mark(FAILED)
        retry = attempt.for_retry(self.generator)
        self.assertNotEqual(retry.reference, attempt.reference)

    def test_succeeded_attempt_cannot_be_retried(self):
        attempt = self.generator.new_attempt()
        attempt.mark(SUCCEEDED)
        with self.assertRaises(ValidationError):
            attempt.for_retry(self.generator)

    def test_mark_rejects_unknown_outcome(self):
        with self.assertRaises(ValueError):
            self.generator.new_attempt().mark("maybe")

    def test_resume_attempt_validates_reference(self):
        self.assertEqual(resume_attempt("PGT-abc123").reference, "PGT-abc123")
        for bad in ("", "ab", "has spaces here", "x" * 65):
            with self.assertRaises(ValidationError):
                resume_attempt(bad)


if __name__ == "__main__":
    unittest.main()

"""Asset lifecycle transition rule tests."""

from __future__ import annotations

import unittest

from app.domain.asset_fsm import (
    RETRY_STATUSES,
    START_STATUSES,
    allowed_next_statuses,
    ensure_transition,
    is_allowed_transition,
)
from app.domain.file_types import ContentFamily, classify, normalize_declared_type
from app.errors import ApiError, UnsupportedType
from app.schemas.asset import AssetStatus


class AssetFsmUnitTests(unittest.TestCase):
    def test_allowed_transition_examples_across_lifecycle(self) -> None:
        allowed_pairs = [
            (AssetStatus.PENDING, AssetStatus.PROCESSING),
            (AssetStatus.PROCESSING, AssetStatus.PROCESSED),
            (AssetStatus.PROCESSING, AssetStatus.ERROR),
            (AssetStatus.PROCESSED, AssetStatus.APPROVED),
            (AssetStatus.PROCESSED, AssetStatus.PROCESSING),
            (AssetStatus.ERROR, AssetStatus.PROCESSING),
        ]
        for old_status, new_status in allowed_pairs:
            with self.subTest(old_status=old_status, new_status=new_status):
                ensure_transition(old_status, new_status)

    def test_forbidden_transitions_return_contract_shape(self) -> None:
        invalid_pairs = [
            (AssetStatus.PENDING, AssetStatus.PROCESSED),
            (AssetStatus.PENDING, AssetStatus.APPROVED),
            (AssetStatus.ERROR, AssetStatus.APPROVED),
            (AssetStatus.PROCESSING, AssetStatus.APPROVED),
            (AssetStatus.PROCESSING, AssetStatus.PROCESSING),
            (AssetStatus.APPROVED, AssetStatus.PROCESSING),
        ]
        for old_status, new_status in invalid_pairs:
            with self.subTest(old_status=old_status, new_status=new_status):
                with self.assertRaises(ApiError) as context:
                    ensure_transition(old_status, new_status)
                self.assertEqual(context.exception.status_code, 409)
                self.assertEqual(context.exception.payload.code, "FSM_TRANSITION_INVALID")
                details = context.exception.payload.details
                self.assertEqual(details["current_status"], old_status)
                self.assertEqual(details["attempted_status"], new_status)
                self.assertIn("allowed_next_statuses", details)

    def test_approved_has_no_successors(self) -> None:
        self.assertEqual(allowed_next_statuses(AssetStatus.APPROVED), [])
        self.assertFalse(is_allowed_transition(AssetStatus.APPROVED, AssetStatus.ERROR))

    def test_retry_accepts_processed_but_start_does_not(self) -> None:
        self.assertNotIn(AssetStatus.PROCESSED, START_STATUSES)
        self.assertIn(AssetStatus.PROCESSED, RETRY_STATUSES)
        self.assertNotIn(AssetStatus.PROCESSING, RETRY_STATUSES)
        self.assertNotIn(AssetStatus.APPROVED, RETRY_STATUSES)


class FileTypeClassificationTests(unittest.TestCase):
    def test_declared_types_map_to_families(self) -> None:
        cases = {
            "application/pdf": ContentFamily.DOCUMENT,
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ContentFamily.DOCUMENT,
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ContentFamily.DOCUMENT,
            "application/msword": ContentFamily.DOCUMENT,
            "text/csv": ContentFamily.DOCUMENT,
            "text/plain; charset=utf-8": ContentFamily.DOCUMENT,
            "image/png": ContentFamily.IMAGE,
            "IMAGE/JPEG": ContentFamily.IMAGE,
            "audio/mpeg": ContentFamily.MEDIA,
            "video/mp4": ContentFamily.MEDIA,
            "application/ogg": ContentFamily.MEDIA,
        }
        for declared_type, family in cases.items():
            with self.subTest(declared_type=declared_type):
                self.assertIs(classify(declared_type), family)

    def test_unknown_types_are_unsupported(self) -> None:
        for declared_type in ("application/zip", "application/octet-stream", ""):
            with self.subTest(declared_type=declared_type):
                with self.assertRaises(UnsupportedType):
                    classify(declared_type)

    def test_normalize_strips_parameters_and_case(self) -> None:
        self.assertEqual(normalize_declared_type(" Text/HTML ; charset=UTF-8"), "text/html")


if __name__ == "__main__":
    unittest.main()

"""Percentage helpers shared by enrollment aggregation and quiz scoring."""

from __future__ import annotations

from decimal import Decimal

import pytest

from lms.models.enrollment import EnrollmentStatus, percent_of


@pytest.mark.parametrize(
    ("part", "whole", "expected"),
    [
        (0, 4, "0.00"),
        (1, 4, "25.00"),
        (2, 3, "66.67"),
        (1, 8, "12.50"),
        (1, 200, "0.50"),
        (4, 4, "100.00"),
    ],
)
def test_percent_of_rounds_half_up(part: int, whole: int, expected: str) -> None:
    assert percent_of(part, whole) == Decimal(expected)


def test_percent_of_empty_whole_is_zero() -> None:
    assert percent_of(0, 0) == Decimal("0.00")


def test_status_for_percentage_boundaries() -> None:
    assert EnrollmentStatus.for_percentage(percent_of(0, 3)) is EnrollmentStatus.NOT_STARTED
    assert EnrollmentStatus.for_percentage(percent_of(1, 3)) is EnrollmentStatus.IN_PROGRESS
    assert EnrollmentStatus.for_percentage(percent_of(3, 3)) is EnrollmentStatus.COMPLETED

"""Shared profile fixtures."""

import pytest

from potential_model.core.profile import build_profile

from site_data import office_year_readings, reference_year_readings


@pytest.fixture
def reference_readings():
    return reference_year_readings()


@pytest.fixture
def reference_profile():
    return build_profile(reference_year_readings())


@pytest.fixture
def office_profile():
    return build_profile(office_year_readings())

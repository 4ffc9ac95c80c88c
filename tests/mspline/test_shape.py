"""
Tests for the persisted hazard shape.
"""

import json

import numpy as np
import pytest
from numpy.testing import assert_allclose

from pyextrap.core.exceptions import ValidationError
from pyextrap.mspline import HazardShape, hsurvmspline, psurvmspline


class TestHazardShape:

    def test_predictions(self, knots_0125, coefs_0125):
        shape = HazardShape.create(knots_0125, 3, coefs_0125, alpha=0.2, pcure=0.1)
        t = np.array([1.0, 6.0])
        assert_allclose(
            shape.survival(t),
            psurvmspline(t, 0.2, coefs_0125, knots_0125, lower_tail=False, pcure=0.1),
        )
        assert_allclose(shape.hazard(t),
                        hsurvmspline(t, 0.2, coefs_0125, knots_0125, pcure=0.1))
        assert np.all(shape.rmst(t) < t)

    def test_dict_through_json(self, knots_0125, coefs_0125):
        shape = HazardShape.create(knots_0125, 3, coefs_0125, alpha=-0.5)
        restored = HazardShape.from_dict(json.loads(json.dumps(shape.to_dict())))
        assert restored.degree == 3
        assert restored.pcure == 0.0
        assert_allclose(restored.knots.to_array(), knots_0125)
        assert_allclose(restored.survival([2.0]), shape.survival([2.0]))

    def test_missing_fields(self):
        with pytest.raises(ValidationError, match="missing fields"):
            HazardShape.from_dict({"knots": [0.0, 1.0], "degree": 3})

    def test_wrong_coefficient_count(self, knots_0125):
        with pytest.raises(ValidationError, match="expected 6 values"):
            HazardShape.create(knots_0125, 3, [0.5, 0.5], alpha=0.0)

    def test_invalid_pcure(self, knots_0125, coefs_0125):
        with pytest.raises(ValidationError, match="pcure"):
            HazardShape.create(knots_0125, 3, coefs_0125, alpha=0.0, pcure=1.5)

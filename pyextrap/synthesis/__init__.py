"""
Evidence-synthesis survival model.

Public API:
    survextrap()        - fit the M-spline hazard model to individual data
                          and external counts
    SurvextrapSolution  - result wrapper with parameter summaries and
                          survival / hazard / RMST predictions
    ExternalCounts      - aggregate count table (n alive at start, r at stop)
    SurvextrapDesign    - validated data matrices
    p_none, p_normal, p_t, p_beta, p_gamma - prior constructors
"""

from pyextrap.synthesis.design import ExternalCounts, SurvextrapDesign
from pyextrap.synthesis.priors import p_beta, p_gamma, p_none, p_normal, p_t
from pyextrap.synthesis.solvers import survextrap
from pyextrap.synthesis.solution import SurvextrapSolution
from pyextrap.synthesis._summary import PosteriorSummary

__all__ = [
    "survextrap",
    "SurvextrapSolution",
    "PosteriorSummary",
    "ExternalCounts",
    "SurvextrapDesign",
    "p_none",
    "p_normal",
    "p_t",
    "p_beta",
    "p_gamma",
]

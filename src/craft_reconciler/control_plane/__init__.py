"""Control plane: matching, admission, work discovery, lifecycle, and the reconciler."""

from craft_reconciler.control_plane.admission import AdmissionPolicy, PoolSnapshot, admit
from craft_reconciler.control_plane.catalog import RecipeCatalog, UnknownRecipeError
from craft_reconciler.control_plane.controller import Reconciler, ReconcilerSettings, summarize
from craft_reconciler.control_plane.discovery import WorkCandidate, discover_work, is_eligible
from craft_reconciler.control_plane.lifecycle import check_state
from craft_reconciler.control_plane.matcher import MatchReport, match_catalog

__all__ = [
    "AdmissionPolicy",
    "MatchReport",
    "PoolSnapshot",
    "RecipeCatalog",
    "Reconciler",
    "ReconcilerSettings",
    "UnknownRecipeError",
    "WorkCandidate",
    "admit",
    "check_state",
    "discover_work",
    "is_eligible",
    "match_catalog",
    "summarize",
]

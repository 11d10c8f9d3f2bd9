"""SAT file pipeline."""

from csm_connector.sat.apply import ApplyOptions, ApplyResult, SatApplyPipeline
from csm_connector.sat.loader import SatFileLoader

__all__ = ["ApplyOptions", "ApplyResult", "SatApplyPipeline", "SatFileLoader"]

"""Geo-Rule Evaluator - module init."""

from loginshield.agents.geo_rules.agent import GeoRuleEvaluator
from loginshield.agents.geo_rules.matching import haversine_km
from loginshield.agents.geo_rules.schema import GeoEvaluation, MatchedRule

__all__ = ["GeoRuleEvaluator", "GeoEvaluation", "MatchedRule", "haversine_km"]

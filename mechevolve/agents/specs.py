"""Specification catalogue — what each well-known agent looks at.

Agents the analyzer commonly proposes get a curated specification;
anything else gets one derived from its role and capabilities.
"""

from __future__ import annotations

from mechevolve.agents.models import AgentSpecification, AgentSuggestion

_DEFAULT_LEARNING = ["pattern-recognition", "feedback-learning", "success-tracking"]

KNOWN_SPECIFICATIONS: dict[str, AgentSpecification] = {
    "CodeQualityGuardian": AgentSpecification(
        analysis_logic="Analyze code complexity, maintainability, and adherence to standards",
        improvement_strategies=["linting", "formatting", "complexity-reduction", "best-practices"],
        communication_protocols=["broadcast-quality-issues", "coordinate-with-builders"],
        learning_mechanisms=["pattern-recognition", "success-tracking", "failure-analysis"],
    ),
    "ComponentArchitect": AgentSpecification(
        analysis_logic="Analyze component patterns, props flow, and state management",
        improvement_strategies=["component-optimization", "prop-validation", "state-simplification"],
        communication_protocols=["coordinate-with-performance", "share-patterns"],
        learning_mechanisms=["component-pattern-learning", "performance-correlation"],
    ),
    "APIArchitect": AgentSpecification(
        analysis_logic="Analyze API design, endpoint structure, and data flow patterns",
        improvement_strategies=["endpoint-optimization", "middleware-enhancement", "error-handling"],
        communication_protocols=["coordinate-with-security", "share-api-patterns"],
        learning_mechanisms=["api-pattern-recognition", "performance-tracking"],
    ),
    "SecuritySentinel": AgentSpecification(
        analysis_logic="Scan for security vulnerabilities, auth issues, and data exposure",
        improvement_strategies=["vulnerability-patching", "auth-enhancement", "data-protection"],
        communication_protocols=["alert-critical-issues", "coordinate-with-architects"],
        learning_mechanisms=["threat-pattern-learning", "security-trend-analysis"],
    ),
    "PerformanceWatchdog": AgentSpecification(
        analysis_logic="Monitor performance hot spots, bundle size, and optimization opportunities",
        improvement_strategies=["bundle-optimization", "lazy-loading", "caching", "memoization"],
        communication_protocols=["share-performance-data", "coordinate-with-components"],
        learning_mechanisms=["performance-pattern-recognition", "optimization-effectiveness"],
    ),
}


def specification_for(suggestion: AgentSuggestion) -> AgentSpecification:
    known = KNOWN_SPECIFICATIONS.get(suggestion.name)
    if known is not None:
        return known.model_copy(deep=True)
    role = suggestion.role or "general"
    return AgentSpecification(
        analysis_logic=f"Analyze {role} patterns and identify improvement opportunities",
        improvement_strategies=list(suggestion.capabilities),
        communication_protocols=["broadcast-findings", "coordinate-with-relevant-agents"],
        learning_mechanisms=list(_DEFAULT_LEARNING),
    )

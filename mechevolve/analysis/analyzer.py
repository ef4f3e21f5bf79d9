"""Codebase analyzer — reads a project tree and proposes the agents it needs.

The analysis is purely structural: extension counts, well-known config
files and a shallow look at dependency manifests. It never imports or
executes project code.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field

from mechevolve.agents.models import AgentSuggestion, DetectedPattern, ProjectAnalysis
from mechevolve.exceptions import InvalidRequestError
from mechevolve.types import AgentPriority, ApplicationId

logger = logging.getLogger(__name__)

SKIPPED_DIRS = frozenset({
    "node_modules", ".git", "dist", "build", ".next", "__pycache__", ".venv",
})

CONFIG_FILES = frozenset({
    "package.json", "tsconfig.json", "webpack.config.js", "next.config.js",
    "nuxt.config.js", "requirements.txt", "pyproject.toml", "setup.py",
    "Cargo.toml", "go.mod", "Dockerfile", "docker-compose.yml", ".env", ".env.local",
})

# extension -> language
LANGUAGES = {
    ".ts": "typescript", ".tsx": "typescript",
    ".js": "javascript", ".jsx": "javascript",
    ".py": "python",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".php": "php",
}

PYTHON_FRAMEWORKS = ("fastapi", "django", "flask")
MANIFEST_READ_LIMIT = 64 * 1024


class FileStructure(BaseModel):
    total_files: int = 0
    directory_depth: int = 0
    file_types: dict[str, int] = Field(default_factory=dict)
    largest_files: list[str] = Field(default_factory=list)
    config_files: list[str] = Field(default_factory=list)
    directories: list[str] = Field(default_factory=list)

    def count(self, *extensions: str) -> int:
        return sum(self.file_types.get(ext, 0) for ext in extensions)

    @property
    def config_names(self) -> set[str]:
        return {Path(p).name for p in self.config_files}


class ProjectProfile(BaseModel):
    project_type: str = "unknown"
    languages: list[str] = Field(default_factory=list)
    frameworks: list[str] = Field(default_factory=list)
    architecture: str = "unknown"


def is_config_file(name: str) -> bool:
    return name in CONFIG_FILES or name.startswith(".") or name.endswith(".config.js")


def scan(project_path: Path) -> FileStructure:
    """Walk the tree, skipping dependency and build output directories."""
    structure = FileStructure()
    sizes: list[tuple[int, str]] = []
    root_depth = len(project_path.parts)

    def skip(error: OSError) -> None:
        logger.debug("Skipping unreadable path %s", error.filename)

    for dirpath, dirnames, filenames in os.walk(project_path, onerror=skip):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIPPED_DIRS)
        depth = len(Path(dirpath).parts) - root_depth
        structure.directory_depth = max(structure.directory_depth, depth)
        if depth:
            structure.directories.append(os.path.relpath(dirpath, project_path))

        for name in filenames:
            full = os.path.join(dirpath, name)
            structure.total_files += 1
            ext = os.path.splitext(name)[1].lower()
            structure.file_types[ext] = structure.file_types.get(ext, 0) + 1
            if is_config_file(name):
                structure.config_files.append(full)
            try:
                sizes.append((os.path.getsize(full), full))
            except OSError:
                continue

    sizes.sort(key=lambda item: item[0], reverse=True)
    structure.largest_files = [path for _, path in sizes[:10]]
    return structure


def _manifest_text(structure: FileStructure, *names: str) -> str:
    chunks: list[str] = []
    for path in structure.config_files:
        if Path(path).name in names:
            try:
                with open(path, encoding="utf-8", errors="replace") as f:
                    chunks.append(f.read(MANIFEST_READ_LIMIT).lower())
            except OSError as e:
                logger.debug("Cannot read manifest %s: %s", path, e)
    return "\n".join(chunks)


def detect_profile(structure: FileStructure) -> ProjectProfile:
    profile = ProjectProfile()
    for ext, language in LANGUAGES.items():
        if structure.file_types.get(ext) and language not in profile.languages:
            profile.languages.append(language)

    configs = structure.config_names
    frameworks = profile.frameworks
    if "package.json" in configs:
        if "next.config.js" in configs:
            frameworks.append("nextjs")
        if "nuxt.config.js" in configs:
            frameworks.append("nuxt")
        if structure.count(".vue"):
            frameworks.append("vue")
        if structure.count(".svelte"):
            frameworks.append("svelte")
        if structure.count(".tsx", ".jsx"):
            frameworks.append("react")

    if configs & {"requirements.txt", "pyproject.toml", "setup.py"}:
        manifests = _manifest_text(structure, "requirements.txt", "pyproject.toml", "setup.py")
        frameworks.extend(f for f in PYTHON_FRAMEWORKS if f in manifests)

    if "nextjs" in frameworks or "react" in frameworks:
        profile.project_type, profile.architecture = "frontend-webapp", "spa"
    elif "fastapi" in frameworks or "django" in frameworks or "flask" in frameworks:
        profile.project_type, profile.architecture = "backend-api", "api"
    elif "typescript" in profile.languages and structure.count(".ts") > structure.count(".tsx"):
        profile.project_type, profile.architecture = "backend-service", "service"
    elif "docker-compose.yml" in configs:
        profile.project_type, profile.architecture = "microservices", "microservices"
    return profile


def detect_patterns(structure: FileStructure) -> list[DetectedPattern]:
    patterns: list[DetectedPattern] = []
    controllers = [d for d in structure.directories if "controller" in Path(d).name.lower()]
    if structure.count(".ts", ".js", ".py") and controllers:
        patterns.append(DetectedPattern(
            name="MVC Architecture",
            confidence=0.8,
            files=[f"{d}/" for d in controllers],
            description="Model-View-Controller pattern detected",
        ))
    if structure.count(".tsx", ".jsx"):
        patterns.append(DetectedPattern(
            name="Component Architecture",
            confidence=0.9,
            files=["components/", "pages/", "hooks/"],
            description="React/Vue component-based architecture",
        ))
    if any("docker" in Path(p).name.lower() for p in structure.config_files):
        patterns.append(DetectedPattern(
            name="Containerized Services",
            confidence=0.7,
            files=["Dockerfile", "docker-compose.yml"],
            description="Containerized microservices architecture",
        ))
    return patterns


def assess_complexity(structure: FileStructure, patterns: list[DetectedPattern]) -> str:
    score = 0
    if structure.total_files > 1000:
        score += 3
    elif structure.total_files > 500:
        score += 2
    elif structure.total_files > 100:
        score += 1

    if structure.directory_depth > 8:
        score += 2
    elif structure.directory_depth > 5:
        score += 1

    score += len(patterns)

    kinds = len(structure.file_types)
    if kinds > 5:
        score += 2
    elif kinds > 3:
        score += 1

    if score >= 8:
        return "enterprise"
    if score >= 5:
        return "complex"
    if score >= 2:
        return "moderate"
    return "simple"


def _agent(name, role, purpose, triggers, capabilities, priority, tier, reasoning=""):
    return AgentSuggestion(
        name=name,
        role=role,
        purpose=purpose,
        triggers=triggers,
        capabilities=capabilities,
        priority=priority,
        tier=tier,
        reasoning=reasoning,
    )


CRITICAL = AgentPriority.CRITICAL
IMPORTANT = AgentPriority.IMPORTANT
NICE_TO_HAVE = AgentPriority.NICE_TO_HAVE

_PROJECT_AGENTS: dict[str, list[AgentSuggestion]] = {
    "frontend-webapp": [
        _agent(
            "ComponentArchitect", "architecture",
            "Optimizes React/Vue component patterns and structure",
            ["*.tsx", "*.jsx", "*.vue", "component-create"],
            ["component-analysis", "hook-optimization", "prop-validation"],
            CRITICAL, 1, "Component-based frontend detected",
        ),
        _agent(
            "PerformanceWatchdog", "performance",
            "Monitors and optimizes frontend performance",
            ["*.tsx", "*.jsx", "build-run"],
            ["bundle-analysis", "lazy-loading", "memoization"],
            IMPORTANT, 2, "Frontend bundles benefit from performance review",
        ),
    ],
    "backend-api": [
        _agent(
            "APIArchitect", "architecture",
            "Designs and optimizes API endpoints and structure",
            ["*routes*", "*api*", "*views*", "endpoint-add"],
            ["api-design", "middleware-optimization", "error-handling"],
            CRITICAL, 1, "HTTP API framework detected",
        ),
        _agent(
            "SecuritySentinel", "security",
            "Identifies and prevents security vulnerabilities",
            ["*auth*", "*security*", "*.env", "auth-change"],
            ["vulnerability-scanning", "auth-analysis", "input-validation"],
            CRITICAL, 1, "APIs expose an attack surface",
        ),
    ],
    "microservices": [
        _agent(
            "ServiceOrchestrator", "orchestration",
            "Manages service communication and dependencies",
            ["docker-compose*.yml", "Dockerfile*", "*.yaml", "config-modify"],
            ["service-discovery", "load-balancing", "circuit-breaking"],
            CRITICAL, 1, "Multiple containerized services detected",
        ),
    ],
}


def suggest_agents(
    profile: ProjectProfile,
    patterns: list[DetectedPattern],
    structure: FileStructure,
) -> list[AgentSuggestion]:
    suggestions = [
        _agent(
            "CodeQualityGuardian", "quality-assurance",
            "Maintains code quality standards and catches issues",
            ["file-modify", "file-create", "lint-run"],
            ["linting", "formatting", "complexity-analysis"],
            CRITICAL, 1, "Every project needs a quality baseline",
        ),
    ]
    suggestions.extend(
        s.model_copy(deep=True) for s in _PROJECT_AGENTS.get(profile.project_type, [])
    )

    if structure.count(".ts", ".tsx"):
        suggestions.append(_agent(
            "TypeScriptGuru", "language-expert",
            "Optimizes TypeScript usage and type safety",
            ["*.ts", "*.tsx", "type-definition"],
            ["type-optimization", "generic-analysis", "strict-mode"],
            IMPORTANT, 2, "TypeScript sources detected",
        ))
    if structure.count(".py"):
        suggestions.append(_agent(
            "PythonExpert", "language-expert",
            "Keeps Python code idiomatic, typed and well structured",
            ["*.py", "*.pyi"],
            ["type-hints", "idiom-review", "packaging"],
            IMPORTANT, 2, "Python sources detected",
        ))

    if any(p.name == "Component Architecture" for p in patterns):
        suggestions.append(_agent(
            "ComponentPatternWizard", "pattern-specialist",
            "Enforces component best practices and patterns",
            ["*.tsx", "*.jsx", "component-create"],
            ["pattern-enforcement", "best-practices", "refactoring"],
            IMPORTANT, 2, "Component architecture pattern detected",
        ))

    suggestions.extend([
        _agent(
            "TestingChampion", "testing",
            "Ensures comprehensive test coverage",
            ["test-run", "*.test.*", "*.spec.*", "test_*.py"],
            ["test-generation", "coverage-analysis", "mocking"],
            IMPORTANT, 2, "Tests keep evolving code safe",
        ),
        _agent(
            "DocumentationScribe", "documentation",
            "Maintains up-to-date documentation",
            ["*.md", "*.rst", "api-change"],
            ["doc-generation", "api-docs", "readme-updates"],
            NICE_TO_HAVE, 3, "Documentation drifts without attention",
        ),
        _agent(
            "RefactoringMaster", "refactoring",
            "Identifies and suggests code improvements",
            ["file-modify", "smell-analysis"],
            ["code-analysis", "refactoring-suggestions", "cleanup"],
            NICE_TO_HAVE, 3, "Continuous cleanup keeps complexity down",
        ),
    ])
    return rank(suggestions)


def rank(suggestions: list[AgentSuggestion]) -> list[AgentSuggestion]:
    """Order by tier, then priority. Stable for equal keys."""
    return sorted(suggestions, key=lambda s: (s.tier, s.priority.rank))


class CodebaseAnalyzer:
    """Produces the analysis document the Agent Factory works from."""

    def analyze_project(self, application_id: ApplicationId, project_path: str | Path) -> ProjectAnalysis:
        if not application_id or not str(application_id).strip():
            raise InvalidRequestError("applicationId is required")
        root = Path(project_path).expanduser()
        if not root.is_dir():
            raise InvalidRequestError(f"Project path {project_path} is not a directory")

        logger.info("Analyzing project %s at %s", application_id, root)
        structure = scan(root)
        profile = detect_profile(structure)
        patterns = detect_patterns(structure)

        return ProjectAnalysis(
            application_id=application_id,
            project_type=profile.project_type,
            languages=profile.languages,
            frameworks=profile.frameworks,
            architecture=profile.architecture,
            complexity=assess_complexity(structure, patterns),
            file_types=structure.file_types,
            patterns=patterns,
            suggested_agents=suggest_agents(profile, patterns, structure),
        )

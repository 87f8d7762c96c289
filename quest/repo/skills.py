"""
Skill normalisation — canonical names, categories and autocomplete.

Two category schemes live here:
  * the fine-grained SKILL_DATABASE categories (Programming Languages,
    Frontend, Databases, ...) used for normalisation and the skills universe;
  * the four editor buckets in SKILL_CATEGORIES (Technical, Business,
    Creative, Leadership) used when a user adds a skill.
"""
import re
from typing import Any, Iterable, NamedTuple


class SkillEntry(NamedTuple):
    canonical: str
    category: str
    aliases: tuple[str, ...]


SKILL_DATABASE: dict[str, SkillEntry] = {
    # Programming languages
    "javascript": SkillEntry("JavaScript", "Programming Languages", ("js", "javascript", "java script")),
    "typescript": SkillEntry("TypeScript", "Programming Languages", ("ts", "typescript", "type script")),
    "python": SkillEntry("Python", "Programming Languages", ("python", "py")),
    "java": SkillEntry("Java", "Programming Languages", ("java",)),
    "csharp": SkillEntry("C#", "Programming Languages", ("c#", "csharp", "c sharp")),
    "go": SkillEntry("Go", "Programming Languages", ("go", "golang")),
    "rust": SkillEntry("Rust", "Programming Languages", ("rust", "rust-lang")),
    # Frontend
    "react": SkillEntry("React", "Frontend", ("react", "reactjs", "react.js")),
    "nextjs": SkillEntry("Next.js", "Frontend", ("next", "nextjs", "next.js")),
    "vue": SkillEntry("Vue.js", "Frontend", ("vue", "vuejs", "vue.js")),
    "angular": SkillEntry("Angular", "Frontend", ("angular", "angularjs")),
    "svelte": SkillEntry("Svelte", "Frontend", ("svelte", "sveltejs")),
    # Backend
    "nodejs": SkillEntry("Node.js", "Backend", ("node", "nodejs", "node.js")),
    "express": SkillEntry("Express.js", "Backend", ("express", "expressjs", "express.js")),
    # Databases
    "postgresql": SkillEntry("PostgreSQL", "Databases", ("postgres", "postgresql", "postgre")),
    "mongodb": SkillEntry("MongoDB", "Databases", ("mongo", "mongodb", "mongo db")),
    "mysql": SkillEntry("MySQL", "Databases", ("mysql", "my sql")),
    "redis": SkillEntry("Redis", "Databases", ("redis",)),
    # Cloud and DevOps
    "aws": SkillEntry("AWS", "Cloud", ("aws", "amazon web services")),
    "gcp": SkillEntry("Google Cloud Platform", "Cloud", ("gcp", "google cloud", "google cloud platform")),
    "azure": SkillEntry("Microsoft Azure", "Cloud", ("azure", "microsoft azure")),
    "docker": SkillEntry("Docker", "DevOps", ("docker",)),
    "kubernetes": SkillEntry("Kubernetes", "DevOps", ("k8s", "kubernetes", "kube")),
    # AI/ML
    "machine-learning": SkillEntry("Machine Learning", "AI/ML", ("ml", "machine learning", "machine-learning")),
    "artificial-intelligence": SkillEntry(
        "Artificial Intelligence", "AI/ML", ("ai", "artificial intelligence", "artificial-intelligence"),
    ),
    "tensorflow": SkillEntry("TensorFlow", "AI/ML", ("tensorflow", "tensor flow")),
    "pytorch": SkillEntry("PyTorch", "AI/ML", ("pytorch", "py torch")),
    # Business and soft skills
    "project-management": SkillEntry(
        "Project Management", "Business", ("project management", "pm", "project-management"),
    ),
    "marketing": SkillEntry("Marketing", "Business", ("marketing", "mkt")),
    "leadership": SkillEntry("Leadership", "Leadership", ("leadership", "leader")),
    "communication": SkillEntry("Communication", "Soft Skills", ("communication", "communications")),
    "team-management": SkillEntry(
        "Team Management", "Leadership", ("team management", "team-management", "managing teams"),
    ),
}

_ALIASES: dict[str, str] = {}
for _key, _entry in SKILL_DATABASE.items():
    _ALIASES[_key] = _entry.canonical
    for _alias in _entry.aliases:
        _ALIASES[_alias.lower()] = _entry.canonical

_BY_CANONICAL: dict[str, SkillEntry] = {e.canonical: e for e in SKILL_DATABASE.values()}

_CATEGORY_PATTERNS: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"language|speak|spanish|french|german|chinese"), "Languages"),
    (re.compile(r"manage|lead|team|strategy"), "Leadership"),
    (re.compile(r"design|ux|ui|figma|sketch"), "Design"),
    (re.compile(r"test|qa|quality"), "Testing"),
)


def normalize(name: str) -> str:
    """Canonical name for a known alias, otherwise Title Case per word."""
    stripped = (name or "").strip()
    if not stripped:
        return ""
    canonical = _ALIASES.get(stripped.lower())
    if canonical:
        return canonical
    return " ".join(w[:1].upper() + w[1:].lower() for w in stripped.split())


def get_category(name: str) -> str:
    entry = _BY_CANONICAL.get(normalize(name))
    if entry:
        return entry.category
    lower = (name or "").lower()
    for pattern, category in _CATEGORY_PATTERNS:
        if pattern.search(lower):
            return category
    return "General"


def normalize_skill(name: str) -> dict[str, str]:
    canonical = normalize(name)
    return {"name": canonical, "category": get_category(canonical)}


def _skill_name(skill: Any) -> str:
    return skill if isinstance(skill, str) else (skill.get("name") or "")


def deduplicate(skills: Iterable[Any]) -> list[dict[str, str]]:
    """Normalise and drop repeats, keeping the first occurrence."""
    seen: set[str] = set()
    out = []
    for skill in skills:
        canonical = normalize(_skill_name(skill))
        if not canonical or canonical in seen:
            continue
        seen.add(canonical)
        out.append({"name": canonical, "category": get_category(canonical)})
    return out


def autocomplete(prefix: str, limit: int = 10) -> list[str]:
    """Canonical names starting with `prefix`, then those with a matching alias."""
    lower = (prefix or "").strip().lower()
    if not lower:
        return []
    suggestions = [e.canonical for e in SKILL_DATABASE.values() if e.canonical.lower().startswith(lower)]
    if len(suggestions) < limit:
        for entry in SKILL_DATABASE.values():
            if entry.canonical in suggestions:
                continue
            if any(lower in alias.lower() for alias in entry.aliases):
                suggestions.append(entry.canonical)
    return suggestions[:limit]


def is_known(name: str) -> bool:
    return normalize(name) in _BY_CANONICAL


def skills_by_category() -> dict[str, list[str]]:
    grouped: dict[str, list[str]] = {}
    for entry in SKILL_DATABASE.values():
        grouped.setdefault(entry.category, []).append(entry.canonical)
    return grouped


def all_categories() -> list[str]:
    return sorted({e.category for e in SKILL_DATABASE.values()})


# ─────────────────────────────────────────────────────────────────────────────
# Editor buckets
# ─────────────────────────────────────────────────────────────────────────────

SKILL_CATEGORIES: dict[str, list[str]] = {
    "Technical": [
        "JavaScript", "TypeScript", "Python", "Java", "C++", "Go", "Rust",
        "React", "Vue.js", "Angular", "Next.js", "Node.js", "Express",
        "AWS", "Azure", "Google Cloud", "Docker", "Kubernetes",
        "PostgreSQL", "MongoDB", "Redis", "MySQL", "GraphQL",
        "Machine Learning", "Data Science", "AI/ML", "TensorFlow", "PyTorch",
        "DevOps", "CI/CD", "Git", "Linux", "Security", "Blockchain",
    ],
    "Business": [
        "Product Management", "Project Management", "Strategy", "Business Development",
        "Marketing", "Digital Marketing", "SEO/SEM", "Content Marketing",
        "Sales", "B2B Sales", "Enterprise Sales", "Account Management",
        "Finance", "Financial Analysis", "Budgeting", "Forecasting",
        "Analytics", "Data Analysis", "Business Intelligence", "SQL",
        "Operations", "Supply Chain", "Logistics", "Process Improvement",
    ],
    "Creative": [
        "Graphic Design", "UI/UX Design", "Product Design", "Web Design",
        "Photography", "Video Production", "Motion Graphics", "3D Modeling",
        "Content Writing", "Copywriting", "Technical Writing", "Blogging",
        "Brand Strategy", "Creative Direction", "Art Direction",
        "Illustration", "Animation", "Game Design", "Sound Design",
    ],
    "Leadership": [
        "Team Leadership", "People Management", "Executive Leadership",
        "Strategic Planning", "Change Management", "Organizational Development",
        "Communication", "Public Speaking", "Presentation Skills",
        "Mentoring", "Coaching", "Training & Development",
        "Conflict Resolution", "Negotiation", "Decision Making",
        "Cross-functional Collaboration", "Stakeholder Management",
    ],
}

# Fine-grained database category → editor bucket
_BUCKETS: dict[str, str] = {
    "Programming Languages": "Technical",
    "Frontend": "Technical",
    "Backend": "Technical",
    "Databases": "Technical",
    "Cloud": "Technical",
    "DevOps": "Technical",
    "AI/ML": "Technical",
    "Testing": "Technical",
    "Business": "Business",
    "Design": "Creative",
    "Leadership": "Leadership",
    "Soft Skills": "Leadership",
}

_COMMON_LOOKUP: dict[str, str] = {
    skill.lower(): bucket for bucket, skills in SKILL_CATEGORIES.items() for skill in skills
}


def categorize_skill(name: str) -> str:
    """Editor bucket for a skill: common-skill list, then database category, else Technical."""
    canonical = normalize(name)
    bucket = _COMMON_LOOKUP.get(canonical.lower()) or _COMMON_LOOKUP.get((name or "").strip().lower())
    if bucket:
        return bucket
    return _BUCKETS.get(get_category(canonical), "Technical")

# classes/entity_resolver.py
"""
Natural-language alias dictionary for projects and team members.

Built fresh for every invocation from whatever the store holds right now and
rendered as text for the reasoning backend. The aliases only have to bias the
backend toward the right identifier; real ambiguity is left to the backend,
which asks the user.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

logger = logging.getLogger("opsync_agent")


COMMON_ABBREVIATIONS: dict[str, list[str]] = {
    "operations": ["ops", "oper"],
    "engineering": ["eng", "engg"],
    "management": ["mgmt", "mgt"],
    "development": ["dev", "devel"],
    "production": ["prod"],
    "infrastructure": ["infra"],
    "security": ["sec"],
    "compliance": ["comp"],
    "administration": ["admin"],
    "communication": ["comm", "comms"],
    "communications": ["comm", "comms"],
    "performance": ["perf"],
    "quality": ["qa", "qual"],
    "requirements": ["reqs", "req"],
    "configuration": ["config", "cfg"],
    "documentation": ["docs", "doc"],
    "automation": ["auto"],
    "integration": ["integ", "integr"],
    "monitoring": ["mon"],
    "review": ["rev"],
    "planning": ["plan"],
    "training": ["train"],
    "recruitment": ["recruit", "hiring"],
    "onboarding": ["onboard"],
    "customer": ["cust"],
    "technical": ["tech"],
    "financial": ["fin", "finance"],
    "marketing": ["mktg", "mkt"],
    "technology": ["tech"],
    "services": ["svc", "svcs"],
    "service": ["svc"],
    "analysis": ["analysis"],
    "analytics": ["analytics"],
    "assessment": ["assess"],
    "improvement": ["improv"],
    "optimization": ["optim", "opt"],
    "transformation": ["transform"],
    "leadership": ["lead"],
    "reporting": ["report", "rpt"],
    "delivery": ["deliv"],
    "architecture": ["arch"],
    "governance": ["gov"],
    "maintenance": ["maint"],
    "support": ["sup"],
    "strategy": ["strat"],
    "program": ["prog", "pgm"],
    "project": ["proj"],
    "enablement": ["enable"],
    "excellence": ["excel"],
    "continuous": ["cont"],
}

# loose role words -> stored role values (case-sensitive in the DB)
ROLE_ALIASES: dict[str, str] = {
    "engineer": "Engineer", "engineers": "Engineer",
    "manager": "Manager", "managers": "Manager",
    "direct": "Direct", "directs": "Direct",
    "coe": "COE",
    "contractor": "Contractor", "contractors": "Contractor",
}

KNOWN_ROLES = ("Engineer", "Manager", "Direct", "COE", "Contractor")


def normalize_role(role: Optional[str]) -> Optional[str]:
    if not role or not role.strip():
        return None
    role = role.strip()
    return ROLE_ALIASES.get(role.lower(), role)


def build_project_aliases(name: str) -> List[str]:
    words = (name or "").split()
    canonical = " ".join(words).lower()
    aliases: List[str] = []

    # acronym from first letters, only for multi-word names
    if len(words) > 1:
        aliases.append("".join(w[0].lower() for w in words))

    for word in words:
        lower = word.lower()
        aliases.append(lower)
        aliases.extend(COMMON_ABBREVIATIONS.get(lower, []))

    # compound forms: one word at a time swapped for its abbreviation
    if len(words) > 1:
        for i, word in enumerate(words):
            for abbr in COMMON_ABBREVIATIONS.get(word.lower(), []):
                parts = list(words)
                parts[i] = abbr
                aliases.append(" ".join(parts).lower())

    seen = set()
    unique: List[str] = []
    for alias in aliases:
        if alias in seen:
            continue
        seen.add(alias)
        if alias == canonical or len(alias) < 2:
            continue
        unique.append(alias)
    return unique


@dataclass
class EntityEntry:
    id: str
    display_name: str
    aliases: List[str] = field(default_factory=list)
    detail: dict = field(default_factory=dict)


@dataclass
class EntityDictionary:
    projects: List[EntityEntry] = field(default_factory=list)
    members: List[EntityEntry] = field(default_factory=list)
    default_assignee: Optional[EntityEntry] = None

    def render_projects(self) -> str:
        if not self.projects:
            return ""

        lines = []
        for p in self.projects:
            status = p.detail.get("status")
            category = p.detail.get("category")
            cat_info = f', category: "{category}"' if category else ""
            lines.append(
                f'  - "{p.display_name}" (ID: {p.id}, status: {status}{cat_info})\n'
                f"    aliases: {', '.join(p.aliases)}"
            )

        return (
            "\n\nPROJECT DICTIONARY — use this to match user input to the correct project:\n"
            + "\n".join(lines)
            + "\n\nMATCHING RULES:\n"
            "- When the user mentions a project by name, abbreviation, partial name, or typo, use this dictionary to find the best matching project ID.\n"
            '- Be flexible: "ops" → "Operations", "sec review" → "Security Review", "eng" → "Engineering", etc.\n'
            "- If the user's input matches multiple projects, pick the most likely one based on context.\n"
            "- If truly ambiguous, ask the user to clarify.\n"
            "- NEVER create a new project when the user is clearly referring to an existing one.\n"
            "- Always use the project ID (UUID) from this dictionary when calling tools."
        )

    def render_team(self) -> str:
        if not self.members:
            return ""

        default_id = self.default_assignee.id if self.default_assignee else None
        lines = []
        for m in self.members:
            marker = " ← DEFAULT OWNER" if m.id == default_id else ""
            lines.append(f'  - "{m.display_name}" (ID: {m.id}, Role: {m.detail.get("role")}){marker}')

        if self.default_assignee:
            default_text = f'"{self.default_assignee.display_name}" (ID: {self.default_assignee.id})'
        else:
            default_text = "the default owner"

        return (
            "\n\nTEAM MEMBERS:\n"
            + "\n".join(lines)
            + "\n\nDEFAULT ASSIGNMENT: When creating tasks/requirements without a specified owner, "
            f"ALWAYS assign to {default_text}."
        )


class EntityResolver:
    """
    Builds an EntityDictionary from the store's current projects and team members.
    Nothing is cached: call build() once per invocation.
    """

    def __init__(self, store, default_assignee_nick: str):
        self.store = store
        self.default_assignee_nick = default_assignee_nick

    def build(self) -> EntityDictionary:
        projects = [
            EntityEntry(
                id=p["id"],
                display_name=p["name"],
                aliases=build_project_aliases(p["name"]),
                detail={"status": p.get("status"), "category": p.get("category")},
            )
            for p in self.store.list_projects()
        ]

        members = []
        default_assignee = None
        wanted = (self.default_assignee_nick or "").strip().lower()
        for m in self.store.list_team_members():
            entry = EntityEntry(
                id=m["id"],
                display_name=m["nick"],
                aliases=[m["nick"].lower()],
                detail={"role": m.get("role")},
            )
            members.append(entry)
            if wanted and m["nick"].lower() == wanted and default_assignee is None:
                default_assignee = entry

        logger.debug(
            "Entity dictionary built: %d project(s), %d member(s), default assignee=%s",
            len(projects), len(members), default_assignee.display_name if default_assignee else None,
        )
        return EntityDictionary(projects=projects, members=members, default_assignee=default_assignee)

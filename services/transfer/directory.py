"""
=====================================================
Call Transfer Relay - Department Directory
=====================================================
Maps the department keyword requested by the assistant to a phone number.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from loguru import logger


DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "departments.yaml"

# Aliases known without any YAML file
BUILTIN_ALIASES: Dict[str, List[str]] = {
    "consultant": ["consultant", "consultants", "consulting", "sales", "strategy", "advisor"],
    "hr": ["hr", "human resources", "people", "payroll"],
    "it": ["it", "tech", "technical", "support", "helpdesk"],
}


def _normalize(keyword: Optional[str]) -> str:
    return " ".join((keyword or "").lower().split())


@dataclass
class Department:
    """A transfer destination and the keywords that select it"""
    name: str
    number: str
    aliases: List[str] = field(default_factory=list)


class DepartmentDirectory:
    """
    Resolves department keywords (case-insensitive, many-to-one) to numbers.

    Unknown, empty or missing keywords resolve to the default department,
    so `resolve` never fails.
    """

    def __init__(
        self,
        numbers: Dict[str, str],
        default_department: str = "consultant",
        config_path: Optional[str] = None
    ):
        """
        Initialize department directory

        Args:
            numbers: Department name -> phone number (from environment)
            default_department: Department used when nothing matches
            config_path: Optional YAML file with extra departments/aliases
        """
        self._numbers = {_normalize(k): v for k, v in numbers.items()}
        self.default_department = _normalize(default_department)
        self.config_path = config_path or str(DEFAULT_CONFIG_PATH)

        self._departments: Dict[str, Department] = {}
        self._aliases: Dict[str, str] = {}

        self._load_departments()

    @classmethod
    def from_settings(cls, settings) -> "DepartmentDirectory":
        return cls(
            numbers=settings.department_numbers,
            default_department=settings.default_department,
            config_path=settings.departments_config_path
        )

    def _read_config(self) -> Dict[str, dict]:
        """Read department entries from the YAML file, if any"""
        if not os.path.exists(self.config_path):
            logger.warning(f"Directory: Departments config not found: {self.config_path}")
            return {}

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Directory: Failed to load departments config: {e}")
            return {}

        entries = data.get('departments', {}) if isinstance(data, dict) else None
        if not isinstance(entries, dict):
            logger.error(f"Directory: 'departments' must be a mapping in {self.config_path}")
            return {}
        return entries

    def _load_departments(self) -> None:
        """Build the alias table from built-ins, environment numbers and YAML"""
        merged: Dict[str, Department] = {}

        for name, aliases in BUILTIN_ALIASES.items():
            merged[name] = Department(name=name, number=self._numbers.get(name, ""), aliases=list(aliases))

        for raw_name, entry in self._read_config().items():
            name = _normalize(raw_name)
            entry = entry if isinstance(entry, dict) else {}
            dept = merged.setdefault(name, Department(name=name, number=self._numbers.get(name, "")))
            if entry.get('number'):
                dept.number = str(entry['number'])
            dept.aliases.extend(str(alias) for alias in entry.get('aliases') or [])

        self._departments = {}
        self._aliases = {}
        for name, dept in merged.items():
            if not dept.number:
                logger.warning(f"Directory: No number configured for '{name}', it will use the default")
                continue
            self._departments[name] = dept
            for alias in [name, *dept.aliases]:
                key = _normalize(alias)
                if key in self._aliases and self._aliases[key] != name:
                    logger.warning(
                        f"Directory: Alias '{key}' already maps to '{self._aliases[key]}', ignoring for '{name}'"
                    )
                    continue
                self._aliases[key] = name

        if self.default_department not in self._departments:
            raise ValueError(f"Default department '{self.default_department}' has no number configured")

        logger.info(
            f"Directory: Loaded {len(self._departments)} departments "
            f"({len(self._aliases)} keywords), default={self.default_department}"
        )

    @property
    def default_number(self) -> str:
        return self._departments[self.default_department].number

    def lookup(self, keyword: Optional[str]) -> Department:
        """Get the department for a keyword, falling back to the default"""
        name = self._aliases.get(_normalize(keyword), self.default_department)
        return self._departments[name]

    def resolve(self, keyword: Optional[str]) -> str:
        """
        Resolve a keyword to a destination number

        Args:
            keyword: Free-text department keyword (may be None or empty)

        Returns:
            Destination phone number
        """
        return self.lookup(keyword).number

    def get_all_departments(self) -> List[Department]:
        return list(self._departments.values())

    def reload(self) -> None:
        """Reload departments from file (use after editing YAML)"""
        self._load_departments()

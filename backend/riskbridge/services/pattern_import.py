"""
Mapping pattern library — sources and YAML import.

Patterns drive the pattern sub-score of the control mapper. They are reference
data, loaded once per engine through a `MappingPatternSource`:

  - DatabasePatternSource: rows of ai_mapping_patterns
  - YamlPatternSource:     a pattern library file
  - EmptyPatternSource:    no patterns (mapping falls back to keyword similarity)

YAML format:
  patterns:
    - framework_type: iso27001
      risk_category: access_control
      control_family: Access Control
      risk_keywords: [access, unauthorized, authentication]
      control_keywords: [access, identity, authentication]
      mapping_strength: 0.9
"""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from riskbridge.config import settings
from riskbridge.models.mapping import MappingPattern

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatternSpec:
    framework_type: str
    control_family: str
    risk_keywords: tuple[str, ...]
    control_keywords: tuple[str, ...]
    mapping_strength: float
    risk_category: str | None = None


@dataclass
class PatternImportResult:
    created: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


def _keywords(value: Any) -> tuple[str, ...]:
    """Normalize a keyword list. Legacy rows store JSON-encoded strings."""
    if isinstance(value, str):
        value = json.loads(value)
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"keywords must be a list, got {type(value).__name__}")
    return tuple(str(k).strip().lower() for k in value if str(k).strip())


def _pattern_from_dict(raw: dict[str, Any]) -> PatternSpec:
    fw_type = str(raw.get("framework_type") or "").strip().lower()
    family = str(raw.get("control_family") or "").strip()
    if not fw_type:
        raise ValueError("framework_type is required")
    if not family:
        raise ValueError("control_family is required")

    risk_kw = _keywords(raw.get("risk_keywords") or [])
    control_kw = _keywords(raw.get("control_keywords") or [])
    if not risk_kw or not control_kw:
        raise ValueError(f"pattern '{family}' needs both risk_keywords and control_keywords")

    try:
        strength = float(raw.get("mapping_strength", 0.5))
    except (TypeError, ValueError):
        raise ValueError(f"pattern '{family}' has non-numeric mapping_strength") from None
    strength = max(0.0, min(1.0, strength))

    return PatternSpec(
        framework_type=fw_type,
        control_family=family,
        risk_keywords=risk_kw,
        control_keywords=control_kw,
        mapping_strength=strength,
        risk_category=raw.get("risk_category"),
    )


def parse_pattern_yaml(content: bytes | str) -> tuple[list[PatternSpec], list[str]]:
    """Parse a pattern library. Returns (patterns, per-entry errors)."""
    if isinstance(content, bytes):
        content = content.decode("utf-8")

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML: {e}") from None
    if not data:
        raise ValueError("Empty YAML file")

    entries = data.get("patterns") if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise ValueError("Expected a top-level 'patterns' list")

    patterns: list[PatternSpec] = []
    errors: list[str] = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            errors.append(f"#{i}: not a mapping")
            continue
        try:
            patterns.append(_pattern_from_dict(entry))
        except ValueError as e:
            errors.append(f"#{i}: {e}")
    return patterns, errors


async def import_patterns(session: AsyncSession, content: bytes | str) -> PatternImportResult:
    """Insert patterns from YAML, skipping ones already present (same type + family + category)."""
    patterns, errors = parse_pattern_yaml(content)
    result = PatternImportResult(errors=errors)

    existing_q = select(
        MappingPattern.framework_type, MappingPattern.control_family, MappingPattern.risk_category,
    )
    existing = {
        (r.framework_type.lower(), r.control_family, r.risk_category)
        for r in (await session.execute(existing_q)).all()
    }

    for p in patterns:
        key = (p.framework_type, p.control_family, p.risk_category)
        if key in existing:
            result.skipped += 1
            continue
        session.add(MappingPattern(
            framework_type=p.framework_type,
            risk_category=p.risk_category,
            risk_keywords=list(p.risk_keywords),
            control_family=p.control_family,
            control_keywords=list(p.control_keywords),
            mapping_strength=p.mapping_strength,
        ))
        existing.add(key)
        result.created += 1

    await session.flush()
    log.info(
        "Pattern import: %d created, %d skipped, %d errors",
        result.created, result.skipped, len(result.errors),
    )
    return result


# ─── Sources ──────────────────────────────────────────────────


class MappingPatternSource(ABC):
    @abstractmethod
    async def load(self) -> list[PatternSpec]:
        ...


class EmptyPatternSource(MappingPatternSource):
    async def load(self) -> list[PatternSpec]:
        return []


class DatabasePatternSource(MappingPatternSource):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def load(self) -> list[PatternSpec]:
        q = select(MappingPattern).order_by(MappingPattern.mapping_strength.desc())
        rows = (await self.session.execute(q)).scalars().all()
        patterns = []
        for row in rows:
            try:
                patterns.append(PatternSpec(
                    framework_type=row.framework_type.lower(),
                    control_family=row.control_family,
                    risk_keywords=_keywords(row.risk_keywords),
                    control_keywords=_keywords(row.control_keywords),
                    mapping_strength=float(row.mapping_strength),
                    risk_category=row.risk_category,
                ))
            except (ValueError, TypeError) as e:
                log.warning("Skipping malformed mapping pattern %s: %s", row.id, e)
        return patterns


class YamlPatternSource(MappingPatternSource):
    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def load(self) -> list[PatternSpec]:
        patterns, errors = parse_pattern_yaml(self.path.read_text(encoding="utf-8"))
        for err in errors:
            log.warning("%s: %s", self.path.name, err)
        return patterns


def default_pattern_source(session: AsyncSession) -> MappingPatternSource:
    """MAPPING_PATTERNS_FILE when configured, otherwise the ai_mapping_patterns table."""
    if settings.MAPPING_PATTERNS_FILE:
        return YamlPatternSource(settings.MAPPING_PATTERNS_FILE)
    return DatabasePatternSource(session)

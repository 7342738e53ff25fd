from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


DEFAULT_CATEGORY_ORDER: tuple[str, ...] = (
    "Design",
    "Procurement",
    "Civil",
    "Electrical",
    "Plumbing",
    "Carpentry",
    "False Ceiling",
    "Flooring",
    "Painting",
    "Furnishing",
    "Handover",
    "General",
)

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True)
class EngineSettings:
    """Engine settings loaded from environment with fail-fast validation."""

    gantt_padding_days: int = 1
    gantt_min_width: float = 0.01
    category_order: tuple[str, ...] = DEFAULT_CATEGORY_ORDER
    align_start_to_dependencies: bool = True
    reject_dependency_cycles: bool = False
    store_root: str = "task_store"

    @classmethod
    def from_env(cls) -> "EngineSettings":
        raw_order = os.getenv("TASK_ENGINE_CATEGORY_ORDER")
        category_order = (
            tuple(part.strip() for part in raw_order.split(",")) if raw_order is not None else DEFAULT_CATEGORY_ORDER
        )
        return cls(
            gantt_padding_days=_get_env_int("TASK_ENGINE_GANTT_PADDING_DAYS", default=1, minimum=1, maximum=365),
            gantt_min_width=_get_env_float("TASK_ENGINE_GANTT_MIN_WIDTH", default=0.01),
            category_order=category_order,
            align_start_to_dependencies=_get_env_bool("TASK_ENGINE_ALIGN_START_TO_DEPENDENCIES", default=True),
            reject_dependency_cycles=_get_env_bool("TASK_ENGINE_REJECT_DEPENDENCY_CYCLES", default=False),
            store_root=os.getenv("TASK_ENGINE_STORE_ROOT", "task_store"),
        ).normalized()

    def normalized(self) -> "EngineSettings":
        """Validate and normalize all fields. Raises ValueError on invalid configuration."""
        if self.gantt_padding_days < 1:
            raise ValueError(f"TASK_ENGINE_GANTT_PADDING_DAYS must be >= 1, got: {self.gantt_padding_days}")
        if not 0.0 < self.gantt_min_width < 1.0:
            raise ValueError(f"TASK_ENGINE_GANTT_MIN_WIDTH must be in (0, 1), got: {self.gantt_min_width}")
        if not self.store_root.strip():
            raise ValueError("TASK_ENGINE_STORE_ROOT must be non-empty")

        # -- Category order: drop blanks and case-insensitive repeats, keep first spelling --
        seen: set[str] = set()
        category_order: list[str] = []
        for category in self.category_order:
            name = category.strip()
            if not name or name.lower() in seen:
                continue
            seen.add(name.lower())
            category_order.append(name)
        if not category_order:
            raise ValueError("TASK_ENGINE_CATEGORY_ORDER must name at least one category")

        return EngineSettings(
            gantt_padding_days=self.gantt_padding_days,
            gantt_min_width=self.gantt_min_width,
            category_order=tuple(category_order),
            align_start_to_dependencies=self.align_start_to_dependencies,
            reject_dependency_cycles=self.reject_dependency_cycles,
            store_root=self.store_root.strip(),
        )

    def store_path(self, repo_root: Path) -> Path:
        path = Path(self.store_root)
        return path if path.is_absolute() else repo_root / path


def _get_env_int(name: str, default: int, minimum: int, maximum: int = 10_000_000) -> int:
    """Parse an integer from an environment variable with bounds checking.

    Args:
        name: Environment variable name.
        default: Value to return if the variable is unset.
        minimum: Inclusive lower bound.
        maximum: Inclusive upper bound.

    Returns:
        The parsed integer, guaranteed to be within [minimum, maximum].

    Raises:
        ValueError: If the value is not an integer or is outside bounds.
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got: {raw!r}") from exc
    if parsed < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got: {parsed}")
    if parsed > maximum:
        raise ValueError(f"{name} must be <= {maximum}, got: {parsed}")
    return parsed


def _get_env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got: {raw!r}") from exc


def _get_env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (true/false), got: {raw!r}")

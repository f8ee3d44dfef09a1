"""JSON persistence for formulas.

Stores one JSON file per formula, under a directory per organization.
A formula is always written as a whole snapshot (header plus every
line), so a save either fully lands or leaves the previous file intact.
"""

import json
import logging
import os
import re
import tempfile
from dataclasses import asdict
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from config.constants import FORMULAS_SUBDIRECTORY
from domain.exceptions import (
    FormulaNotFoundError,
    InvalidFormulaError,
    InvalidFormulaFileError,
    OrganizationNotFoundError,
)
from domain.models import (
    Formula,
    FormulaLine,
    FormulaNotes,
    StabilityDay,
    StabilityTracking,
)

_ORGANIZATION_PATTERN = re.compile(r"[A-Za-z0-9_.-]+")


def organization_directory(base_dir: Path, organization_id: str) -> Path:
    """Directory holding one organization's data."""
    org = (organization_id or "").strip()
    if not org or org in (".", "..") or not _ORGANIZATION_PATTERN.fullmatch(org):
        raise OrganizationNotFoundError(f"Invalid organization id: {organization_id!r}")
    return base_dir / org


def write_json_atomic(file_path: Path, data: Any) -> None:
    """Write JSON to a temp file in the same directory, then swap it in."""
    file_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{file_path.stem}-", suffix=".tmp", dir=file_path.parent
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_name, file_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class JSONFormulaRepository:
    """Tenant-scoped repository for formulas stored as JSON files."""

    def __init__(self, base_directory: str = "saves") -> None:
        """Initialize repository.

        Args:
            base_directory: Root directory; each organization gets a subfolder
        """
        self._base_dir = Path(base_directory)
        self._base_dir.mkdir(parents=True, exist_ok=True)

    def save(self, organization_id: str, formula: Formula) -> Formula:
        """Create or update a formula.

        Matching order:

        1. A stored formula with the same name and version is updated.
        2. A formula whose id is stored under another version is written
           as a new version: new id, inactive, stability test reset.
        3. Otherwise the formula is updated by id, or created.

        Lines are always replaced by the given ones.

        Returns:
            The stored formula, with id, organization and timestamps set

        Raises:
            InvalidFormulaError: If the formula has no name
        """
        if not formula.name.strip():
            raise InvalidFormulaError("Le nom de la formule est obligatoire")

        directory = self._formulas_dir(organization_id)
        existing = self._find_by_name_and_version(organization_id, formula)
        if existing is None and formula.id is not None:
            existing = self.find(organization_id, formula.id)
            if existing is not None and existing.version.strip() != formula.version.strip():
                logging.info(
                    "Saving formula id=%s as new version %r org=%s",
                    formula.id,
                    formula.version,
                    organization_id,
                )
                formula = formula.evolve(is_active=False, stability=StabilityTracking())
                existing = None
        now = datetime.now(timezone.utc)

        if existing is not None:
            formula_id = existing.id
            created_at = existing.created_at or now
            logging.debug("Updating formula id=%s org=%s", formula_id, organization_id)
        else:
            formula_id = self._next_id(directory)
            created_at = now
            logging.debug("Creating formula id=%s org=%s", formula_id, organization_id)

        stored = formula.evolve(
            id=formula_id,
            organization_id=organization_id,
            created_at=created_at,
            updated_at=now,
        )
        write_json_atomic(self._file_path(directory, formula_id), self._formula_to_dict(stored))
        return stored

    def get(self, organization_id: str, formula_id: int) -> Formula:
        """Load a formula.

        Raises:
            FormulaNotFoundError: If the formula does not exist for this organization
            InvalidFormulaFileError: If the file is malformed
        """
        file_path = self._file_path(self._formulas_dir(organization_id), formula_id)
        if not file_path.exists():
            raise FormulaNotFoundError(f"Formula not found: {formula_id}")
        return self._read(file_path)

    def find(self, organization_id: str, formula_id: int) -> Optional[Formula]:
        try:
            return self.get(organization_id, formula_id)
        except FormulaNotFoundError:
            return None

    def list(self, organization_id: str) -> List[Formula]:
        """All formulas of an organization, most recently updated first."""
        directory = self._formulas_dir(organization_id)
        if not directory.exists():
            return []
        formulas = [self._read(path) for path in directory.glob("*.json")]
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        return sorted(
            formulas,
            key=lambda f: (f.updated_at or epoch, f.id or 0),
            reverse=True,
        )

    def delete(self, organization_id: str, formula_id: int) -> None:
        """Delete a formula and its lines.

        Raises:
            FormulaNotFoundError: If the formula does not exist
        """
        file_path = self._file_path(self._formulas_dir(organization_id), formula_id)
        if not file_path.exists():
            raise FormulaNotFoundError(f"Formula not found: {formula_id}")
        file_path.unlink()

    def set_active_version(self, organization_id: str, formula_id: int) -> Formula:
        """Mark one version as the production version of its formula name."""
        target = self.get(organization_id, formula_id)
        directory = self._formulas_dir(organization_id)
        for formula in self.list(organization_id):
            if formula.name != target.name:
                continue
            should_be_active = formula.id == formula_id
            if formula.is_active != should_be_active:
                updated = formula.evolve(is_active=should_be_active)
                write_json_atomic(
                    self._file_path(directory, formula.id), self._formula_to_dict(updated)
                )
        return self.get(organization_id, formula_id)

    def _formulas_dir(self, organization_id: str) -> Path:
        return organization_directory(self._base_dir, organization_id) / FORMULAS_SUBDIRECTORY

    def _file_path(self, directory: Path, formula_id: int) -> Path:
        return directory / f"{int(formula_id)}.json"

    def _find_by_name_and_version(
        self, organization_id: str, formula: Formula
    ) -> Optional[Formula]:
        if formula.name.strip() and formula.version.strip():
            for candidate in self.list(organization_id):
                if candidate.name == formula.name and candidate.version == formula.version:
                    return candidate
        return None

    def _next_id(self, directory: Path) -> int:
        ids = [int(path.stem) for path in directory.glob("*.json") if path.stem.isdigit()]
        return max(ids, default=0) + 1

    def _read(self, file_path: Path) -> Formula:
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return self._dict_to_formula(data)
        except (json.JSONDecodeError, KeyError, ValueError, TypeError, ArithmeticError) as exc:
            raise InvalidFormulaFileError(f"Invalid formula file: {file_path.name}") from exc

    def _formula_to_dict(self, formula: Formula) -> Dict[str, Any]:
        """Convert Formula to dictionary."""
        return {
            "id": formula.id,
            "organization_id": formula.organization_id,
            "name": formula.name,
            "version": formula.version,
            "formulator": formula.formulator,
            "total_weight": str(formula.total_weight),
            "notes": asdict(formula.notes),
            "stability": {
                "start_date": (
                    formula.stability.start_date.isoformat()
                    if formula.stability.start_date
                    else None
                ),
                "days": [asdict(day) for day in formula.stability.days],
            },
            "improvement_goal": formula.improvement_goal,
            "is_active": formula.is_active,
            "created_at": formula.created_at.isoformat() if formula.created_at else None,
            "updated_at": formula.updated_at.isoformat() if formula.updated_at else None,
            "lines": [
                {
                    "phase": line.phase,
                    "ingredient_code": line.ingredient_code,
                    "ingredient_name": line.ingredient_name,
                    "percent": str(line.percent),
                    "grams": str(line.grams),
                    "is_qsp": line.is_qsp,
                    "notes": line.notes,
                    "price_per_kilo": (
                        str(line.price_per_kilo) if line.price_per_kilo is not None else None
                    ),
                    "stock_indicator": line.stock_indicator,
                }
                for line in formula.lines
            ],
        }

    def _dict_to_formula(self, data: Dict[str, Any]) -> Formula:
        """Convert dictionary to Formula."""
        lines = tuple(
            FormulaLine(
                phase=line_data.get("phase") or "",
                ingredient_code=line_data.get("ingredient_code") or "",
                ingredient_name=line_data.get("ingredient_name") or "",
                percent=Decimal(str(line_data.get("percent") or "0")),
                grams=Decimal(str(line_data.get("grams") or "0")),
                is_qsp=bool(line_data.get("is_qsp", False)),
                notes=line_data.get("notes") or "",
                price_per_kilo=(
                    Decimal(str(line_data["price_per_kilo"]))
                    if line_data.get("price_per_kilo") is not None
                    else None
                ),
                stock_indicator=line_data.get("stock_indicator"),
            )
            for line_data in data.get("lines", [])
        )
        notes_data = data.get("notes") or {}
        notes = FormulaNotes(
            **{key: str(value or "") for key, value in notes_data.items() if key in FormulaNotes.__dataclass_fields__}
        )
        stability_data = data.get("stability") or {}
        stability = StabilityTracking(
            start_date=_parse_datetime(stability_data.get("start_date")),
            days=tuple(
                StabilityDay(day=str(day_data["day"]), notes=day_data.get("notes") or "")
                for day_data in stability_data.get("days") or []
            ),
        )
        return Formula(
            id=data["id"],
            organization_id=data.get("organization_id"),
            name=data["name"],
            version=data.get("version") or "",
            formulator=data.get("formulator") or "",
            total_weight=Decimal(str(data.get("total_weight") or "1000")),
            notes=notes,
            stability=stability,
            improvement_goal=data.get("improvement_goal") or "",
            is_active=bool(data.get("is_active", False)),
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
            lines=lines,
        )


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)

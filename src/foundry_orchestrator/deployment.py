"""Deployment and ledger writer for Phase 6.

validate -> publish -> upsert registry, as one unit: a failed validation
publishes nothing, and a failed registry write removes (or restores) the
published file before the error propagates.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path

import yaml

from src.foundry_orchestrator.build_delegator import count_placeholders
from src.foundry_orchestrator.config import DeployConfig
from src.foundry_orchestrator.exceptions import ValidationFailedError
from src.foundry_shared.models import (
    BuiltResource,
    DeploymentRecord,
    RegistryEntry,
    ValidationResult,
)
from src.foundry_shared.protocols import FormatValidator, RegistryStore
from src.foundry_shared.utils import is_valid_target_name

logger = logging.getLogger(__name__)


class FrontmatterFormatValidator:
    """Markdown with a YAML frontmatter block carrying ``name`` and ``description``."""

    def validate(self, resource_ref: str) -> ValidationResult:
        path = Path(resource_ref)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            return ValidationResult(False, [f"cannot read {path}: {exc}"])

        diagnostics: list[str] = []
        if not text.startswith("---"):
            return ValidationResult(False, ["missing YAML frontmatter block"])
        parts = text.split("---", 2)
        if len(parts) < 3:
            return ValidationResult(False, ["unterminated YAML frontmatter block"])
        try:
            meta = yaml.safe_load(parts[1]) or {}
        except yaml.YAMLError as exc:
            return ValidationResult(False, [f"frontmatter is not valid YAML: {exc}"])
        if not isinstance(meta, dict):
            return ValidationResult(False, ["frontmatter must be a mapping"])

        name = str(meta.get("name") or "").strip()
        if not name:
            diagnostics.append("frontmatter 'name' is missing")
        elif name != path.stem:
            diagnostics.append(f"frontmatter name '{name}' does not match file name '{path.stem}'")
        elif not is_valid_target_name(name):
            diagnostics.append(f"frontmatter name '{name}' is not lowercase-hyphenated")
        if not str(meta.get("description") or "").strip():
            diagnostics.append("frontmatter 'description' is missing")

        body = parts[2]
        if not body.strip():
            diagnostics.append("document body is empty")
        placeholders = count_placeholders(text)
        if placeholders:
            diagnostics.append(f"{placeholders} unresolved template markers")
        return ValidationResult(not diagnostics, diagnostics)


class CommandFormatValidator:
    """Runs an external validator: ``<command...> <resource_ref>``, exit 0 passes."""

    def __init__(self, command: list[str], timeout: float = 60.0) -> None:
        self._command = list(command)
        self._timeout = timeout

    def validate(self, resource_ref: str) -> ValidationResult:
        try:
            proc = subprocess.run(
                [*self._command, resource_ref],
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            return ValidationResult(False, [f"validator did not run: {exc}"])
        lines = [ln.strip() for ln in (proc.stdout + "\n" + proc.stderr).splitlines() if ln.strip()]
        return ValidationResult(proc.returncode == 0, lines)


def create_format_validator(config: DeployConfig) -> FormatValidator:
    if config.validator_command:
        return CommandFormatValidator(config.validator_command)
    return FrontmatterFormatValidator()


class DeploymentWriter:
    """Publishes a built resource and records it in the registry."""

    def __init__(
        self,
        validator: FormatValidator,
        store: RegistryStore,
        config: DeployConfig | None = None,
    ) -> None:
        self._validator = validator
        self._store = store
        self._config = config or DeployConfig()

    def runtime_path(self, target_name: str, suffix: str = ".md") -> Path:
        return Path(self._config.runtime_dir) / f"{target_name}{suffix}"

    def discard(self, target_name: str) -> list[str]:
        """Remove the published resource for *target_name* (Rebuild)."""
        removed: list[str] = []
        paths = {self.runtime_path(target_name)}
        entry = self._store.get(target_name)
        if entry is not None and entry.resource_ref:
            paths.add(Path(entry.resource_ref))
        for path in sorted(paths):
            if path.is_file():
                path.unlink()
                removed.append(str(path))
                logger.info("Discarded existing resource %s", path)
        return removed

    def deploy(
        self, built: BuiltResource, keywords: list[str], category: str = ""
    ) -> DeploymentRecord:
        """Validate, publish and register *built*.

        Raises:
            ValidationFailedError: the validator rejected the resource;
                nothing was published and the registry is untouched.
        """
        result = self._validator.validate(built.resource_ref)
        if not result.passed:
            raise ValidationFailedError(built.resource_ref, result.diagnostics)

        source = Path(built.resource_ref)
        dest = self.runtime_path(built.target_name, source.suffix or ".md")
        dest.parent.mkdir(parents=True, exist_ok=True)
        previous = dest.read_bytes() if dest.exists() else None

        tmp = dest.with_name(dest.name + ".tmp")
        shutil.copyfile(source, tmp)
        os.replace(tmp, dest)

        existing = self._store.get(built.target_name)
        entry = RegistryEntry(
            name=built.target_name,
            keywords=sorted(set(keywords)),
            category=category or built.archetype,
            version=existing.version + 1 if existing is not None else 1,
            resource_ref=str(dest),
        )
        try:
            self._store.upsert(entry)
        except Exception:
            logger.error("Registry write failed for %s; rolling back %s", entry.name, dest)
            if previous is None:
                dest.unlink(missing_ok=True)
            else:
                dest.write_bytes(previous)
            raise

        logger.info("Deployed %s to %s (registry version %d)", entry.name, dest, entry.version)
        return DeploymentRecord(
            deployed_path=str(dest),
            registry_entry=entry,
            replaced_existing=previous is not None or existing is not None,
        )

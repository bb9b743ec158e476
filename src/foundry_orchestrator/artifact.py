"""Loading and structural validation of worker documents."""

from __future__ import annotations

from pathlib import Path

from pydantic import ValidationError

from src.foundry_orchestrator.exceptions import StructurallyInvalidError
from src.foundry_shared.documents import (
    BuildReportDocument,
    SynthesisArtifactDocument,
    artifact_to_document,
)
from src.foundry_shared.models import Provenance, SynthesisArtifact
from src.foundry_shared.utils import atomic_write_json, load_json


def _first_errors(exc: ValidationError, limit: int = 3) -> str:
    parts = []
    for err in exc.errors()[:limit]:
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc or '<root>'}: {err.get('msg', '')}")
    return "; ".join(parts)


def load_synthesis_artifact(path: Path | str, default_source: Provenance) -> SynthesisArtifact:
    """Parse a research worker document.

    Raises:
        StructurallyInvalidError: unreadable JSON, a missing category, an
            unknown category, or a category neither populated nor gapped.
    """
    data = load_json(path)
    if not isinstance(data, dict):
        raise StructurallyInvalidError(f"Artifact {path} is missing or not a JSON object")
    try:
        doc = SynthesisArtifactDocument.model_validate(data)
    except ValidationError as exc:
        raise StructurallyInvalidError(f"Artifact {path}: {_first_errors(exc)}") from exc
    return doc.to_artifact(default_source, artifact_ref=str(path))


def load_build_report(path: Path | str) -> BuildReportDocument:
    """Parse a build worker document.

    Raises:
        StructurallyInvalidError: unreadable JSON or a malformed report.
    """
    data = load_json(path)
    if not isinstance(data, dict):
        raise StructurallyInvalidError(f"Build report {path} is missing or not a JSON object")
    try:
        return BuildReportDocument.model_validate(data)
    except ValidationError as exc:
        raise StructurallyInvalidError(f"Build report {path}: {_first_errors(exc)}") from exc


def save_artifact(artifact: SynthesisArtifact, path: Path | str) -> Path:
    """Write *artifact* in wire form and record the path on it."""
    path = Path(path)
    atomic_write_json(path, artifact_to_document(artifact))
    artifact.artifact_ref = str(path)
    return path

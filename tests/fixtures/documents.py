"""Document builders and fake workers shared across the test suite."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from src.foundry_orchestrator.workers import CallableWorkerClient
from src.foundry_shared.constants import ARTIFACT_CATEGORIES
from src.foundry_shared.models import InvocationStatus, WorkerKind, WorkerOutcome

DEFAULT_ENTRIES: dict[str, tuple[str, str]] = {
    "core_knowledge": ("pod lifecycle", "Pods restart with `restartPolicy: Always` after 10s backoff"),
    "decision_frameworks": ("scaling choice", "Use HPA when CPU exceeds 70% for 5 minutes"),
    "anti_patterns": ("latest tags", "Never deploy images tagged `latest` to production"),
    "tool_map": ("kubectl", "`kubectl describe pod` shows events; add --watch for updates"),
    "interaction_scripts": ("triage", "Ask for the namespace and the output of `kubectl get pods`"),
}


def artifact_document(
    source: str | None = "web",
    gaps: tuple[str, ...] = (),
    entries: dict[str, list[dict[str, Any]]] | None = None,
) -> dict[str, Any]:
    """A valid synthesis artifact document.

    Categories named in *gaps* carry a GAP marker instead of entries;
    *entries* replaces the default entries of the categories it names.
    """
    categories: dict[str, Any] = {}
    for name in ARTIFACT_CATEGORIES:
        if name in gaps:
            categories[name] = {
                "entries": [],
                "gap": {"marker": "GAP", "searched": [f"{source or 'web'}:{name}"]},
            }
        elif entries and name in entries:
            categories[name] = {"entries": entries[name]}
        else:
            key, content = DEFAULT_ENTRIES[name]
            categories[name] = {"entries": [{"key": key, "content": content}]}
    doc: dict[str, Any] = {"schema_version": 1, "categories": categories}
    if source is not None:
        doc["source"] = source
    return doc


def write_json(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def resource_text(name: str, description: str = "Diagnoses cluster failures", body: str | None = None) -> str:
    if body is None:
        body = (
            "# Core Knowledge\n\nPods restart after a 10s backoff.\n\n"
            "# Decision Frameworks\n\nScale out when CPU stays above 70%.\n"
        )
    return f"---\nname: {name}\ndescription: {description}\n---\n\n{body}"


def write_resource(directory: Path, name: str, **kwargs: Any) -> Path:
    path = directory / f"{name}.md"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(resource_text(name, **kwargs), encoding="utf-8")
    return path


def build_report_document(resource_ref: str, **quality: Any) -> dict[str, Any]:
    report = {
        "specificity_score": 42.0,
        "decision_framework_count": 6,
        "placeholder_count": 0,
        "section_coverage": list(ARTIFACT_CATEGORIES),
    }
    report.update(quality)
    return {"resource_ref": resource_ref, "quality_report": report}


class FakeWorkers:
    """In-process workers that write real documents under *root*.

    Attributes may be overridden per test: ``web_doc`` / ``repo_doc`` are
    the artifact documents written, ``quality`` is merged into every build
    report, ``resource_body`` replaces the built resource body, and any
    kind listed in ``outcomes`` returns that outcome instead of working.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.web_doc: dict[str, Any] = artifact_document("web")
        self.repo_doc: dict[str, Any] = artifact_document("repo")
        self.quality: dict[str, Any] = {}
        self.resource_body: str | None = None
        self.outcomes: dict[WorkerKind, WorkerOutcome] = {}
        self.build_requests: list[dict[str, Any]] = []

    def _artifact(self, kind: WorkerKind, attr: str):
        def handler(input_ref: str, timeout: int):
            if kind in self.outcomes:
                return self.outcomes[kind]
            return str(write_json(self.root / f"{kind.value}.json", getattr(self, attr)))
        return handler

    def build(self, input_ref: str, timeout: int):
        if WorkerKind.BUILD in self.outcomes:
            return self.outcomes[WorkerKind.BUILD]
        request = json.loads(Path(input_ref).read_text(encoding="utf-8"))
        self.build_requests.append(request)
        name = request["target_name"]
        resource = write_resource(self.root / "built", name, body=self.resource_body)
        report = build_report_document(str(resource), **self.quality)
        return str(write_json(self.root / "build_report.json", report))

    def client(self) -> CallableWorkerClient:
        return CallableWorkerClient(
            {
                WorkerKind.WEB_RESEARCH: self._artifact(WorkerKind.WEB_RESEARCH, "web_doc"),
                WorkerKind.REPO_ANALYSIS: self._artifact(WorkerKind.REPO_ANALYSIS, "repo_doc"),
                WorkerKind.BUILD: self.build,
            }
        )


def failed(reason: str = "boom") -> WorkerOutcome:
    return WorkerOutcome(InvocationStatus.FAILED, error_reason=reason)

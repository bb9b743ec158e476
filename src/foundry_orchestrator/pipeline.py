"""Pipeline controller -- drives a request through the six phases.

Phases run strictly in order.  After each phase's work the controller
fires the matching trigger on the state machine; the trigger's guards
are that phase's exit predicate, so a phase whose predicate does not
hold never hands over to the next one.  Any ``PipelineError`` ends the
run (``failed``, or ``aborted`` for operator aborts and shutdown), and
the completion report is generated on every path.

The temporary repository workspace, when one is fetched, is registered
on the run's ``ExitStack`` the moment it exists and released on every
exit path.
"""

from __future__ import annotations

import logging
from contextlib import ExitStack
from datetime import datetime, timezone
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Awaitable, Callable

from src.foundry_orchestrator.acquirer import ResourceAcquirer, TempWorkspace
from src.foundry_orchestrator.artifact import save_artifact
from src.foundry_orchestrator.build_delegator import BuildDelegator, check_quality
from src.foundry_orchestrator.classifier import classify
from src.foundry_orchestrator.config import FoundryConfig, load_foundry_config
from src.foundry_orchestrator.delegation import (
    DelegationEngine,
    InvocationResult,
    raise_for_failure,
)
from src.foundry_orchestrator.deployment import DeploymentWriter, create_format_validator
from src.foundry_orchestrator.exceptions import (
    ExitPredicateUnmetError,
    PipelineError,
    QualityThresholdUnmetError,
    RouteUnsatisfiableError,
    RunAborted,
)
from src.foundry_orchestrator.merger import merge_with_stats
from src.foundry_orchestrator.registry_gate import RegistryGate
from src.foundry_orchestrator.report import (
    CompletionReport,
    generate_completion_report,
    write_report,
)
from src.foundry_orchestrator.resolvers import resolver_from_config
from src.foundry_orchestrator.router import route
from src.foundry_orchestrator.shutdown import GracefulShutdown
from src.foundry_orchestrator.state import PipelineRun
from src.foundry_orchestrator.state_machine import create_pipeline_machine, unmet_conditions
from src.foundry_orchestrator.telemetry import PhaseTelemetry
from src.foundry_orchestrator.work_order import WorkOrderSynthesizer
from src.foundry_orchestrator.workers import SubprocessWorkerClient
from src.foundry_shared.constants import (
    ARCHIVE_DB_FILE,
    ARTIFACT_CATEGORIES,
    PHASE_BUILD,
    PHASE_DELEGATION,
    PHASE_DEPLOY,
    PHASE_INPUT_ANALYSIS,
    PHASE_NUMBERS,
    PHASE_PROMPT_PREP,
    PHASE_ROUTE_SELECTION,
    PHASE_TITLES,
    TERMINAL_STATES,
)
from src.foundry_shared.logging import phase_var, run_id_var, setup_logging
from src.foundry_shared.models import (
    BuiltResource,
    DeploymentRecord,
    Disposition,
    DuplicateDecision,
    GateOutcome,
    InputDescriptor,
    InvocationStatus,
    PhaseStatus,
    PromptRef,
    Provenance,
    Route,
    RouteDecision,
    RunStatus,
    SynthesisArtifact,
    WorkerInvocation,
    WorkerKind,
)
from src.foundry_shared.protocols import (
    DispositionResolver,
    FormatValidator,
    RegistryStore,
    WorkerClient,
)
from src.foundry_shared.settings import FoundrySettings
from src.foundry_shared.utils import ensure_dir, is_valid_target_name, tokenize

logger = logging.getLogger(__name__)

MAX_REGISTRY_KEYWORDS = 12


# ---------------------------------------------------------------------------
# Run context
# ---------------------------------------------------------------------------


@dataclass
class RunContext:
    """In-memory objects of one run; ``run`` holds their persisted form."""

    run: PipelineRun
    config: FoundryConfig
    run_dir: Path
    telemetry: PhaseTelemetry
    engine: DelegationEngine
    registry_store: RegistryStore
    deployer: DeploymentWriter
    acquirer: ResourceAcquirer
    resolver: DispositionResolver | None
    shutdown: GracefulShutdown
    cleanup: ExitStack = field(default_factory=ExitStack)
    descriptor: InputDescriptor | None = None
    duplicate_decision: DuplicateDecision | None = None
    gate_outcome: GateOutcome | None = None
    route_decision: RouteDecision | None = None
    repo_input_ref: str = ""
    workspace: TempWorkspace | None = None
    prompt_ref: PromptRef | None = None
    delegation_results: list[InvocationResult] = field(default_factory=list)
    artifact: SynthesisArtifact | None = None
    built: BuiltResource | None = None
    deployment: DeploymentRecord | None = None

    @property
    def route(self) -> Route:
        return self.route_decision.route if self.route_decision else Route.UNRESOLVED

    def save(self) -> None:
        self.run.phase_telemetry = self.telemetry.to_dict()
        self.run.save(self.run_dir)


@dataclass
class PipelineResult:
    """What ``execute_pipeline`` hands back to the caller."""

    run: PipelineRun
    report: CompletionReport
    report_path: Path | None = None

    @property
    def succeeded(self) -> bool:
        return self.run.status == RunStatus.SUCCEEDED.value


# ---------------------------------------------------------------------------
# State machine model
# ---------------------------------------------------------------------------


class PipelineModel:
    """Model object for the ``transitions`` async state machine.

    Each guard is the exit predicate of the phase its transition leaves.
    The ``state`` attribute is managed by the ``AsyncMachine``.
    """

    def __init__(self, ctx: RunContext) -> None:
        self._ctx = ctx
        self.state: str = ctx.run.current_state

    def input_analysis_complete(self, *args, **kwargs) -> bool:
        """Descriptor built and the registry gate settled on a usable name."""
        ctx = self._ctx
        outcome = ctx.gate_outcome
        return (
            ctx.descriptor is not None
            and outcome is not None
            and outcome.disposition in (Disposition.PROCEED, Disposition.REBUILD, Disposition.NARROW)
            and is_valid_target_name(outcome.target_name)
        )

    def route_resolved(self, *args, **kwargs) -> bool:
        """A concrete route, with a repository input when the route needs one."""
        current = self._ctx.route
        if current == Route.UNRESOLVED:
            return False
        if current in (Route.INTERNAL_REPO, Route.HYBRID):
            return bool(self._ctx.repo_input_ref) and Path(self._ctx.repo_input_ref).exists()
        return True

    def requires_prompt_prep(self, *args, **kwargs) -> bool:
        return self._ctx.route in (Route.WEB_RESEARCH, Route.HYBRID)

    def is_internal_repo(self, *args, **kwargs) -> bool:
        return self._ctx.route == Route.INTERNAL_REPO

    def work_order_ready(self, *args, **kwargs) -> bool:
        """The work order exists and passed the structural check."""
        ref = self._ctx.prompt_ref
        cfg = self._ctx.config.work_order
        if ref is None or not Path(ref.path).is_file():
            return False
        return ref.section_count >= cfg.min_sections and all(
            count >= cfg.min_sub_items for count in ref.sub_item_counts
        )

    def artifact_accepted(self, *args, **kwargs) -> bool:
        """Every invocation succeeded and the artifact is complete."""
        ctx = self._ctx
        results = ctx.delegation_results
        if ctx.artifact is None or not results:
            return False
        if not all(r.invocation.status == InvocationStatus.SUCCEEDED for r in results):
            return False
        for name in ARTIFACT_CATEGORIES:
            block = ctx.artifact.categories.get(name)
            if block is None or not (block.is_populated or block.is_gapped):
                return False
        if ctx.route == Route.HYBRID:
            return len(results) == 2 and ctx.artifact.source == Provenance.MERGED
        return True

    def quality_gate_passed(self, *args, **kwargs) -> bool:
        built = self._ctx.built
        if built is None or built.quality_report.placeholder_count != 0:
            return False
        return not check_quality(built, self._ctx.config.quality)

    def deployed(self, *args, **kwargs) -> bool:
        record = self._ctx.deployment
        return (
            record is not None
            and self._ctx.run.registry_written
            and Path(record.deployed_path).is_file()
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _invocation_dict(invocation: WorkerInvocation) -> dict:
    data = asdict(invocation)
    data["worker_kind"] = invocation.worker_kind.value
    data["status"] = invocation.status.value
    return data


def _sync_invocations(ctx: RunContext) -> None:
    ctx.run.invocations = [_invocation_dict(i) for i in ctx.engine.invocations]


def _descriptor_dict(descriptor: InputDescriptor) -> dict:
    data = asdict(descriptor)
    override = descriptor.source_signals.explicit_mode_override
    data["source_signals"]["explicit_mode_override"] = override.value if override else None
    data["source_signals"]["active"] = descriptor.source_signals.active()
    return data


def _suspend(ctx: RunContext, question: str) -> None:
    """Persist the run as waiting on *question* before blocking on the answer."""
    ctx.run.awaiting = question
    ctx.save()
    logger.info("Run suspended awaiting %s", question)


def _resume(ctx: RunContext) -> None:
    if ctx.run.awaiting:
        logger.info("Run resumed after %s", ctx.run.awaiting)
        ctx.run.awaiting = ""


def _release_workspace(ctx: RunContext, workspace: TempWorkspace) -> None:
    workspace.release()
    if not ctx.run.workspace_released:
        ctx.run.workspace_released = True
        ctx.run.cleanup_actions.append(f"released temporary workspace {workspace.path}")


def _register_workspace(ctx: RunContext, workspace: TempWorkspace) -> None:
    ctx.workspace = workspace
    ctx.run.workspace_path = str(workspace.path)
    ctx.cleanup.callback(_release_workspace, ctx, workspace)
    ctx.save()


def _registry_keywords(descriptor: InputDescriptor, target_name: str) -> list[str]:
    name_tokens = sorted(tokenize(target_name.replace("-", " ")))
    purpose_tokens = sorted(tokenize(descriptor.target_purpose) - set(name_tokens))
    return (name_tokens + purpose_tokens)[:MAX_REGISTRY_KEYWORDS]


async def _acquire_repository(ctx: RunContext) -> str:
    """Resolve the repository input for a repository route.

    A local path wins over a remote URL (nothing to fetch).
    """
    descriptor = ctx.descriptor
    if descriptor.local_paths:
        path = Path(descriptor.local_paths[0]).expanduser()
        if not path.exists():
            raise RouteUnsatisfiableError(f"Local repository path {path} does not exist")
        return str(path.resolve())
    if descriptor.remote_urls:
        workspace = await ctx.acquirer.acquire(
            descriptor.remote_urls[0], on_created=lambda ws: _register_workspace(ctx, ws)
        )
        ctx.run.resources_created.append(str(workspace.path))
        return str(workspace.path)
    raise RouteUnsatisfiableError(
        f"Route '{ctx.route.value}' needs a local path or repository URL in the request"
    )


# ---------------------------------------------------------------------------
# Phase handlers -- each returns (trigger, detail)
# ---------------------------------------------------------------------------


async def _phase_input_analysis(ctx: RunContext) -> tuple[str, str]:
    """Phase 1: classify the request and pass the registry gate."""
    run = ctx.run
    descriptor = classify(run.raw_request, ctx.config.classifier)
    ctx.descriptor = descriptor
    run.descriptor = _descriptor_dict(descriptor)
    run.target_name = descriptor.target_name
    logger.info(
        "Classified request: target=%s signals=%s",
        descriptor.target_name,
        descriptor.source_signals.active() or "none",
    )

    gate = RegistryGate(ctx.registry_store, ctx.config.registry.overlap_threshold)
    decision = gate.check_duplicate(descriptor.target_name, descriptor.target_purpose)
    ctx.duplicate_decision = decision

    resolution = None
    if decision.requires_resolution and ctx.resolver is not None:
        _suspend(ctx, "duplicate_disposition")
        resolution = await ctx.resolver.resolve_duplicate(decision)
        _resume(ctx)
    outcome = gate.resolve(decision, resolution)

    if outcome.disposition == Disposition.REBUILD:
        run.resources_removed.extend(ctx.deployer.discard(outcome.target_name))
    if outcome.target_name != descriptor.target_name:
        ctx.descriptor = replace(descriptor, target_name=outcome.target_name)

    ctx.gate_outcome = outcome
    run.target_name = outcome.target_name
    run.gate_outcome = {
        "disposition": outcome.disposition.value,
        "original_name": outcome.original_name,
        "target_name": outcome.target_name,
        "matched_names": list(outcome.matched_names),
    }
    return "analysis_done", f"{outcome.target_name} ({outcome.disposition.value})"


async def _phase_route_selection(ctx: RunContext) -> tuple[str, str]:
    """Phase 2: pick the route and make the repository input available."""
    decision = route(ctx.descriptor, ctx.config.classifier.hybrid_signals)
    ctx.route_decision = decision
    ctx.run.route = decision.route.value
    ctx.run.route_rule = decision.rule
    logger.info("Route %s (rule %d: %s)", decision.route.value, decision.rule, decision.reason)

    if decision.route in (Route.INTERNAL_REPO, Route.HYBRID):
        ctx.repo_input_ref = await _acquire_repository(ctx)
        ctx.run.repo_input_ref = ctx.repo_input_ref

    trigger = "skip_prompt_prep" if decision.route == Route.INTERNAL_REPO else "route_selected"
    return trigger, f"{decision.route.value} (rule {decision.rule})"


async def _phase_prompt_prep(ctx: RunContext) -> tuple[str, str]:
    """Phase 3: produce or accept the work order."""
    synthesizer = WorkOrderSynthesizer(
        ctx.config.work_order, ctx.resolver, on_suspend=lambda q: _suspend(ctx, q)
    )
    descriptor = ctx.descriptor
    if descriptor.prompt_files:
        ref = synthesizer.use_existing(descriptor.prompt_files[0])
    else:
        existed = synthesizer.work_order_path(descriptor.target_name).exists()
        ref = await synthesizer.synthesize(descriptor, ctx.route)
        _resume(ctx)
        if not ref.reused:
            (ctx.run.resources_modified if existed else ctx.run.resources_created).append(ref.path)

    ctx.prompt_ref = ref
    ctx.run.prompt_ref = asdict(ref)
    verb = "reused" if ref.reused else "written"
    return "prompt_ready", f"work order {verb} ({ref.section_count} sections)"


async def _phase_delegation(ctx: RunContext) -> tuple[str, str]:
    """Phase 4: dispatch the research worker(s) and accept the artifact."""
    engine = ctx.engine
    current = ctx.route
    if current == Route.WEB_RESEARCH:
        invocations = [engine.dispatch(WorkerKind.WEB_RESEARCH, ctx.prompt_ref.path)]
    elif current == Route.INTERNAL_REPO:
        invocations = [engine.dispatch(WorkerKind.REPO_ANALYSIS, ctx.repo_input_ref)]
    else:
        invocations = [
            engine.dispatch(WorkerKind.WEB_RESEARCH, ctx.prompt_ref.path),
            engine.dispatch(WorkerKind.REPO_ANALYSIS, ctx.repo_input_ref),
        ]
    _sync_invocations(ctx)
    ctx.save()

    results = await engine.await_all(invocations)
    ctx.delegation_results = results
    _sync_invocations(ctx)
    for result in results:
        raise_for_failure(result)

    metrics: dict = {}
    if current == Route.HYBRID:
        artifact, stats = merge_with_stats(results[0].artifact, results[1].artifact)
        path = save_artifact(artifact, ctx.run_dir / "merged_artifact.json")
        ctx.run.resources_created.append(str(path))
        metrics["contradictions"] = stats.contradictions
        metrics["duplicates_collapsed"] = stats.duplicates_collapsed
    else:
        artifact = results[0].artifact

    ctx.artifact = artifact
    ctx.run.artifact_path = artifact.artifact_ref
    metrics.update(
        {
            "source": artifact.source.value,
            "specificity_count": artifact.specificity_count,
            "gapped_categories": artifact.gapped_categories(),
        }
    )
    ctx.run.artifact_metrics = metrics
    return "delegation_done", f"{len(results)} worker(s) succeeded; artifact {artifact.source.value}"


async def _phase_build(ctx: RunContext) -> tuple[str, str]:
    """Phase 5: build the resource and enforce the quality thresholds."""
    delegator = BuildDelegator(ctx.engine, ctx.config.quality, ctx.run_dir)
    try:
        built = await delegator.build(
            ctx.artifact, ctx.config.quality.archetype, ctx.run.target_name
        )
    except QualityThresholdUnmetError as exc:
        if exc.resource is not None:
            ctx.run.built_resource = asdict(exc.resource)
        ctx.run.quality_unmet = list(exc.unmet)
        raise
    finally:
        _sync_invocations(ctx)

    ctx.built = built
    ctx.run.built_resource = asdict(built)
    q = built.quality_report
    return "build_done", (
        f"specificity {q.specificity_score:g}, frameworks {q.decision_framework_count}"
    )


async def _phase_deploy(ctx: RunContext) -> tuple[str, str]:
    """Phase 6: validate, publish, register, then release the workspace."""
    run = ctx.run
    record = ctx.deployer.deploy(
        ctx.built,
        _registry_keywords(ctx.descriptor, run.target_name),
        category=ctx.config.quality.archetype,
    )
    ctx.deployment = record
    run.deployed_path = record.deployed_path
    run.registry_written = True
    (run.resources_modified if record.replaced_existing else run.resources_created).append(
        record.deployed_path
    )
    run.resources_modified.append(
        f"registry entry {record.registry_entry.name} (v{record.registry_entry.version})"
    )
    ctx.cleanup.close()
    return "deploy_done", f"published {record.deployed_path}"


PHASE_HANDLERS: dict[str, Callable[[RunContext], Awaitable[tuple[str, str]]]] = {
    PHASE_INPUT_ANALYSIS: _phase_input_analysis,
    PHASE_ROUTE_SELECTION: _phase_route_selection,
    PHASE_PROMPT_PREP: _phase_prompt_prep,
    PHASE_DELEGATION: _phase_delegation,
    PHASE_BUILD: _phase_build,
    PHASE_DEPLOY: _phase_deploy,
}


# ---------------------------------------------------------------------------
# Loop
# ---------------------------------------------------------------------------


async def _advance(ctx: RunContext, model: PipelineModel, trigger: str) -> None:
    """Fire *trigger*; refuse to continue unless the machine actually moved."""
    source = model.state
    unmet = unmet_conditions(model, trigger, source)
    await getattr(model, trigger)()
    if model.state == source:
        raise ExitPredicateUnmetError(source, ", ".join(unmet) or trigger)

    from_phase = PHASE_NUMBERS[source]
    to_phase = PHASE_NUMBERS.get(model.state, from_phase)
    ctx.run.record_transition(trigger, source, model.state, from_phase, to_phase)
    ctx.run.current_state = model.state
    ctx.run.current_phase = to_phase
    logger.info("Transition %s: %s -> %s", trigger, source, model.state)


async def _run_pipeline_loop(ctx: RunContext, model: PipelineModel) -> None:
    """Drive phases until the machine reaches a terminal state."""
    while model.state not in TERMINAL_STATES:
        current = model.state
        if ctx.shutdown.should_stop:
            raise RunAborted(f"{ctx.shutdown.stop_reason}; stopped before {PHASE_TITLES[current]}")

        handler = PHASE_HANDLERS.get(current)
        if handler is None:
            raise PipelineError(f"No handler for state '{current}'")

        phase_var.set(f"Phase {PHASE_NUMBERS[current]}: {PHASE_TITLES[current]}")
        logger.info("Phase %d: %s", PHASE_NUMBERS[current], PHASE_TITLES[current])
        ctx.telemetry.start_phase(current)
        trigger, detail = await handler(ctx)
        await _advance(ctx, model, trigger)
        ctx.telemetry.end_phase(PhaseStatus.PASS, detail)
        if trigger == "skip_prompt_prep":
            ctx.telemetry.skip_phase(PHASE_PROMPT_PREP, f"route {ctx.route.value}")
        ctx.save()

    ctx.run.status = RunStatus.SUCCEEDED.value
    logger.info("Run %s succeeded: %s", ctx.run.run_id, ctx.run.deployed_path)


async def _fail_run(ctx: RunContext, model: PipelineModel, exc: PipelineError) -> None:
    """Record *exc* against the current phase and move to a terminal state."""
    run = ctx.run
    phase = model.state
    if ctx.telemetry.current_phase is None and phase in PHASE_NUMBERS:
        ctx.telemetry.start_phase(phase)
    ctx.telemetry.end_phase(PhaseStatus.FAIL, f"{exc.kind}: {exc}")

    run.failed_phase = PHASE_NUMBERS.get(phase, run.current_phase)
    run.failure_kind = exc.kind
    run.failure_message = str(exc)
    run.awaiting = ""

    aborted = isinstance(exc, RunAborted)
    trigger = "abort" if aborted else "fail"
    if phase in PHASE_NUMBERS:
        await getattr(model, trigger)()
        run.record_transition(trigger, phase, model.state, run.failed_phase, run.failed_phase)
        run.current_state = model.state
    run.status = RunStatus.ABORTED.value if aborted else RunStatus.FAILED.value
    logger.error(
        "Run %s %s at phase %s: %s: %s",
        run.run_id,
        run.status,
        run.failed_phase,
        exc.kind,
        exc,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def execute_pipeline(
    raw_request: str,
    worker_client: WorkerClient | None = None,
    *,
    config: FoundryConfig | None = None,
    config_path: str | Path | None = None,
    registry_store: RegistryStore | None = None,
    format_validator: FormatValidator | None = None,
    resolver: DispositionResolver | None = None,
    acquirer: ResourceAcquirer | None = None,
    shutdown: GracefulShutdown | None = None,
    install_signal_handlers: bool = False,
    configure_logging: bool = False,
    show_progress: bool = False,
) -> PipelineResult:
    """Run one request through the pipeline and return its report.

    Every collaborator is injectable; defaults come from configuration
    (subprocess workers, JSON registry, frontmatter validator, preset
    dispositions).  Pipeline failures do not raise: they end the run and
    are described by the returned report.

    Parameters
    ----------
    raw_request:
        Free-form request text.
    worker_client:
        Client used for every worker invocation.
    config / config_path:
        Configuration object, or a YAML path to load it from.
    registry_store, format_validator, resolver, acquirer:
        Collaborator overrides.
    shutdown:
        Shared shutdown flag; checked before every phase.
    install_signal_handlers:
        Install SIGINT/SIGTERM handlers for the duration of the run.
    configure_logging:
        Install the JSON log handler at ``LOG_LEVEL``.
    show_progress:
        Print the run header and completion report with ``rich``.

    Returns
    -------
    PipelineResult
        The final run record and its completion report.
    """
    if configure_logging:
        setup_logging("src.foundry_orchestrator", FoundrySettings().log_level)

    config = config or load_foundry_config(config_path)
    output_dir = ensure_dir(config.output_dir)

    run = PipelineRun(raw_request=raw_request)
    run_dir = PipelineRun.directory_for(run.run_id, output_dir)
    run.run_dir = str(run_dir)
    token = run_id_var.set(run.run_id)
    phase_token = phase_var.set("")

    if registry_store is None:
        from src.persistence.registry_store import JsonRegistryStore

        registry_store = JsonRegistryStore(config.registry.path)
    if worker_client is None:
        worker_client = SubprocessWorkerClient(config.workers.commands, run_dir / "worker-output")
    if resolver is None:
        resolver = resolver_from_config(config.dispositions)

    shutdown = shutdown or GracefulShutdown()
    if install_signal_handlers:
        shutdown.install()
    shutdown.set_run(run)

    ctx = RunContext(
        run=run,
        config=config,
        run_dir=run_dir,
        telemetry=PhaseTelemetry(),
        engine=DelegationEngine(worker_client, config.workers),
        registry_store=registry_store,
        deployer=DeploymentWriter(
            format_validator or create_format_validator(config.deploy),
            registry_store,
            config.deploy,
        ),
        acquirer=acquirer or ResourceAcquirer(config.acquisition),
        resolver=resolver,
        shutdown=shutdown,
    )
    model = PipelineModel(ctx)
    create_pipeline_machine(model)

    logger.info("Created run %s", run.run_id)
    ctx.save()
    if show_progress:
        from src.foundry_orchestrator.display import print_run_header

        print_run_header(run)

    try:
        try:
            await _run_pipeline_loop(ctx, model)
        except PipelineError as exc:
            await _fail_run(ctx, model, exc)
        except Exception as exc:
            logger.exception("Unexpected error in pipeline")
            await _fail_run(ctx, model, PipelineError(f"Unexpected error: {exc}"))
        finally:
            await ctx.engine.cancel_pending()
            ctx.cleanup.close()
            if install_signal_handlers:
                shutdown.uninstall()

        run.ended_at = datetime.now(timezone.utc).isoformat()
        ctx.save()

        report = generate_completion_report(run, ctx.telemetry)
        md_path, _ = write_report(report, run_dir)

        if config.archive_runs:
            from src.persistence.run_archive import RunArchive

            archive = RunArchive(Path(output_dir) / ARCHIVE_DB_FILE)
            archive.record(report, md_path)
            archive.close()

        if show_progress:
            from src.foundry_orchestrator.display import print_completion_report

            print_completion_report(report)
    finally:
        phase_var.reset(phase_token)
        run_id_var.reset(token)

    return PipelineResult(run=run, report=report, report_path=md_path)

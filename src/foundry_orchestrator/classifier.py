"""Request classifier -- free-form request text to an ``InputDescriptor``.

Pure pattern matching, no I/O.  The classifier never fails: a request
with nothing recognisable still yields a descriptor (all signals false),
which the router sends down the web-research route.

Detection order matters because the patterns overlap: remote URLs are
removed first, then work-order file references, then local paths, then
mode override phrases.  Whatever text remains is the domain text.

Bump ``CLASSIFIER_VERSION`` whenever a pattern changes meaning.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath

from src.foundry_orchestrator.config import ClassifierConfig
from src.foundry_shared.constants import TARGET_NAME_MIN_LENGTH
from src.foundry_shared.models import InputDescriptor, Route, SourceSignals
from src.foundry_shared.utils import STOPWORDS, slugify, tokenize

CLASSIFIER_VERSION = "1"

_URL_RE = re.compile(r"(?:https?://[^\s\"'<>]+|git@[\w.-]+:[\w./-]+)")
_PROMPT_FILE_RE = re.compile(
    r"(?<![\w/.:@-])((?:\.{1,2}/|~/|/)?(?:[\w.-]+/)*[\w.-]*(?:prompt|work[-_]?order)[\w.-]*\.(?:md|txt|ya?ml))\b",
    re.IGNORECASE,
)
_LOCAL_PATH_RE = re.compile(r"(?<![\w/.:@-])((?:\.{1,2}|~)?/[\w.\-/]+|[A-Za-z]:\\[\w.\\-]+)")

_MODE_WORDS = r"(web[-_ ]research|web|research|internal[-_ ]repo|internal|repo|repository|hybrid)"
_MODE_PATTERNS = [
    re.compile(r"--mode[= ]" + _MODE_WORDS + r"\b", re.IGNORECASE),
    re.compile(r"\bmode\s*[:=]\s*" + _MODE_WORDS + r"\b", re.IGNORECASE),
    # Bare "web only" / "hybrid mode" counts only as the request's leading words.
    re.compile(r"^\s*" + _MODE_WORDS + r"[- ](?:mode|only)\b\s*[:,]?", re.IGNORECASE),
]

_NAME_PHRASE_RE = re.compile(
    r"\b(?:for|called|named)\s+[\"']?([A-Za-z0-9][\w-]*(?:\s+[A-Za-z0-9][\w-]*){0,3})",
    re.IGNORECASE,
)
_COMMAND_PREFIX_RE = re.compile(
    r"^\s*(?:please\s+)?(?:create|build|make|generate|set\s+up)\s+"
    r"(?:an?\s+|the\s+)?(?:new\s+)?(?:agent|expert|specialist|assistant)?\s*"
    r"(?:for|called|named|about|on)?\s*",
    re.IGNORECASE,
)

# Words that end a target-name phrase ("for X using Y" -> "X").
_NAME_TERMINATORS = frozenset(
    {"from", "using", "with", "based", "in", "on", "that", "which", "and", "to", "at", "via", "mode"}
)


def _mode_from_word(word: str) -> Route:
    word = word.lower().replace("_", "-").replace(" ", "-")
    if word == "hybrid":
        return Route.HYBRID
    if word in ("internal-repo", "internal", "repo", "repository"):
        return Route.INTERNAL_REPO
    return Route.WEB_RESEARCH


def _is_repository_url(url: str, repo_hosts: list[str]) -> bool:
    if url.startswith("git@") or url.rstrip("/").endswith(".git"):
        return True
    host = url.split("://", 1)[-1].split("/", 1)[0].lower()
    host = host.split("@")[-1].split(":")[0]
    return any(host == h or host.endswith("." + h) for h in repo_hosts)


def _repo_basename(ref: str) -> str:
    ref = ref.rstrip("/")
    if ref.startswith("git@"):
        ref = ref.split(":", 1)[-1]
    name = PurePosixPath(ref.replace("\\", "/")).name
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return name


def extract_mode_override(text: str) -> tuple[Route | None, str]:
    """Return the explicit mode override (if any) and *text* with it removed."""
    override: Route | None = None
    for pattern in _MODE_PATTERNS:
        match = pattern.search(text)
        if match and override is None:
            override = _mode_from_word(match.group(1))
        text = pattern.sub(" ", text)
    return override, text


def extract_target_name(domain_text: str, fallbacks: list[str]) -> str:
    """Derive a normalised target name.

    Preference: an explicit ``for/called/named <name>`` phrase, then the
    leading content words of the domain text, then *fallbacks* (repository
    basenames, work-order stems), then a fixed default.
    """
    candidates: list[str] = []
    match = _NAME_PHRASE_RE.search(domain_text)
    if match:
        words: list[str] = []
        for word in match.group(1).split():
            if word.lower() in _NAME_TERMINATORS:
                break
            words.append(word)
        if words:
            candidates.append(" ".join(words))

    content = [w for w in re.findall(r"[A-Za-z0-9][\w-]*", domain_text) if w.lower() not in STOPWORDS]
    if content:
        candidates.append(" ".join(content[:3]))
    candidates.extend(fallbacks)

    for candidate in candidates:
        name = slugify(candidate)
        if not name:
            continue
        if len(name) < TARGET_NAME_MIN_LENGTH:
            name = f"{name}-agent"
        return name
    return "unnamed-agent"


def classify(raw_request: str, config: ClassifierConfig | None = None) -> InputDescriptor:
    """Classify *raw_request* into an immutable ``InputDescriptor``.

    Args:
        raw_request: Free-form request text.
        config: Pattern configuration (repository hosts).  Defaults apply
            when omitted.

    Returns:
        The descriptor.  Never raises for any string input.
    """
    config = config or ClassifierConfig()
    text = raw_request or ""

    urls = _URL_RE.findall(text)
    remote_urls = tuple(u.rstrip(".,;)") for u in urls if _is_repository_url(u, config.repo_hosts))
    text = _URL_RE.sub(" ", text)

    prompt_files = tuple(m.group(1) for m in _PROMPT_FILE_RE.finditer(text))
    text = _PROMPT_FILE_RE.sub(" ", text)

    local_paths = tuple(m.group(1).rstrip(".,;)") for m in _LOCAL_PATH_RE.finditer(text))
    text = _LOCAL_PATH_RE.sub(" ", text)

    override, text = extract_mode_override(text)
    domain_text = " ".join(text.split())

    purpose_text = _COMMAND_PREFIX_RE.sub("", domain_text).strip(" .,:;")
    has_free_text = bool(tokenize(purpose_text))

    fallbacks = [_repo_basename(p) for p in local_paths + remote_urls]
    fallbacks += [PurePosixPath(p).stem for p in prompt_files]
    target_name = extract_target_name(domain_text if has_free_text else "", fallbacks)

    target_purpose = purpose_text if has_free_text else f"{target_name.replace('-', ' ')} specialist"

    signals = SourceSignals(
        has_local_path=bool(local_paths),
        has_remote_url=bool(remote_urls),
        has_existing_prompt_file=bool(prompt_files),
        has_free_text_domain=has_free_text,
        explicit_mode_override=override,
    )
    return InputDescriptor(
        raw_request=raw_request or "",
        target_name=target_name,
        target_purpose=target_purpose,
        source_signals=signals,
        domain_text=domain_text,
        local_paths=local_paths,
        remote_urls=remote_urls,
        prompt_files=prompt_files,
        classifier_version=CLASSIFIER_VERSION,
    )

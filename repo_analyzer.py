"""
Infers deployment metadata about a remote repository.

The analysis is a strictly ordered chain of tiers, each tried only when the
previous one does not apply or fails:

- Tier 1 (metadata): for GitHub URLs, query the repository metadata, its
  per-language byte counts and its root directory listing, then run a fixed
  decision matrix over structural and textual signals.
- Tier 2 (heuristic): guess language and deploy target from substrings of
  the URL itself.

Nothing here writes to the session. `analyze_repository` returns an
`AnalysisReport` carrying the verdict plus the log events describing each tier
it attempted; the wizard applies it.
"""
import json
import logging
import re
from typing import Callable, Iterable, Optional

from config import GITHUB_API, HIGH_COMPLEXITY_SIZE
from data_models import AnalysisReport, FetchResult, RepoDetails, ReportEvent
from tracer import trace

Fetch = Callable[[str], FetchResult]

# Matches both https://github.com/owner/repo(.git) and git@github.com:owner/repo.git
_GITHUB_URL = re.compile(r"github\.com[/:]+(?P<owner>[^/\s:]+)/(?P<repo>[^/\s?#]+)", re.IGNORECASE)

# URL tokens suggesting a JavaScript project rather than a WordPress one.
_JS_URL_TOKENS = ("react", "node", "js")
# Known plugin categories that show up in plugin repository names.
_PLUGIN_URL_TOKENS = ("plugin", "seo")


def parse_github_repo(url: str) -> Optional[tuple[str, str]]:
    """
    Extracts (owner, repo) from a GitHub URL.

    Returns None for URLs that do not point at a GitHub repository.
    """
    match = _GITHUB_URL.search((url or "").strip())
    if not match:
        return None
    owner, repo = match.group("owner"), match.group("repo")
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not owner or not repo:
        return None
    return owner, repo


def classify_repository(file_names: Iterable[str], text_corpus: str, topics: Iterable[str] = ()) -> tuple[str, str]:
    """
    Applies the structural/textual decision matrix.

    Args:
        file_names: Names of the entries in the repository root.
        text_corpus: Repository name, description and topics, joined.
        topics: Repository topics.

    Returns:
        A (target, reason) pair. The first matching rule wins.
    """
    names = {name.lower() for name in file_names}
    corpus = text_corpus.lower()
    topics = [t.lower() for t in topics]

    has_style_css = "style.css" in names
    has_functions_php = "functions.php" in names
    has_php_files = any(name.endswith(".php") for name in names)

    if "wp-config.php" in names or "wp-content" in names:
        return "root", "Detected wp-config.php or wp-content directory."
    if has_style_css and has_functions_php:
        return "theme", "Detected style.css and functions.php (Theme structure)."
    if "theme" in corpus and has_style_css:
        return "theme", "Detected 'theme' topic and style.css."
    if "plugin" in corpus or "wordpress-plugin" in topics:
        return "plugin", "Explicitly identified as plugin via topics/description."
    if has_php_files and not has_style_css:
        # PHP without a theme stylesheet is almost certainly a plugin in a WordPress context.
        return "plugin", "Detected PHP files without theme structure."
    if "wordpress" in corpus and "seo" in corpus:
        return "plugin", "Inferred from file structure."
    return "custom", "Inferred from file structure."


def primary_language(languages: dict, fallback: Optional[str]) -> str:
    """Returns the language with the most bytes, or `fallback` when none are listed."""
    counts = {k: v for k, v in languages.items() if isinstance(v, (int, float))}
    if counts:
        return max(counts, key=counts.get)
    return fallback or "Unknown"


def _date_part(value: Optional[str]) -> str:
    return value.split("T")[0] if value else "-"


def _sub_resource(res: FetchResult, expected: type, name: str, events: list):
    """Returns the decoded body of a languages/contents reply, or an empty value with a warning."""
    if res.ok and isinstance(res.data, expected):
        return res.data
    reason = res.error or f"unexpected {type(res.data).__name__} payload"
    events.append(ReportEvent(level="warning", message=f"Could not read repository {name} ({reason}). Continuing without it."))
    return expected()


def _metadata_tier(owner: str, repo: str, fetch: Fetch, api: str, events: list) -> Optional[AnalysisReport]:
    """
    Runs the metadata tier. Returns a report, or None to fall through to the
    heuristic tier.
    """
    events.append(ReportEvent(level="info", message=f"Querying GitHub API for {owner}/{repo}..."))
    base = f"{api}/repos/{owner}/{repo}"
    repo_res = fetch(base)

    if repo_res.error_kind == "network":
        message = f"Analysis failed: {repo_res.error}"
        events.append(ReportEvent(level="error", message=message))
        return AnalysisReport(events=events, error=repo_res.error)
    if repo_res.error_kind == "rate_limited":
        events.append(ReportEvent(level="warning", message="GitHub API Rate Limit hit. Switching to URL-based heuristics."))
        return None
    if not repo_res.ok or not isinstance(repo_res.data, dict):
        status = repo_res.status if repo_res.status is not None else repo_res.error
        events.append(ReportEvent(level="warning", message=f"GitHub API Error: {status}. Repository might be private."))
        return None

    repo_data = repo_res.data
    lang_res = fetch(f"{base}/languages")
    contents_res = fetch(f"{base}/contents")
    for res in (lang_res, contents_res):
        if res.error_kind == "network":
            message = f"Analysis failed: {res.error}"
            events.append(ReportEvent(level="error", message=message))
            return AnalysisReport(events=events, error=res.error)
    languages = _sub_resource(lang_res, dict, "languages", events)
    contents = _sub_resource(contents_res, list, "contents", events)
    file_names = [str(item.get("name", "")) for item in contents if isinstance(item, dict)]

    topics = [str(t) for t in (repo_data.get("topics") or [])]
    description = repo_data.get("description") or ""
    text_corpus = f"{repo_data.get('name') or repo} {description} {' '.join(topics)}".lower()

    target, reason = classify_repository(file_names, text_corpus, topics)
    language = primary_language(languages, repo_data.get("language"))
    is_wordpress = "wordpress" in text_corpus or "wp-" in text_corpus or language == "PHP"
    size = repo_data.get("size") or 0

    details = RepoDetails(
        language=language,
        framework="WordPress" if is_wordpress else language,
        complexity="High" if size > HIGH_COMPLEXITY_SIZE else "Standard",
        summary=f"{reason}\n{description}",
        is_wordpress=is_wordpress,
        creation_date=_date_part(repo_data.get("created_at")),
        last_commit_date=_date_part(repo_data.get("pushed_at")),
        file_count=f"{int(size / 1024 + 0.5)} MB (approx)",
    )
    events.append(
        ReportEvent(
            level="success",
            message=f"GitHub API Analysis Complete: Identified as {target}",
            details=json.dumps({**details.model_dump(), "type": target}, indent=2),
        )
    )
    return AnalysisReport(details=details, target=target, tier="metadata", events=events)


def _heuristic_tier(url: str, events: list) -> AnalysisReport:
    """Guesses language and target from the URL alone. Always produces a verdict."""
    events.append(ReportEvent(level="info", message="Performing heuristic analysis on URL..."))
    url_lower = url.lower()
    details = RepoDetails(summary="Analysis based on URL structure.")

    if any(token in url_lower for token in _JS_URL_TOKENS):
        details.language = "JavaScript/TypeScript"
        details.framework = "Node/React"
        details.is_wordpress = False

    if "theme" in url_lower:
        target = "theme"
        details.summary = "Detected 'theme' keyword in repository URL."
    elif any(token in url_lower for token in _PLUGIN_URL_TOKENS):
        target = "plugin"
        details.summary = "Detected 'plugin' or known plugin keyword in repository URL."
    else:
        target = "custom"
        details.summary = "Could not detect specific type from URL. Defaulting to Custom."

    events.append(ReportEvent(level="success", message="Heuristic Analysis Complete"))
    return AnalysisReport(details=details, target=target, tier="heuristic", events=events)


@trace
def analyze_repository(url: str, fetch: Fetch, github_api: str = GITHUB_API) -> AnalysisReport:
    """
    Analyzes a repository URL through the tier chain.

    Never raises. A report with `details` set carries a verdict; a report with
    `error` set means the caller must leave its prior state untouched.

    Args:
        url: The repository URL entered by the user.
        fetch: Callable returning a `FetchResult` for a URL.
        github_api: Base URL of the metadata provider.
    """
    events: list[ReportEvent] = [ReportEvent(level="info", message=f"Starting static analysis for: {url}")]
    try:
        repo_ref = parse_github_repo(url)
        if repo_ref:
            report = _metadata_tier(repo_ref[0], repo_ref[1], fetch, github_api, events)
            if report is not None:
                return report
        return _heuristic_tier(url, events)
    except Exception as e:
        logging.exception(f"Analysis of {url} failed: {e}")
        events.append(ReportEvent(level="error", message=f"Analysis failed: {e}"))
        return AnalysisReport(events=events, error=str(e))

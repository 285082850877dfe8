"""
git-sweep: fast-forward every Git working copy under a directory.

Discovers repositories one level below a root directory, decides per
repository what is safe to do, fetches the upstream branch of HEAD over SSH
and fast-forwards clean checkouts. Nothing is ever merged, rebased or
overwritten when local work is present.
"""

from __future__ import annotations

import json
import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass
from enum import StrEnum
from pathlib import Path

import pygit2
import typer
from pygit2.enums import (
    CheckoutStrategy,
    CredentialType,
    FileStatus,
    RepositoryOpenFlag,
    RepositoryState,
)
from rich.console import Console
from rich.logging import RichHandler

from ._version import __version__
from .formatters import OutputFormatter
from .schema import get_tool_schema

logger = logging.getLogger(__name__)

DEFAULT_SSH_KEY = Path.home() / ".ssh" / "id_rsa"
DEFAULT_SSH_USER = "git"
DEFAULT_MAX_WORKERS = 8
REFLOG_PREFIX = "git-sweep"

# =============================================================================
# Errors
# =============================================================================


class SweepError(Exception):
    """Base class for synchronization failures."""


class DiscoveryError(SweepError):
    """The root directory could not be read. Aborts the whole run."""


class AuthError(SweepError):
    """SSH key material is missing or was rejected by the remote."""


class NetworkError(SweepError):
    """Transport-level failure while talking to the remote."""


class RefNotFoundError(SweepError):
    """The upstream ref does not exist on the remote."""


class RemoteNotFoundError(RefNotFoundError):
    """The upstream remote is not configured in the repository."""


class ReferenceUpdateError(SweepError):
    """Moving the branch reference failed."""


class CheckoutError(SweepError):
    """The working tree could not be synchronized after a reference move."""


# =============================================================================
# Domain Models
# =============================================================================


class SkipReason(StrEnum):
    """Why a repository was left untouched."""

    NOT_CLEAN_STATE = "not_clean_state"  # mid-merge, mid-rebase, ...
    STATUS_FAILED = "status_failed"
    DIRTY = "dirty"
    NO_WORKDIR = "no_workdir"
    DETACHED_HEAD = "detached_head"
    NO_UPSTREAM = "no_upstream"
    UNBORN = "unborn"

    @property
    def description(self) -> str:
        return _SKIP_DESCRIPTIONS[self]


_SKIP_DESCRIPTIONS = {
    SkipReason.NOT_CLEAN_STATE: "repository is mid-operation (merge, rebase, ...)",
    SkipReason.STATUS_FAILED: "working tree status could not be computed",
    SkipReason.DIRTY: "working tree has local changes and no remote",
    SkipReason.NO_WORKDIR: "bare repository",
    SkipReason.DETACHED_HEAD: "HEAD is detached",
    SkipReason.NO_UPSTREAM: "branch has no upstream tracking branch",
    SkipReason.UNBORN: "branch has no commits yet",
}


class ActionKind(StrEnum):
    SKIP = "skip"
    PULL = "pull"
    FETCH = "fetch"


@dataclass(frozen=True, slots=True)
class Skip:
    """Leave the repository alone."""

    workdir: Path
    reason: SkipReason

    @property
    def kind(self) -> ActionKind:
        return ActionKind.SKIP


@dataclass(frozen=True, slots=True)
class Pull:
    """Pristine working tree: fetch, then fast-forward if possible."""

    workdir: Path

    @property
    def kind(self) -> ActionKind:
        return ActionKind.PULL


@dataclass(frozen=True, slots=True)
class Fetch:
    """Working tree not provably clean: fetch only, never touch local state."""

    workdir: Path

    @property
    def kind(self) -> ActionKind:
        return ActionKind.FETCH


Action = Skip | Pull | Fetch


class MergeAnalysis(StrEnum):
    """Relationship between the local branch tip and the fetched tip."""

    UP_TO_DATE = "up_to_date"
    FAST_FORWARD = "fast_forward"
    NORMAL = "normal"  # both sides have unique commits
    UNBORN = "unborn"
    NONE = "none"  # no common history


class SyncOutcome(StrEnum):
    """What happened to a repository during a sweep."""

    FAST_FORWARDED = "fast_forwarded"
    WOULD_FAST_FORWARD = "would_fast_forward"
    UP_TO_DATE = "up_to_date"
    MANUAL_MERGE = "manual_merge"
    UNRELATED = "unrelated"
    FETCHED = "fetched"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class HeadInfo:
    """Snapshot of HEAD and the upstream it tracks."""

    detached: bool
    unborn: bool = False
    ref_name: str = ""
    branch: str = ""
    tip: pygit2.Oid | None = None
    upstream_remote: str | None = None
    upstream_ref: str | None = None

    @property
    def has_upstream(self) -> bool:
        return bool(self.upstream_remote and self.upstream_ref)


@dataclass
class SweepConfig:
    """Settings threaded through one sweep."""

    ssh_key: Path = DEFAULT_SSH_KEY
    ssh_public_key: Path | None = None
    ssh_user: str | None = None
    max_workers: int = DEFAULT_MAX_WORKERS
    sequential: bool = False
    dry_run: bool = False

    @property
    def public_key(self) -> Path | None:
        """Explicit public key, else ``<private key>.pub`` when it exists."""
        if self.ssh_public_key is not None:
            return self.ssh_public_key
        candidate = self.ssh_key.with_name(self.ssh_key.name + ".pub")
        return candidate if candidate.is_file() else None


@dataclass
class SyncResult:
    """Result of sweeping a single repository."""

    path: Path
    name: str
    outcome: SyncOutcome
    action: ActionKind = ActionKind.SKIP
    branch: str = ""
    old_tip: str = ""
    new_tip: str = ""
    message: str = ""
    error: str = ""
    skip_reason: SkipReason | None = None

    @property
    def success(self) -> bool:
        return self.outcome != SyncOutcome.ERROR

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "name": self.name,
            "success": self.success,
            "action": self.action.value,
            "outcome": self.outcome.value,
            "branch": self.branch,
            "old_tip": self.old_tip,
            "new_tip": self.new_tip,
            "message": self.message,
            "error": self.error,
            "skip_reason": self.skip_reason.value if self.skip_reason else None,
        }


@dataclass
class SweepSummary:
    """Outcome counts for a sweep."""

    total: int = 0
    fast_forwarded: int = 0
    up_to_date: int = 0
    manual_merge: int = 0
    fetched: int = 0
    skipped: int = 0
    errors: int = 0

    @property
    def failed(self) -> bool:
        return self.errors > 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["failed"] = self.failed
        return data

    @classmethod
    def from_results(cls, results: list[SyncResult]) -> SweepSummary:
        counts: dict[str, int] = {}
        for result in results:
            counts[result.outcome.value] = counts.get(result.outcome.value, 0) + 1
        return cls(
            total=len(results),
            fast_forwarded=counts.get(SyncOutcome.FAST_FORWARDED, 0)
            + counts.get(SyncOutcome.WOULD_FAST_FORWARD, 0),
            up_to_date=counts.get(SyncOutcome.UP_TO_DATE, 0),
            manual_merge=counts.get(SyncOutcome.MANUAL_MERGE, 0)
            + counts.get(SyncOutcome.UNRELATED, 0),
            fetched=counts.get(SyncOutcome.FETCHED, 0),
            skipped=counts.get(SyncOutcome.SKIPPED, 0),
            errors=counts.get(SyncOutcome.ERROR, 0),
        )


# =============================================================================
# Configuration
# =============================================================================


def _parse_workers(raw: str | None) -> int | None:
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value > 0 else None


def load_config(
    ssh_key: Path | None = None,
    ssh_user: str | None = None,
    max_workers: int | None = None,
    *,
    sequential: bool = False,
    dry_run: bool = False,
) -> SweepConfig:
    """Build the sweep configuration.

    Priority order for each setting:
    1. Explicit argument (CLI option)
    2. Environment: $GIT_SWEEP_SSH_KEY, $GIT_SWEEP_SSH_USER, $GIT_SWEEP_WORKERS
    3. Defaults: ~/.ssh/id_rsa, user from the remote URL, 8 workers
    """
    if ssh_key is None:
        env_key = os.environ.get("GIT_SWEEP_SSH_KEY")
        ssh_key = Path(env_key) if env_key else DEFAULT_SSH_KEY
    if ssh_user is None:
        ssh_user = os.environ.get("GIT_SWEEP_SSH_USER") or None
    if max_workers is None or max_workers <= 0:
        max_workers = (
            _parse_workers(os.environ.get("GIT_SWEEP_WORKERS")) or DEFAULT_MAX_WORKERS
        )
    return SweepConfig(
        ssh_key=ssh_key.expanduser(),
        ssh_user=ssh_user,
        max_workers=max_workers,
        sequential=sequential,
        dry_run=dry_run,
    )


def configure_logging(verbosity: int = 0, *, quiet: bool = False) -> None:
    """Send git-sweep log records to stderr through rich."""
    if quiet:
        level = logging.WARNING
    elif verbosity > 0:
        level = logging.DEBUG
    else:
        level = logging.INFO

    package_logger = logging.getLogger("git_sweep")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger.addHandler(handler)
    package_logger.setLevel(level)


# =============================================================================
# Repository Handle
# =============================================================================


class GitRepository:
    """An on-disk repository opened without searching parent directories."""

    def __init__(self, path: Path, repo: pygit2.Repository | None = None):
        self.path = path
        self.name = path.name
        self._repo = repo

    @classmethod
    def open(cls, path: Path) -> GitRepository:
        """Open ``path`` as a repository. Raises pygit2.GitError if it is not one."""
        repo = pygit2.Repository(str(path), RepositoryOpenFlag.NO_SEARCH)
        return cls(path, repo)

    @property
    def repo(self) -> pygit2.Repository:
        if self._repo is None:
            self._repo = pygit2.Repository(str(self.path), RepositoryOpenFlag.NO_SEARCH)
        return self._repo

    def close(self) -> None:
        """Release the libgit2 handle. The next access to ``repo`` reopens it."""
        if self._repo is not None:
            self._repo.free()
            self._repo = None

    @property
    def workdir(self) -> Path | None:
        workdir = self.repo.workdir
        return Path(workdir) if workdir else None

    def is_state_clean(self) -> bool:
        """True when no merge, rebase, cherry-pick, ... is in progress."""
        return self.repo.state() == RepositoryState.NONE

    def is_pristine(self) -> bool:
        """True when every status entry is unmodified or ignored.

        Raises pygit2.GitError when status cannot be computed.
        """
        for flags in self.repo.status().values():
            if flags == FileStatus.CURRENT or flags & FileStatus.IGNORED:
                continue
            return False
        return True

    def has_remotes(self) -> bool:
        return len(self.repo.remotes) > 0

    def head(self) -> HeadInfo:
        """Read HEAD, its branch tip and the configured upstream."""
        repo = self.repo
        if repo.head_is_detached:
            return HeadInfo(detached=True, tip=repo.head.target)

        ref_name = repo.lookup_reference("HEAD").target
        branch = ref_name.removeprefix("refs/heads/")
        unborn = repo.head_is_unborn
        tip = None if unborn else repo.head.target

        config = repo.config
        remote_key = f"branch.{branch}.remote"
        merge_key = f"branch.{branch}.merge"
        upstream_remote = config[remote_key] if remote_key in config else None
        upstream_ref = config[merge_key] if merge_key in config else None

        return HeadInfo(
            detached=False,
            unborn=unborn,
            ref_name=ref_name,
            branch=branch,
            tip=tip,
            upstream_remote=upstream_remote,
            upstream_ref=upstream_ref,
        )


# =============================================================================
# State Classifier
# =============================================================================


def classify(repository: GitRepository) -> Action:
    """Decide what is safe to do with a repository. Never mutates it."""
    workdir = repository.workdir
    if workdir is None:
        return Skip(repository.path, SkipReason.NO_WORKDIR)

    if not repository.is_state_clean():
        return Skip(workdir, SkipReason.NOT_CLEAN_STATE)

    try:
        pristine = repository.is_pristine()
    except pygit2.GitError as e:
        logger.warning("%s: cannot compute status (%s)", repository.name, e)
        return Skip(workdir, SkipReason.STATUS_FAILED)

    if pristine:
        return Pull(workdir)
    if repository.has_remotes():
        return Fetch(workdir)
    return Skip(workdir, SkipReason.DIRTY)


def resolve_upstream(head: HeadInfo) -> SkipReason | None:
    """Return the skip reason when HEAD has nothing to sync against."""
    if head.detached:
        return SkipReason.DETACHED_HEAD
    # remote "." tracks a local branch, there is nothing to fetch
    if not head.has_upstream or head.upstream_remote == ".":
        return SkipReason.NO_UPSTREAM
    return None


# =============================================================================
# Authenticated Fetch
# =============================================================================


class SshKeyCallbacks(pygit2.RemoteCallbacks):
    """Supply the configured SSH key pair, without passphrase, to libgit2."""

    def __init__(self, config: SweepConfig):
        super().__init__()
        self.config = config
        self.attempts = 0

    def credentials(self, url, username_from_url, allowed_types):
        self.attempts += 1
        if self.attempts > 1:
            # libgit2 asks again only when the previous key was rejected
            raise AuthError(f"SSH key {self.config.ssh_key} was rejected by {url}")
        if not allowed_types & CredentialType.SSH_KEY:
            raise AuthError(f"{url} does not accept SSH key authentication")
        if not self.config.ssh_key.is_file():
            raise AuthError(f"SSH private key not found: {self.config.ssh_key}")

        username = self.config.ssh_user or username_from_url or DEFAULT_SSH_USER
        public_key = self.config.public_key
        return pygit2.Keypair(
            username,
            str(public_key) if public_key else None,
            str(self.config.ssh_key),
            "",
        )


def _classify_fetch_error(error: pygit2.GitError, context: str) -> SweepError:
    text = str(error)
    lowered = text.lower()
    if "auth" in lowered or "credential" in lowered or "permission denied" in lowered:
        return AuthError(f"{context}: {text}")
    if "couldn't find remote ref" in lowered or "reference not found" in lowered:
        return RefNotFoundError(f"{context}: {text}")
    return NetworkError(f"{context}: {text}")


def fetch_upstream(
    repository: GitRepository,
    remote_name: str,
    upstream_ref: str,
    config: SweepConfig,
) -> pygit2.Oid:
    """Fetch exactly one upstream ref and return the commit it now points to."""
    repo = repository.repo
    try:
        remote = repo.remotes[remote_name]
    except KeyError:
        raise RemoteNotFoundError(f"remote '{remote_name}' is not configured") from None

    short = upstream_ref.removeprefix("refs/heads/")
    tracking_ref = f"refs/remotes/{remote_name}/{short}"
    refspec = f"+{upstream_ref}:{tracking_ref}"
    context = f"fetch of {upstream_ref} from {remote_name}"

    logger.debug("%s: listing refs advertised by %s", repository.name, remote_name)
    try:
        heads = remote.ls_remotes(callbacks=SshKeyCallbacks(config))
        advertised = {head["name"] for head in heads}
    except pygit2.GitError as e:
        raise _classify_fetch_error(e, context) from e
    # a deleted upstream branch leaves the old tracking ref in place
    if upstream_ref not in advertised:
        raise RefNotFoundError(f"{context}: ref not found on remote")

    logger.debug("%s: fetching %s", repository.name, refspec)
    try:
        remote.fetch(
            [refspec],
            message=f"{REFLOG_PREFIX}: fetch {remote_name} {upstream_ref}",
            callbacks=SshKeyCallbacks(config),
        )
    except pygit2.GitError as e:
        raise _classify_fetch_error(e, context) from e

    reference = repo.references.get(tracking_ref)
    if reference is None:
        raise RefNotFoundError(f"{context}: ref not found on remote")
    return reference.resolve().target


# =============================================================================
# Merge Evaluator
# =============================================================================


def analyze_merge(
    repo: pygit2.Repository,
    local_tip: pygit2.Oid | None,
    fetched_tip: pygit2.Oid,
) -> MergeAnalysis:
    """Classify the local tip against the fetched tip using the commit graph."""
    if local_tip is None:
        return MergeAnalysis.UNBORN
    if local_tip == fetched_tip or repo.descendant_of(local_tip, fetched_tip):
        return MergeAnalysis.UP_TO_DATE
    if repo.descendant_of(fetched_tip, local_tip):
        return MergeAnalysis.FAST_FORWARD
    if repo.merge_base(local_tip, fetched_tip) is None:
        return MergeAnalysis.NONE
    return MergeAnalysis.NORMAL


# =============================================================================
# Fast-Forward Applier
# =============================================================================


def apply_fast_forward(
    repository: GitRepository, head_ref_name: str, target: pygit2.Oid
) -> None:
    """Move ``head_ref_name`` to ``target`` and check the new tree out.

    The reference only ever advances to a descendant. A failure after the
    reference moved leaves the repository needing manual recovery and is
    never retried.
    """
    repo = repository.repo
    branch = head_ref_name.removeprefix("refs/heads/")

    try:
        reference = repo.lookup_reference(head_ref_name)
        old_tip = reference.target
        if not repo.descendant_of(target, old_tip):
            raise ReferenceUpdateError(
                f"refusing to move {branch} from {old_tip} to non-descendant {target}"
            )
        reference.set_target(target, f"{REFLOG_PREFIX}: fast-forward {branch} to {target}")
    except (KeyError, pygit2.GitError) as e:
        raise ReferenceUpdateError(f"cannot move {branch} to {target}: {e}") from e

    try:
        repo.set_head(head_ref_name)
        repo.checkout_head(strategy=CheckoutStrategy.FORCE)
    except pygit2.GitError as e:
        logger.error(
            "%s: %s moved from %s to %s but checkout failed: %s. "
            "Working tree is stale; recover manually (e.g. `git checkout -f %s`).",
            repository.name,
            branch,
            old_tip,
            target,
            e,
            branch,
        )
        raise CheckoutError(f"checkout of {target} failed after moving {branch}: {e}") from e


# =============================================================================
# Orchestrator
# =============================================================================


def _short(oid: pygit2.Oid | None) -> str:
    return str(oid)[:7] if oid is not None else ""


def sweep_repository(repository: GitRepository, config: SweepConfig) -> SyncResult:
    """Run classify → fetch → analyze → apply for one repository.

    Every failure is converted into an error result so sibling pipelines are
    unaffected.
    """
    result = SyncResult(path=repository.path, name=repository.name, outcome=SyncOutcome.SKIPPED)
    try:
        _run_pipeline(repository, config, result)
    except (SweepError, pygit2.GitError, OSError) as e:
        result.outcome = SyncOutcome.ERROR
        result.error = str(e)
        logger.error("%s: %s", repository.name, e)
    except Exception as e:
        result.outcome = SyncOutcome.ERROR
        result.error = f"unexpected error: {e}"
        logger.exception("%s: unexpected error", repository.name)
    finally:
        repository.close()
    return result


def _skip(result: SyncResult, reason: SkipReason) -> None:
    result.outcome = SyncOutcome.SKIPPED
    result.skip_reason = reason
    result.message = reason.description
    logger.info("Skipping %s: %s", result.name, reason.description)


def _run_pipeline(repository: GitRepository, config: SweepConfig, result: SyncResult) -> None:
    action = classify(repository)
    result.action = action.kind

    match action:
        case Skip(reason=reason):
            _skip(result, reason)
            return
        case Pull() | Fetch():
            pass

    head = repository.head()
    result.branch = head.branch
    reason = resolve_upstream(head)
    if reason is not None:
        _skip(result, reason)
        return

    logger.info(
        "%s %s (%s from %s)",
        "Pulling" if action.kind == ActionKind.PULL else "Fetching",
        repository.name,
        head.branch,
        head.upstream_remote,
    )
    fetched_tip = fetch_upstream(repository, head.upstream_remote, head.upstream_ref, config)
    analysis = analyze_merge(repository.repo, head.tip, fetched_tip)
    result.old_tip = _short(head.tip)
    logger.debug("%s: merge analysis %s", repository.name, analysis.value)

    if action.kind == ActionKind.FETCH:
        result.outcome = SyncOutcome.FETCHED
        result.message = f"fetched only, working tree has changes ({analysis.value})"
        logger.info("%s: %s", repository.name, result.message)
        return

    match analysis:
        case MergeAnalysis.UP_TO_DATE:
            result.outcome = SyncOutcome.UP_TO_DATE
            result.message = "already up to date"
        case MergeAnalysis.FAST_FORWARD:
            result.new_tip = _short(fetched_tip)
            if config.dry_run:
                result.outcome = SyncOutcome.WOULD_FAST_FORWARD
                result.message = f"would fast-forward {result.old_tip}..{result.new_tip}"
            else:
                apply_fast_forward(repository, head.ref_name, fetched_tip)
                result.outcome = SyncOutcome.FAST_FORWARDED
                result.message = f"fast-forwarded {result.old_tip}..{result.new_tip}"
        case MergeAnalysis.NORMAL:
            result.outcome = SyncOutcome.MANUAL_MERGE
            result.message = f"merge necessary, {head.branch} and upstream have diverged"
        case MergeAnalysis.NONE:
            result.outcome = SyncOutcome.UNRELATED
            result.message = "upstream shares no history with the local branch"
        case MergeAnalysis.UNBORN:
            _skip(result, SkipReason.UNBORN)
            return

    logger.info("%s: %s", repository.name, result.message)


class SweepManager:
    """Sweep every repository directly under a root directory."""

    def __init__(self, root_path: Path, config: SweepConfig | None = None):
        self.root_path = root_path.resolve()
        self.config = config or SweepConfig()
        self._repositories: list[GitRepository] | None = None

    def discover_repositories(self) -> list[GitRepository]:
        """Open each immediate subdirectory that is a repository."""
        if self._repositories is not None:
            return self._repositories

        try:
            children = sorted(self.root_path.iterdir())
        except OSError as e:
            raise DiscoveryError(f"cannot read {self.root_path}: {e}") from e

        repos = []
        for child in children:
            # the root's own .git directory is not a checkout
            if not child.is_dir() or child.name == ".git":
                continue
            try:
                repository = GitRepository.open(child)
            except pygit2.GitError:
                continue
            # each pipeline reopens lazily
            repository.close()
            repos.append(repository)
            logger.debug("Found git repo at %s", child)

        self._repositories = repos
        return repos

    def plan(self) -> list[tuple[GitRepository, Action]]:
        """Classify every repository without touching the network."""
        planned = []
        for repo in self.discover_repositories():
            planned.append((repo, classify(repo)))
            repo.close()
        return planned

    def run(self) -> list[SyncResult]:
        """Sweep all repositories, concurrently unless configured otherwise."""
        repos = self.discover_repositories()
        results: list[SyncResult] = []

        if self.config.sequential or len(repos) <= 1:
            for repo in repos:
                results.append(sweep_repository(repo, self.config))
        else:
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
                futures = {
                    executor.submit(sweep_repository, repo, self.config): repo for repo in repos
                }
                for future in as_completed(futures):
                    results.append(future.result())

        results.sort(key=lambda r: r.path)
        return results

    @staticmethod
    def exit_code(results: list[SyncResult]) -> int:
        """0 when no pipeline errored, 1 otherwise."""
        return 1 if any(not r.success for r in results) else 0


# =============================================================================
# CLI Application
# =============================================================================


app = typer.Typer(
    name="git-sweep",
    help="Fast-forward every Git repository under a directory.",
    no_args_is_help=True,
)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        print(f"git-sweep {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    schema: bool = typer.Option(
        False,
        "--schema",
        help="Output MCP-compatible tool schema for AI agents",
    ),
):
    """git-sweep: fast-forward every Git repository under a directory."""
    if schema:
        print(json.dumps(get_tool_schema(), indent=2))
        raise typer.Exit()


def get_console_and_formatter(json_output: bool) -> tuple[Console, OutputFormatter]:
    """Create console and formatter."""
    console = Console(force_terminal=not json_output)
    formatter = OutputFormatter(console, use_json=json_output)
    return console, formatter


def _resolve_root(console: Console, path: Path | None) -> Path:
    target_path = path if path else Path(".")
    if not target_path.is_dir():
        console.print(f"[red]Error: not a directory: {target_path}[/]")
        raise typer.Exit(1)
    return target_path


@app.command()
def sync(
    path: Path = typer.Argument(
        None,
        help="Directory whose subdirectories are repositories",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON",
    ),
    sequential: bool = typer.Option(
        False,
        "--sequential",
        "-s",
        help="Run sequentially instead of parallel",
    ),
    workers: int = typer.Option(
        0,
        "--workers",
        "-w",
        help="Maximum parallel repositories (default 8 or $GIT_SWEEP_WORKERS)",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-n",
        help="Fetch and analyze, but do not fast-forward",
    ),
    ssh_key: Path = typer.Option(
        None,
        "--ssh-key",
        "-k",
        help="SSH private key (default $GIT_SWEEP_SSH_KEY or ~/.ssh/id_rsa)",
    ),
    ssh_user: str = typer.Option(
        None,
        "--ssh-user",
        help="SSH user name (default: taken from the remote URL)",
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Show debug output",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Only report warnings and errors while running",
    ),
):
    """Fetch and fast-forward all repositories.

    Dirty working trees are fetched but never updated; repositories that are
    mid-merge, detached or without upstream are skipped. Diverged branches are
    reported for manual merging.
    """
    console, formatter = get_console_and_formatter(json_output)
    configure_logging(verbose, quiet=quiet or json_output)
    target_path = _resolve_root(console, path)

    config = load_config(
        ssh_key,
        ssh_user,
        workers,
        sequential=sequential,
        dry_run=dry_run,
    )
    manager = SweepManager(target_path, config)
    try:
        results = manager.run()
    except DiscoveryError as e:
        console.print(f"[red]Error: {e}[/]")
        raise typer.Exit(1)

    summary = SweepSummary.from_results(results)
    formatter.print_sync_results(results, summary, manager.root_path)
    code = SweepManager.exit_code(results)
    if code:
        raise typer.Exit(code)


@app.command()
def plan(
    path: Path = typer.Argument(
        None,
        help="Directory whose subdirectories are repositories",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON",
    ),
):
    """Show what sync would do to each repository, without network access."""
    console, formatter = get_console_and_formatter(json_output)
    configure_logging(quiet=True)
    target_path = _resolve_root(console, path)

    manager = SweepManager(target_path)
    try:
        planned = manager.plan()
    except DiscoveryError as e:
        console.print(f"[red]Error: {e}[/]")
        raise typer.Exit(1)

    formatter.print_plan(planned, manager.root_path)

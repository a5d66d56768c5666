"""Command-line front end: upload a résumé, follow the analysis, browse matches."""
from __future__ import annotations

import argparse
import getpass
import sys

from jobmatch.app import JobMatchApp
from jobmatch.errors import (
    AuthenticationFailed,
    NetworkError,
    RequestError,
    describe_network_error,
    describe_upload_error,
)
from jobmatch.explanations import ExplanationStatus
from jobmatch.log import get_logger, redact
from jobmatch.models import AnalysisSession, Bucket, Job
from jobmatch.results import ResultCache
from jobmatch.state import ViewKind

log = get_logger(__name__)

BUCKETS = [b.value for b in Bucket]


def _print_jobs(results: ResultCache) -> None:
    jobs = results.jobs
    print()
    print(f"  {len(jobs)} match(es) [{results.bucket.value}] for {redact(results.view_token)}")
    print(f"{'─'*60}")
    for i, job in enumerate(jobs, 1):
        print(f"  {i:>2}. {_job_line(job)}")
        if job.url:
            print(f"      {job.url}")
    print()


def _job_line(job: Job) -> str:
    remote = " (remote)" if job.is_remote else ""
    category = f" [{job.category}]" if job.category else ""
    return f"{job.title} @ {job.company_name} | {job.location}{remote}{category}  id={job.external_job_id}"


def _on_poll(session: AnalysisSession) -> None:
    if session.status.is_terminal:
        return
    log.info("Analyzing résumé… (check %d)", session.poll_count)


def _results_or_fail(results: ResultCache) -> int:
    state = results.view_state
    if state.kind is ViewKind.ERROR:
        print(f"Error: {state.message}", file=sys.stderr)
        return 1
    _print_jobs(results)
    return 0


# ── Commands ─────────────────────────────────────────────────────────────


def cmd_search(app: JobMatchApp, args: argparse.Namespace) -> int:
    try:
        receipt = app.upload(args.file)
    except RequestError as exc:
        log.error("Upload failed: %s", exc)
        print(f"Upload failed: {describe_upload_error(exc)}", file=sys.stderr)
        return 1

    results = app.new_results(receipt.view_token, Bucket(args.bucket))
    poller = app.new_poller(results)
    poller.subscribe(_on_poll)
    poller.start(receipt.view_token)
    try:
        poller.join()
    except KeyboardInterrupt:
        poller.cancel()
        results.close()
        print("Cancelled.", file=sys.stderr)
        return 130

    session = poller.session
    if session is None or not session.status.is_terminal:
        return 1
    if session.error_message:
        hint = session.failure_reason.recovery.replace("_", " ") if session.failure_reason else "retry"
        print(f"Analysis failed: {session.error_message} (next step: {hint})", file=sys.stderr)
        return 1
    return _results_or_fail(results)


def cmd_jobs(app: JobMatchApp, args: argparse.Namespace) -> int:
    results = app.new_results(args.token, Bucket(args.bucket))
    results.load()
    return _results_or_fail(results)


def cmd_explain(app: JobMatchApp, args: argparse.Namespace) -> int:
    explanations = app.new_explanations(args.token)
    try:
        future = explanations.load(args.job_id)
        if future is not None:
            future.result()
        entry = explanations.state(args.job_id)
    finally:
        explanations.close()

    if entry.status is not ExplanationStatus.LOADED or entry.explanation is None:
        print(f"Error: {entry.error or 'no explanation available'}", file=sys.stderr)
        return 1
    print()
    print(f"  {entry.explanation.explanation_summary}")
    for bullet in entry.explanation.bullets:
        print(f"    • {bullet}")
    print()
    return 0


def cmd_dashboard(app: JobMatchApp, args: argparse.Namespace) -> int:
    dashboard = app.new_dashboard()
    state = dashboard.load_dashboard()
    if state.kind in (ViewKind.ERROR, ViewKind.SIGN_IN_REQUIRED):
        print(f"Error: {state.message}", file=sys.stderr)
        return 1
    data = dashboard.dashboard
    if state.kind is ViewKind.EMPTY or data is None:
        print("No searches yet. Upload a résumé to get started.")
        return 0

    m = data.summary
    print()
    print(f"  Searches: {m.total_searches}   Jobs found: {m.unique_jobs_found}   "
          f"Avg/search: {m.avg_jobs_per_search:.1f}")
    print(f"  Local {m.local_jobs_count} | National {m.national_jobs_count} | Remote {m.remote_jobs_count}")
    print(f"{'─'*60}")
    for s in data.recent_sessions:
        print(f"  {s.created_at:%Y-%m-%d %H:%M}  {s.display_title} → {s.search_intent_title}"
              f"  ({s.total_jobs} matches)  token={s.view_token or '-'}")
    last = app.last_search.load()
    if last is not None:
        print()
        print(f"  Last search: {last.last_search_title or 'Recent search'} • "
              f"{last.total_matches} matches • {last.timestamp_iso}")
    print()
    return 0


def cmd_sign_in(app: JobMatchApp, args: argparse.Namespace) -> int:
    password = getpass.getpass("  Password: ")
    try:
        credential = app.auth.sign_in(args.email, password)
    except AuthenticationFailed as exc:
        print(f"Sign-in failed: {exc}", file=sys.stderr)
        return 1
    print(f"Signed in as {credential.email or credential.user_id}")
    return 0


def cmd_sign_up(app: JobMatchApp, args: argparse.Namespace) -> int:
    password = getpass.getpass("  Choose a password: ")
    try:
        result = app.auth.sign_up(args.email, password)
    except AuthenticationFailed as exc:
        print(f"Sign-up failed: {exc}", file=sys.stderr)
        return 1
    if result.confirmation_required:
        print("Check your inbox to confirm your email, then sign in.")
    else:
        print(f"Account created; signed in as {args.email}")
    return 0


def cmd_sign_out(app: JobMatchApp, args: argparse.Namespace) -> int:
    app.sign_out()
    print("Signed out.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="jobmatch", description="JobMatchNow résumé matcher client")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_search = sub.add_parser("search", help="Upload a résumé and wait for matches")
    p_search.add_argument("file")
    p_search.add_argument("--bucket", choices=BUCKETS, default=None)
    p_search.set_defaults(func=cmd_search)

    p_jobs = sub.add_parser("jobs", help="List matches for an existing view token")
    p_jobs.add_argument("token")
    p_jobs.add_argument("--bucket", choices=BUCKETS, default=None)
    p_jobs.set_defaults(func=cmd_jobs)

    p_explain = sub.add_parser("explain", help="Explain why a job matches")
    p_explain.add_argument("token")
    p_explain.add_argument("job_id")
    p_explain.set_defaults(func=cmd_explain)

    p_dash = sub.add_parser("dashboard", help="Show search history (requires sign-in)")
    p_dash.set_defaults(func=cmd_dashboard)

    p_in = sub.add_parser("sign-in", help="Sign in with email and password")
    p_in.add_argument("email")
    p_in.set_defaults(func=cmd_sign_in)

    p_up = sub.add_parser("sign-up", help="Create an account")
    p_up.add_argument("email")
    p_up.set_defaults(func=cmd_sign_up)

    p_out = sub.add_parser("sign-out", help="Sign out and forget the last search")
    p_out.set_defaults(func=cmd_sign_out)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        app = JobMatchApp.from_settings()
        if getattr(args, "bucket", "unset") is None:
            args.bucket = app.default_bucket.value
    except ValueError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    if args.cmd == "dashboard":
        app.auth.restore_session()
    try:
        return args.func(app, args)
    except NetworkError as exc:
        print(f"Error: {describe_network_error(exc)}", file=sys.stderr)
        return 1
    except RequestError as exc:
        log.error("%s failed: %s", args.cmd, exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

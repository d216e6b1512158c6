# wpt_dash/pipeline/aggregate.py
"""
Per-run aggregation of wpt.fyi search results.

One GET /search per folder; each matching test contributes the passes/total
of its first legacy_status record (the status for the single run queried).
"""
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List

from pydantic import ValidationError

from wpt_dash.errors import SchemaError
from wpt_dash.schemas.run import FolderCount, RunDescriptor, RunId, RunResult, SearchResponse
from wpt_dash.tools.fetch import WptClient


def _short_error(e: ValidationError) -> str:
    errs = e.errors()
    if not errs:
        return str(e)
    first = errs[0]
    loc = ".".join(str(p) for p in first.get("loc", ()))
    more = f" (+{len(errs) - 1} more)" if len(errs) > 1 else ""
    return f"{loc}: {first.get('msg')}{more}"


def fetch_recent_runs(client: WptClient, count: int) -> List[RunDescriptor]:
    """Most recent runs, newest first, as returned by GET /runs."""
    raw = client.get("runs", params={
        "label": client.label,
        "product": client.product,
        "max-count": int(count),
    })
    if not isinstance(raw, list):
        raise SchemaError(f"runs: expected a JSON array, got {type(raw).__name__}")
    try:
        return [RunDescriptor.model_validate(r) for r in raw]
    except ValidationError as e:
        raise SchemaError(f"runs: {_short_error(e)}") from e


def fetch_latest_run(client: WptClient) -> RunDescriptor:
    runs = fetch_recent_runs(client, 1)
    if not runs:
        raise SchemaError(f"runs: no {client.product}@{client.label} runs returned")
    return runs[0]


def aggregate_folder(client: WptClient, run_id: RunId, folder: str) -> FolderCount:
    """Sum passes/total over every test under `folder` for one run."""
    raw = client.get("search", params={"run_ids": run_id, "q": folder})
    try:
        resp = SearchResponse.model_validate(raw)
        passing = 0
        total = 0
        for entry in resp.results:
            status = entry.legacy_status[0]
            passing += status.passes
            total += status.total
        return FolderCount(passing=passing, total=total)
    except ValidationError as e:
        raise SchemaError(f"search {folder!r} run {run_id}: {_short_error(e)}") from e


def aggregate_run(client: WptClient, run_id: RunId, folders: Iterable[str],
                  max_workers: int = 1) -> Dict[str, FolderCount]:
    """
    Aggregate every folder for one run.

    max_workers == 1 keeps the one-request-at-a-time behaviour; a larger
    value fans folders out on a bounded thread pool. The returned mapping
    follows the order of `folders` either way, and the first failure
    propagates.
    """
    folders = list(folders)
    if max_workers <= 1 or len(folders) <= 1:
        return {f: aggregate_folder(client, run_id, f) for f in folders}

    with ThreadPoolExecutor(max_workers=min(max_workers, len(folders))) as ex:
        futures = {f: ex.submit(aggregate_folder, client, run_id, f) for f in folders}
        return {f: futures[f].result() for f in folders}


def build_run_result(client: WptClient, run: RunDescriptor, folders: Iterable[str],
                     max_workers: int = 1) -> RunResult:
    return RunResult(
        timestamp=run.timestamp,
        run_id=run.id,
        folder_results=aggregate_run(client, run.id, folders, max_workers=max_workers),
    )

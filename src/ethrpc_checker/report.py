# SPDX-License-Identifier: AGPL-3.0

import json
from collections import Counter

from .result import RpcResult, Status, worst_status
from .utils import color_error, color_good, color_info, color_warn, indent_text

BANNER = "Ethereum JSON-RPC compatibility report"


def exitcode_for(results: list[RpcResult]) -> int:
    return 1 if worst_status(results) is Status.ERROR else 0


def render_result(result: RpcResult, verbose: int = 0) -> str:
    match result.status:
        case Status.OK:
            line = f"{color_good('[OK]')} {result.method}"
            if verbose and result.value is not None:
                value = str(result.value)
                line += ("\n" + indent_text(value)) if "\n" in value else f": {value}"
            return line

        case Status.WARNING:
            lines = [f"{color_warn('[WARNING]')} {result.method}"]
            lines.extend(indent_text(color_warn(w)) for w in result.warnings)
            if verbose and result.value is not None:
                lines.append(indent_text(str(result.value)))
            return "\n".join(lines)

        case Status.ERROR:
            return f"{color_error('[ERROR]')} {result.method}: {result.error}"


def summary(results: list[RpcResult]) -> str:
    counts = Counter(r.status for r in results)
    return (
        f"{counts[Status.OK]} ok; "
        f"{counts[Status.WARNING]} warning; "
        f"{counts[Status.ERROR]} error"
    )


def report_results(results: list[RpcResult], verbose: int = 0) -> None:
    print(f"\n{color_info(BANNER)}\n")

    # sorted() is stable, so equal statuses keep the run order
    for result in sorted(results, key=lambda r: r.status.priority):
        print(render_result(result, verbose))

    print(f"\n{summary(results)}")


def write_json(path: str, results: list[RpcResult]) -> None:
    output = {
        "exitcode": exitcode_for(results),
        "results": [r.to_dict() for r in results],
    }
    with open(path, "w") as json_file:
        json.dump(output, json_file, indent=4)

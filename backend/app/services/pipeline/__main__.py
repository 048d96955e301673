from __future__ import annotations

import json
import sys
from pathlib import Path

from app.services.llm.base import DisabledTextService
from app.services.pipeline.analysis_pipeline import AnalysisPipeline
from app.services.pipeline.errors import AnalysisError
from app.services.vcf.parser import iter_lines

USAGE = "Usage: python -m app.services.pipeline <path-to.vcf[.gz]> [--drugs A,B] [--subject ID] [--offline]"


def _option(argv: list[str], name: str) -> str | None:
    if name not in argv:
        return None
    idx = argv.index(name)
    if idx + 1 >= len(argv):
        raise ValueError(f"{name} requires a value")
    return argv[idx + 1]


def main(argv: list[str]) -> int:
    if len(argv) < 2 or "--help" in argv:
        print(USAGE)
        return 0

    path = Path(argv[1])
    if not path.exists():
        print(f"File not found: {path}", file=sys.stderr)
        return 2

    try:
        drugs_arg = _option(argv, "--drugs")
        subject = _option(argv, "--subject")
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    drugs = [d.strip() for d in drugs_arg.split(",") if d.strip()] if drugs_arg else None
    text_service = DisabledTextService() if "--offline" in argv else None

    pipeline = AnalysisPipeline(text_service=text_service)
    try:
        report = pipeline.analyze_lines(iter_lines(path), drugs, subject)
    except AnalysisError as e:
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return 1

    print(json.dumps(pipeline.render(report), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv))

#!/usr/bin/env python3
"""CLI script to print the Ley Karin deadlines and summary of a case."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date, datetime, timezone
from pathlib import Path

# Ensure the project source is importable when running the script directly.
_project_root = Path(__file__).resolve().parent.parent
_src = _project_root / "src"
if str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from karin.core.config import Settings  # noqa: E402
from karin.core.types import ProcessStage  # noqa: E402
from karin.deadlines.engine import create_deadline_engine  # noqa: E402
from karin.deadlines.models import CaseContext  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Compute the Ley Karin deadlines and executive summary for a case."
    )
    parser.add_argument("reception_date", type=date.fromisoformat,
                        help="Reception date of the complaint (YYYY-MM-DD).")
    parser.add_argument("--case-id", default="case-cli")
    parser.add_argument("--tenant-id", default="tenant-cli")
    parser.add_argument(
        "--stage",
        choices=[s.value for s in ProcessStage],
        default=ProcessStage.RECEPTION.value,
        help="Current process stage.",
    )
    parser.add_argument("--requires-subsanation", action="store_true")
    parser.add_argument("--direct-to-authority", action="store_true")
    parser.add_argument("--extension-requested", action="store_true")
    parser.add_argument(
        "--now",
        type=datetime.fromisoformat,
        default=None,
        help="Evaluation instant (ISO datetime). Defaults to the current time.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()

    settings = Settings()
    logging.basicConfig(level=settings.log_level.upper())

    now = args.now or datetime.now(timezone.utc)
    context = CaseContext(
        case_id=args.case_id,
        tenant_id=args.tenant_id,
        current_stage=ProcessStage(args.stage),
        reception_date=args.reception_date,
        requires_subsanation=args.requires_subsanation,
        is_direct_to_authority=args.direct_to_authority,
        extension_requested=args.extension_requested,
    )

    engine = create_deadline_engine(settings)
    instances = engine.compute_deadlines(context, now)
    summary = engine.executive_summary(context, instances, now)
    alerts = engine.critical_alerts(instances, now)

    output = {
        "summary": summary.model_dump(mode="json"),
        "deadlines": [d.model_dump(mode="json") for d in instances],
        "alerts": [a.model_dump(mode="json", exclude={"deadline"}) for a in alerts],
        "report": engine.deadlines_report(instances, now).model_dump(mode="json"),
    }
    print(json.dumps(output, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""RiskBridge — map every active risk that has no control mapping yet.

Run from backend/ (with the venv active):
    python ../scripts/map_unmapped_risks.py [--max-risks N] [--patterns FILE]

Uses the same engine as POST /api/v1/risk-controls/ai-map. Exit code 1 when
any risk failed to map.
"""
import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

# Ensure backend is on path
backend_dir = Path(__file__).resolve().parent.parent / "backend"
sys.path.insert(0, str(backend_dir))
os.chdir(str(backend_dir))

# Parse .env
env_file = backend_dir / ".env"
if env_file.exists():
    for line in env_file.read_text().splitlines():
        line = line.strip()
        if "=" in line and not line.startswith("#"):
            key, val = line.split("=", 1)
            os.environ.setdefault(key.strip(), val.strip())

logging.basicConfig(
    level=getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

from riskbridge.database import async_session, engine  # noqa: E402
from riskbridge.services.control_mapper import ControlMappingEngine  # noqa: E402
from riskbridge.services.pattern_import import YamlPatternSource  # noqa: E402


async def main(max_risks: int | None, patterns: str | None) -> int:
    async with async_session() as session:
        source = YamlPatternSource(patterns) if patterns else None
        mapper = await ControlMappingEngine.create(session, source)
        result = await mapper.map_all_unmapped_risks(max_risks)

    await engine.dispose()

    print(f"Processed {result.processed} risks, mapped {result.mapped_count}")
    for f in result.batch.failed:
        print(f"  FAILED risk {f.item.id} ({f.item.title}): {f.error}")
    return 1 if result.batch.failed else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--max-risks", type=int, default=None, help="Upper bound on risks processed")
    parser.add_argument("--patterns", default=None, help="YAML pattern library instead of the database")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.max_risks, args.patterns)))

#!/usr/bin/env python3
"""RiskBridge — import a YAML mapping pattern library into ai_mapping_patterns.

Run from backend/ (with the venv active):
    python ../scripts/import_patterns.py patterns.yaml

Patterns already present (same framework type, control family and risk
category) are skipped.
"""
import asyncio
import logging
import os
import sys
from pathlib import Path

# Ensure backend is on path
backend_dir = Path(__file__).resolve().parent.parent / "backend"
sys.path.insert(0, str(backend_dir))

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
from riskbridge.services.pattern_import import import_patterns  # noqa: E402


async def main(path: Path) -> int:
    content = path.read_bytes()
    async with async_session() as session:
        try:
            result = await import_patterns(session, content)
            await session.commit()
        except ValueError as e:
            await session.rollback()
            print(f"Import failed: {e}")
            return 1
    await engine.dispose()

    print(f"Created {result.created}, skipped {result.skipped}")
    for err in result.errors:
        print(f"  [!] {err}")
    return 0


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(2)
    sys.exit(asyncio.run(main(Path(sys.argv[1]).resolve())))

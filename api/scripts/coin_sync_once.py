"""
CLI: CoinGecko -> base de datos (un solo ciclo de sync).

Uso recomendado:
  - Ejecutar a mano o como job externo (cron) cuando el scheduler
    embebido en la API esta deshabilitado (COIN_SYNC_ENABLED=false).

Variables de entorno:
  - GECKO_API_KEY (sin ella no se consulta CoinGecko)
  - DATABASE_URL (opcional; por defecto SQLite local)

Ejecución:
  python scripts/coin_sync_once.py
  python scripts/coin_sync_once.py --max-pages 2
  python scripts/coin_sync_once.py --strict
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from loguru import logger
from dotenv import load_dotenv

# Permite ejecutar este script desde cualquier cwd sin configurar PYTHONPATH.
# La carpeta "api" contiene el paquete raíz `coinsync/`.
_API_ROOT = Path(__file__).resolve().parents[1]
if str(_API_ROOT) not in sys.path:
    sys.path.insert(0, str(_API_ROOT))

# Cargar variables desde .env si existe (api/.env o raiz del repo).
load_dotenv(_API_ROOT / ".env", override=False)
load_dotenv(_API_ROOT.parent / ".env", override=False)

from coinsync.application.use_cases.coin_sync_use_cases import build_coin_sync_use_cases
from coinsync.infrastructure.database.session import AsyncSessionLocal, close_db, init_db
from coinsync.infrastructure.external.coingecko.types import StopReason


async def _run(max_pages: int | None, strict: bool) -> int:
    await init_db()
    try:
        use_cases = build_coin_sync_use_cases(
            AsyncSessionLocal,
            max_pages=max_pages,
            isolate_failures=False if strict else None,
        )
        result = await use_cases.run_cycle()
    finally:
        await close_db()

    print(json.dumps(result.summary(), indent=2))

    if result.fetch.stop_reason is StopReason.NO_CREDENTIALS:
        return 2
    if result.report.aborted or result.fetch.stop_reason is StopReason.FATAL_ERROR:
        return 1
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Ejecuta un ciclo de sync de monedas")
    parser.add_argument(
        "--max-pages",
        type=int,
        default=None,
        help="Limite de paginas para esta corrida (0 = sin limite). Por defecto GECKO_MAX_PAGES.",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Aborta el lote completo ante el primer error de escritura.",
    )
    args = parser.parse_args()

    logger.info("Iniciando CoinGecko -> base de datos (ciclo unico)...")
    return asyncio.run(_run(args.max_pages, args.strict))


if __name__ == "__main__":
    raise SystemExit(main())

"""
Tests unitarios para CoinSyncUseCases (ciclo fetch + reconcile).
"""
from __future__ import annotations

from typing import List
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy import select

from coinsync.application.use_cases.coin_sync_use_cases import (
    CoinSyncUseCases,
    build_coin_sync_use_cases,
)
from coinsync.core.config import settings
from coinsync.infrastructure.database.models import CoinModel
from coinsync.infrastructure.external.coingecko.reconciler import ReconciliationAbortedError
from coinsync.infrastructure.external.coingecko.types import (
    FetchCycleState,
    MarketRecord,
    ReconcileFailure,
    ReconcileReport,
    StopReason,
)


def _state(records: List[MarketRecord], stop_reason: StopReason = StopReason.EMPTY_PAGE) -> FetchCycleState:
    return FetchCycleState(records=records, pages_fetched=1 if records else 0, stop_reason=stop_reason)


def _use_cases(state: FetchCycleState, reconciler: AsyncMock) -> CoinSyncUseCases:
    paginator = AsyncMock()
    paginator.collect = AsyncMock(return_value=state)
    return CoinSyncUseCases(paginator, reconciler)


@pytest.mark.asyncio
async def test_cycle_reconciles_fetched_records() -> None:
    records = [MarketRecord(id="bitcoin", symbol="btc", name="Bitcoin")]
    reconciler = AsyncMock()
    reconciler.reconcile = AsyncMock(return_value=ReconcileReport(inserted=1))

    result = await _use_cases(_state(records), reconciler).run_cycle()

    reconciler.reconcile.assert_awaited_once_with(records)
    assert result.report.inserted == 1
    assert result.summary()["fetch"]["records"] == 1
    assert result.finished_at >= result.started_at


@pytest.mark.asyncio
async def test_cycle_without_records_skips_reconcile() -> None:
    reconciler = AsyncMock()

    result = await _use_cases(_state([], StopReason.NO_CREDENTIALS), reconciler).run_cycle()

    reconciler.reconcile.assert_not_called()
    assert result.report.total == 0
    assert result.summary()["fetch"]["stop_reason"] == "no_credentials"


@pytest.mark.asyncio
async def test_aborted_reconcile_keeps_partial_report() -> None:
    records = [MarketRecord(id=coin_id, symbol=coin_id, name=coin_id) for coin_id in ("a", "b")]
    partial = ReconcileReport(inserted=1, failed=[ReconcileFailure("b", "boom")], aborted=True)
    reconciler = AsyncMock()
    reconciler.reconcile = AsyncMock(
        side_effect=ReconciliationAbortedError("b", partial, RuntimeError("boom"))
    )

    result = await _use_cases(_state(records), reconciler).run_cycle()

    assert result.report is partial
    assert result.summary()["reconcile"] == {"inserted": 1, "updated": 0, "failed": 1, "aborted": True}


@pytest.mark.asyncio
async def test_built_cycle_syncs_coingecko_into_database(session_factory, monkeypatch) -> None:
    """Ciclo completo: MockTransport -> paginador -> reconciliador -> SQLite."""
    monkeypatch.setattr(settings, "GECKO_API_KEY", "test-key")
    monkeypatch.setattr(settings, "GECKO_PAGE_DELAY_S", 0.0)
    monkeypatch.setattr(settings, "GECKO_PER_PAGE", 2)

    def handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["page"])
        if page == 1:
            return httpx.Response(200, json=[
                {"id": "bitcoin", "symbol": "btc", "name": "Bitcoin", "current_price": 65000, "market_cap_rank": 1},
                {"id": "ethereum", "symbol": "eth", "name": "Ethereum", "current_price": 3200, "market_cap_rank": 2},
            ])
        return httpx.Response(200, json=[])

    use_cases = build_coin_sync_use_cases(session_factory, transport=httpx.MockTransport(handler))

    result = await use_cases.run_cycle()

    assert result.fetch.stop_reason is StopReason.EMPTY_PAGE
    assert result.report.inserted == 2
    async with session_factory() as session:
        coins = (await session.execute(select(CoinModel).order_by(CoinModel.market_cap_rank))).scalars().all()
    assert [c.id for c in coins] == ["bitcoin", "ethereum"]
    assert coins[0].current_price == 65000.0

    # Segunda corrida: mismas monedas, solo actualizaciones
    again = await use_cases.run_cycle()
    assert again.report.updated == 2
    assert again.report.inserted == 0

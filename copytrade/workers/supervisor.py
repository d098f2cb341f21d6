import asyncio
import contextlib
import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient

from ..config import Settings, get_settings
from ..adapters.external.chain.chain_reader import Web3ChainReader
from ..adapters.external.database.batch_repository_mongodb import BatchRepositoryMongoDB
from ..adapters.external.database.execution_repository_mongodb import ExecutionRepositoryMongoDB
from ..adapters.external.database.position_repository_mongodb import PositionRepositoryMongoDB
from ..adapters.external.database.signal_repository_mongodb import SignalRepositoryMongoDB
from ..adapters.external.database.strategy_config_repository_mongodb import StrategyConfigRepositoryMongoDB
from ..adapters.external.database.token_whitelist_repository_mongodb import TokenWhitelistRepositoryMongoDB
from ..adapters.external.dex.aerodrome import AerodromeVenue
from ..adapters.external.dex.four_meme import FourMemeVenue
from ..adapters.external.dex.pancake_v2 import PancakeV2Venue
from ..adapters.external.dex.pancake_v3 import PancakeV3Venue
from ..adapters.external.dex.paraswap_client import ParaSwapClient, ParaSwapVenue
from ..adapters.external.market.dexscreener_client import DexScreenerClient
from ..adapters.external.signer.local_key_signer import LocalKeySigner
from ..core.domain.chains import get_chain_profile
from ..core.services.risk_gate_service import RiskGateService
from ..core.services.route_aggregator_service import RouteAggregatorService
from ..core.services.route_safety_service import RouteSafetyService
from ..core.usecases.execute_batch_trades_use_case import ExecuteBatchTradesUseCase
from ..core.usecases.process_signal_use_case import ProcessSignalUseCase
from .entry_price_scheduler import EntryPriceScheduler


class CopyTradeSupervisor:
    """
    High-level supervisor for the copy-trade process.

    Responsibilities:
    - Connect to Mongo, ensure indexes.
    - Wire repositories, chain / market / signer gateways, the DEX venues
      (in waterfall order) and the use cases.
    - Restore entry monitors for signals that were ACTIVE before a restart.
    - Run the circuit-breaker release loop in the background.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings
        self._logger = logging.getLogger(self.__class__.__name__)
        self._mongo_client: AsyncIOMotorClient | None = None
        self._db = None

        self.risk_gate: RiskGateService | None = None
        self.batch_executor: ExecuteBatchTradesUseCase | None = None
        self.scheduler: EntryPriceScheduler | None = None
        self.intake: ProcessSignalUseCase | None = None
        self._breaker_task: asyncio.Task | None = None

    @property
    def db(self):
        """Expose the AsyncIOMotorDatabase instance after start()."""
        return self._db

    def _build_venues(self, s: Settings, chain: Web3ChainReader, safety: RouteSafetyService):
        # order is the routing waterfall
        paraswap = ParaSwapClient(s.PARASWAP_BASE_URL, timeout_sec=s.HTTP_TIMEOUT_SEC)
        return [
            FourMemeVenue(
                chain, safety,
                helper=s.FOUR_MEME_HELPER,
                token_manager=s.FOUR_MEME_TOKEN_MANAGER_V2,
                v2_router=s.PANCAKE_V2_ROUTER,
                wbnb=s.BSC_WBNB,
                busd=s.BSC_BUSD,
            ),
            ParaSwapVenue(
                chain, safety, paraswap,
                network=get_chain_profile("BSC").chain_id,
                max_slippage_bps=s.PARASWAP_MAX_SLIPPAGE_BPS,
            ),
            PancakeV3Venue(
                chain, safety,
                factory=s.PANCAKE_V3_FACTORY,
                quoter=s.PANCAKE_V3_QUOTER,
                router=s.PANCAKE_V3_ROUTER,
            ),
            PancakeV2Venue(chain, safety, s.PANCAKE_V2_FACTORY, s.PANCAKE_V2_ROUTER, s.BSC_WBNB),
            PancakeV2Venue(chain, safety, s.PANCAKE_V2_FACTORY, s.PANCAKE_V2_ROUTER, s.BSC_WBNB, via_wbnb=True),
            AerodromeVenue(
                chain, safety, s.AERO_POOL_FACTORY_AMM, s.AERO_ROUTER_AMM, s.BASE_WETH,
                max_price_impact_bps=s.AERO_MAX_PRICE_IMPACT_BPS,
            ),
            AerodromeVenue(
                chain, safety, s.AERO_POOL_FACTORY_AMM, s.AERO_ROUTER_AMM, s.BASE_WETH,
                via_weth=True, max_price_impact_bps=s.AERO_MAX_PRICE_IMPACT_BPS,
            ),
        ]

    async def start(self):
        """
        Create connections, ensure indexes, wire use cases and restore monitors.
        """
        s = self._settings or get_settings()

        # Mongo
        self._mongo_client = AsyncIOMotorClient(s.MONGODB_URI)
        self._db = self._mongo_client[s.MONGODB_DB_NAME]

        signal_repo = SignalRepositoryMongoDB(self._db)
        strategy_repo = StrategyConfigRepositoryMongoDB(self._db)
        execution_repo = ExecutionRepositoryMongoDB(self._db)
        position_repo = PositionRepositoryMongoDB(self._db)
        batch_repo = BatchRepositoryMongoDB(self._db)
        whitelist_repo = TokenWhitelistRepositoryMongoDB(self._db)

        for repo in (signal_repo, strategy_repo, execution_repo, position_repo, batch_repo, whitelist_repo):
            await repo.ensure_indexes()

        # gateways
        chain = Web3ChainReader(
            {"BSC": s.RPC_URL_BSC, "BASE": s.RPC_URL_BASE},
            timeout_sec=s.RPC_TIMEOUT_SEC,
        )
        market = DexScreenerClient(
            s.DEXSCREENER_BASE_URL,
            whitelist_repo=whitelist_repo,
            timeout_sec=s.HTTP_TIMEOUT_SEC,
            cache_ttl_sec=s.MARKET_CACHE_TTL_SEC,
        )
        signer = LocalKeySigner(s.SIGNER_KEYS, chain)
        if not s.SIGNER_KEYS:
            self._logger.warning("No signer keys configured; every submission will fail")

        safety = RouteSafetyService(
            max_price_deviation_bps=s.ROUTE_MAX_PRICE_DEVIATION_BPS,
            max_price_impact_bps=s.ROUTE_MAX_PRICE_IMPACT_BPS,
        )
        router = RouteAggregatorService(
            chain, market, self._build_venues(s, chain, safety),
            whitelist_repo=whitelist_repo,
            approval_gas_limit=s.APPROVAL_GAS_LIMIT,
        )

        self.risk_gate = RiskGateService(
            strategy_repo=strategy_repo,
            execution_repo=execution_repo,
            position_repo=position_repo,
            chain=chain,
            market_data=market,
            settings=s,
        )
        self.batch_executor = ExecuteBatchTradesUseCase(
            execution_repo=execution_repo,
            position_repo=position_repo,
            signal_repo=signal_repo,
            batch_repo=batch_repo,
            strategy_repo=strategy_repo,
            risk_gate=self.risk_gate,
            route_aggregator=router,
            signer=signer,
            market_data=market,
            settings=s,
        )
        self.scheduler = EntryPriceScheduler(
            signal_repo=signal_repo,
            whitelist_repo=whitelist_repo,
            batch_executor=self.batch_executor,
            settings=s,
        )
        self.intake = ProcessSignalUseCase(
            signal_repo=signal_repo,
            risk_gate=self.risk_gate,
            scheduler=self.scheduler,
        )

        async def _breaker_loop():
            """
            Forever-loop releasing strategies whose circuit-breaker pause ran out.
            """
            while True:
                try:
                    await self.risk_gate.release_expired_pauses()
                except Exception as exc:
                    self._logger.exception("circuit breaker loop error: %s", exc)
                await asyncio.sleep(s.CIRCUIT_BREAKER_POLL_SEC)

        self._breaker_task = asyncio.create_task(_breaker_loop())

        restored = await self.intake.restore_active_signals()
        self._logger.info("Copy-trade supervisor started (%d monitor(s) restored)", restored)

    async def stop(self):
        """
        Gracefully stop resources.
        """
        if self._breaker_task:
            self._breaker_task.cancel()
            with contextlib.suppress(Exception, asyncio.CancelledError):
                await self._breaker_task

        if self.scheduler:
            await self.scheduler.stop_all()

        if self._mongo_client:
            self._mongo_client.close()


import asyncio
from core.initialization import initialize_components, load_configuration
from models.opportunity import TokenInfo
from modules.market_data import RandomSentimentSource, RandomSignalSource, RandomWalkPriceOracle
from utils.logger import setup_logger

PAPER_TOKENS = [
    TokenInfo(id="dogmoon", symbol="DOGMOON", name="Doge Moon"),
    TokenInfo(id="pepe-rocket", symbol="PEPER", name="Pepe Rocket"),
    TokenInfo(id="shibchad", symbol="SHIBCHAD", name="Shiba Chad"),
    TokenInfo(id="safeape", symbol="SAFEAPE", name="Safe Ape"),
]


async def run_bot() -> None:
    """
    Entrypoint coroutine for the paper-trading engine.

    Loads the configuration, wires random-walk price, signal and sentiment
    feeds into the engine and runs the tick loop until cancelled. Open
    positions are left as they are on shutdown and listed in the log.
    """
    config = load_configuration()
    logger = setup_logger("TradingEngine", to_console=True)

    if config["TRADING_MODE"] == "live":
        logger.warning("Live custody is not wired in this build, running in paper mode.")

    oracle = RandomWalkPriceOracle()
    components = initialize_components(
        config,
        overrides={
            "price_oracle": oracle,
            "signal_source": RandomSignalSource(PAPER_TOKENS, oracle=oracle),
            "sentiment_source": RandomSentimentSource(),
        },
        logger=logger,
    )
    engine = components["engine"]

    engine.start()
    try:
        await asyncio.Event().wait()
    finally:
        await engine.stop()
        for pos in engine.open_positions():
            logger.info("Still open: %s %s size=%.2f pnl=%.2f", pos.id, pos.symbol, pos.size, pos.pnl)
        logger.info("Performance: %s", engine.performance_report().to_dict())


def main():
    try:
        asyncio.run(run_bot())
    except KeyboardInterrupt:
        print("👋 Engine stopped by user")
    except Exception as e:
        print(f"❌ Engine terminated due to error: {e}")


if __name__ == "__main__":
    main()

import asyncio
from typing import List, Optional

import httpx
import typer

from geckolens import runner
from geckolens.core.errors import ApiError, NoValidDataError
from geckolens.logs import configure_logging
from geckolens.settings import settings

app = typer.Typer(no_args_is_help=True)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log each HTTP request.")):
    """GeckoTerminal market data and DefiLlama TVL analysis."""
    configure_logging("DEBUG" if verbose else settings.log_level, console=runner.console)


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except (ApiError, NoValidDataError, httpx.TransportError, ValueError) as e:
        runner.console.print(f"[red]ERROR:[/red] {e}")
        raise typer.Exit(code=1)


@app.command()
def networks(page: int = 1):
    """List supported networks."""
    _run(runner.show_networks(page))


@app.command()
def dexes(network: Optional[str] = None, page: int = 1):
    """List DEXes on a network."""
    _run(runner.show_dexes(network, page))


@app.command()
def pools(network: Optional[str] = None, dex: Optional[str] = None, page: int = 1):
    """Top pools for a network and DEX."""
    _run(runner.show_pools("top", network, dex, page=page))


@app.command()
def trending(network: Optional[str] = None, duration: str = "24h", page: int = 1):
    """Trending pools (duration: 5m, 1h, 6h or 24h)."""
    _run(runner.show_pools("trending", network, duration=duration, page=page))


@app.command("new-pools")
def new_pools(network: Optional[str] = None, page: int = 1):
    """Most recently created pools."""
    _run(runner.show_pools("new", network, page=page))


@app.command()
def pool(address: str, network: Optional[str] = None):
    """Details for one pool."""
    _run(runner.show_pool(address, network))


@app.command()
def trades(address: str, network: Optional[str] = None, min_volume_usd: Optional[float] = None):
    """Recent trades for a pool."""
    _run(runner.show_trades(address, network, min_volume_usd))


@app.command()
def ohlcv(
    address: str,
    timeframe: str = "day",
    network: Optional[str] = None,
    aggregate: Optional[int] = None,
    limit: Optional[int] = None,
):
    """OHLCV candles for a pool (timeframe: minute, hour or day)."""
    _run(runner.show_ohlcv(address, timeframe, network, aggregate=aggregate, limit=limit))


@app.command()
def token(address: str, network: Optional[str] = None):
    """Token details and its pools."""
    _run(runner.show_token(address, network))


@app.command()
def prices(addresses: List[str], network: Optional[str] = None):
    """Spot USD prices for up to 30 token addresses."""
    _run(runner.show_prices(addresses, network))


@app.command()
def search(query: str, network: Optional[str] = None, page: int = 1):
    """Search pools by address or symbol."""
    _run(runner.show_search(query, network, page))


@app.command()
def protocol(slug: str):
    """Fetch a protocol from DefiLlama and analyze its TVL history."""
    _run(runner.show_protocol(slug))


@app.command("chain-tvl")
def chain_tvl(chain: str):
    """Analyze a chain's historical TVL from DefiLlama."""
    _run(runner.show_chain_tvl(chain))


@app.command()
def analyze(path: str):
    """Analyze a saved DefiLlama protocol payload or {date, tvl} series."""
    try:
        runner.analyze_file(path)
    except (NoValidDataError, ValueError, OSError) as e:
        runner.console.print(f"[red]ERROR:[/red] {e}")
        raise typer.Exit(code=1)

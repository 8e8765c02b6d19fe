"""Gas usage report.

Collect gas used by deployments and contract method calls
and write a summary table, optionally priced in fiat using
the `CoinMarketCap <https://coinmarketcap.com/api/>`__ ETH quote.

Example output::

    Contract          Method           Min     Max     Avg    # calls  USD (avg)
    ----------------  ---------------  ------  ------  -----  -------  ---------
    FundMe            cheaperWithdraw  36134   36134   36134        1  1.45
    FundMe            fund             68958   86058   74658        6  2.99
    FundMe            (deployment)     421537  421537  421537       1  16.86
"""

import logging
import statistics
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

import requests
from tabulate import tabulate

from fund_me.config import GasReporterConfig

logger = logging.getLogger(__name__)

#: CoinMarketCap latest quotes endpoint
COINMARKETCAP_QUOTES_URL = "https://pro-api.coinmarketcap.com/v1/cryptocurrency/quotes/latest"

#: Method label used for contract creation
DEPLOYMENT_METHOD = "(deployment)"


class PriceFetchFailed(Exception):
    """Could not read the ETH price."""


@dataclass(slots=True)
class GasUsage:
    """Gas samples of one contract method."""

    contract: str
    method: str
    samples: list[int] = field(default_factory=list)

    @property
    def calls(self) -> int:
        return len(self.samples)

    @property
    def min(self) -> int:
        return min(self.samples)

    @property
    def max(self) -> int:
        return max(self.samples)

    @property
    def avg(self) -> int:
        return round(statistics.mean(self.samples))


class GasReporter:
    """Accumulate gas usage across a test session or a script run."""

    def __init__(self):
        self.usage: dict[tuple[str, str], GasUsage] = {}

        #: Effective gas price of the latest recorded transaction, used to price the report
        self.last_gas_price_wei: int | None = None

    def record(self, contract: str, method: str, gas_used: int, gas_price_wei: int | None = None):
        """Add one gas sample.

        :param gas_price_wei:
            Effective gas price the transaction paid
        """
        assert type(gas_used) == int, f"Got {type(gas_used)}"
        if gas_price_wei is not None:
            self.last_gas_price_wei = gas_price_wei
        key = (contract, method)
        if key not in self.usage:
            self.usage[key] = GasUsage(contract, method)
        self.usage[key].samples.append(gas_used)

    def record_deployment(self, contract: str, gas_used: int, gas_price_wei: int | None = None):
        self.record(contract, DEPLOYMENT_METHOD, gas_used, gas_price_wei=gas_price_wei)

    def is_empty(self) -> bool:
        return not self.usage

    def format_report(
        self,
        gas_price_wei: int | None = None,
        eth_price: Decimal | None = None,
        currency: str = "USD",
    ) -> str:
        """Render the gas table.

        Fiat column is included only when both gas price and ETH price are known.

        :param gas_price_wei:
            Gas price used to convert gas units to ETH

        :param eth_price:
            ETH price in ``currency``
        """
        priced = gas_price_wei is not None and eth_price is not None

        headers = ["Contract", "Method", "Min", "Max", "Avg", "# calls"]
        if priced:
            headers.append(f"{currency} (avg)")

        rows = []
        for contract, method in sorted(self.usage):
            usage = self.usage[(contract, method)]
            row = [contract, method, usage.min, usage.max, usage.avg, usage.calls]
            if priced:
                cost_eth = Decimal(usage.avg * gas_price_wei) / Decimal(10**18)
                row.append(float(cost_eth * eth_price))
            rows.append(row)

        table = tabulate(rows, headers=headers, tablefmt="simple", floatfmt=".2f")
        if priced:
            gas_price_gwei = Decimal(gas_price_wei) / Decimal(10**9)
            table += f"\n\nGas price {gas_price_gwei:.2f} gwei, ETH price {eth_price:.2f} {currency}"
        return table

    def write(self, path: Path, **kwargs) -> Path:
        """Write the report to a text file.

        :param kwargs:
            Passed to :py:meth:`format_report`
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.format_report(**kwargs) + "\n", encoding="utf-8")
        logger.info("Gas report written to %s", path)
        return path


def fetch_eth_price(
    api_key: str,
    currency: str = "USD",
    session: requests.Session | None = None,
    timeout: float = 10.0,
) -> Decimal:
    """Get the latest ETH price from CoinMarketCap.

    :param api_key:
        CoinMarketCap API key

    :param currency:
        Fiat currency symbol

    :raise PriceFetchFailed:
        HTTP error or unexpected payload
    """
    if session is None:
        session = requests.Session()

    response = session.get(
        COINMARKETCAP_QUOTES_URL,
        params={"symbol": "ETH", "convert": currency},
        headers={"X-CMC_PRO_API_KEY": api_key, "Accept": "application/json"},
        timeout=timeout,
    )

    if response.status_code != 200:
        raise PriceFetchFailed(f"CoinMarketCap returned {response.status_code}: {response.text[:200]}")

    try:
        data = response.json()
        price = data["data"]["ETH"]["quote"][currency]["price"]
    except (ValueError, KeyError, TypeError) as e:
        raise PriceFetchFailed(f"Unexpected CoinMarketCap response: {response.text[:200]}") from e

    return Decimal(str(price))


def write_gas_report(
    reporter: GasReporter,
    config: GasReporterConfig,
    gas_price_wei: int | None = None,
    session: requests.Session | None = None,
) -> Path | None:
    """Write the report as configured.

    Fiat costs are added when a CoinMarketCap key is configured.
    A failed price lookup is logged and the report is written without them.

    :param gas_price_wei:
        Gas price for the fiat column.
        Defaults to the price the latest recorded transaction paid.

    :param session:
        HTTP session for the CoinMarketCap request

    :return:
        Report path, or ``None`` if reporting is disabled or nothing was recorded
    """
    if not config.enabled or reporter.is_empty():
        return None

    if gas_price_wei is None:
        gas_price_wei = reporter.last_gas_price_wei

    eth_price = None
    if config.has_price_source() and gas_price_wei is not None:
        try:
            eth_price = fetch_eth_price(config.coinmarketcap_api_key, currency=config.currency, session=session)
        except (PriceFetchFailed, requests.RequestException) as e:
            logger.warning("Gas report without %s prices: %s", config.currency, e)

    return reporter.write(
        config.output_file,
        gas_price_wei=gas_price_wei if eth_price is not None else None,
        eth_price=eth_price,
        currency=config.currency,
    )

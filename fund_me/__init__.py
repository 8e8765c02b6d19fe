"""FundMe deployment and testing harness.

- Compile the bundled Vyper contracts

- Deploy them on a development chain or a live network,
  resolving the Chainlink ETH/USD price feed per network

- Fund and withdraw from the deployed contract from scripts and tests
"""

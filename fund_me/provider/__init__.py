"""Web3 provider set up for development chains and live networks."""

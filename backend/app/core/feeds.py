"""Upstream feed identifiers shared by configuration and the Pyth client."""

DEFAULT_HERMES_WS_URL = "wss://hermes.pyth.network/ws"

# Pyth price feed ids are 32-byte hex strings; this one is SOL/USD
SOL_USD_FEED_ID = "0xef0d8b6fda2ceba41da15d4095d1da392a0d2f8ed0c6c7bc0f4cfac8c280b56d"

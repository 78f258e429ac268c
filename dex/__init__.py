"""
Cross-DEX spread arbitrage: pool monitoring, opportunity detection and
trade execution for Uniswap V2 style exchanges.
"""

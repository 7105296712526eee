#!/usr/bin/env python3
"""
Divergence Arbitrage Bot Runner
Monitors Gate.io vs Orderly perpetual prices and trades divergence reversals.
"""

from divergence_arb.main import main

if __name__ == "__main__":
    main()

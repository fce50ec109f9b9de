"""
Project-wide immutable parameters for the AR / AISTR / ALCH holder lottery.

These values define the public rules of the draw.
Changing them changes eligibility and MUST be publicly announced.
"""

# Ledgers aggregated into one weight, in draw-audit order.
# Contract addresses are deployment specific and come from the environment.
LEDGER_SYMBOLS = ("AR", "AISTR", "ALCH")

# All three tokens use the ERC-20 default
TOKEN_DECIMALS = 18

# Snapshot block (Ethereum mainnet)
DEFAULT_SNAPSHOT_BLOCK = 12345678

# Number of distinct winners per draw
DEFAULT_NUM_WINNERS = 100

# Public exclusion list (committed to repo), optional
EXCLUDED_WALLETS_FILE = "excluded_wallets.mainnet.txt"

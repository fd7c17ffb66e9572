__all__ = ["AllowanceManager", "LocalWallet", "Signer", "Wallet"]

from joly_trader.chain.allowance import AllowanceManager
from joly_trader.chain.wallet import LocalWallet, Signer, Wallet

"""
Asset definitions and network defaults.

An asset is either the ledger's native coin (SOL, settled in lamports) or an
SPL token identified by its mint address.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_FLOOR
from enum import Enum
from typing import Dict, Mapping, Optional, Union

from solders.pubkey import Pubkey

from .exceptions import AssetDecimalsMismatch, UnsupportedAssetKind, InvalidAmountError

NATIVE_SYMBOL = "SOL"
NATIVE_DECIMALS = 9
# Wrapped SOL mint; agents registered as "SOL" sometimes report this mint
WRAPPED_SOL_MINT = "So11111111111111111111111111111111111111112"


class AssetKind(str, Enum):
    NATIVE = "native"
    TOKEN = "token"


@dataclass(frozen=True)
class Asset:
    """
    A settlement asset.

    Attributes:
        kind: Native coin or fungible token
        decimals: Precision of the smallest unit (9 for SOL, 6 for USDC)
        mint: Token mint address (``None`` for the native coin)
        symbol: Display symbol
    """
    kind: AssetKind
    decimals: int
    mint: Optional[str] = None
    symbol: str = ""

    @property
    def is_native(self) -> bool:
        return self.kind == AssetKind.NATIVE

    @classmethod
    def native(cls) -> "Asset":
        return cls(kind=AssetKind.NATIVE, decimals=NATIVE_DECIMALS, symbol=NATIVE_SYMBOL)

    @classmethod
    def token(cls, mint: str, decimals: int, symbol: str = "") -> "Asset":
        return cls(kind=AssetKind.TOKEN, decimals=decimals, mint=mint, symbol=symbol)


# Network defaults for mainnet and devnet
NETWORK_DEFAULTS: Dict[str, Dict[str, str]] = {
    "mainnet": {
        "rpc_url": "https://api.mainnet-beta.solana.com",
        "usdc_mint": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
        "protocol_wallet": "CYSnefexbvrRU6VxzGfvZqKYM4UixupvDeZg3sUSWm84",
        "explorer_cluster": "",
    },
    "devnet": {
        "rpc_url": "https://api.devnet.solana.com",
        "usdc_mint": "EGzSiubUqhzWFR2KxWCx6jHD6XNsVhKrnebjcQdN6qK4",
        "protocol_wallet": "BubFsAG8cSEH7NkLpZijctRpsZkCiaWqCdRfh8kUpXEt",
        "explorer_cluster": "devnet",
    },
}

USDC_DECIMALS = 6


def _check_network(network: str) -> Dict[str, str]:
    try:
        return NETWORK_DEFAULTS[network]
    except KeyError:
        raise ValueError(
            f"Unknown network {network!r}. Valid networks: {', '.join(sorted(NETWORK_DEFAULTS))}"
        )


def get_token_mint(token: str, network: str) -> str:
    """
    Get the mint address for a token symbol on a network.

    Args:
        token: ``"USDC"`` or ``"SOL"``
        network: ``"mainnet"`` or ``"devnet"``

    Returns:
        Mint address as a base58 string

    Raises:
        ValueError: For an unknown token/network combination
    """
    defaults = _check_network(network)
    symbol = token.upper()
    if symbol == "USDC":
        return defaults["usdc_mint"]
    if symbol == NATIVE_SYMBOL:
        return WRAPPED_SOL_MINT
    raise ValueError(
        f"Unknown token/network combination: {token} on {network}. "
        "Valid combinations: USDC/SOL on mainnet/devnet."
    )


def known_tokens(network: str) -> Dict[str, Asset]:
    """Tokens the SDK settles in by default, keyed by mint address."""
    usdc_mint = _check_network(network)["usdc_mint"]
    return {usdc_mint: Asset.token(usdc_mint, USDC_DECIMALS, "USDC")}


def resolve_asset(
    ref: Union[Asset, str, None],
    network: str = "mainnet",
    extra_tokens: Optional[Mapping[str, Asset]] = None,
) -> Asset:
    """
    Resolve an asset reference to a concrete Asset.

    Args:
        ref: An Asset, ``"SOL"``/``"native"``, a known symbol, or a known mint address
        network: Network whose token registry is consulted
        extra_tokens: Additional tokens keyed by mint address

    Returns:
        The resolved Asset

    Raises:
        UnsupportedAssetKind: If the reference is neither native nor a known token
    """
    if isinstance(ref, Asset):
        if ref.kind == AssetKind.NATIVE:
            return ref
        if ref.kind == AssetKind.TOKEN and ref.mint:
            return ref
        raise UnsupportedAssetKind(f"Asset {ref!r} has no mint address")

    if not isinstance(ref, str) or not ref:
        raise UnsupportedAssetKind(f"Unsupported asset reference: {ref!r}")

    if ref.upper() in (NATIVE_SYMBOL, "NATIVE") or ref == WRAPPED_SOL_MINT:
        return Asset.native()

    registry = dict(known_tokens(network))
    if extra_tokens:
        registry.update(extra_tokens)

    if ref in registry:
        return registry[ref]
    for asset in registry.values():
        if asset.symbol and asset.symbol.upper() == ref.upper():
            return asset

    raise UnsupportedAssetKind(f"Asset {ref!r} is not the native coin or a known token on {network}")


def resolve_agent_asset(
    ref: str,
    decimals: int,
    network: str = "mainnet",
    extra_tokens: Optional[Mapping[str, Asset]] = None,
) -> Asset:
    """
    Resolve the asset an agent record is priced in.

    A mint the registry does not know is accepted as a token with the
    record's own decimals. A known asset must agree with the record.

    Raises:
        UnsupportedAssetKind: If the reference is neither a known asset nor a mint address
        AssetDecimalsMismatch: If the record's decimals differ from the registry's
    """
    try:
        asset = resolve_asset(ref, network, extra_tokens)
    except UnsupportedAssetKind:
        try:
            Pubkey.from_string(ref)
        except ValueError:
            raise UnsupportedAssetKind(
                f"Asset {ref!r} is not the native coin, a known token or a mint address on {network}"
            )
        return Asset.token(ref, decimals)

    if asset.decimals != decimals:
        raise AssetDecimalsMismatch(
            f"Agent prices {ref!r} with {decimals} decimals; {asset.symbol or asset.mint} has {asset.decimals}"
        )
    return asset


def to_base_units(amount: Union[Decimal, int, str], decimals: int) -> int:
    """
    Convert a display amount to integer base units, rounding down.

    Floats are rejected; pass a string or Decimal for fractional amounts.
    """
    if isinstance(amount, (float, bool)):
        raise InvalidAmountError(f"Amount must be a Decimal, int or str, got {type(amount).__name__}")
    try:
        value = Decimal(amount) * (Decimal(10) ** decimals)
    except InvalidOperation:
        raise InvalidAmountError(f"Invalid amount: {amount!r}")
    if value < 0:
        raise InvalidAmountError(f"Amount must not be negative: {amount!r}")
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def from_base_units(amount: int, decimals: int) -> Decimal:
    """Convert integer base units to a Decimal display amount."""
    return Decimal(amount) / (Decimal(10) ** decimals)


def explorer_url(signature: str, network: str = "mainnet") -> str:
    """Block explorer link for a transaction signature."""
    cluster = NETWORK_DEFAULTS.get(network, {}).get("explorer_cluster", "")
    suffix = f"?cluster={cluster}" if cluster else ""
    return f"https://explorer.solana.com/tx/{signature}{suffix}"

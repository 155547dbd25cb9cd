"""
Call registry.

Every entry maps a call name to a pure payload builder and, for calls that
change what the session is subscribed to, a recorder applied to the
session's SubscriptionState before the payload is sent.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from . import stateful


class UnknownCallError(KeyError):
    """Raised when a call name is not in the registry."""


@dataclass(frozen=True)
class CallSpec:
    """Registry entry."""
    builder: Callable[..., Dict[str, Any]]
    recorder: Optional[Callable[..., None]] = None


# Read-only calls

def get_active_symbols_brief() -> Dict[str, Any]:
    return {"active_symbols": "brief"}


def get_active_symbols_full() -> Dict[str, Any]:
    return {"active_symbols": "full"}


def get_asset_index() -> Dict[str, Any]:
    return {"asset_index": 1}


def get_contracts_for_symbol(symbol: str) -> Dict[str, Any]:
    return {"contracts_for": symbol}


def get_landing_company(landing_company: str) -> Dict[str, Any]:
    return {"landing_company": landing_company}


def get_landing_company_details(landing_company: str) -> Dict[str, Any]:
    return {"landing_company_details": landing_company}


def get_payment_agents_for_country(country_code: str) -> Dict[str, Any]:
    return {"paymentagent_list": country_code}


def get_payout_currencies() -> Dict[str, Any]:
    return {"payout_currencies": 1}


def get_price_proposal_for_contract(options: Dict[str, Any]) -> Dict[str, Any]:
    return {"proposal": 1, **options}


def get_residences() -> Dict[str, Any]:
    return {"residence_list": 1}


def get_states_for_country(country_code: str) -> Dict[str, Any]:
    return {"states_list": country_code}


def get_server_time() -> Dict[str, Any]:
    return {"time": 1}


def get_trading_times(date: str) -> Dict[str, Any]:
    return {"trading_times": date}


def get_website_status() -> Dict[str, Any]:
    return {"website_status": 1}


def ping() -> Dict[str, Any]:
    return {"ping": 1}


def get_tick_history(symbol: str, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"ticks_history": symbol, "end": "latest", **(options or {})}


def get_candles(symbol: str, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"ticks_history": symbol, "end": "latest", "style": "candles", **(options or {})}


def get_candles_for_last_n_days(symbol: str, days: int) -> Dict[str, Any]:
    return {
        "ticks_history": symbol,
        "end": "latest",
        "style": "candles",
        "start": f"{days}d",
        "granularity": 86400,
    }


# Authorization and account

def authorize(token: str) -> Dict[str, Any]:
    return {"authorize": token}


def log_out() -> Dict[str, Any]:
    return {"logout": 1}


def get_account_limits() -> Dict[str, Any]:
    return {"get_limits": 1}


def get_account_settings() -> Dict[str, Any]:
    return {"get_settings": 1}


def get_account_status() -> Dict[str, Any]:
    return {"get_account_status": 1}


def get_self_exclusion() -> Dict[str, Any]:
    return {"get_self_exclusion": 1}


def get_statement(options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"statement": 1, "description": 1, **(options or {})}


def get_portfolio() -> Dict[str, Any]:
    return {"portfolio": 1}


def get_profit_table(options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"profit_table": 1, "description": 1, **(options or {})}


def get_reality_check_summary() -> Dict[str, Any]:
    return {"reality_check": 1}


def get_contract_info(contract_id: int) -> Dict[str, Any]:
    return {"proposal_open_contract": 1, "contract_id": contract_id}


# Streams

def subscribe_to_tick(symbol: str) -> Dict[str, Any]:
    return {"ticks": symbol, "subscribe": 1}


def subscribe_to_ticks(symbols: Iterable[str]) -> Dict[str, Any]:
    return {"ticks": list(symbols), "subscribe": 1}


def unsubscribe_from_tick(symbol: str) -> Dict[str, Any]:
    return {"forget": symbol}


def unsubscribe_from_ticks(symbols: Iterable[str]) -> Dict[str, Any]:
    return {"forget": list(symbols)}


def unsubscribe_from_all_ticks() -> Dict[str, Any]:
    return {"forget_all": "ticks"}


def subscribe_to_price_for_contract_proposal(options: Dict[str, Any]) -> Dict[str, Any]:
    return {"proposal": 1, "subscribe": 1, **options}


def unsubscribe_from_all_proposals() -> Dict[str, Any]:
    return {"forget_all": "proposal"}


def subscribe_to_balance() -> Dict[str, Any]:
    return {"balance": 1, "subscribe": 1}


def unsubscribe_from_balance() -> Dict[str, Any]:
    return {"forget_all": "balance"}


def subscribe_to_open_contract(contract_id: int) -> Dict[str, Any]:
    return {"proposal_open_contract": 1, "contract_id": contract_id, "subscribe": 1}


def subscribe_to_all_open_contracts() -> Dict[str, Any]:
    return {"proposal_open_contract": 1, "subscribe": 1}


def unsubscribe_from_all_open_contracts() -> Dict[str, Any]:
    return {"forget_all": "proposal_open_contract"}


def subscribe_to_transactions() -> Dict[str, Any]:
    return {"transaction": 1, "subscribe": 1}


def unsubscribe_from_transactions() -> Dict[str, Any]:
    return {"forget_all": "transaction"}


def forget(subscription_id: str) -> Dict[str, Any]:
    return {"forget": subscription_id}


# Trading

def buy_contract(contract_id: str, price: float) -> Dict[str, Any]:
    return {"buy": contract_id, "price": price}


def buy_contract_params(parameters: Dict[str, Any], price: float) -> Dict[str, Any]:
    return {"buy": 1, "price": price, "parameters": parameters}


def sell_contract(contract_id: int, price: float) -> Dict[str, Any]:
    return {"sell": contract_id, "price": price}


def sell_expired_contracts() -> Dict[str, Any]:
    return {"sell_expired": 1}


def top_up_virtual_account() -> Dict[str, Any]:
    return {"topup_virtual": 1}


# Account changes

def set_account_settings(options: Dict[str, Any]) -> Dict[str, Any]:
    return {"set_settings": 1, **options}


def set_self_exclusion(options: Dict[str, Any]) -> Dict[str, Any]:
    return {"set_self_exclusion": 1, **options}


def set_tnc_approval() -> Dict[str, Any]:
    return {"tnc_approval": 1}


def get_api_tokens() -> Dict[str, Any]:
    return {"api_token": 1}


def create_api_token(token_name: str, scopes: List[str]) -> Dict[str, Any]:
    return {"api_token": 1, "new_token": token_name, "new_token_scopes": list(scopes)}


def delete_api_token(token: str) -> Dict[str, Any]:
    return {"api_token": 1, "delete_token": token}


def change_password(old_password: str, new_password: str) -> Dict[str, Any]:
    return {"change_password": 1, "old_password": old_password, "new_password": new_password}


def verify_email(email: str, verification_type: str) -> Dict[str, Any]:
    return {"verify_email": email, "type": verification_type}


def create_virtual_account(options: Dict[str, Any]) -> Dict[str, Any]:
    return {"new_account_virtual": 1, **options}


_STATELESS = [
    get_active_symbols_brief, get_active_symbols_full, get_asset_index,
    get_contracts_for_symbol, get_landing_company, get_landing_company_details,
    get_payment_agents_for_country, get_payout_currencies, get_price_proposal_for_contract,
    get_residences, get_states_for_country, get_server_time, get_trading_times,
    get_website_status, ping, get_tick_history, get_candles, get_candles_for_last_n_days,
    log_out, get_account_limits, get_account_settings, get_account_status,
    get_self_exclusion, get_statement, get_portfolio, get_profit_table,
    get_reality_check_summary, get_contract_info, subscribe_to_open_contract, forget,
    buy_contract, buy_contract_params, sell_contract, sell_expired_contracts,
    top_up_virtual_account, set_account_settings, set_self_exclusion, set_tnc_approval,
    get_api_tokens, create_api_token, delete_api_token, change_password, verify_email,
    create_virtual_account,
]

_STATEFUL = [
    authorize, subscribe_to_balance, unsubscribe_from_balance,
    subscribe_to_all_open_contracts, unsubscribe_from_all_open_contracts,
    subscribe_to_transactions, unsubscribe_from_transactions,
    subscribe_to_tick, subscribe_to_ticks, unsubscribe_from_tick, unsubscribe_from_ticks,
    unsubscribe_from_all_ticks, subscribe_to_price_for_contract_proposal,
    unsubscribe_from_all_proposals,
]

CALLS: Dict[str, CallSpec] = {
    **{builder.__name__: CallSpec(builder) for builder in _STATELESS},
    **{
        builder.__name__: CallSpec(builder, getattr(stateful, builder.__name__))
        for builder in _STATEFUL
    },
}


def get_call(name: str) -> CallSpec:
    try:
        return CALLS[name]
    except KeyError:
        raise UnknownCallError(name) from None


def build_payload(name: str, *args, **kwargs) -> Dict[str, Any]:
    """Build the request payload for ``name`` without recording anything."""
    return get_call(name).builder(*args, **kwargs)

"""Subscription intent recorded by "stateful" calls and read back on reconnect."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List


@dataclass
class SubscriptionState:
    """What the session was subscribed to, so it can be reissued after a drop."""
    token: str = ""
    balance: bool = False
    portfolio: bool = False
    transactions: bool = False
    ticks: List[str] = field(default_factory=list)
    proposals: List[Dict[str, Any]] = field(default_factory=list)

    def snapshot(self) -> "SubscriptionState":
        """Independent copy, so replay never observes its own sends."""
        return SubscriptionState(
            token=self.token,
            balance=self.balance,
            portfolio=self.portfolio,
            transactions=self.transactions,
            ticks=list(self.ticks),
            proposals=[dict(p) for p in self.proposals],
        )

    def has_subscriptions(self) -> bool:
        return bool(
            self.token or self.balance or self.portfolio or self.transactions
            or self.ticks or self.proposals
        )


def authorize(state: SubscriptionState, token: str):
    state.token = token


def subscribe_to_balance(state: SubscriptionState):
    state.balance = True


def unsubscribe_from_balance(state: SubscriptionState):
    state.balance = False


def subscribe_to_all_open_contracts(state: SubscriptionState):
    state.portfolio = True


def unsubscribe_from_all_open_contracts(state: SubscriptionState):
    state.portfolio = False


def subscribe_to_transactions(state: SubscriptionState):
    state.transactions = True


def unsubscribe_from_transactions(state: SubscriptionState):
    state.transactions = False


def subscribe_to_tick(state: SubscriptionState, symbol: str):
    if symbol not in state.ticks:
        state.ticks.append(symbol)


def subscribe_to_ticks(state: SubscriptionState, symbols: Iterable[str]):
    for symbol in symbols:
        subscribe_to_tick(state, symbol)


def unsubscribe_from_tick(state: SubscriptionState, symbol: str):
    if symbol in state.ticks:
        state.ticks.remove(symbol)


def unsubscribe_from_ticks(state: SubscriptionState, symbols: Iterable[str]):
    for symbol in symbols:
        unsubscribe_from_tick(state, symbol)


def unsubscribe_from_all_ticks(state: SubscriptionState):
    state.ticks.clear()


def subscribe_to_price_for_contract_proposal(state: SubscriptionState, options: Dict[str, Any]):
    if options not in state.proposals:
        state.proposals.append(dict(options))


def unsubscribe_from_all_proposals(state: SubscriptionState):
    state.proposals.clear()

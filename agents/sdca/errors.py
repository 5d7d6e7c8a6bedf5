"""
Domain exceptions for the S-DCA agent. HTTP status mapping lives in main.py.
"""
from shared.chains.registry import PluginNotFound


class SDCAError(Exception):
    status_code = 400


class UnknownChain(SDCAError):
    def __init__(self, chain: str):
        super().__init__(f"Plugin {chain} not found")
        self.chain = chain

    @classmethod
    def from_lookup(cls, exc: PluginNotFound) -> "UnknownChain":
        return cls(exc.chain)


class InsufficientBalance(SDCAError):
    def __init__(self, chain: str, token: str, available, required):
        super().__init__(f"Insufficient {token} balance on {chain}: have {available}, need {required}")
        self.chain = chain
        self.token = token
        self.available = available
        self.required = required


class InsufficientData(SDCAError):
    """Not enough price history to analyse."""


class PlanNotFound(SDCAError):
    status_code = 404

    def __init__(self, plan_id: int):
        super().__init__(f"Investment plan {plan_id} not found")
        self.plan_id = plan_id


class UserNotFound(SDCAError):
    status_code = 404

    def __init__(self, user_id):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class UnsupportedToken(SDCAError):
    def __init__(self, chain: str, token: str | None = None):
        msg = f"Chain {chain} is not supported" if token is None else f"Token {token} is not supported on chain {chain}"
        super().__init__(msg)
        self.chain = chain
        self.token = token


class ConcurrentModification(SDCAError):
    status_code = 409

    def __init__(self, what: str):
        super().__init__(f"Concurrent modification of {what}; retries exhausted")

"""Built-in receivers and their command types.

Two receivers ship with histctl:

- :class:`Account`: an integer balance with an optional overdraft limit
  (``deposit`` / ``withdraw``).
- :class:`TextBuffer`: a plain-text document
  (``insert_text`` / ``delete_text`` / ``replace_text``).

Amounts are integers (minor currency units) to avoid float drift.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from histctl.domain.commands import CommandRegistry, CommandType
from histctl.domain.errors import InvalidPayload

# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


class Account:
    """Bank-account receiver."""

    def __init__(self, balance: int = 0, *, overdraft_limit: int = 0) -> None:
        if overdraft_limit < 0:
            msg = "overdraft_limit must be >= 0"
            raise ValueError(msg)
        self.balance = balance
        self.overdraft_limit = overdraft_limit

    def snapshot(self) -> dict[str, Any]:
        return {"balance": self.balance}

    def restore(self, state: Any) -> None:
        self.balance = int(state["balance"])

    def __repr__(self) -> str:
        return f"Account(balance={self.balance})"


class AmountPayload(BaseModel):
    """Payload for ``deposit`` and ``withdraw``."""

    amount: int = Field(gt=0)


def _deposit(account: Account, data: AmountPayload) -> None:
    account.balance += data.amount


def _check_withdraw(account: Account, data: AmountPayload) -> None:
    available = account.balance + account.overdraft_limit
    if data.amount > available:
        msg = f"Insufficient funds: requested {data.amount}, available {available}"
        raise InvalidPayload(
            msg,
            detail={"requested": data.amount, "available": available},
        )


def _withdraw(account: Account, data: AmountPayload) -> None:
    account.balance -= data.amount


DEPOSIT = CommandType(
    name="deposit",
    apply=_deposit,
    receiver_type=Account,
    payload_model=AmountPayload,
    description="Add an amount to the account balance.",
)

WITHDRAW = CommandType(
    name="withdraw",
    apply=_withdraw,
    receiver_type=Account,
    payload_model=AmountPayload,
    validate=_check_withdraw,
    description="Take an amount from the account balance.",
)


# ---------------------------------------------------------------------------
# TextBuffer
# ---------------------------------------------------------------------------


class TextBuffer:
    """Plain-text document receiver."""

    def __init__(self, text: str = "") -> None:
        self.text = text

    def snapshot(self) -> dict[str, Any]:
        return {"text": self.text}

    def restore(self, state: Any) -> None:
        self.text = str(state["text"])

    def __len__(self) -> int:
        return len(self.text)

    def __repr__(self) -> str:
        return f"TextBuffer({self.text!r})"


class InsertTextPayload(BaseModel):
    position: int = Field(ge=0)
    text: str = Field(min_length=1)


class DeleteTextPayload(BaseModel):
    position: int = Field(ge=0)
    length: int = Field(gt=0)


class ReplaceTextPayload(BaseModel):
    text: str


def _check_insert(buffer: TextBuffer, data: InsertTextPayload) -> None:
    if data.position > len(buffer):
        msg = f"Insert position {data.position} is past the end of the text ({len(buffer)})"
        raise InvalidPayload(msg, detail={"position": data.position, "length": len(buffer)})


def _insert(buffer: TextBuffer, data: InsertTextPayload) -> None:
    buffer.text = buffer.text[: data.position] + data.text + buffer.text[data.position :]


def _check_delete(buffer: TextBuffer, data: DeleteTextPayload) -> None:
    end = data.position + data.length
    if end > len(buffer):
        msg = f"Delete range {data.position}:{end} exceeds the text ({len(buffer)})"
        raise InvalidPayload(msg, detail={"position": data.position, "length": len(buffer)})


def _delete(buffer: TextBuffer, data: DeleteTextPayload) -> None:
    end = data.position + data.length
    buffer.text = buffer.text[: data.position] + buffer.text[end:]


def _replace(buffer: TextBuffer, data: ReplaceTextPayload) -> None:
    buffer.text = data.text


INSERT_TEXT = CommandType(
    name="insert_text",
    apply=_insert,
    receiver_type=TextBuffer,
    payload_model=InsertTextPayload,
    validate=_check_insert,
    description="Insert text at a position.",
)

DELETE_TEXT = CommandType(
    name="delete_text",
    apply=_delete,
    receiver_type=TextBuffer,
    payload_model=DeleteTextPayload,
    validate=_check_delete,
    description="Delete a range of characters.",
)

REPLACE_TEXT = CommandType(
    name="replace_text",
    apply=_replace,
    receiver_type=TextBuffer,
    payload_model=ReplaceTextPayload,
    description="Replace the whole document.",
)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------

BUILTIN_COMMAND_TYPES: tuple[CommandType, ...] = (
    DEPOSIT,
    WITHDRAW,
    INSERT_TEXT,
    DELETE_TEXT,
    REPLACE_TEXT,
)

RECEIVER_KINDS: dict[str, type] = {
    "account": Account,
    "text": TextBuffer,
}


def builtin_registry() -> CommandRegistry:
    """Return a fresh registry holding the built-in command types."""
    return CommandRegistry(BUILTIN_COMMAND_TYPES)


def make_receiver(kind: str, state: Any | None = None) -> Any:
    """Instantiate a built-in receiver of *kind*, optionally restoring *state*.

    Raises:
        KeyError: If *kind* is not a known receiver kind.
    """
    try:
        receiver_cls = RECEIVER_KINDS[kind]
    except KeyError:
        msg = f"Unknown receiver kind: {kind!r}"
        raise KeyError(msg) from None
    receiver = receiver_cls()
    if state is not None:
        receiver.restore(state)
    return receiver


def receiver_kind(receiver: Any) -> str:
    """Return the kind name for a built-in receiver instance."""
    for kind, receiver_cls in RECEIVER_KINDS.items():
        if isinstance(receiver, receiver_cls):
            return kind
    msg = f"Not a built-in receiver: {type(receiver).__name__}"
    raise KeyError(msg)

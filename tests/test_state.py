import pytest

from vaultswap.enums import EscrowStatus
from vaultswap.errors import AccountMismatch, InvalidTransition
from vaultswap.keys import Keypair
from vaultswap.state import DISCRIMINATOR, EscrowState
from vaultswap.state_machine import is_terminal, validate_transition


def make_state():
    return EscrowState(
        seed=2**40 + 5,
        maker=Keypair.generate().address,
        mint_a=Keypair.generate().address,
        mint_b=Keypair.generate().address,
        receive=100,
        bump=254,
    )


def test_record_layout_is_fixed_size():
    state = make_state()
    data = state.pack()
    assert EscrowState.SPACE == 121
    assert len(data) == EscrowState.SPACE
    assert data.startswith(DISCRIMINATOR)
    assert EscrowState.unpack(data) == state


def test_unpack_rejects_foreign_data():
    data = make_state().pack()
    with pytest.raises(AccountMismatch):
        EscrowState.unpack(b"\x00" * 8 + data[8:])
    with pytest.raises(AccountMismatch):
        EscrowState.unpack(data[:-1])


def test_valid_transition():
    validate_transition(EscrowStatus.OPEN, EscrowStatus.SETTLED)
    validate_transition(EscrowStatus.OPEN, EscrowStatus.REFUNDED)


def test_terminal_states_have_no_exit():
    with pytest.raises(InvalidTransition):
        validate_transition(EscrowStatus.SETTLED, EscrowStatus.REFUNDED)
    with pytest.raises(InvalidTransition):
        validate_transition(EscrowStatus.REFUNDED, EscrowStatus.OPEN)
    assert is_terminal(EscrowStatus.SETTLED)
    assert is_terminal(EscrowStatus.REFUNDED)
    assert not is_terminal(EscrowStatus.OPEN)

from enum import Enum

from .errors import UnrecognizedStateError


class State(Enum):
    """Represents each of the possible phases of a Descartes instance lifetime"""
    WAITING_PROVIDERS = 0         # Some drives still need to be submitted by their provider
    PROVIDER_MISSED_DEADLINE = 1  # final
    WAITING_CLAIM = 2             # All drives are known, waiting for the claimer to submit the result
    CLAIMER_MISSED_DEADLINE = 3   # final
    WAITING_CONFIRMATION = 4      # The claimer submitted a result, the challenger can confirm or challenge it
    WAITING_CHALLENGE = 5         # A verification game is being played
    CHALLENGER_WON = 6            # final
    CLAIMER_WON = 7               # final
    CONSENSUS_RESULT = 8          # final


FINAL_STATES = frozenset([
    State.PROVIDER_MISSED_DEADLINE,
    State.CLAIMER_MISSED_DEADLINE,
    State.CHALLENGER_WON,
    State.CLAIMER_WON,
    State.CONSENSUS_RESULT,
])


def is_final(state: State) -> bool:
    if not isinstance(state, State):
        raise UnrecognizedStateError(f"Unrecognized state: {state!r}")
    return state in FINAL_STATES


def state_label(state: State) -> str:
    """Returns the canonical name of `state`; raises UnrecognizedStateError for anything that is not a State."""

    if state == State.WAITING_PROVIDERS:
        return "WaitingProviders"
    elif state == State.PROVIDER_MISSED_DEADLINE:
        return "ProviderMissedDeadline"
    elif state == State.WAITING_CLAIM:
        return "WaitingClaim"
    elif state == State.CLAIMER_MISSED_DEADLINE:
        return "ClaimerMissedDeadline"
    elif state == State.WAITING_CONFIRMATION:
        return "WaitingConfirmation"
    elif state == State.WAITING_CHALLENGE:
        return "WaitingChallenge"
    elif state == State.CHALLENGER_WON:
        return "ChallengerWon"
    elif state == State.CLAIMER_WON:
        return "ClaimerWon"
    elif state == State.CONSENSUS_RESULT:
        return "ConsensusResult"
    else:
        raise UnrecognizedStateError(f"Unrecognized state: {state!r}")

import pytest

from descartes import DescartesConfig, ManualVerificationGame, State
from descartes.deadlines import get_max_state_duration, machine_run_time
from descartes.hub.vg import VGEscalation


ROUND = 7200


@pytest.fixture
def escalation():
    return VGEscalation(ManualVerificationGame())


def test_waiting_providers(escalation):
    config = DescartesConfig()
    assert get_max_state_duration(State.WAITING_PROVIDERS, ROUND, 1_000_000, config, escalation) == 40 + 2400 + ROUND


@pytest.mark.parametrize("state", [State.WAITING_CLAIM, State.WAITING_CONFIRMATION])
def test_work_proportional_states(escalation, state: State):
    config = DescartesConfig()

    # 10^6 cycles run in 500 microseconds, which round down to 0 seconds
    assert get_max_state_duration(state, ROUND, 1_000_000, config, escalation) == 40 + ROUND

    # 10^13 cycles at 500 ps per cycle take 5000 seconds
    assert machine_run_time(10**13, config) == 5000
    assert get_max_state_duration(state, ROUND, 10**13, config, escalation) == 40 + 5000 + ROUND


def test_waiting_challenge(escalation):
    config = DescartesConfig()

    # 6 partition rounds of 10x, plus the memory step, plus the final reaction
    expected = 6 * (40 + 0 + ROUND) + (40 + ROUND) + ROUND
    assert get_max_state_duration(State.WAITING_CHALLENGE, ROUND, 1_000_000, config, escalation) == expected


@pytest.mark.parametrize("state", [
    State.PROVIDER_MISSED_DEADLINE,
    State.CLAIMER_MISSED_DEADLINE,
    State.CHALLENGER_WON,
    State.CLAIMER_WON,
    State.CONSENSUS_RESULT,
])
def test_final_states_have_no_deadline(escalation, state: State):
    assert get_max_state_duration(state, ROUND, 1_000_000, DescartesConfig(), escalation) == 0


def test_config_validation():
    with pytest.raises(ValueError):
        DescartesConfig(partition_size=1)
    with pytest.raises(ValueError):
        DescartesConfig(time_to_start_machine=-1)


def test_config_from_env(monkeypatch, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("DESCARTES_PARTITION_SIZE=4\n")

    monkeypatch.setenv("DESCARTES_TIME_TO_START_MACHINE", "120")
    monkeypatch.delenv("DESCARTES_PARTITION_SIZE", raising=False)
    monkeypatch.delenv("DESCARTES_DRIVE_UPLOAD_ALLOWANCE", raising=False)
    monkeypatch.delenv("DESCARTES_PICO_SECONDS_TO_RUN_INSN", raising=False)

    config = DescartesConfig.from_env(str(env_file))

    assert config.time_to_start_machine == 120
    assert config.partition_size == 4
    assert config.drive_upload_allowance == DescartesConfig().drive_upload_allowance
    assert config.pico_seconds_to_run_insn == 500

